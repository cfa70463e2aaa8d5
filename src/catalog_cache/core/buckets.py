"""Fixed bucket definitions shared by facet materialization and search.

Both the stored facet buckets and the live search facets use these bounds,
so a company always lands in the same bucket whichever path counted it.
Ranges are half-open ``[lower, upper)`` except the top range, which also
includes ``1.0``.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Bucket:
    value: str
    label: str
    lower: float
    upper: float
    inclusive_upper: bool = False

    def predicate(self, column: str) -> tuple[str, tuple[float, float]]:
        """``column`` inside this range, as SQL plus parameters."""
        op = "<=" if self.inclusive_upper else "<"
        return f"{column} >= ? AND {column} {op} ?", (self.lower, self.upper)

    def contains(self, score: float | None) -> bool:
        if score is None:
            return False
        if self.inclusive_upper:
            return self.lower <= score <= self.upper
        return self.lower <= score < self.upper


SCORE_RANGES: tuple[Bucket, ...] = (
    Bucket("0-20", "0-20", 0.0, 0.2),
    Bucket("20-40", "20-40", 0.2, 0.4),
    Bucket("40-60", "40-60", 0.4, 0.6),
    Bucket("60-80", "60-80", 0.6, 0.8),
    Bucket("80-100", "80-100", 0.8, 1.0, inclusive_upper=True),
)

RISK_LEVELS: dict[str, Bucket] = {
    "low": Bucket("low", "Low", 0.0, 0.3),
    "medium": Bucket("medium", "Medium", 0.3, 0.7),
    "high": Bucket("high", "High", 0.7, 1.0, inclusive_upper=True),
}


def case_expression(column: str, buckets: tuple[Bucket, ...] | list[Bucket]) -> tuple[str, list[float]]:
    """``CASE`` expression mapping *column* to a bucket value (NULL if none)."""
    parts: list[str] = []
    params: list[float] = []
    for bucket in buckets:
        sql, bounds = bucket.predicate(column)
        parts.append(f"WHEN {sql} THEN '{bucket.value}'")
        params.extend(bounds)
    return f"CASE {' '.join(parts)} ELSE NULL END", params


__all__ = ["Bucket", "SCORE_RANGES", "RISK_LEVELS", "case_expression"]
