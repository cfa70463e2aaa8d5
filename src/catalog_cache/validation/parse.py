"""Strict and safe decoding of records.

``validate`` raises :class:`~catalog_cache.core.errors.ValidationError` and
is used for rows the cache authors itself. ``safe_parse`` returns ``None``
and logs the rejection; it is used for network data so that one malformed
record never aborts a batch.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any, TypeVar

import pydantic

from catalog_cache.core.errors import ValidationError
from catalog_cache.core.logging import get_logger
from catalog_cache.core.timestamps import to_iso8601, utc_now
from catalog_cache.validation.models import DETERMINISM_FIELDS, EVIDENCE_PREVIEW_MAX

logger = get_logger(__name__)

M = TypeVar("M", bound=pydantic.BaseModel)


def _to_validation_error(model: type[pydantic.BaseModel], exc: pydantic.ValidationError) -> ValidationError:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())) or None
    return ValidationError(
        f"Invalid {model.__name__}: {first.get('msg', str(exc))}",
        field=field,
        value=first.get("input"),
        constraint=first.get("type"),
        cause=exc,
    )


def validate(model: type[M], data: Any) -> M:
    """Decode *data* into *model* or raise ``ValidationError``."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        raise _to_validation_error(model, exc) from exc


def safe_parse(model: type[M], data: Any) -> M | None:
    """Decode *data* into *model*, returning ``None`` on failure."""
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        error = _to_validation_error(model, exc)
        record_id = None
        if isinstance(data, Mapping):
            record_id = next(
                (data[k] for k in data if k.endswith("_id") and isinstance(data[k], str)),
                None,
            )
        logger.warning(
            "validation.rejected",
            model=model.__name__,
            record_id=record_id,
            field=error.field,
            constraint=error.constraint,
        )
        return None


def parse_batch(
    model: type[M],
    items: Iterable[Any],
    transform: Callable[[Any], Any] | None = None,
) -> tuple[list[M], int]:
    """Safe-decode a batch.

    Returns:
        ``(valid_records, rejected_count)``
    """
    valid: list[M] = []
    rejected = 0
    for item in items:
        if transform is not None:
            if not isinstance(item, Mapping):
                rejected += 1
                continue
            try:
                item = transform(item)
            except (TypeError, ValueError) as e:
                logger.warning("validation.transform_failed", model=model.__name__, error=str(e))
                rejected += 1
                continue
        parsed = safe_parse(model, item)
        if parsed is None:
            rejected += 1
        else:
            valid.append(parsed)
    return valid, rejected


def transform_api_company(data: Mapping[str, Any], now: datetime | None = None) -> dict[str, Any]:
    """Normalize an upstream company payload before validation.

    ``is_active`` defaults to true unless explicitly false, missing
    timestamps default to *now*, and embedded aliases inherit the
    company id.
    """
    stamp = to_iso8601(now or utc_now())
    record = dict(data)
    record["is_active"] = data.get("is_active") is not False
    record["created_at"] = data.get("created_at") or stamp
    record["updated_at"] = data.get("updated_at") or stamp

    aliases = data.get("aliases")
    if aliases is None:
        record["aliases"] = []
    elif isinstance(aliases, list):
        record["aliases"] = [
            {**alias, "global_company_id": alias.get("global_company_id") or data.get("global_company_id")}
            if isinstance(alias, Mapping)
            else alias
            for alias in aliases
        ]
    return record


def transform_api_evidence(data: Mapping[str, Any]) -> dict[str, Any]:
    """Drop full content and bound the preview."""
    record = {k: v for k, v in data.items() if k != "content"}
    preview = data.get("preview") or data.get("content")
    if isinstance(preview, str):
        record["preview"] = preview[:EVIDENCE_PREVIEW_MAX]
    return record


def validate_determinism_fields(record: Mapping[str, Any] | pydantic.BaseModel | None) -> bool:
    """True when every determinism-bundle field is present and non-empty."""
    if record is None:
        return False
    if isinstance(record, pydantic.BaseModel):
        record = record.model_dump()
    return all(record.get(name) not in (None, "") for name in DETERMINISM_FIELDS)


__all__ = [
    "validate",
    "safe_parse",
    "parse_batch",
    "transform_api_company",
    "transform_api_evidence",
    "validate_determinism_fields",
]
