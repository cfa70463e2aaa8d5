"""Typed record contracts for synced and overlay entities.

Every inbound record is decoded into one of these Pydantic v2 models before
it reaches storage. Network records are decoded in safe mode and skipped on
failure; locally authored overlay writes are decoded in strict mode and
raise (see :mod:`catalog_cache.validation.parse`).

Key Concepts:
    Company: Synced catalog row with the determinism bundle
        (six scores, confidence, norm context version, checksum).
    CompanyAlias / Evidence / DriftAlert / ScoringRun / ServiceStat:
        Synced satellites, each keyed by its own upstream id.
    ScoreBundle: Score payload from the scores endpoint.
    WorkspaceBookmark / WorkspaceComparison / WorkspaceNote /
    SearchHistoryEntry: User overlay rows, never touched by sync.
    SearchFilters / SearchOptions: Local search request contract.

Tags:
    validation, pydantic, models, catalog-cache
"""

from __future__ import annotations

import uuid
from typing import Annotated, Any, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    model_validator,
)

# ── Field types ──────────────────────────────────────────────────


def _check_uuid(value: str) -> str:
    uuid.UUID(value)
    return value


IsoDateStr = Annotated[str, StringConstraints(pattern=r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}")]
UuidStr = Annotated[str, AfterValidator(_check_uuid)]
NonEmptyStr = Annotated[str, StringConstraints(min_length=1)]
Score = Annotated[float, Field(ge=0, le=1)]

AliasType = Literal["legal", "dba", "brand", "former", "other"]
EvidenceType = Literal["article", "report", "filing", "website", "social", "other"]
DriftMetric = Literal["d_score", "o_score", "i_score", "m_score", "b_score", "final_score"]
RunStatus = Literal["running", "completed", "failed"]
RiskLevel = Literal["low", "medium", "high"]
SortField = Literal["score", "name", "updated_at", "relevance"]

EVIDENCE_PREVIEW_MAX = 500

DETERMINISM_FIELDS = (
    "norm_context_version",
    "checksum",
    "final_score",
    "d_score",
    "o_score",
    "i_score",
    "m_score",
    "b_score",
    "confidence_score",
)

SCORE_FIELDS = (
    "final_score",
    "d_score",
    "o_score",
    "i_score",
    "m_score",
    "b_score",
    "confidence_score",
)


class CatalogModel(BaseModel):
    """Base for synced records; unknown upstream fields are ignored."""

    model_config = ConfigDict(extra="ignore")


# ── Synced catalog records ───────────────────────────────────────


class CompanyAlias(CatalogModel):
    alias_id: NonEmptyStr
    global_company_id: NonEmptyStr
    alias: NonEmptyStr
    alias_type: AliasType
    created_at: IsoDateStr


class Company(CatalogModel):
    """A company record from the universal catalog."""

    global_company_id: NonEmptyStr
    dataset_version: str
    name: NonEmptyStr
    domain: str | None = None
    postal_code: str | None = None
    country_code: Annotated[str, StringConstraints(min_length=2, max_length=2)] | None = None
    city: str | None = None
    state: str | None = None
    region: str | None = None
    industry: str | None = None
    sector: str | None = None
    employee_count: Annotated[int, Field(ge=0)] | None = None
    revenue_estimate: Annotated[float, Field(ge=0)] | None = None

    # Determinism bundle
    final_score: Score
    d_score: Score
    o_score: Score
    i_score: Score
    m_score: Score
    b_score: Score
    confidence_score: Score
    norm_context_version: NonEmptyStr
    checksum: NonEmptyStr

    risk_score: Score | None = None
    feasibility_score: Score | None = None

    created_at: IsoDateStr
    updated_at: IsoDateStr
    synced_at: IsoDateStr | None = None
    is_active: bool = True
    tombstone_at: IsoDateStr | None = None

    aliases: list[CompanyAlias] = Field(default_factory=list)


class ScoreBundle(CatalogModel):
    """Score payload returned by ``/v1/catalog/scores``."""

    final_score: Score
    d_score: Score
    o_score: Score
    i_score: Score
    m_score: Score
    b_score: Score
    confidence_score: Score
    norm_context_version: NonEmptyStr
    checksum: NonEmptyStr
    risk_score: Score | None = None
    feasibility_score: Score | None = None


class Evidence(CatalogModel):
    evidence_id: NonEmptyStr
    global_company_id: NonEmptyStr
    type: EvidenceType
    title: NonEmptyStr
    preview: Annotated[str, StringConstraints(min_length=1, max_length=EVIDENCE_PREVIEW_MAX)]
    source_url: Annotated[str, StringConstraints(pattern=r"^https?://\S+$")] | None = None
    source_name: str | None = None
    relevance_score: Score | None = None
    created_at: IsoDateStr
    extracted_at: IsoDateStr | None = None


class DriftAlert(CatalogModel):
    alert_id: NonEmptyStr
    global_company_id: NonEmptyStr
    metric: DriftMetric
    old_value: Score
    new_value: Score
    drift_percentage: float
    detected_at: IsoDateStr
    run_id: NonEmptyStr
    seen_at: IsoDateStr | None = None


class ScoringRun(CatalogModel):
    run_id: NonEmptyStr
    started_at: IsoDateStr
    completed_at: IsoDateStr | None = None
    companies_scored: Annotated[int, Field(ge=0)]
    avg_confidence: Score
    norm_context_version: NonEmptyStr
    status: RunStatus
    error_message: str | None = None


class ServiceStat(CatalogModel):
    stat_name: NonEmptyStr
    stat_value: float
    unit: str | None = None
    measured_at: IsoDateStr


# ── Overlay records ──────────────────────────────────────────────


class OverlayModel(BaseModel):
    """Base for locally authored rows; unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")

    user_id: NonEmptyStr
    org_id: str | None = None


class WorkspaceBookmark(OverlayModel):
    global_company_id: NonEmptyStr
    tags: list[str] = Field(default_factory=list)
    created_at: IsoDateStr
    updated_at: IsoDateStr


class WorkspaceComparison(OverlayModel):
    comparison_id: UuidStr
    name: NonEmptyStr
    company_ids: Annotated[list[NonEmptyStr], Field(min_length=2)]
    created_at: IsoDateStr
    updated_at: IsoDateStr


class WorkspaceNote(OverlayModel):
    note_id: UuidStr
    global_company_id: NonEmptyStr
    content: NonEmptyStr
    created_at: IsoDateStr
    updated_at: IsoDateStr


class SearchHistoryEntry(OverlayModel):
    search_id: UuidStr
    query: str
    filters: dict[str, Any] | None = None
    result_count: Annotated[int, Field(ge=0)]
    executed_at: IsoDateStr


# ── Search contract ──────────────────────────────────────────────


class SearchFilters(BaseModel):
    """Structured filters for local search. Ranges are inclusive."""

    model_config = ConfigDict(extra="forbid")

    region: list[str] | None = None
    industry: list[str] | None = None
    score_min: Score | None = None
    score_max: Score | None = None
    employee_count_min: Annotated[int, Field(ge=0)] | None = None
    employee_count_max: Annotated[int, Field(ge=0)] | None = None
    risk_level: RiskLevel | None = None
    trustworthy_only: bool = False

    @model_validator(mode="after")
    def _check_ranges(self) -> SearchFilters:
        if (
            self.score_min is not None
            and self.score_max is not None
            and self.score_min > self.score_max
        ):
            raise ValueError("score_min must not exceed score_max")
        if (
            self.employee_count_min is not None
            and self.employee_count_max is not None
            and self.employee_count_min > self.employee_count_max
        ):
            raise ValueError("employee_count_min must not exceed employee_count_max")
        return self


class SearchOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    q: str | None = None
    filters: SearchFilters = Field(default_factory=SearchFilters)
    sort: SortField = "score"
    sort_order: Literal["asc", "desc"] = "desc"
    limit: Annotated[int, Field(ge=1, le=500)] = 20
    offset: Annotated[int, Field(ge=0)] = 0


__all__ = [
    "AliasType",
    "DETERMINISM_FIELDS",
    "DriftMetric",
    "EVIDENCE_PREVIEW_MAX",
    "EvidenceType",
    "RiskLevel",
    "RunStatus",
    "SCORE_FIELDS",
    "SortField",
    "CatalogModel",
    "Company",
    "CompanyAlias",
    "DriftAlert",
    "Evidence",
    "ScoreBundle",
    "ScoringRun",
    "ServiceStat",
    "OverlayModel",
    "SearchFilters",
    "SearchHistoryEntry",
    "SearchOptions",
    "WorkspaceBookmark",
    "WorkspaceComparison",
    "WorkspaceNote",
]
