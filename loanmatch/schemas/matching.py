"""Pydantic schemas for ingestion, the matching pipeline, and its summary.

Pure data classes with no DB or HTTP dependencies.
Profiles are immutable snapshots built from ORM rows (from_attributes) or
directly in tests; candidates are transient values passed between stages.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from loanmatch.decoders.employment import normalize_employment
from loanmatch.models.enums import (
    AssessmentOutcome,
    BatchStatus,
    EmploymentStatus,
    LoanProductType,
    MatchSource,
    PipelineStage,
)

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Applicants
# ---------------------------------------------------------------------------


class ApplicantCreate(BaseModel):
    """Validated applicant record as accepted at ingestion."""

    model_config = ConfigDict(str_strip_whitespace=True)

    external_id: str = Field(min_length=1, max_length=50)
    email: str = Field(pattern=_EMAIL_PATTERN, max_length=255)
    monthly_income: Decimal = Field(ge=0)
    credit_score: int = Field(ge=300, le=900)
    employment_status: EmploymentStatus
    age: int = Field(ge=18, le=120)
    batch_tag: str | None = Field(default=None, max_length=100)

    @field_validator("employment_status", mode="before")
    @classmethod
    def _normalize_employment(cls, v: Any) -> Any:
        if isinstance(v, str):
            return normalize_employment(v)
        return v


class ApplicantProfile(ApplicantCreate):
    """Immutable applicant snapshot used by the pipeline."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: uuid.UUID


# ---------------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------------


class ProductCreate(BaseModel):
    """Validated loan product. Inverted ranges are rejected, never tolerated."""

    model_config = ConfigDict(str_strip_whitespace=True)

    provider_name: str = Field(min_length=1, max_length=200)
    product_name: str = Field(min_length=1, max_length=200)
    product_type: LoanProductType = LoanProductType.PERSONAL

    interest_rate_min: Decimal = Field(ge=0, le=100, description="Annual rate, percent")
    interest_rate_max: Decimal = Field(ge=0, le=100, description="Annual rate, percent")
    loan_amount_min: Decimal = Field(ge=0)
    loan_amount_max: Decimal = Field(ge=0)
    tenure_min_months: int = Field(ge=1)
    tenure_max_months: int = Field(ge=1)

    min_monthly_income: Decimal = Field(ge=0)
    min_credit_score: int = Field(ge=300, le=900)
    max_credit_score: int | None = Field(default=None, ge=300, le=900)
    min_age: int = Field(default=18, ge=18, le=120)
    max_age: int = Field(default=120, ge=18, le=120)
    accepted_employment: frozenset[EmploymentStatus] = Field(
        default_factory=frozenset,
        description="Empty set means no employment restriction",
    )

    processing_fee_percent: Decimal | None = Field(default=None, ge=0, le=100)
    source_url: str | None = Field(default=None, max_length=500)

    @field_validator("accepted_employment", mode="before")
    @classmethod
    def _normalize_accepted(cls, v: Any) -> Any:
        if v is None:
            return frozenset()
        if isinstance(v, (list, tuple, set, frozenset)):
            return frozenset(normalize_employment(item) for item in v)
        return v

    @model_validator(mode="after")
    def _check_ranges(self) -> ProductCreate:
        inverted = [
            name
            for name, low, high in (
                ("interest_rate", self.interest_rate_min, self.interest_rate_max),
                ("loan_amount", self.loan_amount_min, self.loan_amount_max),
                ("tenure_months", self.tenure_min_months, self.tenure_max_months),
                ("age", self.min_age, self.max_age),
            )
            if high < low
        ]
        if self.max_credit_score is not None and self.max_credit_score < self.min_credit_score:
            inverted.append("credit_score")
        if inverted:
            msg = f"Range max must be >= min for: {', '.join(inverted)}"
            raise ValueError(msg)
        return self


class ProductProfile(ProductCreate):
    """Immutable product snapshot used by the pipeline."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: uuid.UUID
    is_active: bool = True


# ---------------------------------------------------------------------------
# Pipeline values
# ---------------------------------------------------------------------------


class EligibilityFlags(BaseModel):
    """Per-criterion Stage 1 verdict. All four are always evaluated."""

    model_config = ConfigDict(frozen=True)

    income_eligible: bool
    credit_score_eligible: bool
    age_eligible: bool
    employment_eligible: bool

    @property
    def passed(self) -> bool:
        return (
            self.income_eligible
            and self.credit_score_eligible
            and self.age_eligible
            and self.employment_eligible
        )

    def failed_criteria(self) -> list[str]:
        """Names of the criteria that did not pass, in a fixed order."""
        checks = {
            "income": self.income_eligible,
            "credit_score": self.credit_score_eligible,
            "age": self.age_eligible,
            "employment": self.employment_eligible,
        }
        return [name for name, met in checks.items() if not met]


class MatchCandidate(BaseModel):
    """Transient (applicant, product) pair moving through the stages."""

    applicant_id: uuid.UUID
    product_id: uuid.UUID
    flags: EligibilityFlags
    score: Decimal = Decimal("0")

    # Stage 3
    outcome: AssessmentOutcome | None = None
    confidence: float | None = None
    reasoning: str | None = None
    source: MatchSource = MatchSource.SQL_FILTER

    @property
    def key(self) -> tuple[uuid.UUID, uuid.UUID]:
        return (self.applicant_id, self.product_id)


class AssessmentVerdict(BaseModel):
    """JSON verdict returned by the qualitative reasoning service."""

    qualified: bool
    confidence: float = Field(ge=0, le=1)
    reasoning: str = ""
    risk_factors: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Caller-facing results
# ---------------------------------------------------------------------------


class StageReport(BaseModel):
    """How many candidates entered and left one stage."""

    stage: PipelineStage
    entered: int
    passed: int

    @property
    def dropped(self) -> int:
        return self.entered - self.passed


class PipelineSummary(BaseModel):
    """Result of one pipeline run. Returned even when the run fails."""

    batch_tag: str | None = None
    status: BatchStatus = BatchStatus.COMPLETED
    last_stage: PipelineStage | None = None

    total_applicants: int = 0
    total_products: int = 0
    total_pairs: int = 0
    stages: list[StageReport] = Field(default_factory=list)

    persisted: int = 0
    persist_failures: int = 0
    fallback_count: int = 0
    elapsed_seconds: float = 0.0
    errors: list[str] = Field(default_factory=list)

    def stage(self, stage: PipelineStage) -> StageReport | None:
        """Return the report for a stage, or None if the run never reached it."""
        for report in self.stages:
            if report.stage == stage:
                return report
        return None


class PersistResult(BaseModel):
    """Outcome of one bulk match upsert."""

    attempted: int = 0
    persisted: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class BulkUpsertResult(BaseModel):
    """Outcome of an applicant re-upload keyed by external id."""

    inserted: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)


class BatchMatchSummary(BaseModel):
    """Aggregate view of the persisted matches of one batch."""

    batch_tag: str
    total_applicants: int
    total_products: int
    total_matches: int
    applicants_with_matches: int
    avg_matches_per_applicant: float
    sql_filter_matches: int
    logic_filter_matches: int
    llm_check_matches: int


class PendingNotification(BaseModel):
    """Eligible, not yet notified match joined with applicant and product details."""

    model_config = ConfigDict(from_attributes=True)

    match_id: uuid.UUID
    applicant_id: uuid.UUID
    applicant_external_id: str
    email: str
    product_id: uuid.UUID
    product_name: str
    provider_name: str
    interest_rate_min: Decimal
    interest_rate_max: Decimal
    loan_amount_min: Decimal
    loan_amount_max: Decimal
    match_score: Decimal
    llm_analysis: str | None = None
    batch_tag: str | None = None
    created_at: datetime | None = None
