"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization; columns store the `.value`.
"""

from __future__ import annotations

from enum import Enum


class EmploymentStatus(str, Enum):
    """Applicant employment category; drives product eligibility."""

    EMPLOYED = "employed"
    SELF_EMPLOYED = "self_employed"
    UNEMPLOYED = "unemployed"
    RETIRED = "retired"
    STUDENT = "student"


class LoanProductType(str, Enum):
    """Loan product family."""

    PERSONAL = "personal"
    HOME = "home"
    AUTO = "auto"
    EDUCATION = "education"
    BUSINESS = "business"


class MatchStatus(str, Enum):
    """Lifecycle status of a persisted match."""

    PENDING = "pending"
    ELIGIBLE = "eligible"
    NOT_ELIGIBLE = "not_eligible"
    NOTIFIED = "notified"  # set by the notification collaborator only
    EXPIRED = "expired"


class MatchSource(str, Enum):
    """Pipeline stage that produced the final decision for a match."""

    SQL_FILTER = "sql_filter"
    LOGIC_FILTER = "logic_filter"
    LLM_CHECK = "llm_check"
    MANUAL = "manual"


class AssessmentOutcome(str, Enum):
    """How Stage 3 decided a candidate."""

    QUALIFIED = "qualified"
    NOT_QUALIFIED = "not_qualified"
    FALLBACK_ACCEPTED = "fallback_accepted"
    FALLBACK_REJECTED = "fallback_rejected"
    OFFLINE_ACCEPTED = "offline_accepted"

    @property
    def accepted(self) -> bool:
        return self in (
            AssessmentOutcome.QUALIFIED,
            AssessmentOutcome.FALLBACK_ACCEPTED,
            AssessmentOutcome.OFFLINE_ACCEPTED,
        )


class PipelineStage(str, Enum):
    """Ordered stages of a pipeline run."""

    GENERATED = "generated"
    SCORED = "scored"
    RANKED = "ranked"
    ASSESSED = "assessed"
    PERSISTED = "persisted"


class BatchStatus(str, Enum):
    """Terminal status of a pipeline run."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
