"""Pydantic schemas — value objects shared by the pipeline and the API."""

from loanmatch.schemas.events import EventType, SystemEvent
from loanmatch.schemas.matching import (
    ApplicantCreate,
    ApplicantProfile,
    AssessmentVerdict,
    BatchMatchSummary,
    BulkUpsertResult,
    EligibilityFlags,
    MatchCandidate,
    PendingNotification,
    PersistResult,
    PipelineSummary,
    ProductCreate,
    ProductProfile,
    StageReport,
)

__all__ = [
    "ApplicantCreate",
    "ApplicantProfile",
    "ProductCreate",
    "ProductProfile",
    "EligibilityFlags",
    "MatchCandidate",
    "AssessmentVerdict",
    "StageReport",
    "PipelineSummary",
    "BatchMatchSummary",
    "BulkUpsertResult",
    "PersistResult",
    "PendingNotification",
    "EventType",
    "SystemEvent",
]
