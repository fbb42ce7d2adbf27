"""SQLAlchemy ORM models for the matching engine.

Import all models here so Alembic and Base.metadata.create_all() discover them.
"""

from __future__ import annotations

from loanmatch.models.applicant import Applicant
from loanmatch.models.audit import AuditLog
from loanmatch.models.base import Base
from loanmatch.models.enums import (
    AssessmentOutcome,
    BatchStatus,
    EmploymentStatus,
    LoanProductType,
    MatchSource,
    MatchStatus,
    PipelineStage,
)
from loanmatch.models.loan_product import LoanProduct
from loanmatch.models.match import Match

__all__ = [
    # Base
    "Base",
    # Models
    "Applicant",
    "LoanProduct",
    "Match",
    "AuditLog",
    # Enums
    "EmploymentStatus",
    "LoanProductType",
    "MatchStatus",
    "MatchSource",
    "AssessmentOutcome",
    "PipelineStage",
    "BatchStatus",
]
