"""Match model — persisted outcome of the matching pipeline."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from loanmatch.models.base import Base, TimestampMixin
from loanmatch.models.enums import MatchSource, MatchStatus

if TYPE_CHECKING:
    from loanmatch.models.applicant import Applicant
    from loanmatch.models.loan_product import LoanProduct


class Match(TimestampMixin, Base):
    """At most one row per (applicant, product); re-runs overwrite it."""

    __tablename__ = "matches"
    __table_args__ = (UniqueConstraint("applicant_id", "product_id"),)

    applicant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("applicants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("loan_products.id", ondelete="CASCADE"), nullable=False, index=True
    )

    match_score: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=MatchStatus.PENDING.value, index=True)
    match_source: Mapped[str] = mapped_column(String(20), default=MatchSource.LLM_CHECK.value)

    # Per-criterion flags (why a pair passed, not only that it passed)
    income_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)
    credit_score_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)
    age_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)
    employment_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False)

    # Stage 3 output
    llm_analysis: Mapped[str | None] = mapped_column(Text)
    llm_confidence: Mapped[float | None] = mapped_column(Float)

    batch_tag: Mapped[str | None] = mapped_column(String(100), index=True)
    notified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), comment="Written by the notification collaborator only"
    )

    applicant: Mapped[Applicant] = relationship("Applicant", back_populates="matches")
    product: Mapped[LoanProduct] = relationship("LoanProduct", back_populates="matches")

    def __repr__(self) -> str:
        return f"<Match applicant={self.applicant_id} product={self.product_id} status={self.status}>"
