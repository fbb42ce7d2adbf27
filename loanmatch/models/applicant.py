"""Applicant model — one row per uploaded applicant.

Re-uploading the same external_id overwrites the financial fields in place.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from loanmatch.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from loanmatch.models.match import Match


class Applicant(TimestampMixin, Base):
    """A loan applicant, grouped into upload batches by batch_tag."""

    __tablename__ = "applicants"
    __table_args__ = (
        CheckConstraint("monthly_income >= 0", name="income_non_negative"),
        CheckConstraint("credit_score BETWEEN 300 AND 900", name="credit_score_range"),
        CheckConstraint("age BETWEEN 18 AND 120", name="age_range"),
    )

    external_id: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    # Financial snapshot
    monthly_income: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    credit_score: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    employment_status: Mapped[str] = mapped_column(String(20), nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)

    batch_tag: Mapped[str | None] = mapped_column(String(100), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    matches: Mapped[list[Match]] = relationship(
        "Match", back_populates="applicant", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<Applicant external_id={self.external_id} batch={self.batch_tag}>"
