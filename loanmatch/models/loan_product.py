"""LoanProduct model — the catalog the matching pipeline evaluates against."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column, relationship

from loanmatch.models.base import Base, TimestampMixin
from loanmatch.models.enums import LoanProductType

if TYPE_CHECKING:
    from loanmatch.models.match import Match


class LoanProduct(TimestampMixin, Base):
    """A loan product offered by a provider.

    Every range column pair is guarded by a CHECK constraint so an inverted
    range can never be stored, even if it bypasses schema validation.
    """

    __tablename__ = "loan_products"
    __table_args__ = (
        UniqueConstraint("provider_name", "product_name"),
        CheckConstraint("interest_rate_max >= interest_rate_min", name="interest_rate_range"),
        CheckConstraint("loan_amount_max >= loan_amount_min", name="loan_amount_range"),
        CheckConstraint("tenure_max_months >= tenure_min_months", name="tenure_range"),
        CheckConstraint("max_age >= min_age", name="age_range"),
        CheckConstraint(
            "max_credit_score IS NULL OR max_credit_score >= min_credit_score",
            name="credit_score_range",
        ),
    )

    provider_name: Mapped[str] = mapped_column(String(200), nullable=False)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    product_type: Mapped[str] = mapped_column(String(20), default=LoanProductType.PERSONAL.value)

    # Terms (annual interest rate in percent)
    interest_rate_min: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    interest_rate_max: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    loan_amount_min: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    loan_amount_max: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    tenure_min_months: Mapped[int] = mapped_column(Integer, nullable=False)
    tenure_max_months: Mapped[int] = mapped_column(Integer, nullable=False)

    # Eligibility criteria
    min_monthly_income: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, index=True)
    min_credit_score: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    max_credit_score: Mapped[int | None] = mapped_column(Integer)
    min_age: Mapped[int] = mapped_column(Integer, nullable=False)
    max_age: Mapped[int] = mapped_column(Integer, nullable=False)
    accepted_employment: Mapped[list[str]] = mapped_column(
        ARRAY(String(20)),
        default=list,
        nullable=False,
        comment="Empty array means every employment status is accepted",
    )

    processing_fee_percent: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    source_url: Mapped[str | None] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    matches: Mapped[list[Match]] = relationship(
        "Match", back_populates="product", cascade="all, delete-orphan", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<LoanProduct {self.provider_name}/{self.product_name} active={self.is_active}>"
