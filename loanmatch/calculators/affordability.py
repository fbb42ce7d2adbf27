"""Installment and affordability calculator.

Pure Python, Decimal arithmetic. Implements:
- Amortizing installment: P × r × (1+r)^n / ((1+r)^n − 1), r = annual% / 100 / 12
- Affordability ceiling: income × income_share × buffer

The affordability check prices the product's minimum loan amount at its
maximum rate over its maximum tenure, and rejects the pair only if that
installment exceeds the buffered ceiling.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from loanmatch.schemas.matching import ApplicantProfile, ProductProfile

DEFAULT_INCOME_SHARE = Decimal("0.5")
DEFAULT_BUFFER = Decimal("2.0")

_MONTHS_PER_YEAR = Decimal("12")
_HUNDRED = Decimal("100")


def _to_cents(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class AffordabilityResult:
    """Outcome of the Stage 2 affordability check."""

    affordable: bool
    installment: Decimal | None  # None when the rate is zero (check skipped)
    ceiling: Decimal


def monthly_rate(annual_rate_percent: Decimal) -> Decimal:
    """Convert an annual percentage rate into a monthly fraction."""
    return annual_rate_percent / _HUNDRED / _MONTHS_PER_YEAR


def monthly_installment(
    principal: Decimal,
    annual_rate_percent: Decimal,
    tenure_months: int,
) -> Decimal | None:
    """Installment of a fully amortizing loan.

    Returns None for a zero rate: the formula divides by zero there and the
    affordability check is skipped for such products.
    """
    if tenure_months <= 0:
        msg = f"tenure_months must be positive, got {tenure_months}"
        raise ValueError(msg)
    r = monthly_rate(annual_rate_percent)
    if r == 0:
        return None
    growth = (1 + r) ** tenure_months
    return _to_cents(principal * r * growth / (growth - 1))


def affordability_ceiling(
    monthly_income: Decimal,
    income_share: Decimal = DEFAULT_INCOME_SHARE,
    buffer: Decimal = DEFAULT_BUFFER,
) -> Decimal:
    """Largest installment the applicant is deemed able to sustain."""
    return _to_cents(monthly_income * income_share * buffer)


def check_affordability(
    applicant: ApplicantProfile,
    product: ProductProfile,
    income_share: Decimal = DEFAULT_INCOME_SHARE,
    buffer: Decimal = DEFAULT_BUFFER,
) -> AffordabilityResult:
    """Price the product's cheapest loan at its worst terms against the applicant's ceiling."""
    ceiling = affordability_ceiling(applicant.monthly_income, income_share, buffer)
    installment = monthly_installment(
        product.loan_amount_min,
        product.interest_rate_max,
        product.tenure_max_months,
    )
    affordable = installment is None or installment <= ceiling
    return AffordabilityResult(affordable=affordable, installment=installment, ceiling=ceiling)
