"""Stage 2 — deterministic eligibility score and affordability filter.

Score components (weights sum to 100):

  credit      ≤ 40   40 × (credit − min_credit) / (900 − min_credit)
  income      ≤ 30   30 × min((income − min_income) / (2 × min_income), 1)
  age         = 15   flat, when inside the product's age range
  employment  = 15   flat, when accepted or the product has no restriction

Each component is clamped to [0, weight]; the total to [0, 100].
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal

from loanmatch.calculators.affordability import (
    DEFAULT_BUFFER,
    DEFAULT_INCOME_SHARE,
    check_affordability,
)
from loanmatch.eligibility.predicate import age_eligible, employment_eligible
from loanmatch.models.enums import MatchSource
from loanmatch.schemas.matching import ApplicantProfile, MatchCandidate, ProductProfile

logger = logging.getLogger(__name__)

CREDIT_WEIGHT = Decimal("40")
INCOME_WEIGHT = Decimal("30")
AGE_WEIGHT = Decimal("15")
EMPLOYMENT_WEIGHT = Decimal("15")

CREDIT_SCORE_CEILING = 900
INCOME_EXCELLENCE_MULTIPLE = Decimal("2")  # income this many × min above min earns full weight

MAX_SCORE = Decimal("100")
_ZERO = Decimal("0")


def _clamp(value: Decimal, upper: Decimal) -> Decimal:
    return max(_ZERO, min(value, upper))


def credit_component(applicant: ApplicantProfile, product: ProductProfile) -> Decimal:
    span = CREDIT_SCORE_CEILING - product.min_credit_score
    excess = applicant.credit_score - product.min_credit_score
    if span <= 0 or excess < 0:
        return _ZERO
    return _clamp(CREDIT_WEIGHT * excess / span, CREDIT_WEIGHT)


def income_component(applicant: ApplicantProfile, product: ProductProfile) -> Decimal:
    span = product.min_monthly_income * INCOME_EXCELLENCE_MULTIPLE
    if span <= 0:
        return _ZERO
    ratio = min((applicant.monthly_income - product.min_monthly_income) / span, Decimal("1"))
    return _clamp(INCOME_WEIGHT * ratio, INCOME_WEIGHT)


def age_component(applicant: ApplicantProfile, product: ProductProfile) -> Decimal:
    return AGE_WEIGHT if age_eligible(applicant, product) else _ZERO


def employment_component(applicant: ApplicantProfile, product: ProductProfile) -> Decimal:
    return EMPLOYMENT_WEIGHT if employment_eligible(applicant, product) else _ZERO


def score_candidate(applicant: ApplicantProfile, product: ProductProfile) -> Decimal:
    """Deterministic 0–100 eligibility score, rounded to two decimals."""
    total = (
        credit_component(applicant, product)
        + income_component(applicant, product)
        + age_component(applicant, product)
        + employment_component(applicant, product)
    )
    return _clamp(total, MAX_SCORE).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def apply_business_rules(
    candidates: list[MatchCandidate],
    applicants: Mapping[uuid.UUID, ApplicantProfile],
    products: Mapping[uuid.UUID, ProductProfile],
    income_share: Decimal = DEFAULT_INCOME_SHARE,
    buffer: Decimal = DEFAULT_BUFFER,
) -> list[MatchCandidate]:
    """Drop unaffordable candidates and attach a score to the survivors.

    Input order is preserved. Returns new candidate objects; inputs are not mutated.
    """
    survivors: list[MatchCandidate] = []
    for candidate in candidates:
        applicant = applicants.get(candidate.applicant_id)
        product = products.get(candidate.product_id)
        if applicant is None or product is None:
            continue

        affordability = check_affordability(applicant, product, income_share, buffer)
        if not affordability.affordable:
            logger.debug(
                "Unaffordable: applicant=%s product=%s installment=%s ceiling=%s",
                applicant.external_id,
                product.product_name,
                affordability.installment,
                affordability.ceiling,
            )
            continue

        survivors.append(candidate.model_copy(update={
            "score": score_candidate(applicant, product),
            "source": MatchSource.LOGIC_FILTER,
        }))
    return survivors
