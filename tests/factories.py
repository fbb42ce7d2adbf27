"""Profile builders shared by the test modules.

Defaults describe the reference pair: an employed 35-year-old earning 60000
with credit 780, and a personal loan requiring 25000 income, credit 700,
age 21–60, employed or self-employed. That pair scores 67.00.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Any

from loanmatch.models.enums import EmploymentStatus
from loanmatch.schemas.matching import ApplicantProfile, EligibilityFlags, MatchCandidate, ProductProfile


def make_applicant(**overrides: Any) -> ApplicantProfile:
    data: dict[str, Any] = {
        "id": uuid.uuid4(),
        "external_id": "A-001",
        "email": "applicant@example.com",
        "monthly_income": Decimal("60000"),
        "credit_score": 780,
        "employment_status": EmploymentStatus.EMPLOYED,
        "age": 35,
        "batch_tag": "batch-1",
    }
    data.update(overrides)
    return ApplicantProfile(**data)


def make_product(**overrides: Any) -> ProductProfile:
    data: dict[str, Any] = {
        "id": uuid.uuid4(),
        "provider_name": "Acme Bank",
        "product_name": "Personal Loan",
        "interest_rate_min": Decimal("10.50"),
        "interest_rate_max": Decimal("14.00"),
        "loan_amount_min": Decimal("50000"),
        "loan_amount_max": Decimal("500000"),
        "tenure_min_months": 12,
        "tenure_max_months": 60,
        "min_monthly_income": Decimal("25000"),
        "min_credit_score": 700,
        "min_age": 21,
        "max_age": 60,
        "accepted_employment": frozenset({EmploymentStatus.EMPLOYED, EmploymentStatus.SELF_EMPLOYED}),
    }
    data.update(overrides)
    return ProductProfile(**data)


PASSING_FLAGS = EligibilityFlags(
    income_eligible=True,
    credit_score_eligible=True,
    age_eligible=True,
    employment_eligible=True,
)


def make_candidate(
    applicant: ApplicantProfile,
    product: ProductProfile,
    score: str | Decimal = "0",
) -> MatchCandidate:
    return MatchCandidate(
        applicant_id=applicant.id,
        product_id=product.id,
        flags=PASSING_FLAGS,
        score=Decimal(score),
    )
