"""Stage 1 eligibility predicate.

Pure function of one applicant and one product. Every criterion is evaluated
even when an earlier one fails, so persisted matches and reports can say
which criteria a pair failed.
"""

from __future__ import annotations

from loanmatch.schemas.matching import ApplicantProfile, EligibilityFlags, ProductProfile


def income_eligible(applicant: ApplicantProfile, product: ProductProfile) -> bool:
    """Income at or above the product minimum (no upper bound)."""
    return applicant.monthly_income >= product.min_monthly_income


def credit_score_eligible(applicant: ApplicantProfile, product: ProductProfile) -> bool:
    """Credit score inside [min, max]; an unset max means unbounded."""
    if applicant.credit_score < product.min_credit_score:
        return False
    return product.max_credit_score is None or applicant.credit_score <= product.max_credit_score


def age_eligible(applicant: ApplicantProfile, product: ProductProfile) -> bool:
    return product.min_age <= applicant.age <= product.max_age


def employment_eligible(applicant: ApplicantProfile, product: ProductProfile) -> bool:
    """An empty accepted set means every employment status is accepted."""
    return not product.accepted_employment or applicant.employment_status in product.accepted_employment


def check_eligibility(applicant: ApplicantProfile, product: ProductProfile) -> EligibilityFlags:
    """Evaluate all four hard criteria for one pair."""
    return EligibilityFlags(
        income_eligible=income_eligible(applicant, product),
        credit_score_eligible=credit_score_eligible(applicant, product),
        age_eligible=age_eligible(applicant, product),
        employment_eligible=employment_eligible(applicant, product),
    )
