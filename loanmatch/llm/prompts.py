"""Stage 3 prompt — ask the reasoning service for a JSON eligibility verdict."""

from __future__ import annotations

from loanmatch.schemas.matching import ApplicantProfile, ProductProfile

RESPONSE_FORMAT = """Respond ONLY with valid JSON in this exact format:
{
  "qualified": true/false,
  "confidence": 0.0-1.0,
  "reasoning": "Brief explanation",
  "risk_factors": ["factor1", "factor2"]
}"""

CONSIDERATIONS = """Consider:
1. Does the applicant meet all hard requirements?
2. Is their income sufficient for the monthly installment?
3. Are there any red flags or risk factors?
4. Overall likelihood of loan approval"""


def build_assessment_prompt(applicant: ApplicantProfile, product: ProductProfile) -> str:
    """Render the verdict request for one candidate pair."""
    max_credit = (
        f"\n- Max Credit Score: {product.max_credit_score}"
        if product.max_credit_score is not None
        else ""
    )
    return f"""You are a loan eligibility expert. Evaluate if this applicant is a good candidate for this loan product.

APPLICANT PROFILE:
- Applicant ID: {applicant.external_id}
- Age: {applicant.age} years
- Monthly Income: {applicant.monthly_income:.0f}
- Credit Score: {applicant.credit_score}
- Employment Status: {applicant.employment_status.value}

LOAN PRODUCT:
- Name: {product.product_name}
- Provider: {product.provider_name}
- Interest Rate: {product.interest_rate_min:.2f}% - {product.interest_rate_max:.2f}%
- Loan Amount Range: {product.loan_amount_min:.0f} - {product.loan_amount_max:.0f}
- Tenure: {product.tenure_min_months} - {product.tenure_max_months} months
- Min Credit Score: {product.min_credit_score}{max_credit}
- Min Monthly Income: {product.min_monthly_income:.0f}
- Age Range: {product.min_age} - {product.max_age} years

{RESPONSE_FORMAT}

{CONSIDERATIONS}"""
