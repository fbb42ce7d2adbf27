"""Financial calculators — installment and affordability."""

from loanmatch.calculators.affordability import (
    AffordabilityResult,
    affordability_ceiling,
    check_affordability,
    monthly_installment,
)

__all__ = [
    "AffordabilityResult",
    "affordability_ceiling",
    "check_affordability",
    "monthly_installment",
]
