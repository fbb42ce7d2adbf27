"""Eligibility engine — hard criteria, scoring and ranking of applicant/product pairs."""

from loanmatch.eligibility.candidates import CandidateGenerator, GenerationResult, generate_candidates
from loanmatch.eligibility.predicate import check_eligibility
from loanmatch.eligibility.ranking import rank_candidates
from loanmatch.eligibility.scoring import apply_business_rules, score_candidate

__all__ = [
    "CandidateGenerator",
    "GenerationResult",
    "generate_candidates",
    "check_eligibility",
    "rank_candidates",
    "apply_business_rules",
    "score_candidate",
]
