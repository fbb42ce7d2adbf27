"""Pure lookup-table decoders for ingested data."""

from loanmatch.decoders.employment import EMPLOYMENT_SYNONYMS, normalize_employment

__all__ = ["EMPLOYMENT_SYNONYMS", "normalize_employment"]
