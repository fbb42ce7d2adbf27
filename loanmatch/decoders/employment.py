"""Employment string → EmploymentStatus lookup.

Uploads carry free-form employment descriptions ("Salaried", "business-owner",
"Pensioner"). They are normalized (lower case, spaces and hyphens become
underscores) and looked up in a static synonym table. Anything not in the
table is rejected: an unknown category never reaches the pipeline.
"""

from __future__ import annotations

from types import MappingProxyType

from loanmatch.errors import UnknownEmploymentStatusError
from loanmatch.models.enums import EmploymentStatus

_E = EmploymentStatus

EMPLOYMENT_SYNONYMS: MappingProxyType[str, EmploymentStatus] = MappingProxyType({
    # Employed
    "employed": _E.EMPLOYED,
    "salaried": _E.EMPLOYED,
    "full_time": _E.EMPLOYED,
    "fulltime": _E.EMPLOYED,
    "part_time": _E.EMPLOYED,
    "parttime": _E.EMPLOYED,
    # Self-employed
    "self_employed": _E.SELF_EMPLOYED,
    "selfemployed": _E.SELF_EMPLOYED,
    "self_employment": _E.SELF_EMPLOYED,
    "business": _E.SELF_EMPLOYED,
    "business_owner": _E.SELF_EMPLOYED,
    "businessowner": _E.SELF_EMPLOYED,
    "entrepreneur": _E.SELF_EMPLOYED,
    "freelancer": _E.SELF_EMPLOYED,
    # Unemployed
    "unemployed": _E.UNEMPLOYED,
    "jobless": _E.UNEMPLOYED,
    "not_employed": _E.UNEMPLOYED,
    # Retired
    "retired": _E.RETIRED,
    "pensioner": _E.RETIRED,
    # Student
    "student": _E.STUDENT,
    "studying": _E.STUDENT,
})


def _normalize_key(raw: str) -> str:
    return raw.strip().lower().replace(" ", "_").replace("-", "_")


def normalize_employment(raw: str | EmploymentStatus) -> EmploymentStatus:
    """Map a raw employment description onto an EmploymentStatus.

    Raises:
        UnknownEmploymentStatusError: if the description has no synonym entry.
    """
    if isinstance(raw, EmploymentStatus):
        return raw
    status = EMPLOYMENT_SYNONYMS.get(_normalize_key(raw))
    if status is None:
        raise UnknownEmploymentStatusError(raw)
    return status
