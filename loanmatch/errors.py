"""Exception hierarchy for the matching engine.

Fatal pipeline errors derive from MatchingError and are classified by the
orchestrator into a failed batch summary. Reasoning-service errors derive
from AssessmentServiceError and are always recovered by the fallback policy.
"""

from __future__ import annotations


class MatchingError(Exception):
    """Base class for errors that abort a pipeline run."""


class RepositoryError(MatchingError):
    """The applicant/product repository could not be read or written."""


class DuplicateProductError(RepositoryError):
    """A product with the same provider and name is already in the catalog."""


class PersistenceError(MatchingError):
    """The match store is unreachable; the persist step was aborted."""


class BatchLockedError(MatchingError):
    """Another run currently holds the lock for this batch tag."""

    def __init__(self, batch_tag: str) -> None:
        super().__init__(f"Batch {batch_tag!r} is already being processed")
        self.batch_tag = batch_tag


class AssessmentServiceError(Exception):
    """The qualitative reasoning service failed for one candidate."""


class AssessmentTimeoutError(AssessmentServiceError):
    """The reasoning service did not answer within the request timeout."""


class MalformedAssessmentError(AssessmentServiceError):
    """The reasoning service answered, but not with the expected JSON verdict."""


class UnknownEmploymentStatusError(ValueError):
    """An employment string has no entry in the synonym table."""

    def __init__(self, raw: str) -> None:
        super().__init__(f"Unknown employment status: {raw!r}")
        self.raw = raw
