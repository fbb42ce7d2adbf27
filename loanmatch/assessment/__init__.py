"""Stage 3 qualitative assessment."""

from loanmatch.assessment.assessor import AssessmentReport, QualitativeAssessor, QualitativeService

__all__ = ["AssessmentReport", "QualitativeAssessor", "QualitativeService"]
