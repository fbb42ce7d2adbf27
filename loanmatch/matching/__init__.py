"""Matching pipeline — orchestration, persistence and match store queries."""

from loanmatch.matching.locks import BatchLock
from loanmatch.matching.orchestrator import PipelineOrchestrator
from loanmatch.matching.persister import MatchPersister
from loanmatch.matching.repository import CatalogRepository

__all__ = [
    "BatchLock",
    "CatalogRepository",
    "MatchPersister",
    "PipelineOrchestrator",
]
