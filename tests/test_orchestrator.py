"""Tests for the pipeline orchestrator.

Covers:
- Full run: stage order, per-stage counts, reference pair persisted at 67.00
- Idempotence: a re-run overwrites instead of duplicating
- Fallback: failing reasoning service persists only scores >= threshold
- Fatal errors: repository and match store failures yield a failed summary
- Cancellation: stop event before start, deadline or stop during a slow
  catalog load, deadline during Stage 3
"""

from __future__ import annotations

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from loanmatch.assessment.assessor import QualitativeAssessor
from loanmatch.config import MatchingSettings
from loanmatch.errors import AssessmentServiceError, PersistenceError, RepositoryError
from loanmatch.matching.orchestrator import PipelineOrchestrator
from loanmatch.models.enums import BatchStatus, EmploymentStatus, PipelineStage
from loanmatch.schemas.events import EventType
from loanmatch.schemas.matching import AssessmentVerdict, PersistResult
from tests.factories import make_applicant, make_product

# ── Fakes ────────────────────────────────────────────────────────────


class FakeRepository:
    def __init__(self, applicants, products, error=None):
        self.applicants = applicants
        self.products = products
        self.error = error

    async def list_applicants(self, batch_tag=None, applicant_ids=None):
        if self.error is not None:
            raise self.error
        return [
            a for a in self.applicants
            if (batch_tag is None or a.batch_tag == batch_tag)
            and (applicant_ids is None or a.id in applicant_ids)
        ]

    async def list_active_products(self):
        return list(self.products)

    async def prefilter_pairs(self, batch_tag=None, applicant_ids=None):
        raise AssertionError("prefilter disabled in these tests")


class SlowRepository(FakeRepository):
    """Catalog whose applicant query hangs well past any test deadline."""

    def __init__(self, applicants, products, delay=2.0):
        super().__init__(applicants, products)
        self.delay = delay
        self.interrupted = False

    async def list_applicants(self, batch_tag=None, applicant_ids=None):
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.interrupted = True
            raise
        return await super().list_applicants(batch_tag, applicant_ids)


class InMemoryStore:
    """Upserts keyed by (applicant_id, product_id), like the real unique constraint."""

    def __init__(self, error=None):
        self.rows = {}
        self.error = error
        self.calls = 0

    async def persist(self, candidates, batch_tag=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        for candidate in candidates:
            self.rows[candidate.key] = candidate
        return PersistResult(attempted=len(candidates), persisted=len(candidates))


class StubService:
    def __init__(self, error=None, delay=0.0):
        self.error = error
        self.delay = delay

    @property
    def is_configured(self):
        return True

    async def evaluate(self, applicant, product):
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return AssessmentVerdict(qualified=True, confidence=0.9, reasoning="ok")


def _config(**overrides):
    overrides.setdefault("use_sql_prefilter", False)
    return MatchingSettings(**overrides)


def _population():
    """A-high scores 67 on the product, A-low 30, A-out fails Stage 1."""
    applicants = [
        make_applicant(external_id="A-high"),
        make_applicant(external_id="A-low", monthly_income=Decimal("25000"), credit_score=700, age=30),
        make_applicant(external_id="A-out", employment_status=EmploymentStatus.STUDENT),
    ]
    return applicants, [make_product()]


def _orchestrator(repository, store, service=None, **config):
    settings = _config(**config)
    assessor = QualitativeAssessor(
        service,
        fallback_threshold=settings.fallback_score_threshold,
        offline_confidence=settings.offline_confidence,
    )
    return PipelineOrchestrator(repository, assessor, store, settings)


@pytest.fixture()
def mock_emit():
    with patch("loanmatch.matching.orchestrator.emit", new_callable=AsyncMock) as mock:
        yield mock


# ── Tests ────────────────────────────────────────────────────────────


class TestFullRun:
    @pytest.mark.asyncio()
    async def test_stage_order_and_counts(self, mock_emit):
        applicants, products = _population()
        store = InMemoryStore()

        summary = await _orchestrator(FakeRepository(applicants, products), store).run("batch-1")

        assert summary.status is BatchStatus.COMPLETED
        assert summary.last_stage is PipelineStage.PERSISTED
        assert [s.stage for s in summary.stages] == [
            PipelineStage.GENERATED,
            PipelineStage.SCORED,
            PipelineStage.RANKED,
            PipelineStage.ASSESSED,
            PipelineStage.PERSISTED,
        ]
        generated = summary.stage(PipelineStage.GENERATED)
        assert (generated.entered, generated.passed) == (3, 2)
        assert summary.total_applicants == 3
        assert summary.total_products == 1
        assert summary.total_pairs == 3
        assert summary.persisted == 2
        assert summary.elapsed_seconds >= 0

    @pytest.mark.asyncio()
    async def test_reference_pair_persisted_with_score(self, mock_emit):
        applicants, products = _population()
        store = InMemoryStore()

        await _orchestrator(FakeRepository(applicants, products), store, service=StubService()).run("batch-1")

        row = store.rows[(applicants[0].id, products[0].id)]
        assert row.score == Decimal("67.00")
        assert row.confidence == 0.9

    @pytest.mark.asyncio()
    async def test_ranking_budget_limits_stage_3(self, mock_emit):
        applicants, products = _population()

        summary = await _orchestrator(
            FakeRepository(applicants, products), InMemoryStore(), max_assessment_candidates=1,
        ).run("batch-1")

        ranked = summary.stage(PipelineStage.RANKED)
        assert (ranked.entered, ranked.passed) == (2, 1)
        assert summary.persisted == 1

    @pytest.mark.asyncio()
    async def test_emits_lifecycle_events(self, mock_emit):
        applicants, products = _population()

        await _orchestrator(FakeRepository(applicants, products), InMemoryStore()).run("batch-1")

        emitted = [call.args[0].event_type for call in mock_emit.await_args_list]
        assert emitted[0] == EventType.PIPELINE_STARTED
        assert emitted.count(EventType.STAGE_COMPLETED) == 5
        assert emitted[-1] == EventType.PIPELINE_COMPLETED

    @pytest.mark.asyncio()
    async def test_empty_batch_runs_every_stage(self, mock_emit):
        summary = await _orchestrator(FakeRepository([], []), InMemoryStore()).run("batch-1")

        assert summary.status is BatchStatus.COMPLETED
        assert len(summary.stages) == 5
        assert summary.persisted == 0


class TestIdempotence:
    @pytest.mark.asyncio()
    async def test_rerun_overwrites(self, mock_emit):
        applicants, products = _population()
        store = InMemoryStore()
        orchestrator = _orchestrator(FakeRepository(applicants, products), store)

        first = await orchestrator.run("batch-1")
        second = await orchestrator.run("batch-1")

        assert first.persisted == second.persisted == 2
        assert len(store.rows) == 2


class TestFallback:
    @pytest.mark.asyncio()
    async def test_failing_service_keeps_only_high_scores(self, mock_emit):
        applicants, products = _population()
        store = InMemoryStore()
        service = StubService(error=AssessmentServiceError("503"))

        summary = await _orchestrator(FakeRepository(applicants, products), store, service=service).run("batch-1")

        assert summary.status is BatchStatus.COMPLETED
        assert summary.fallback_count == 2
        assert list(store.rows) == [(applicants[0].id, products[0].id)]
        assert any("fell back to heuristic" in e for e in summary.errors)
        emitted = [call.args[0].event_type for call in mock_emit.await_args_list]
        assert EventType.ASSESSMENT_FALLBACK in emitted


class TestFatalErrors:
    @pytest.mark.asyncio()
    async def test_repository_failure(self, mock_emit):
        repository = FakeRepository([], [], error=RepositoryError("connection refused"))
        store = InMemoryStore()

        summary = await _orchestrator(repository, store).run("batch-1")

        assert summary.status is BatchStatus.FAILED
        assert summary.last_stage is None
        assert summary.stages == []
        assert "connection refused" in summary.errors[0]
        assert store.calls == 0
        assert mock_emit.await_args_list[-1].args[0].event_type == EventType.PIPELINE_FAILED

    @pytest.mark.asyncio()
    async def test_store_failure_keeps_counts(self, mock_emit):
        applicants, products = _population()
        store = InMemoryStore(error=PersistenceError("Match store unavailable"))

        summary = await _orchestrator(FakeRepository(applicants, products), store).run("batch-1")

        assert summary.status is BatchStatus.FAILED
        assert summary.last_stage is PipelineStage.ASSESSED
        assert summary.stage(PipelineStage.ASSESSED).passed == 2
        assert summary.persisted == 0
        assert "Match store unavailable" in summary.errors[-1]


class TestCancellation:
    @pytest.mark.asyncio()
    async def test_stop_before_start(self, mock_emit):
        applicants, products = _population()
        store = InMemoryStore()
        stop = asyncio.Event()
        stop.set()

        summary = await _orchestrator(FakeRepository(applicants, products), store).run("batch-1", stop_event=stop)

        assert summary.status is BatchStatus.CANCELLED
        assert summary.last_stage is None
        assert summary.stages == []
        assert store.calls == 0

    @pytest.mark.asyncio()
    async def test_deadline_during_assessment(self, mock_emit):
        applicants, products = _population()
        store = InMemoryStore()
        service = StubService(delay=10)

        summary = await _orchestrator(FakeRepository(applicants, products), store, service=service).run(
            "batch-1", timeout=0.1,
        )

        assert summary.status is BatchStatus.CANCELLED
        assert summary.last_stage is PipelineStage.PERSISTED
        assert summary.persisted == 0
        assert store.calls == 1
        assert any("Stage 3 cancelled" in e for e in summary.errors)
        assert mock_emit.await_args_list[-1].args[0].event_type == EventType.PIPELINE_CANCELLED

    @pytest.mark.asyncio()
    async def test_deadline_during_catalog_load(self, mock_emit):
        applicants, products = _population()
        repository = SlowRepository(applicants, products)
        store = InMemoryStore()
        loop = asyncio.get_running_loop()

        started = loop.time()
        summary = await _orchestrator(repository, store).run("batch-1", timeout=0.1)
        elapsed = loop.time() - started

        assert elapsed < 1.0
        assert repository.interrupted is True
        assert summary.status is BatchStatus.CANCELLED
        assert summary.last_stage is None
        assert summary.total_applicants == 0
        assert store.calls == 0
        assert mock_emit.await_args_list[-1].args[0].event_type == EventType.PIPELINE_CANCELLED

    @pytest.mark.asyncio()
    async def test_stop_during_catalog_load(self, mock_emit):
        applicants, products = _population()
        repository = SlowRepository(applicants, products)
        store = InMemoryStore()
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        loop.call_later(0.1, stop.set)

        started = loop.time()
        summary = await _orchestrator(repository, store).run("batch-1", stop_event=stop)
        elapsed = loop.time() - started

        assert elapsed < 1.0
        assert repository.interrupted is True
        assert summary.status is BatchStatus.CANCELLED
        assert summary.stages == []
        assert store.calls == 0

    @pytest.mark.asyncio()
    async def test_fast_catalog_load_within_deadline(self, mock_emit):
        applicants, products = _population()
        store = InMemoryStore()

        summary = await _orchestrator(FakeRepository(applicants, products), store).run("batch-1", timeout=5)

        assert summary.status is BatchStatus.COMPLETED
        assert summary.last_stage is PipelineStage.PERSISTED
        assert store.calls == 1
