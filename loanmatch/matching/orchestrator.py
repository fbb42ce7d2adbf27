"""Pipeline orchestrator — runs the matching stages for one batch.

Stage order is fixed: generated → scored → ranked → assessed → persisted.
Every run returns a PipelineSummary:

- completed: all stages ran
- failed: the repository or the match store failed; counts gathered so far
  are kept and the error text is reported
- cancelled: the stop event fired or the deadline passed; candidates Stage 3
  had already decided are still persisted

Stage 1 loading and Stage 3 race the stop event and the deadline. Writing
the decided matches always runs to completion.

Errors outside the MatchingError hierarchy are programming errors and
propagate to the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Sequence
from typing import Protocol, TypeVar

from loanmatch.assessment.assessor import QualitativeAssessor
from loanmatch.config import MatchingSettings
from loanmatch.eligibility.candidates import CandidateGenerator, CatalogSource
from loanmatch.eligibility.ranking import rank_candidates
from loanmatch.eligibility.scoring import apply_business_rules
from loanmatch.errors import MatchingError
from loanmatch.events import emit
from loanmatch.models.enums import BatchStatus, PipelineStage
from loanmatch.schemas.events import EventType, SystemEvent
from loanmatch.schemas.matching import MatchCandidate, PersistResult, PipelineSummary, StageReport

_module_logger = logging.getLogger(__name__)

_SOURCE = "matching.orchestrator"

T = TypeVar("T")


class MatchStore(Protocol):
    async def persist(self, candidates: Sequence[MatchCandidate], batch_tag: str | None = None) -> PersistResult: ...


class _Cancelled(Exception):
    """Internal signal: stop requested or deadline passed."""


class PipelineOrchestrator:
    """Wires the stages together and classifies the outcome of a run."""

    def __init__(
        self,
        repository: CatalogSource,
        assessor: QualitativeAssessor,
        store: MatchStore,
        config: MatchingSettings,
        logger: logging.Logger | None = None,
    ) -> None:
        self._generator = CandidateGenerator(repository, use_sql_prefilter=config.use_sql_prefilter)
        self._assessor = assessor
        self._store = store
        self._config = config
        self._log = logger or _module_logger

    async def run(
        self,
        batch_tag: str | None = None,
        *,
        applicant_ids: Sequence[uuid.UUID] | None = None,
        stop_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> PipelineSummary:
        """Run the full pipeline over a batch (or over explicit applicants)."""
        loop = asyncio.get_running_loop()
        started = time.monotonic()
        deadline = loop.time() + timeout if timeout is not None else None
        summary = PipelineSummary(batch_tag=batch_tag)

        def check_stop() -> None:
            if stop_event is not None and stop_event.is_set():
                raise _Cancelled
            if deadline is not None and loop.time() >= deadline:
                raise _Cancelled

        await self._emit(EventType.PIPELINE_STARTED, batch_tag, {
            "applicant_ids": len(applicant_ids) if applicant_ids is not None else None,
            "timeout": timeout,
        })
        self._log.info("Pipeline started (batch=%s)", batch_tag)

        try:
            check_stop()

            # Stage 1
            generation = await self._bounded(
                self._generator.generate(batch_tag, applicant_ids),
                stop_event,
                deadline,
            )
            summary.total_applicants = len(generation.applicants)
            summary.total_products = len(generation.products)
            summary.total_pairs = generation.total_pairs
            await self._complete(summary, PipelineStage.GENERATED, generation.total_pairs, len(generation.candidates))
            check_stop()

            # Stage 2
            scored = apply_business_rules(
                generation.candidates,
                generation.applicants,
                generation.products,
                income_share=self._config.affordability_income_share,
                buffer=self._config.affordability_buffer,
            )
            await self._complete(summary, PipelineStage.SCORED, len(generation.candidates), len(scored))
            check_stop()

            ranked = rank_candidates(scored, self._config.max_assessment_candidates)
            await self._complete(summary, PipelineStage.RANKED, len(scored), len(ranked))
            check_stop()

            # Stage 3
            accepted, report = await self._assessor.assess_all(
                ranked,
                generation.applicants,
                generation.products,
                stop_event=stop_event,
                deadline=deadline,
            )
            summary.fallback_count = report.fallback_count
            if report.fallback_count:
                note = (
                    f"Stage 3 fell back to heuristic for {report.fallback_count} candidates "
                    f"({report.fallback_accepted} kept at score >= {self._config.fallback_score_threshold})"
                )
                summary.errors.append(note)
                self._log.warning("%s (batch=%s)", note, batch_tag)
                await self._emit(EventType.ASSESSMENT_FALLBACK, batch_tag, {
                    "fallback_count": report.fallback_count,
                    "fallback_accepted": report.fallback_accepted,
                    "sample_errors": report.errors[:5],
                })
            if report.offline:
                summary.errors.append(
                    f"Stage 3 offline: {len(accepted)} candidates accepted without qualitative assessment"
                )
            if report.cancelled:
                summary.errors.append(f"Stage 3 cancelled: {report.abandoned} candidates left undecided")
            await self._complete(summary, PipelineStage.ASSESSED, len(ranked), len(accepted))

            # Persist
            persisted = await self._store.persist(accepted, batch_tag)
            summary.persisted = persisted.persisted
            summary.persist_failures = persisted.failed
            summary.errors.extend(persisted.errors)
            await self._complete(summary, PipelineStage.PERSISTED, len(accepted), persisted.persisted)
            await self._emit(EventType.MATCHES_PERSISTED, batch_tag, {
                "persisted": persisted.persisted,
                "failed": persisted.failed,
            })

            summary.status = BatchStatus.CANCELLED if report.cancelled else BatchStatus.COMPLETED

        except _Cancelled:
            summary.status = BatchStatus.CANCELLED
            summary.errors.append(f"Run stopped after stage {summary.last_stage.value if summary.last_stage else 'none'}")

        except MatchingError as exc:
            summary.status = BatchStatus.FAILED
            summary.errors.append(str(exc))
            self._log.error("Pipeline failed (batch=%s, last_stage=%s): %s", batch_tag, summary.last_stage, exc)

        summary.elapsed_seconds = round(time.monotonic() - started, 3)
        await self._finish(summary)
        return summary

    async def _bounded(
        self,
        work: Awaitable[T],
        stop_event: asyncio.Event | None,
        deadline: float | None,
    ) -> T:
        """Await work, cancelling it when the stop event fires or the deadline passes first."""
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(work)
        stop_waiter = asyncio.create_task(stop_event.wait()) if stop_event is not None else None
        timeout = max(deadline - loop.time(), 0) if deadline is not None else None

        try:
            waiting = {task, stop_waiter} if stop_waiter is not None else {task}
            await asyncio.wait(waiting, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            leftovers = [t for t in (task, stop_waiter) if t is not None and not t.done()]
            for t in leftovers:
                t.cancel()
            await asyncio.gather(*leftovers, return_exceptions=True)

        if task.cancelled():
            self._log.warning("Stage interrupted by stop signal or deadline")
            raise _Cancelled
        return task.result()

    async def _complete(self, summary: PipelineSummary, stage: PipelineStage, entered: int, passed: int) -> None:
        summary.stages.append(StageReport(stage=stage, entered=entered, passed=passed))
        summary.last_stage = stage
        self._log.info(
            "Stage %s: %d → %d (batch=%s)",
            stage.value,
            entered,
            passed,
            summary.batch_tag,
        )
        await self._emit(EventType.STAGE_COMPLETED, summary.batch_tag, {
            "stage": stage.value,
            "entered": entered,
            "passed": passed,
        })

    async def _finish(self, summary: PipelineSummary) -> None:
        event_type = {
            BatchStatus.COMPLETED: EventType.PIPELINE_COMPLETED,
            BatchStatus.FAILED: EventType.PIPELINE_FAILED,
            BatchStatus.CANCELLED: EventType.PIPELINE_CANCELLED,
        }[summary.status]
        self._log.info(
            "Pipeline %s (batch=%s): %d persisted, %d fallback, %.2fs",
            summary.status.value,
            summary.batch_tag,
            summary.persisted,
            summary.fallback_count,
            summary.elapsed_seconds,
        )
        await self._emit(event_type, summary.batch_tag, summary.model_dump(
            mode="json",
            include={"status", "last_stage", "total_pairs", "persisted", "persist_failures",
                     "fallback_count", "elapsed_seconds", "errors"},
        ))

    async def _emit(self, event_type: EventType, batch_tag: str | None, data: dict) -> None:
        await emit(SystemEvent(
            event_type=event_type,
            batch_tag=batch_tag,
            data=data,
            source_module=_SOURCE,
        ))
