"""Stage 3 — qualitative assessment of ranked candidates.

Each candidate is sent to the reasoning service with bounded parallelism and
a request pacer. Outcomes:

- qualified verdict      → accepted with the service's reasoning and confidence
- not-qualified verdict  → dropped
- error / timeout / bad JSON → fallback: accepted only if the Stage 2 score
  reaches the threshold, marked as an automatic decision
- service absent or not configured → every candidate accepted with a fixed
  confidence, no calls made

A stop event or deadline cancels outstanding calls; candidates decided before
that point are still returned. Decisions come back in input order whatever
the completion order was.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol

from loanmatch.config import LLMSettings, MatchingSettings
from loanmatch.errors import AssessmentServiceError
from loanmatch.models.enums import AssessmentOutcome, MatchSource
from loanmatch.schemas.matching import ApplicantProfile, AssessmentVerdict, MatchCandidate, ProductProfile

logger = logging.getLogger(__name__)

OFFLINE_NOTE = "Qualitative check skipped: reasoning service not configured"


class QualitativeService(Protocol):
    """Anything that can return a verdict for one applicant/product pair."""

    @property
    def is_configured(self) -> bool: ...

    async def evaluate(self, applicant: ApplicantProfile, product: ProductProfile) -> AssessmentVerdict: ...


@dataclass
class AssessmentReport:
    """Per-outcome counts of one Stage 3 pass."""

    total: int = 0
    accepted: int = 0
    rejected: int = 0
    fallback_accepted: int = 0
    fallback_rejected: int = 0
    offline: bool = False
    abandoned: int = 0
    cancelled: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def fallback_count(self) -> int:
        return self.fallback_accepted + self.fallback_rejected

    def record(self, outcome: AssessmentOutcome) -> None:
        if outcome is AssessmentOutcome.QUALIFIED:
            self.accepted += 1
        elif outcome is AssessmentOutcome.NOT_QUALIFIED:
            self.rejected += 1
        elif outcome is AssessmentOutcome.FALLBACK_ACCEPTED:
            self.fallback_accepted += 1
        elif outcome is AssessmentOutcome.FALLBACK_REJECTED:
            self.fallback_rejected += 1
        elif outcome is AssessmentOutcome.OFFLINE_ACCEPTED:
            self.accepted += 1


class RequestPacer:
    """Spaces request starts so the sustained rate stays under a ceiling."""

    def __init__(self, requests_per_minute: int) -> None:
        self.interval = 60.0 / requests_per_minute if requests_per_minute > 0 else 0.0
        self._next_slot = 0.0
        self._lock = asyncio.Lock()

    async def wait(self) -> None:
        if self.interval == 0:
            return
        async with self._lock:
            now = asyncio.get_running_loop().time()
            delay = self._next_slot - now
            self._next_slot = max(now, self._next_slot) + self.interval
        if delay > 0:
            await asyncio.sleep(delay)


class QualitativeAssessor:
    """Runs Stage 3 over a ranked candidate list."""

    def __init__(
        self,
        service: QualitativeService | None,
        fallback_threshold: Decimal = Decimal("60"),
        offline_confidence: float = 0.7,
        max_concurrency: int = 4,
        requests_per_minute: int = 0,
        request_timeout: float = 30.0,
    ) -> None:
        if max_concurrency < 1:
            msg = f"max_concurrency must be >= 1, got {max_concurrency}"
            raise ValueError(msg)
        self._service = service
        self._fallback_threshold = fallback_threshold
        self._offline_confidence = offline_confidence
        self._max_concurrency = max_concurrency
        self._requests_per_minute = requests_per_minute
        self._request_timeout = request_timeout

    @classmethod
    def from_settings(
        cls,
        service: QualitativeService | None,
        llm: LLMSettings,
        matching: MatchingSettings,
    ) -> QualitativeAssessor:
        return cls(
            service,
            fallback_threshold=matching.fallback_score_threshold,
            offline_confidence=matching.offline_confidence,
            max_concurrency=llm.max_concurrency,
            requests_per_minute=llm.requests_per_minute,
            request_timeout=llm.assessment_timeout,
        )

    @property
    def is_online(self) -> bool:
        return self._service is not None and self._service.is_configured

    async def assess_all(
        self,
        candidates: Sequence[MatchCandidate],
        applicants: Mapping[uuid.UUID, ApplicantProfile],
        products: Mapping[uuid.UUID, ProductProfile],
        *,
        stop_event: asyncio.Event | None = None,
        deadline: float | None = None,
    ) -> tuple[list[MatchCandidate], AssessmentReport]:
        """Assess every candidate and return the accepted ones in input order.

        ``deadline`` is an absolute time on the running loop's clock.
        """
        report = AssessmentReport(total=len(candidates))
        if not candidates:
            return [], report

        if stop_event is not None and stop_event.is_set():
            report.cancelled = True
            report.abandoned = len(candidates)
            return [], report

        if not self.is_online:
            report.offline = True
            report.accepted = len(candidates)
            logger.info("Stage 3 offline: accepted %d candidates without assessment", len(candidates))
            return [self._offline(c) for c in candidates], report

        decisions = await self._run_concurrently(
            candidates, applicants, products, report, stop_event, deadline,
        )

        accepted: list[MatchCandidate] = []
        for decision in decisions:
            if decision is None:
                report.abandoned += 1
                continue
            assert decision.outcome is not None
            report.record(decision.outcome)
            if decision.outcome.accepted:
                accepted.append(decision)

        logger.info(
            "Stage 3: %d accepted, %d rejected, %d fallback (%d kept), %d abandoned",
            report.accepted + report.fallback_accepted,
            report.rejected,
            report.fallback_count,
            report.fallback_accepted,
            report.abandoned,
        )
        return accepted, report

    async def _run_concurrently(
        self,
        candidates: Sequence[MatchCandidate],
        applicants: Mapping[uuid.UUID, ApplicantProfile],
        products: Mapping[uuid.UUID, ProductProfile],
        report: AssessmentReport,
        stop_event: asyncio.Event | None,
        deadline: float | None,
    ) -> list[MatchCandidate | None]:
        loop = asyncio.get_running_loop()
        semaphore = asyncio.Semaphore(self._max_concurrency)
        pacer = RequestPacer(self._requests_per_minute)
        decisions: list[MatchCandidate | None] = [None] * len(candidates)

        async def assess_one(index: int, candidate: MatchCandidate) -> tuple[int, MatchCandidate]:
            async with semaphore:
                await pacer.wait()
                return index, await self._assess(
                    candidate,
                    applicants[candidate.applicant_id],
                    products[candidate.product_id],
                    report,
                )

        pending = {asyncio.create_task(assess_one(i, c)) for i, c in enumerate(candidates)}
        stop_waiter = asyncio.create_task(stop_event.wait()) if stop_event is not None else None

        try:
            while pending:
                timeout = None
                if deadline is not None:
                    timeout = deadline - loop.time()
                    if timeout <= 0:
                        report.cancelled = True
                        break

                waiting = pending | {stop_waiter} if stop_waiter is not None else pending
                done, _ = await asyncio.wait(waiting, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)

                for task in done:
                    if task is stop_waiter:
                        continue
                    pending.discard(task)
                    index, decision = task.result()
                    decisions[index] = decision

                if not done or (stop_waiter is not None and stop_waiter.done()):
                    report.cancelled = True
                    break
        finally:
            leftovers = [*pending, *([stop_waiter] if stop_waiter is not None else [])]
            for task in leftovers:
                task.cancel()
            await asyncio.gather(*leftovers, return_exceptions=True)

        if report.cancelled:
            logger.warning("Stage 3 cancelled with %d assessments outstanding", len(pending))
        return decisions

    async def _assess(
        self,
        candidate: MatchCandidate,
        applicant: ApplicantProfile,
        product: ProductProfile,
        report: AssessmentReport,
    ) -> MatchCandidate:
        assert self._service is not None
        try:
            verdict = await asyncio.wait_for(
                self._service.evaluate(applicant, product),
                timeout=self._request_timeout,
            )
        except (AssessmentServiceError, TimeoutError) as exc:
            error = str(exc) or type(exc).__name__
            logger.warning(
                "Assessment failed for applicant=%s product=%s: %s",
                applicant.external_id,
                product.product_name,
                error,
            )
            report.errors.append(error)
            return self._fallback(candidate, error)
        except Exception as exc:
            logger.exception(
                "Unexpected assessment failure for applicant=%s product=%s",
                applicant.external_id,
                product.product_name,
            )
            report.errors.append(f"{type(exc).__name__}: {exc}")
            return self._fallback(candidate, type(exc).__name__)

        if not verdict.qualified:
            logger.debug(
                "Not qualified: applicant=%s product=%s reason=%s",
                applicant.external_id,
                product.product_name,
                verdict.reasoning,
            )
            return candidate.model_copy(update={
                "outcome": AssessmentOutcome.NOT_QUALIFIED,
                "confidence": verdict.confidence,
                "reasoning": verdict.reasoning,
            })

        reasoning = verdict.reasoning
        if verdict.risk_factors:
            reasoning = f"{reasoning} Risk factors: {', '.join(verdict.risk_factors)}".strip()
        return candidate.model_copy(update={
            "outcome": AssessmentOutcome.QUALIFIED,
            "confidence": verdict.confidence,
            "reasoning": reasoning,
            "source": MatchSource.LLM_CHECK,
        })

    def _fallback(self, candidate: MatchCandidate, error: str) -> MatchCandidate:
        if candidate.score >= self._fallback_threshold:
            return candidate.model_copy(update={
                "outcome": AssessmentOutcome.FALLBACK_ACCEPTED,
                "confidence": None,
                "reasoning": (
                    f"Automatic fallback: reasoning service unavailable ({error}); "
                    f"accepted on eligibility score {candidate.score}"
                ),
                "source": MatchSource.LOGIC_FILTER,
            })
        return candidate.model_copy(update={
            "outcome": AssessmentOutcome.FALLBACK_REJECTED,
            "confidence": None,
            "reasoning": f"Automatic fallback: score {candidate.score} below {self._fallback_threshold}",
        })

    def _offline(self, candidate: MatchCandidate) -> MatchCandidate:
        return candidate.model_copy(update={
            "outcome": AssessmentOutcome.OFFLINE_ACCEPTED,
            "confidence": self._offline_confidence,
            "reasoning": OFFLINE_NOTE,
            "source": MatchSource.LOGIC_FILTER,
        })
