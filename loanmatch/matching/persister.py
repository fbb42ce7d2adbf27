"""Idempotent bulk upsert of accepted candidates into the match store.

One transaction per batch, one savepoint per row:
- a row the database rejects (constraint, bad value) is rolled back to its
  savepoint, counted, and skipped;
- losing the connection aborts the whole batch with PersistenceError.

Re-running the same batch updates rows in place. The upsert never writes
created_at or notified_at, so an earlier notification survives a re-run.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import Insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from loanmatch.errors import PersistenceError
from loanmatch.models.enums import MatchStatus
from loanmatch.models.match import Match
from loanmatch.schemas.matching import MatchCandidate, PersistResult

logger = logging.getLogger(__name__)

# Columns a re-run may overwrite.
_UPDATABLE_COLUMNS = (
    "match_score",
    "status",
    "match_source",
    "income_eligible",
    "credit_score_eligible",
    "age_eligible",
    "employment_eligible",
    "llm_analysis",
    "llm_confidence",
    "batch_tag",
)


def build_match_upsert(candidate: MatchCandidate, batch_tag: str | None) -> Insert:
    """INSERT … ON CONFLICT (applicant_id, product_id) DO UPDATE for one candidate."""
    stmt = pg_insert(Match).values(
        applicant_id=candidate.applicant_id,
        product_id=candidate.product_id,
        match_score=candidate.score,
        status=MatchStatus.ELIGIBLE.value,
        match_source=candidate.source.value,
        income_eligible=candidate.flags.income_eligible,
        credit_score_eligible=candidate.flags.credit_score_eligible,
        age_eligible=candidate.flags.age_eligible,
        employment_eligible=candidate.flags.employment_eligible,
        llm_analysis=candidate.reasoning,
        llm_confidence=candidate.confidence,
        batch_tag=batch_tag,
    )
    updates = {column: stmt.excluded[column] for column in _UPDATABLE_COLUMNS}
    updates["updated_at"] = func.now()
    return stmt.on_conflict_do_update(
        index_elements=[Match.applicant_id, Match.product_id],
        set_=updates,
    )


class MatchPersister:
    """Writes accepted candidates as eligible matches."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def persist(self, candidates: Sequence[MatchCandidate], batch_tag: str | None = None) -> PersistResult:
        result = PersistResult(attempted=len(candidates))
        if not candidates:
            return result

        try:
            async with self._session_factory() as session, session.begin():
                for candidate in candidates:
                    try:
                        async with session.begin_nested():
                            await session.execute(build_match_upsert(candidate, batch_tag))
                    except (IntegrityError, DataError) as exc:
                        result.failed += 1
                        result.errors.append(
                            f"applicant={candidate.applicant_id} product={candidate.product_id}: {exc.orig}"
                        )
                        logger.warning(
                            "Match row rejected: applicant=%s product=%s: %s",
                            candidate.applicant_id,
                            candidate.product_id,
                            exc.orig,
                        )
                        continue
                    result.persisted += 1
        except (SQLAlchemyError, OSError) as exc:
            logger.error("Match store unavailable, batch=%s aborted: %s", batch_tag, exc)
            msg = f"Match store unavailable: {exc}"
            raise PersistenceError(msg) from exc

        logger.info(
            "Persisted %d/%d matches (batch=%s, %d rejected)",
            result.persisted,
            result.attempted,
            batch_tag,
            result.failed,
        )
        return result
