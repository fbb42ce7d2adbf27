"""Match store read queries and the explicit bulk-clear operation.

Shared by the HTTP API and the notification consumer.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import delete, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from loanmatch.events import emit
from loanmatch.models.applicant import Applicant
from loanmatch.models.enums import MatchSource, MatchStatus
from loanmatch.models.loan_product import LoanProduct
from loanmatch.models.match import Match
from loanmatch.schemas.events import EventType, SystemEvent
from loanmatch.schemas.matching import BatchMatchSummary, PendingNotification

logger = logging.getLogger(__name__)


async def list_pending_notifications(
    db: AsyncSession,
    batch_tag: str | None = None,
    limit: int | None = None,
) -> list[PendingNotification]:
    """Eligible matches nobody has been notified about, with applicant and product details.

    Ordered by applicant, best score first within an applicant.
    """
    stmt = (
        select(
            Match.id.label("match_id"),
            Match.applicant_id,
            Applicant.external_id.label("applicant_external_id"),
            Applicant.email,
            Match.product_id,
            LoanProduct.product_name,
            LoanProduct.provider_name,
            LoanProduct.interest_rate_min,
            LoanProduct.interest_rate_max,
            LoanProduct.loan_amount_min,
            LoanProduct.loan_amount_max,
            Match.match_score,
            Match.llm_analysis,
            Match.batch_tag,
            Match.created_at,
        )
        .join(Applicant, Match.applicant_id == Applicant.id)
        .join(LoanProduct, Match.product_id == LoanProduct.id)
        .where(
            Match.status == MatchStatus.ELIGIBLE.value,
            Match.notified_at.is_(None),
        )
        .order_by(Applicant.external_id, Match.match_score.desc())
    )
    if batch_tag is not None:
        stmt = stmt.where(Match.batch_tag == batch_tag)
    if limit is not None:
        stmt = stmt.limit(limit)

    result = await db.execute(stmt)
    return [PendingNotification(**row._mapping) for row in result.all()]


async def get_applicant_matches(db: AsyncSession, applicant_id: uuid.UUID) -> list[Match]:
    """All matches of one applicant, best score first."""
    result = await db.execute(
        select(Match)
        .where(Match.applicant_id == applicant_id)
        .order_by(Match.match_score.desc())
    )
    return list(result.scalars().all())


async def get_batch_summary(db: AsyncSession, batch_tag: str) -> BatchMatchSummary:
    """Totals and per-source counts of the eligible matches of one batch."""
    total_applicants = (
        await db.execute(select(func.count(Applicant.id)).where(Applicant.batch_tag == batch_tag))
    ).scalar() or 0

    total_products = (
        await db.execute(select(func.count(LoanProduct.id)).where(LoanProduct.is_active.is_(True)))
    ).scalar() or 0

    row = (
        await db.execute(
            select(
                func.count(Match.id),
                func.count(distinct(Match.applicant_id)),
                func.count(Match.id).filter(Match.match_source == MatchSource.SQL_FILTER.value),
                func.count(Match.id).filter(Match.match_source == MatchSource.LOGIC_FILTER.value),
                func.count(Match.id).filter(Match.match_source == MatchSource.LLM_CHECK.value),
            ).where(
                Match.batch_tag == batch_tag,
                Match.status == MatchStatus.ELIGIBLE.value,
            )
        )
    ).one()
    total_matches, with_matches, sql_matches, logic_matches, llm_matches = row

    return BatchMatchSummary(
        batch_tag=batch_tag,
        total_applicants=total_applicants,
        total_products=total_products,
        total_matches=total_matches or 0,
        applicants_with_matches=with_matches or 0,
        avg_matches_per_applicant=(total_matches / with_matches) if with_matches else 0.0,
        sql_filter_matches=sql_matches or 0,
        logic_filter_matches=logic_matches or 0,
        llm_check_matches=llm_matches or 0,
    )


async def clear_matches(db: AsyncSession, batch_tag: str | None = None) -> int:
    """Delete the matches of one batch, or every match when no tag is given.

    The caller owns the transaction. Returns the number of rows deleted.
    """
    stmt = delete(Match)
    if batch_tag is not None:
        stmt = stmt.where(Match.batch_tag == batch_tag)
    result = await db.execute(stmt)
    deleted = result.rowcount or 0

    logger.info("Cleared %d matches (batch=%s)", deleted, batch_tag or "*")
    await emit(SystemEvent(
        event_type=EventType.MATCHES_CLEARED,
        batch_tag=batch_tag,
        data={"deleted": deleted},
        source_module="matching.queries",
    ))
    return deleted
