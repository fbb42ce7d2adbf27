"""Tests for match store queries, with a mocked AsyncSession."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from loanmatch.matching.queries import clear_matches, get_batch_summary, list_pending_notifications
from loanmatch.schemas.events import EventType


def _scalar_result(value) -> MagicMock:
    result = MagicMock()
    result.scalar.return_value = value
    return result


class TestBatchSummary:
    @pytest.mark.asyncio()
    async def test_aggregates(self):
        match_row = MagicMock()
        match_row.one.return_value = (6, 4, 0, 2, 4)
        db = AsyncMock()
        db.execute = AsyncMock(side_effect=[_scalar_result(10), _scalar_result(3), match_row])

        summary = await get_batch_summary(db, "batch-1")

        assert summary.total_applicants == 10
        assert summary.total_products == 3
        assert summary.total_matches == 6
        assert summary.applicants_with_matches == 4
        assert summary.avg_matches_per_applicant == 1.5
        assert summary.logic_filter_matches == 2
        assert summary.llm_check_matches == 4

    @pytest.mark.asyncio()
    async def test_no_matches(self):
        match_row = MagicMock()
        match_row.one.return_value = (0, 0, 0, 0, 0)
        db = AsyncMock()
        db.execute = AsyncMock(side_effect=[_scalar_result(5), _scalar_result(None), match_row])

        summary = await get_batch_summary(db, "batch-1")

        assert summary.total_products == 0
        assert summary.avg_matches_per_applicant == 0.0


class TestPendingNotifications:
    @pytest.mark.asyncio()
    async def test_rows_become_notifications(self):
        row = MagicMock()
        row._mapping = {
            "match_id": uuid.uuid4(),
            "applicant_id": uuid.uuid4(),
            "applicant_external_id": "A-001",
            "email": "applicant@example.com",
            "product_id": uuid.uuid4(),
            "product_name": "Personal Loan",
            "provider_name": "Acme Bank",
            "interest_rate_min": Decimal("10.5"),
            "interest_rate_max": Decimal("14"),
            "loan_amount_min": Decimal("50000"),
            "loan_amount_max": Decimal("500000"),
            "match_score": Decimal("67.00"),
            "llm_analysis": None,
            "batch_tag": "batch-1",
            "created_at": datetime.now(UTC),
        }
        result = MagicMock()
        result.all.return_value = [row]
        db = AsyncMock()
        db.execute = AsyncMock(return_value=result)

        pending = await list_pending_notifications(db, batch_tag="batch-1")

        assert len(pending) == 1
        assert pending[0].applicant_external_id == "A-001"
        assert pending[0].match_score == Decimal("67.00")

        sql = str(db.execute.await_args.args[0])
        assert "matches.notified_at IS NULL" in sql
        assert "matches.status" in sql


class TestClearMatches:
    @pytest.mark.asyncio()
    async def test_deletes_batch_and_emits(self):
        db = AsyncMock()
        db.execute = AsyncMock(return_value=MagicMock(rowcount=3))

        with patch("loanmatch.matching.queries.emit", new_callable=AsyncMock) as mock_emit:
            deleted = await clear_matches(db, "batch-1")

        assert deleted == 3
        event = mock_emit.await_args.args[0]
        assert event.event_type == EventType.MATCHES_CLEARED
        assert event.data == {"deleted": 3}
        assert "WHERE matches.batch_tag" in str(db.execute.await_args.args[0])
