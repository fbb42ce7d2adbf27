"""Tests for the in-process event bus."""

from __future__ import annotations

import pytest

from loanmatch import events
from loanmatch.schemas.events import EventType, SystemEvent


@pytest.fixture(autouse=True)
def _clean_subscribers():
    events._global_handlers.clear()
    events._typed_handlers.clear()
    yield
    events._global_handlers.clear()
    events._typed_handlers.clear()


class TestDispatch:
    @pytest.mark.asyncio()
    async def test_global_and_typed_handlers(self):
        seen: list[str] = []

        async def everything(event):
            seen.append(f"all:{event.event_type.value}")

        async def failures_only(event):
            seen.append(f"failed:{event.event_type.value}")

        events.subscribe(everything)
        events.subscribe(failures_only, event_types=[EventType.PIPELINE_FAILED])

        await events.dispatch(SystemEvent(event_type=EventType.PIPELINE_STARTED))
        await events.dispatch(SystemEvent(event_type=EventType.PIPELINE_FAILED))

        assert seen == ["all:pipeline.started", "all:pipeline.failed", "failed:pipeline.failed"]

    @pytest.mark.asyncio()
    async def test_failing_handler_does_not_affect_others(self):
        seen: list[str] = []

        async def broken(event):
            raise RuntimeError("boom")

        async def healthy(event):
            seen.append(event.event_type.value)

        events.subscribe(broken)
        events.subscribe(healthy)

        await events.dispatch(SystemEvent(event_type=EventType.MATCHES_PERSISTED))

        assert seen == ["matches.persisted"]

    @pytest.mark.asyncio()
    async def test_emit_is_delivered_by_worker(self):
        seen: list[str] = []

        async def handler(event):
            seen.append(event.batch_tag)

        events.subscribe(handler)
        await events.start_event_system()
        await events.emit(SystemEvent(event_type=EventType.PIPELINE_STARTED, batch_tag="b1"))
        await events.stop_event_system()

        assert seen == ["b1"]

    def test_unsubscribe(self):
        async def handler(event):
            return None

        events.subscribe(handler, event_types=[EventType.LLM_ERROR])
        events.unsubscribe(handler)

        assert events._typed_handlers[EventType.LLM_ERROR] == []
