"""In-process async event bus for SystemEvents.

Emitters never wait on subscribers: events go onto a queue drained by a
background worker, and a failing subscriber is logged without affecting the
others or the emitter.

Usage:
    from loanmatch.events import emit

    await emit(SystemEvent(
        event_type=EventType.PIPELINE_STARTED,
        batch_tag="2026-10-upload",
        source_module="matching.orchestrator",
    ))

    # At startup:
    subscribe(audit_on_event)                                   # every event
    subscribe(alert, event_types=[EventType.PIPELINE_FAILED])   # filtered
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from loanmatch.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

EventHandler = Callable[[SystemEvent], Coroutine[Any, Any, None]]

_global_handlers: list[EventHandler] = []
_typed_handlers: dict[EventType, list[EventHandler]] = {}
_queue: asyncio.Queue[SystemEvent] | None = None
_worker: asyncio.Task[None] | None = None


def subscribe(handler: EventHandler, event_types: list[EventType] | None = None) -> None:
    """Register a handler for all events, or only for the given types."""
    if event_types is None:
        _global_handlers.append(handler)
    else:
        for event_type in event_types:
            _typed_handlers.setdefault(event_type, []).append(handler)
    logger.info("Event subscriber registered: %s", handler.__name__)


def unsubscribe(handler: EventHandler) -> None:
    """Remove a handler from every subscription list."""
    if handler in _global_handlers:
        _global_handlers.remove(handler)
    for handlers in _typed_handlers.values():
        if handler in handlers:
            handlers.remove(handler)


async def emit(event: SystemEvent) -> None:
    """Queue an event for asynchronous dispatch."""
    global _queue
    if _queue is None:
        _queue = asyncio.Queue()
    _start_worker()
    await _queue.put(event)
    logger.debug("Event emitted: %s (batch=%s)", event.event_type.value, event.batch_tag)


def _start_worker() -> None:
    global _worker
    if _worker is None or _worker.done():
        _worker = asyncio.create_task(_drain())


async def _drain() -> None:
    while _queue is not None:
        event = await _queue.get()
        try:
            await dispatch(event)
        except Exception:
            logger.exception("Event dispatch failed for %s", event.event_type.value)
        finally:
            _queue.task_done()


async def dispatch(event: SystemEvent) -> None:
    """Deliver one event to its subscribers concurrently."""
    handlers = [*_global_handlers, *_typed_handlers.get(event.event_type, [])]
    if not handlers:
        return
    results = await asyncio.gather(*(handler(event) for handler in handlers), return_exceptions=True)
    for handler, result in zip(handlers, results):
        if isinstance(result, Exception):
            logger.error(
                "Event handler %s failed for %s: %s",
                handler.__name__,
                event.event_type.value,
                result,
            )


async def start_event_system() -> None:
    """Create the queue and worker. Call during application startup."""
    global _queue
    _queue = asyncio.Queue()
    _start_worker()
    logger.info(
        "Event system started with %d global + %d typed subscribers",
        len(_global_handlers),
        sum(len(v) for v in _typed_handlers.values()),
    )


async def stop_event_system() -> None:
    """Flush queued events, then stop the worker. Call during shutdown."""
    global _worker, _queue

    if _queue is not None:
        await _queue.join()

    if _worker is not None and not _worker.done():
        _worker.cancel()
        try:
            await _worker
        except asyncio.CancelledError:
            pass

    _worker = None
    _queue = None
    logger.info("Event system stopped")
