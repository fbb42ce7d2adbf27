"""Audit log subscriber — persists every SystemEvent to the audit_log table.

Registered as a global subscriber. Never raises: failures are logged and
never reach the event system or the pipeline.
"""

from __future__ import annotations

import logging

import structlog

from loanmatch.db.engine import async_session_factory
from loanmatch.models.audit import AuditLog
from loanmatch.schemas.events import SystemEvent

logger = logging.getLogger(__name__)
event_log = structlog.get_logger("loanmatch.events")


async def audit_on_event(event: SystemEvent) -> None:
    """Write a SystemEvent to the audit_log table."""
    try:
        async with async_session_factory() as db:
            db.add(AuditLog(
                event_type=event.event_type.value,
                batch_tag=event.batch_tag,
                source_module=event.source_module,
                data=event.data,
            ))
            await db.commit()
    except Exception:
        logger.exception(
            "Failed to persist audit event: %s (batch=%s)",
            event.event_type.value,
            event.batch_tag,
        )


async def log_on_event(event: SystemEvent) -> None:
    """Mirror events to the structured log."""
    event_log.info(
        event.event_type.value,
        batch_tag=event.batch_tag,
        source=event.source_module,
        data=event.data,
    )
