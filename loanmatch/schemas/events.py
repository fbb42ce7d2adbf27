"""SystemEvent schema — the event type that flows through the event bus.

The orchestrator and the reasoning-service client emit SystemEvents; the
audit subscriber persists them and the log subscriber mirrors them to logs.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """All event types emitted by the engine."""

    # Pipeline lifecycle
    PIPELINE_STARTED = "pipeline.started"
    STAGE_COMPLETED = "pipeline.stage_completed"
    PIPELINE_COMPLETED = "pipeline.completed"
    PIPELINE_FAILED = "pipeline.failed"
    PIPELINE_CANCELLED = "pipeline.cancelled"

    # Stage 3
    LLM_REQUEST = "llm.request"
    LLM_RESPONSE = "llm.response"
    LLM_ERROR = "llm.error"
    ASSESSMENT_FALLBACK = "assessment.fallback"

    # Persistence
    MATCHES_PERSISTED = "matches.persisted"
    MATCHES_CLEARED = "matches.cleared"


class SystemEvent(BaseModel):
    """Immutable event record."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    batch_tag: str | None = None

    # Flexible payload
    data: dict[str, Any] = Field(default_factory=dict)

    # Metadata
    source_module: str | None = Field(default=None, description="Module that emitted this event")

    model_config = {"frozen": True}
