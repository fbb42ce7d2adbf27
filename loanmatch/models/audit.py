"""AuditLog model — append-only trail of pipeline events."""

from __future__ import annotations

from typing import Any

from sqlalchemy import String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from loanmatch.models.base import Base, TimestampMixin


class AuditLog(TimestampMixin, Base):
    """One row per SystemEvent."""

    __tablename__ = "audit_log"

    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    batch_tag: Mapped[str | None] = mapped_column(String(100), index=True)
    source_module: Mapped[str | None] = mapped_column(String(100))
    data: Mapped[dict[str, Any] | None] = mapped_column(JSONB)

    def __repr__(self) -> str:
        return f"<AuditLog {self.event_type} batch={self.batch_tag}>"
