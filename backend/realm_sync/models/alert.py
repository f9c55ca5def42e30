"""Alert model for continuity issues flagged against canon."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from realm_sync.db import Base, JSONType, utcnow


class AlertType(str, enum.Enum):
    CONTRADICTION = "contradiction"
    TIMELINE = "timeline"
    AMBIGUITY = "ambiguity"


class AlertSeverity(str, enum.Enum):
    ERROR = "error"
    WARNING = "warning"


class AlertStatus(str, enum.Enum):
    OPEN = "open"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class Alert(Base):
    """`fact_ids` / `entity_ids` are deduplicated id lists; `evidence` holds
    `{"snippet", "document_id", "document_title"}` records."""

    __tablename__ = "alerts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    document_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    fact_ids: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    entity_ids: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    evidence: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    suggested_fix: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), default=AlertStatus.OPEN.value, nullable=False)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("ix_alerts_project_status", "project_id", "status"),)

    @property
    def is_open(self) -> bool:
        return self.status == AlertStatus.OPEN.value

    def __repr__(self) -> str:
        return f"<Alert id={self.id} project={self.project_id} status={self.status}>"
