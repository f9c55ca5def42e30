"""Fact model: subject/predicate/object triple extracted from a document."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from realm_sync.db import Base, JSONType, utcnow


class FactStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class Fact(Base):
    __tablename__ = "facts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    entity_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("entities.id", ondelete="CASCADE"), nullable=True
    )
    document_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=True, index=True
    )
    subject: Mapped[str] = mapped_column(String(512), nullable=False)
    predicate: Mapped[str] = mapped_column(String(256), nullable=False)
    object: Mapped[str] = mapped_column(Text, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    evidence_snippet: Mapped[str | None] = mapped_column(Text, nullable=True)
    evidence_position: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment='{"start": int, "end": int}'
    )
    temporal_bound: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment='{"type": "point|range|relative", "value": str}'
    )
    status: Mapped[str] = mapped_column(String(16), default=FactStatus.PENDING.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_facts_entity_status", "entity_id", "status"),
        Index("ix_facts_project_status", "project_id", "status"),
    )

    @property
    def counts_toward_stats(self) -> bool:
        return self.status != FactStatus.REJECTED.value

    def __repr__(self) -> str:
        return f"<Fact id={self.id} {self.subject!r} {self.predicate!r} {self.object!r}>"
