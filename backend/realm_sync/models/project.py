"""Project model with denormalised child-row counters."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from realm_sync.db import Base, utcnow


class ProjectType(str, enum.Enum):
    TTRPG = "ttrpg"
    ORIGINAL_FICTION = "original-fiction"
    FANFICTION = "fanfiction"
    GAME_DESIGN = "game-design"
    GENERAL = "general"


STAT_FIELDS = ("documentCount", "entityCount", "factCount", "alertCount", "noteCount")


class Project(Base):
    """Owned by one user. `*_count` columns mirror live child rows."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    project_type: Mapped[str] = mapped_column(
        String(32), default=ProjectType.GENERAL.value, nullable=False
    )
    revealed_to_viewers: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    document_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    entity_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    fact_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    alert_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    note_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )

    @property
    def stats(self) -> dict[str, int]:
        return {
            "documentCount": self.document_count or 0,
            "entityCount": self.entity_count or 0,
            "factCount": self.fact_count or 0,
            "alertCount": self.alert_count or 0,
            "noteCount": self.note_count or 0,
        }

    def __repr__(self) -> str:
        return f"<Project id={self.id} name={self.name!r}>"
