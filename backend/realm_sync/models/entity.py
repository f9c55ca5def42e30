"""Entity model: characters, locations, items, concepts and events."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from realm_sync.db import Base, JSONType, utcnow


class EntityType(str, enum.Enum):
    CHARACTER = "character"
    LOCATION = "location"
    ITEM = "item"
    CONCEPT = "concept"
    EVENT = "event"


class EntityStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class Entity(Base):
    __tablename__ = "entities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    aliases: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=EntityStatus.PENDING.value, nullable=False)
    first_mentioned_in: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True
    )
    revealed_to_viewers: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_entities_project_type", "project_id", "type"),
        Index("ix_entities_project_status", "project_id", "status"),
        Index("ix_entities_project_name", "project_id", "name"),
    )

    def __repr__(self) -> str:
        return f"<Entity id={self.id} name={self.name!r} type={self.type}>"
