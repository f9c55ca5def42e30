"""User and RefreshToken models."""
from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from realm_sync.db import Base, JSONType, utcnow


class SubscriptionTier(str, enum.Enum):
    FREE = "free"
    UNLIMITED = "unlimited"


class User(Base):
    """Account row. Identity itself is issued by the external auth provider."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str | None] = mapped_column(String(80), nullable=True)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True, unique=True, index=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_demo: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    onboarding_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    tutorial_state: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment="has_seen_tour, completed_steps, tour_started_at, tour_completed_at"
    )
    settings_json: Mapped[dict | None] = mapped_column(
        JSONType, nullable=True, comment="theme, notifications, project_modes"
    )

    # ── Subscription ──
    subscription_tier: Mapped[str] = mapped_column(
        String(16), default=SubscriptionTier.FREE.value, nullable=False
    )
    subscription_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    trial_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # ── Monthly usage ──
    llm_extractions_this_month: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    chat_messages_this_month: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    usage_reset_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"


class RefreshToken(Base):
    """Session refresh tokens; expired rows are purged weekly."""

    __tablename__ = "refresh_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<RefreshToken id={self.id} user={self.user_id}>"
