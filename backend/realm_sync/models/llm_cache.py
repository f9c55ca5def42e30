"""LLM response cache keyed by (input hash, prompt version)."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from realm_sync.db import Base, utcnow


class LLMCacheEntry(Base):
    __tablename__ = "llm_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    input_hash: Mapped[str] = mapped_column(String(64), nullable=False, comment="SHA-256 hex")
    prompt_version: Mapped[str] = mapped_column(String(32), nullable=False)
    model_id: Mapped[str] = mapped_column(String(128), nullable=False)
    response: Mapped[str] = mapped_column(Text, nullable=False, comment="Stringified JSON")
    token_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_llm_cache_hash_version", "input_hash", "prompt_version"),)

    def __repr__(self) -> str:
        return f"<LLMCacheEntry id={self.id} version={self.prompt_version} hash={self.input_hash[:12]}>"
