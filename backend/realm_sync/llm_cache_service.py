"""LLM response cache lookups keyed by (input hash, prompt version)."""
from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.config import settings
from realm_sync.db import utcnow
from realm_sync.metrics import LLM_CACHE_LOOKUPS_TOTAL
from realm_sync.models.llm_cache import LLMCacheEntry

logger = logging.getLogger(__name__)


def compute_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def get_cached_response(
    session: AsyncSession,
    *,
    input_hash: str,
    prompt_version: str,
    now: datetime | None = None,
) -> Any | None:
    """Parsed cached response, or `None` when missing or expired."""
    now = now or utcnow()
    entry = (
        await session.execute(
            select(LLMCacheEntry)
            .where(
                LLMCacheEntry.input_hash == input_hash,
                LLMCacheEntry.prompt_version == prompt_version,
            )
            .order_by(LLMCacheEntry.created_at.desc())
            .limit(1)
        )
    ).scalar()

    if entry is None or _as_utc(entry.expires_at) < now:
        LLM_CACHE_LOOKUPS_TOTAL.labels(prompt_version=prompt_version, result="miss").inc()
        return None

    try:
        payload = json.loads(entry.response)
    except json.JSONDecodeError:
        logger.warning("Discarding unparseable cache entry %s", entry.id)
        LLM_CACHE_LOOKUPS_TOTAL.labels(prompt_version=prompt_version, result="corrupt").inc()
        return None
    LLM_CACHE_LOOKUPS_TOTAL.labels(prompt_version=prompt_version, result="hit").inc()
    return payload


async def save_cached_response(
    session: AsyncSession,
    *,
    input_hash: str,
    prompt_version: str,
    model_id: str,
    response: Any,
    token_count: int | None = None,
) -> LLMCacheEntry:
    now = utcnow()
    entry = LLMCacheEntry(
        input_hash=input_hash,
        prompt_version=prompt_version,
        model_id=model_id,
        response=json.dumps(response, ensure_ascii=False),
        token_count=token_count,
        created_at=now,
        expires_at=now + timedelta(seconds=settings.LLM_CACHE_TTL_S),
    )
    session.add(entry)
    return entry


async def invalidate_cache(
    session: AsyncSession, *, prompt_version: str, input_hash: str | None = None
) -> int:
    stmt = delete(LLMCacheEntry).where(LLMCacheEntry.prompt_version == prompt_version)
    if input_hash:
        stmt = stmt.where(LLMCacheEntry.input_hash == input_hash)
    result = await session.execute(stmt)
    return int(result.rowcount or 0)


async def purge_expired_cache(session: AsyncSession, *, now: datetime | None = None) -> int:
    now = now or utcnow()
    result = await session.execute(delete(LLMCacheEntry).where(LLMCacheEntry.expires_at < now))
    return int(result.rowcount or 0)
