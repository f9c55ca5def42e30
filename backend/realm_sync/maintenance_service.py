"""Housekeeping run by the scheduled workers."""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.db import utcnow
from realm_sync.models.user import RefreshToken

logger = logging.getLogger(__name__)


async def cleanup_expired_refresh_tokens(session: AsyncSession, *, now: datetime | None = None) -> int:
    now = now or utcnow()
    result = await session.execute(delete(RefreshToken).where(RefreshToken.expires_at < now))
    deleted = int(result.rowcount or 0)
    if deleted:
        logger.info("Deleted %s expired refresh tokens", deleted)
    return deleted
