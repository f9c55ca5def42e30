"""Continuity check API."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.auth import get_current_user_optional
from realm_sync.check_service import run_check
from realm_sync.db import get_session
from realm_sync.models.user import User

router = APIRouter(tags=["checks"])
logger = logging.getLogger(__name__)


@router.post("/api/documents/{document_id}/check")
async def check_document(
    document_id: int,
    refresh: bool = False,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    """Compare the document against confirmed canon and persist any new alerts."""
    result = await run_check(db, document_id=document_id, user=user, refresh=refresh)
    await db.commit()
    return result.model_dump(by_alias=True, mode="json")
