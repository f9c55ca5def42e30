"""Fact API: extracted assertions and their review workflow."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.api.serializers import row_to_dict, rows_to_dicts
from realm_sync.auth import get_current_user_optional
from realm_sync.db import get_session
from realm_sync.errors import NotFoundError
from realm_sync.models.user import User
from realm_sync import fact_service

router = APIRouter(tags=["facts"])
logger = logging.getLogger(__name__)


class FactCreatePayload(BaseModel):
    entity_id: int
    document_id: int
    subject: str
    predicate: str
    object: str
    confidence: float = 1.0
    evidence_snippet: str = ""
    evidence_position: dict[str, Any] | None = None
    temporal_bound: dict[str, Any] | None = None
    status: str | None = None


class FactUpdatePayload(BaseModel):
    subject: str | None = None
    predicate: str | None = None
    object: str | None = None
    confidence: float | None = None
    evidence_snippet: str | None = None
    temporal_bound: dict[str, Any] | None = None
    status: str | None = None


@router.get("/api/projects/{project_id}/facts")
async def list_facts_by_project(
    project_id: int,
    status: str | None = None,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    facts = await fact_service.list_facts_by_project(db, project_id=project_id, user=user, status=status)
    return rows_to_dicts(facts)


@router.get("/api/projects/{project_id}/facts/pending")
async def list_pending_facts(
    project_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    return rows_to_dicts(await fact_service.list_pending_facts(db, project_id=project_id, user=user))


@router.get("/api/entities/{entity_id}/facts")
async def list_facts_by_entity(
    entity_id: int,
    status: str | None = None,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    facts = await fact_service.list_facts_by_entity(db, entity_id=entity_id, user=user, status=status)
    return rows_to_dicts(facts)


@router.get("/api/documents/{document_id}/facts")
async def list_facts_by_document(
    document_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    return rows_to_dicts(await fact_service.list_facts_by_document(db, document_id=document_id, user=user))


@router.post("/api/projects/{project_id}/facts", status_code=201)
async def create_fact(
    project_id: int,
    payload: FactCreatePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    fact = await fact_service.create_fact(db, project_id=project_id, user=user, **payload.model_dump())
    await db.commit()
    return row_to_dict(fact)


@router.get("/api/facts/{fact_id}")
async def get_fact(
    fact_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    fact = await fact_service.get_fact(db, fact_id=fact_id, user=user)
    if fact is None:
        raise NotFoundError("fact", fact_id)
    return row_to_dict(fact)


@router.patch("/api/facts/{fact_id}")
async def update_fact(
    fact_id: int,
    payload: FactUpdatePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    fact = await fact_service.update_fact(
        db, fact_id=fact_id, user=user, **payload.model_dump(exclude_none=True)
    )
    await db.commit()
    return row_to_dict(fact)


@router.post("/api/facts/{fact_id}/confirm")
async def confirm_fact(
    fact_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    fact = await fact_service.confirm_fact(db, fact_id=fact_id, user=user)
    await db.commit()
    return row_to_dict(fact)


@router.post("/api/facts/{fact_id}/reject")
async def reject_fact(
    fact_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    fact = await fact_service.reject_fact(db, fact_id=fact_id, user=user)
    await db.commit()
    return row_to_dict(fact)


@router.delete("/api/facts/{fact_id}")
async def remove_fact(
    fact_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    removed = await fact_service.remove_fact(db, fact_id=fact_id, user=user)
    await db.commit()
    return {"id": removed}
