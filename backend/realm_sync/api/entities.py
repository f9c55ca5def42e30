"""Entity API: canon characters, places and things."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.api.serializers import row_to_dict, rows_to_dicts
from realm_sync.auth import get_current_user_optional
from realm_sync.db import get_session
from realm_sync.errors import NotFoundError
from realm_sync.models.user import User
from realm_sync import entity_service

router = APIRouter(tags=["entities"])
logger = logging.getLogger(__name__)


class EntityCreatePayload(BaseModel):
    name: str
    type: str
    description: str | None = None
    aliases: list[str] | None = None
    first_mentioned_in: int | None = None
    status: str | None = None


class EntityUpdatePayload(BaseModel):
    name: str | None = None
    type: str | None = None
    description: str | None = None
    aliases: list[str] | None = None
    status: str | None = None


class MergePayload(BaseModel):
    source_id: int
    target_id: int


class RevealPayload(BaseModel):
    revealed: bool


@router.get("/api/projects/{project_id}/entities")
async def list_entities(
    project_id: int,
    type: str | None = None,
    status: str | None = None,
    sort_by: str | None = None,
    q: str | None = None,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    if q:
        rows = await entity_service.search_entities(db, project_id=project_id, user=user, query=q)
        return rows_to_dicts(rows)
    if sort_by:
        rows = await entity_service.list_entities_with_stats(
            db, project_id=project_id, user=user, entity_type=type, status=status, sort_by=sort_by
        )
        return [{**row_to_dict(r["entity"]), "fact_count": r["fact_count"]} for r in rows]
    rows = await entity_service.list_entities(
        db, project_id=project_id, user=user, entity_type=type, status=status
    )
    return rows_to_dicts(rows)


@router.get("/api/projects/{project_id}/entities/pending")
async def list_pending_entities(
    project_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    return rows_to_dicts(
        await entity_service.list_pending_entities(db, project_id=project_id, user=user)
    )


@router.get("/api/projects/{project_id}/entities/similar")
async def find_similar_entities(
    project_id: int,
    name: str,
    exclude_id: int | None = None,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    rows = await entity_service.find_similar_entities(
        db, project_id=project_id, user=user, name=name, exclude_id=exclude_id
    )
    return rows_to_dicts(rows)


@router.get("/api/projects/{project_id}/entities/by-name")
async def find_entity_by_name(
    project_id: int,
    name: str,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict | None:
    entity = await entity_service.find_entity_by_name(db, project_id=project_id, user=user, name=name)
    return row_to_dict(entity) if entity is not None else None


@router.get("/api/projects/{project_id}/events")
async def list_events(
    project_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    rows = await entity_service.list_events(db, project_id=project_id, user=user)
    return [{**row_to_dict(r["entity"]), "document": r["document"]} for r in rows]


@router.post("/api/projects/{project_id}/entities", status_code=201)
async def create_entity(
    project_id: int,
    payload: EntityCreatePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    entity = await entity_service.create_entity(
        db, project_id=project_id, user=user, **payload.model_dump()
    )
    await db.commit()
    return row_to_dict(entity)


@router.post("/api/entities/merge")
async def merge_entities(
    payload: MergePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    target = await entity_service.merge_entities(
        db, source_id=payload.source_id, target_id=payload.target_id, user=user
    )
    await db.commit()
    return row_to_dict(target)


@router.get("/api/entities/{entity_id}")
async def get_entity(
    entity_id: int,
    details: bool = False,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    if not details:
        row = await entity_service.get_entity_with_facts(db, entity_id=entity_id, user=user)
        if row is None:
            raise NotFoundError("entity", entity_id)
        return {**row_to_dict(row["entity"]), "facts": rows_to_dicts(row["facts"])}

    found = await entity_service.get_entity_with_details(db, entity_id=entity_id, user=user)
    if found is None:
        raise NotFoundError("entity", entity_id)
    return {
        **row_to_dict(found.entity),
        "facts": rows_to_dicts(found.facts),
        "appearances": found.appearances,
        "related_entities": rows_to_dicts(found.related_entities),
    }


@router.patch("/api/entities/{entity_id}")
async def update_entity(
    entity_id: int,
    payload: EntityUpdatePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    entity = await entity_service.update_entity(
        db, entity_id=entity_id, user=user, **payload.model_dump(exclude_none=True)
    )
    await db.commit()
    return row_to_dict(entity)


@router.post("/api/entities/{entity_id}/confirm")
async def confirm_entity(
    entity_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    entity = await entity_service.confirm_entity(db, entity_id=entity_id, user=user)
    await db.commit()
    return row_to_dict(entity)


@router.post("/api/entities/{entity_id}/reject")
async def reject_entity(
    entity_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    removed = await entity_service.reject_entity(db, entity_id=entity_id, user=user)
    await db.commit()
    return {"id": removed}


@router.post("/api/entities/{entity_id}/reveal")
async def set_entity_revealed(
    entity_id: int,
    payload: RevealPayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    entity = await entity_service.set_entity_revealed(
        db, entity_id=entity_id, user=user, revealed=payload.revealed
    )
    await db.commit()
    return row_to_dict(entity)


@router.delete("/api/entities/{entity_id}")
async def remove_entity(
    entity_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    removed = await entity_service.remove_entity(db, entity_id=entity_id, user=user)
    await db.commit()
    return {"id": removed}
