"""Project notes and per-entity notes."""
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
from realm_sync import note_service

router = APIRouter(tags=["notes"])
logger = logging.getLogger(__name__)


class NoteCreatePayload(BaseModel):
    title: str
    content: str = ""
    tags: list[str] | None = None
    pinned: bool = False


class NoteUpdatePayload(BaseModel):
    title: str | None = None
    content: str | None = None
    tags: list[str] | None = None
    pinned: bool | None = None


class EntityNotePayload(BaseModel):
    content: str


# ── Project notes ──


@router.get("/api/projects/{project_id}/notes")
async def list_notes(
    project_id: int,
    q: str | None = None,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    if q:
        notes = await note_service.search_notes(db, project_id=project_id, user=user, query=q)
    else:
        notes = await note_service.list_notes(db, project_id=project_id, user=user)
    return rows_to_dicts(notes)


@router.post("/api/projects/{project_id}/notes", status_code=201)
async def create_note(
    project_id: int,
    payload: NoteCreatePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    note = await note_service.create_note(db, project_id=project_id, user=user, **payload.model_dump())
    await db.commit()
    return row_to_dict(note)


@router.get("/api/notes/{note_id}")
async def get_note(
    note_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    note = await note_service.get_note(db, note_id=note_id, user=user)
    if note is None:
        raise NotFoundError("note", note_id)
    return row_to_dict(note)


@router.patch("/api/notes/{note_id}")
async def update_note(
    note_id: int,
    payload: NoteUpdatePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    note = await note_service.update_note(
        db, note_id=note_id, user=user, **payload.model_dump(exclude_none=True)
    )
    await db.commit()
    return row_to_dict(note)


@router.post("/api/notes/{note_id}/toggle-pin")
async def toggle_note_pin(
    note_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    note = await note_service.toggle_note_pin(db, note_id=note_id, user=user)
    await db.commit()
    return row_to_dict(note)


@router.delete("/api/notes/{note_id}")
async def remove_note(
    note_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    removed = await note_service.remove_note(db, note_id=note_id, user=user)
    await db.commit()
    return {"id": removed}


# ── Entity notes ──


@router.get("/api/entities/{entity_id}/notes")
async def list_entity_notes(
    entity_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    return rows_to_dicts(await note_service.list_entity_notes(db, entity_id=entity_id, user=user))


@router.post("/api/entities/{entity_id}/notes", status_code=201)
async def create_entity_note(
    entity_id: int,
    payload: EntityNotePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    note = await note_service.create_entity_note(db, entity_id=entity_id, user=user, content=payload.content)
    await db.commit()
    return row_to_dict(note)


@router.get("/api/entity-notes/{note_id}")
async def get_entity_note(
    note_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    note = await note_service.get_entity_note(db, note_id=note_id, user=user)
    if note is None:
        raise NotFoundError("entity note", note_id)
    return row_to_dict(note)


@router.patch("/api/entity-notes/{note_id}")
async def update_entity_note(
    note_id: int,
    payload: EntityNotePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    note = await note_service.update_entity_note(db, note_id=note_id, user=user, content=payload.content)
    await db.commit()
    return row_to_dict(note)


@router.delete("/api/entity-notes/{note_id}")
async def remove_entity_note(
    note_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    removed = await note_service.remove_entity_note(db, note_id=note_id, user=user)
    await db.commit()
    return {"id": removed}
