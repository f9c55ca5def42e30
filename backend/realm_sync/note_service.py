"""Project notes (counted in `noteCount`) and entity notes (uncounted)."""
from __future__ import annotations

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.access import find_owned_project, require_owned_project, require_user
from realm_sync.db import utcnow
from realm_sync.errors import NotFoundError, UnauthorizedError, ValidationError
from realm_sync.models.entity import Entity
from realm_sync.models.note import EntityNote, Note
from realm_sync.models.project import Project
from realm_sync.models.user import User
from realm_sync.project_stats import adjust_project_stats


async def _load_note_for_mutation(session: AsyncSession, *, note_id: int, user: User | None) -> Note:
    user = require_user(user)
    note = await session.get(Note, note_id)
    if note is None:
        raise NotFoundError("note", note_id)
    project = await session.get(Project, note.project_id)
    if project is None or project.user_id != user.id:
        raise UnauthorizedError("You do not have permission to access this project.")
    return note


async def list_notes(session: AsyncSession, *, project_id: int, user: User | None) -> list[Note]:
    """Pinned first, then most recently edited."""
    if await find_owned_project(session, project_id=project_id, user=user) is None:
        return []
    return list(
        (
            await session.execute(
                select(Note)
                .where(Note.project_id == project_id)
                .order_by(Note.pinned.desc(), Note.updated_at.desc(), Note.id.desc())
            )
        ).scalars().all()
    )


async def get_note(session: AsyncSession, *, note_id: int, user: User | None) -> Note | None:
    note = await session.get(Note, note_id)
    if note is None:
        return None
    if await find_owned_project(session, project_id=note.project_id, user=user) is None:
        return None
    return note


async def search_notes(
    session: AsyncSession, *, project_id: int, user: User | None, query: str
) -> list[Note]:
    if await find_owned_project(session, project_id=project_id, user=user) is None:
        return []
    needle = query.strip().lower()
    if not needle:
        return []
    pattern = f"%{needle}%"
    return list(
        (
            await session.execute(
                select(Note)
                .where(
                    Note.project_id == project_id,
                    or_(func.lower(Note.content).like(pattern), func.lower(Note.title).like(pattern)),
                )
                .order_by(Note.updated_at.desc())
            )
        ).scalars().all()
    )


async def create_note(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    title: str,
    content: str = "",
    tags: list[str] | None = None,
    pinned: bool = False,
) -> Note:
    await require_owned_project(session, project_id=project_id, user=user)
    if not title.strip():
        raise ValidationError("title", "Note title is required")
    now = utcnow()
    note = Note(
        project_id=project_id,
        user_id=user.id,
        title=title.strip(),
        content=content,
        tags=list(tags or []),
        pinned=pinned,
        created_at=now,
        updated_at=now,
    )
    session.add(note)
    await adjust_project_stats(session, project_id=project_id, noteCount=1)
    await session.flush()
    return note


async def update_note(
    session: AsyncSession,
    *,
    note_id: int,
    user: User | None,
    title: str | None = None,
    content: str | None = None,
    tags: list[str] | None = None,
    pinned: bool | None = None,
) -> Note:
    note = await _load_note_for_mutation(session, note_id=note_id, user=user)
    if title is not None:
        note.title = title.strip()
    if content is not None:
        note.content = content
    if tags is not None:
        note.tags = list(tags)
    if pinned is not None:
        note.pinned = pinned
    note.updated_at = utcnow()
    return note


async def remove_note(session: AsyncSession, *, note_id: int, user: User | None) -> int:
    note = await _load_note_for_mutation(session, note_id=note_id, user=user)
    project_id = note.project_id
    await session.delete(note)
    await adjust_project_stats(session, project_id=project_id, noteCount=-1)
    return note_id


async def toggle_note_pin(session: AsyncSession, *, note_id: int, user: User | None) -> Note:
    note = await _load_note_for_mutation(session, note_id=note_id, user=user)
    note.pinned = not note.pinned
    note.updated_at = utcnow()
    return note


# ── Entity notes ──


async def _require_entity_access(session: AsyncSession, *, entity_id: int, user: User | None) -> Entity:
    user = require_user(user)
    entity = await session.get(Entity, entity_id)
    if entity is None:
        raise NotFoundError("entity", entity_id)
    project = await session.get(Project, entity.project_id)
    if project is None:
        raise NotFoundError("project", entity.project_id)
    if project.user_id != user.id:
        raise UnauthorizedError("You do not have permission to access this entity.")
    return entity


async def _load_entity_note_for_mutation(
    session: AsyncSession, *, note_id: int, user: User | None
) -> EntityNote:
    require_user(user)
    note = await session.get(EntityNote, note_id)
    if note is None:
        raise NotFoundError("entityNote", note_id)
    await _require_entity_access(session, entity_id=note.entity_id, user=user)
    return note


async def list_entity_notes(
    session: AsyncSession, *, entity_id: int, user: User | None
) -> list[EntityNote]:
    entity = await session.get(Entity, entity_id)
    if entity is None:
        return []
    if await find_owned_project(session, project_id=entity.project_id, user=user) is None:
        return []
    return list(
        (
            await session.execute(
                select(EntityNote)
                .where(EntityNote.entity_id == entity_id)
                .order_by(EntityNote.created_at.desc(), EntityNote.id.desc())
            )
        ).scalars().all()
    )


async def get_entity_note(
    session: AsyncSession, *, note_id: int, user: User | None
) -> EntityNote | None:
    note = await session.get(EntityNote, note_id)
    if note is None:
        return None
    if await find_owned_project(session, project_id=note.project_id, user=user) is None:
        return None
    return note


async def create_entity_note(
    session: AsyncSession, *, entity_id: int, user: User | None, content: str
) -> EntityNote:
    entity = await _require_entity_access(session, entity_id=entity_id, user=user)
    if not content.strip():
        raise ValidationError("content", "Note content is required")
    now = utcnow()
    note = EntityNote(
        entity_id=entity.id,
        project_id=entity.project_id,
        user_id=user.id,
        content=content,
        created_at=now,
        updated_at=now,
    )
    session.add(note)
    await session.flush()
    return note


async def update_entity_note(
    session: AsyncSession, *, note_id: int, user: User | None, content: str
) -> EntityNote:
    note = await _load_entity_note_for_mutation(session, note_id=note_id, user=user)
    if not content.strip():
        raise ValidationError("content", "Note content is required")
    note.content = content
    note.updated_at = utcnow()
    return note


async def remove_entity_note(session: AsyncSession, *, note_id: int, user: User | None) -> int:
    note = await _load_entity_note_for_mutation(session, note_id=note_id, user=user)
    await session.delete(note)
    return note_id
