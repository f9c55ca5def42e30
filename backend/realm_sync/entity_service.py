"""Entity CRUD, merge, similarity lookup and relationship hints."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.access import find_owned_project, require_owned_project, require_user
from realm_sync.db import utcnow
from realm_sync.errors import NotFoundError, UnauthorizedError, ValidationError
from realm_sync.models.document import Document
from realm_sync.models.entity import Entity, EntityStatus, EntityType
from realm_sync.models.fact import Fact, FactStatus
from realm_sync.models.note import EntityNote
from realm_sync.models.project import Project
from realm_sync.models.user import User
from realm_sync.project_stats import adjust_project_stats
from realm_sync.usage_service import ensure_entity_quota

logger = logging.getLogger(__name__)

_ENTITY_TYPES = {t.value for t in EntityType}
_ENTITY_STATUSES = {s.value for s in EntityStatus}
SORT_KEYS = ("name", "recent", "factCount")


def _unique(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def _check_type(entity_type: str | None) -> None:
    if entity_type is not None and entity_type not in _ENTITY_TYPES:
        raise ValidationError("type", f"Unknown entity type: {entity_type}")


def _check_status(status: str | None) -> None:
    if status is not None and status not in _ENTITY_STATUSES:
        raise ValidationError("status", f"Unknown entity status: {status}")


def mentions_name(text: str, name: str) -> bool:
    """Whole-word, case-insensitive mention. Short single words are ignored."""
    needle = name.lower().strip()
    min_len = 5 if " " not in needle else 3
    if len(needle) < min_len:
        return False
    return re.search(rf"\b{re.escape(needle)}\b", text.lower().strip()) is not None


async def _load_entity_for_mutation(
    session: AsyncSession, *, entity_id: int, user: User | None
) -> Entity:
    user = require_user(user)
    entity = await session.get(Entity, entity_id)
    if entity is None:
        raise NotFoundError("entity", entity_id)
    project = await session.get(Project, entity.project_id)
    if project is None or project.user_id != user.id:
        raise UnauthorizedError()
    return entity


async def create_entity(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    name: str,
    type: str,
    description: str | None = None,
    aliases: list[str] | None = None,
    first_mentioned_in: int | None = None,
    status: str | None = None,
) -> Entity:
    await require_owned_project(session, project_id=project_id, user=user)
    _check_type(type)
    _check_status(status)
    await ensure_entity_quota(session, user=user, project_id=project_id)

    now = utcnow()
    entity = Entity(
        project_id=project_id,
        name=name,
        type=type,
        description=description,
        aliases=_unique(list(aliases or [])),
        first_mentioned_in=first_mentioned_in,
        status=status or EntityStatus.PENDING.value,
        created_at=now,
        updated_at=now,
    )
    session.add(entity)
    await adjust_project_stats(session, project_id=project_id, entityCount=1)
    await session.flush()
    return entity


async def update_entity(
    session: AsyncSession,
    *,
    entity_id: int,
    user: User | None,
    name: str | None = None,
    type: str | None = None,
    description: str | None = None,
    aliases: list[str] | None = None,
    status: str | None = None,
) -> Entity:
    entity = await _load_entity_for_mutation(session, entity_id=entity_id, user=user)
    _check_type(type)
    _check_status(status)
    if name is not None:
        entity.name = name
    if type is not None:
        entity.type = type
    if description is not None:
        entity.description = description
    if aliases is not None:
        entity.aliases = _unique(list(aliases))
    if status is not None:
        entity.status = status
    entity.updated_at = utcnow()
    return entity


async def merge_entities(
    session: AsyncSession, *, source_id: int, target_id: int, user: User | None
) -> Entity:
    """Fold `source` into `target`: aliases, facts and entity notes move, source is deleted."""
    if source_id == target_id:
        raise ValidationError("sourceId", "Cannot merge an entity into itself")
    source = await _load_entity_for_mutation(session, entity_id=source_id, user=user)
    target = await _load_entity_for_mutation(session, entity_id=target_id, user=user)
    if source.project_id != target.project_id:
        raise ValidationError("targetId", "Cannot merge entities from different projects")

    target.aliases = _unique(list(target.aliases or []) + [source.name] + list(source.aliases or []))
    target.updated_at = utcnow()

    facts = (await session.execute(select(Fact).where(Fact.entity_id == source_id))).scalars().all()
    for fact in facts:
        fact.entity_id = target_id
    notes = (
        await session.execute(select(EntityNote).where(EntityNote.entity_id == source_id))
    ).scalars().all()
    for note in notes:
        note.entity_id = target_id

    await session.flush()
    await session.delete(source)
    await adjust_project_stats(session, project_id=source.project_id, entityCount=-1)
    logger.info(
        "Merged entity %s into %s (%s facts moved)", source_id, target_id, len(facts)
    )
    return target


async def _delete_entity_with_facts(session: AsyncSession, *, entity: Entity) -> int:
    facts = (await session.execute(select(Fact).where(Fact.entity_id == entity.id))).scalars().all()
    live = sum(1 for fact in facts if fact.status != FactStatus.REJECTED.value)
    for fact in facts:
        await session.delete(fact)
    notes = (
        await session.execute(select(EntityNote).where(EntityNote.entity_id == entity.id))
    ).scalars().all()
    for note in notes:
        await session.delete(note)
    await session.flush()
    await session.delete(entity)
    await adjust_project_stats(
        session, project_id=entity.project_id, entityCount=-1, factCount=-live
    )
    return len(facts)


async def remove_entity(session: AsyncSession, *, entity_id: int, user: User | None) -> int:
    entity = await _load_entity_for_mutation(session, entity_id=entity_id, user=user)
    await _delete_entity_with_facts(session, entity=entity)
    return entity_id


async def reject_entity(session: AsyncSession, *, entity_id: int, user: User | None) -> int:
    """Rejecting an extracted entity discards it and its facts."""
    entity = await _load_entity_for_mutation(session, entity_id=entity_id, user=user)
    removed = await _delete_entity_with_facts(session, entity=entity)
    logger.info("Rejected entity %s (%s facts discarded)", entity_id, removed)
    return entity_id


async def confirm_entity(session: AsyncSession, *, entity_id: int, user: User | None) -> Entity:
    entity = await _load_entity_for_mutation(session, entity_id=entity_id, user=user)
    entity.status = EntityStatus.CONFIRMED.value
    entity.updated_at = utcnow()
    return entity


async def set_entity_revealed(
    session: AsyncSession, *, entity_id: int, user: User | None, revealed: bool
) -> Entity:
    entity = await _load_entity_for_mutation(session, entity_id=entity_id, user=user)
    entity.revealed_to_viewers = revealed
    entity.updated_at = utcnow()
    return entity


# ── Queries ──


async def list_entities(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    entity_type: str | None = None,
    status: str | None = None,
) -> list[Entity]:
    if await find_owned_project(session, project_id=project_id, user=user) is None:
        return []
    stmt = select(Entity).where(Entity.project_id == project_id)
    if entity_type:
        stmt = stmt.where(Entity.type == entity_type)
    if status:
        stmt = stmt.where(Entity.status == status)
    return list((await session.execute(stmt.order_by(Entity.id.asc()))).scalars().all())


async def list_entities_with_stats(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    entity_type: str | None = None,
    status: str | None = None,
    sort_by: str = "name",
) -> list[dict[str, Any]]:
    """Entities with their non-rejected fact counts."""
    entities = await list_entities(
        session, project_id=project_id, user=user, entity_type=entity_type, status=status
    )
    if not entities:
        return []
    counts = dict(
        (
            await session.execute(
                select(Fact.entity_id, func.count(Fact.id))
                .where(
                    Fact.entity_id.in_([e.id for e in entities]),
                    Fact.status != FactStatus.REJECTED.value,
                )
                .group_by(Fact.entity_id)
            )
        ).all()
    )
    rows = [{"entity": e, "fact_count": int(counts.get(e.id, 0))} for e in entities]
    if sort_by == "recent":
        rows.sort(key=lambda r: r["entity"].updated_at, reverse=True)
    elif sort_by == "factCount":
        rows.sort(key=lambda r: r["fact_count"], reverse=True)
    else:
        rows.sort(key=lambda r: r["entity"].name.lower())
    return rows


async def get_entity(session: AsyncSession, *, entity_id: int, user: User | None) -> Entity | None:
    entity = await session.get(Entity, entity_id)
    if entity is None:
        return None
    if await find_owned_project(session, project_id=entity.project_id, user=user) is None:
        return None
    return entity


async def get_entity_with_facts(
    session: AsyncSession, *, entity_id: int, user: User | None
) -> dict[str, Any] | None:
    entity = await get_entity(session, entity_id=entity_id, user=user)
    if entity is None:
        return None
    facts = (
        await session.execute(select(Fact).where(Fact.entity_id == entity_id).order_by(Fact.id.asc()))
    ).scalars().all()
    return {"entity": entity, "facts": list(facts)}


@dataclass(slots=True)
class EntityDetails:
    entity: Entity
    facts: list[Fact] = field(default_factory=list)
    appearances: list[dict[str, Any]] = field(default_factory=list)
    related_entities: list[Entity] = field(default_factory=list)


async def get_entity_with_details(
    session: AsyncSession, *, entity_id: int, user: User | None
) -> EntityDetails | None:
    """Live facts, documents the entity appears in, and entities its facts mention."""
    entity = await get_entity(session, entity_id=entity_id, user=user)
    if entity is None:
        return None
    facts = list(
        (
            await session.execute(
                select(Fact)
                .where(Fact.entity_id == entity_id, Fact.status != FactStatus.REJECTED.value)
                .order_by(Fact.id.asc())
            )
        ).scalars().all()
    )
    details = EntityDetails(entity=entity, facts=facts)

    doc_ids = {f.document_id for f in facts if f.document_id is not None}
    if doc_ids:
        docs = (
            await session.execute(
                select(Document).where(Document.id.in_(doc_ids)).order_by(Document.order_index.asc())
            )
        ).scalars().all()
        details.appearances = [
            {"id": d.id, "title": d.title, "order_index": d.order_index} for d in docs
        ]

    others = (
        await session.execute(
            select(Entity).where(Entity.project_id == entity.project_id, Entity.id != entity_id)
        )
    ).scalars().all()
    for other in others:
        names = [other.name] + list(other.aliases or [])
        if any(mentions_name(f.object, n) for f in facts for n in names):
            details.related_entities.append(other)
    return details


async def find_entity_by_name(
    session: AsyncSession, *, project_id: int, user: User | None, name: str
) -> Entity | None:
    if await find_owned_project(session, project_id=project_id, user=user) is None:
        return None
    return (
        await session.execute(
            select(Entity).where(Entity.project_id == project_id, Entity.name == name).limit(1)
        )
    ).scalar()


async def find_similar_entities(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    name: str,
    exclude_id: int | None = None,
) -> list[Entity]:
    """Substring or alias matches; an exact name match is not "similar"."""
    entities = await list_entities(session, project_id=project_id, user=user)
    needle = name.lower().strip()
    out: list[Entity] = []
    for entity in entities:
        if exclude_id is not None and entity.id == exclude_id:
            continue
        candidate = entity.name.lower().strip()
        if candidate == needle:
            continue
        if needle in candidate or candidate in needle:
            out.append(entity)
        elif needle in [a.lower().strip() for a in entity.aliases or []]:
            out.append(entity)
    return out


async def search_entities(
    session: AsyncSession, *, project_id: int, user: User | None, query: str, limit: int = 20
) -> list[Entity]:
    if await find_owned_project(session, project_id=project_id, user=user) is None:
        return []
    needle = query.strip().lower()
    if not needle:
        return []
    pattern = f"%{needle}%"
    return list(
        (
            await session.execute(
                select(Entity)
                .where(
                    Entity.project_id == project_id,
                    or_(
                        func.lower(Entity.name).like(pattern),
                        func.lower(Entity.description).like(pattern),
                    ),
                )
                .order_by(Entity.name.asc())
                .limit(limit)
            )
        ).scalars().all()
    )


async def list_pending_entities(
    session: AsyncSession, *, project_id: int, user: User | None
) -> list[Entity]:
    return await list_entities(
        session, project_id=project_id, user=user, status=EntityStatus.PENDING.value
    )


async def list_events(session: AsyncSession, *, project_id: int, user: User | None) -> list[dict[str, Any]]:
    """Confirmed events ordered by the document that first mentions them (unplaced last)."""
    events = await list_entities(
        session,
        project_id=project_id,
        user=user,
        entity_type=EntityType.EVENT.value,
        status=EntityStatus.CONFIRMED.value,
    )
    rows: list[dict[str, Any]] = []
    for event in events:
        doc = await session.get(Document, event.first_mentioned_in) if event.first_mentioned_in else None
        rows.append(
            {
                "entity": event,
                "document": {"id": doc.id, "title": doc.title, "order_index": doc.order_index}
                if doc is not None
                else None,
            }
        )
    rows.sort(key=lambda r: r["document"]["order_index"] if r["document"] else float("inf"))
    return rows
