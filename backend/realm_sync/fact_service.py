"""Fact CRUD. `factCount` tracks facts whose status is not `rejected`."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.access import find_owned_project, require_owned_project, require_user
from realm_sync.errors import NotFoundError, UnauthorizedError, ValidationError
from realm_sync.models.document import Document
from realm_sync.models.entity import Entity
from realm_sync.models.fact import Fact, FactStatus
from realm_sync.models.project import Project
from realm_sync.models.user import User
from realm_sync.project_stats import adjust_project_stats

logger = logging.getLogger(__name__)

_FACT_STATUSES = {s.value for s in FactStatus}
_TEMPORAL_TYPES = {"point", "range", "relative"}


def _counted(status: str) -> int:
    return 0 if status == FactStatus.REJECTED.value else 1


def _validate_payload(
    *,
    status: str | None,
    confidence: float | None,
    evidence_position: dict[str, Any] | None,
    temporal_bound: dict[str, Any] | None,
) -> None:
    if status is not None and status not in _FACT_STATUSES:
        raise ValidationError("status", f"Unknown fact status: {status}")
    if confidence is not None and not 0.0 <= float(confidence) <= 1.0:
        raise ValidationError("confidence", "Confidence must be between 0 and 1")
    if evidence_position is not None:
        start, end = evidence_position.get("start"), evidence_position.get("end")
        if not isinstance(start, int) or not isinstance(end, int) or start > end:
            raise ValidationError("evidencePosition", "Evidence position needs start <= end")
    if temporal_bound is not None and temporal_bound.get("type") not in _TEMPORAL_TYPES:
        raise ValidationError("temporalBound", "Temporal bound type must be point, range or relative")


async def _load_fact_for_mutation(session: AsyncSession, *, fact_id: int, user: User | None) -> Fact:
    user = require_user(user)
    fact = await session.get(Fact, fact_id)
    if fact is None:
        raise NotFoundError("fact", fact_id)
    project = await session.get(Project, fact.project_id)
    if project is None or project.user_id != user.id:
        raise UnauthorizedError()
    return fact


async def create_fact(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    entity_id: int,
    document_id: int,
    subject: str,
    predicate: str,
    object: str,
    confidence: float = 1.0,
    evidence_snippet: str = "",
    evidence_position: dict[str, Any] | None = None,
    temporal_bound: dict[str, Any] | None = None,
    status: str | None = None,
) -> Fact:
    await require_owned_project(session, project_id=project_id, user=user)
    _validate_payload(
        status=status,
        confidence=confidence,
        evidence_position=evidence_position,
        temporal_bound=temporal_bound,
    )
    entity = await session.get(Entity, entity_id)
    if entity is None or entity.project_id != project_id:
        raise NotFoundError("entity", entity_id)
    document = await session.get(Document, document_id)
    if document is None or document.project_id != project_id:
        raise NotFoundError("document", document_id)

    fact = Fact(
        project_id=project_id,
        entity_id=entity_id,
        document_id=document_id,
        subject=subject,
        predicate=predicate,
        object=object,
        confidence=confidence,
        evidence_snippet=evidence_snippet,
        evidence_position=evidence_position,
        temporal_bound=temporal_bound,
        status=status or FactStatus.PENDING.value,
    )
    session.add(fact)
    if _counted(fact.status):
        await adjust_project_stats(session, project_id=project_id, factCount=1)
    await session.flush()
    return fact


async def confirm_fact(session: AsyncSession, *, fact_id: int, user: User | None) -> Fact:
    fact = await _load_fact_for_mutation(session, fact_id=fact_id, user=user)
    was_rejected = fact.status == FactStatus.REJECTED.value
    fact.status = FactStatus.CONFIRMED.value
    if was_rejected:
        await adjust_project_stats(session, project_id=fact.project_id, factCount=1)
    return fact


async def reject_fact(session: AsyncSession, *, fact_id: int, user: User | None) -> Fact:
    fact = await _load_fact_for_mutation(session, fact_id=fact_id, user=user)
    already_rejected = fact.status == FactStatus.REJECTED.value
    fact.status = FactStatus.REJECTED.value
    if not already_rejected:
        await adjust_project_stats(session, project_id=fact.project_id, factCount=-1)
    return fact


async def update_fact(
    session: AsyncSession,
    *,
    fact_id: int,
    user: User | None,
    subject: str | None = None,
    predicate: str | None = None,
    object: str | None = None,
    confidence: float | None = None,
    evidence_snippet: str | None = None,
    temporal_bound: dict[str, Any] | None = None,
    status: str | None = None,
) -> Fact:
    fact = await _load_fact_for_mutation(session, fact_id=fact_id, user=user)
    _validate_payload(
        status=status, confidence=confidence, evidence_position=None, temporal_bound=temporal_bound
    )
    old_counted = _counted(fact.status)
    for attr, value in (
        ("subject", subject),
        ("predicate", predicate),
        ("object", object),
        ("confidence", confidence),
        ("evidence_snippet", evidence_snippet),
        ("temporal_bound", temporal_bound),
        ("status", status),
    ):
        if value is not None:
            setattr(fact, attr, value)
    delta = _counted(fact.status) - old_counted
    if delta:
        await adjust_project_stats(session, project_id=fact.project_id, factCount=delta)
    return fact


async def remove_fact(session: AsyncSession, *, fact_id: int, user: User | None) -> int:
    fact = await _load_fact_for_mutation(session, fact_id=fact_id, user=user)
    counted = _counted(fact.status)
    project_id = fact.project_id
    await session.delete(fact)
    if counted:
        await adjust_project_stats(session, project_id=project_id, factCount=-1)
    return fact_id


# ── Queries ──


async def list_facts_by_entity(
    session: AsyncSession, *, entity_id: int, user: User | None, status: str | None = None
) -> list[Fact]:
    entity = await session.get(Entity, entity_id)
    if entity is None:
        return []
    if await find_owned_project(session, project_id=entity.project_id, user=user) is None:
        return []
    stmt = select(Fact).where(Fact.entity_id == entity_id)
    if status:
        stmt = stmt.where(Fact.status == status)
    return list((await session.execute(stmt.order_by(Fact.id.asc()))).scalars().all())


async def list_facts_by_document(
    session: AsyncSession, *, document_id: int, user: User | None
) -> list[Fact]:
    doc = await session.get(Document, document_id)
    if doc is None:
        return []
    if await find_owned_project(session, project_id=doc.project_id, user=user) is None:
        return []
    return list(
        (
            await session.execute(
                select(Fact).where(Fact.document_id == document_id).order_by(Fact.id.asc())
            )
        ).scalars().all()
    )


async def list_facts_by_project(
    session: AsyncSession, *, project_id: int, user: User | None, status: str | None = None
) -> list[Fact]:
    if await find_owned_project(session, project_id=project_id, user=user) is None:
        return []
    stmt = select(Fact).where(Fact.project_id == project_id)
    if status:
        stmt = stmt.where(Fact.status == status)
    return list((await session.execute(stmt.order_by(Fact.id.asc()))).scalars().all())


async def list_pending_facts(session: AsyncSession, *, project_id: int, user: User | None) -> list[Fact]:
    return await list_facts_by_project(
        session, project_id=project_id, user=user, status=FactStatus.PENDING.value
    )


async def get_fact(session: AsyncSession, *, fact_id: int, user: User | None) -> Fact | None:
    fact = await session.get(Fact, fact_id)
    if fact is None:
        return None
    if await find_owned_project(session, project_id=fact.project_id, user=user) is None:
        return None
    return fact
