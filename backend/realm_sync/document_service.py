"""Document CRUD and the deletion cascade."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.access import find_owned_project, require_owned_project, require_user
from realm_sync.db import utcnow
from realm_sync.errors import NotFoundError, UnauthorizedError, ValidationError
from realm_sync.metrics import DOCUMENT_CASCADE_DELETES_TOTAL
from realm_sync.models.alert import Alert, AlertStatus
from realm_sync.models.document import ContentType, Document, ProcessingStatus
from realm_sync.models.entity import Entity, EntityStatus
from realm_sync.models.fact import Fact, FactStatus
from realm_sync.models.project import Project
from realm_sync.models.user import User
from realm_sync.project_stats import adjust_project_stats
from realm_sync.usage_service import ensure_document_quota

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def count_words(text: str | None) -> int:
    if not text:
        return 0
    return len(text.split())


async def _load_document_for_mutation(
    session: AsyncSession, *, document_id: int, user: User | None
) -> Document:
    user = require_user(user)
    doc = await session.get(Document, document_id)
    if doc is None:
        raise NotFoundError("document", document_id)
    project = await session.get(Project, doc.project_id)
    if project is None:
        raise NotFoundError("project", doc.project_id)
    if project.user_id != user.id:
        raise UnauthorizedError()
    return doc


async def list_documents(session: AsyncSession, *, project_id: int, user: User | None) -> list[Document]:
    if await find_owned_project(session, project_id=project_id, user=user) is None:
        return []
    return list(
        (
            await session.execute(
                select(Document)
                .where(Document.project_id == project_id)
                .order_by(Document.order_index.asc(), Document.id.asc())
            )
        ).scalars().all()
    )


async def get_document(session: AsyncSession, *, document_id: int, user: User | None) -> Document | None:
    doc = await session.get(Document, document_id)
    if doc is None:
        return None
    if await find_owned_project(session, project_id=doc.project_id, user=user) is None:
        return None
    return doc


async def create_document(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    title: str,
    content: str | None = None,
    storage_key: str | None = None,
    content_type: str = ContentType.TEXT.value,
) -> Document:
    """Append a document at the end of the project's ordering."""
    await require_owned_project(session, project_id=project_id, user=user)
    await ensure_document_quota(session, user=user, project_id=project_id)
    if content_type not in {c.value for c in ContentType}:
        raise ValidationError("contentType", f"Unsupported content type: {content_type}")

    max_order = (
        await session.execute(
            select(func.max(Document.order_index)).where(Document.project_id == project_id)
        )
    ).scalar()
    now = utcnow()
    doc = Document(
        project_id=project_id,
        title=title,
        content=content,
        storage_key=storage_key,
        content_type=content_type,
        order_index=(max_order if max_order is not None else -1) + 1,
        word_count=count_words(content),
        processing_status=ProcessingStatus.PENDING.value,
        created_at=now,
        updated_at=now,
    )
    session.add(doc)
    await adjust_project_stats(session, project_id=project_id, documentCount=1)
    await session.flush()
    return doc


async def update_document(
    session: AsyncSession,
    *,
    document_id: int,
    user: User | None,
    title: str | None = None,
    content: str | None = _UNSET,
    storage_key: str | None = _UNSET,
    content_type: str | None = None,
) -> Document:
    """Content changes recount words and queue the document for re-extraction."""
    doc = await _load_document_for_mutation(session, document_id=document_id, user=user)
    if title is not None:
        doc.title = title
    if content is not _UNSET and content is not None:
        doc.content = content
        doc.word_count = count_words(content)
        doc.processing_status = ProcessingStatus.PENDING.value
    if storage_key is not _UNSET:
        doc.storage_key = storage_key
    if content_type is not None:
        doc.content_type = content_type
    doc.updated_at = utcnow()
    return doc


@dataclass(slots=True)
class DocumentCascadeResult:
    document_id: int
    facts_deleted: int = 0
    alerts_deleted: int = 0
    open_alerts_deleted: int = 0
    entities_unlinked: int = 0


async def remove_document(
    session: AsyncSession, *, document_id: int, user: User | None
) -> DocumentCascadeResult:
    """Delete a document together with everything that only made sense with it.

    - facts extracted from it
    - alerts raised on it
    - alerts elsewhere in the project that reference any of those facts
    - `first_mentioned_in` pointers on entities are cleared
    Counters are decremented by what was actually removed.
    """
    doc = await _load_document_for_mutation(session, document_id=document_id, user=user)
    project_id = doc.project_id
    result = DocumentCascadeResult(document_id=document_id)

    facts = (await session.execute(select(Fact).where(Fact.document_id == document_id))).scalars().all()
    dead_fact_ids = {fact.id for fact in facts}
    live_facts_removed = sum(1 for fact in facts if fact.status != FactStatus.REJECTED.value)

    project_alerts = (
        await session.execute(select(Alert).where(Alert.project_id == project_id))
    ).scalars().all()
    doomed_alerts = [
        alert
        for alert in project_alerts
        if alert.document_id == document_id or dead_fact_ids.intersection(alert.fact_ids or [])
    ]
    for alert in doomed_alerts:
        if alert.status == AlertStatus.OPEN.value:
            result.open_alerts_deleted += 1
        await session.delete(alert)
    result.alerts_deleted = len(doomed_alerts)

    for fact in facts:
        await session.delete(fact)
    result.facts_deleted = len(facts)

    unlinked = await session.execute(
        update(Entity)
        .where(Entity.first_mentioned_in == document_id)
        .values(first_mentioned_in=None, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    result.entities_unlinked = int(unlinked.rowcount or 0)

    await session.flush()
    await session.delete(doc)
    await adjust_project_stats(
        session,
        project_id=project_id,
        documentCount=-1,
        factCount=-live_facts_removed,
        alertCount=-result.open_alerts_deleted,
    )
    await session.flush()

    DOCUMENT_CASCADE_DELETES_TOTAL.labels(table="facts").inc(result.facts_deleted)
    DOCUMENT_CASCADE_DELETES_TOTAL.labels(table="alerts").inc(result.alerts_deleted)
    logger.info(
        "Removed document %s: %s facts, %s alerts (%s open), %s entities unlinked",
        document_id,
        result.facts_deleted,
        result.alerts_deleted,
        result.open_alerts_deleted,
        result.entities_unlinked,
    )
    return result


async def reorder_documents(
    session: AsyncSession, *, project_id: int, user: User | None, document_ids: list[int]
) -> None:
    project = await require_owned_project(session, project_id=project_id, user=user)
    docs = {
        doc.id: doc
        for doc in (
            await session.execute(
                select(Document).where(
                    Document.project_id == project_id, Document.id.in_(document_ids)
                )
            )
        ).scalars().all()
    }
    missing = [doc_id for doc_id in document_ids if doc_id not in docs]
    if missing:
        raise ValidationError("documentIds", f"Documents not in project: {missing}")
    for index, doc_id in enumerate(document_ids):
        docs[doc_id].order_index = index
    project.updated_at = utcnow()


async def update_processing_status(
    session: AsyncSession, *, document_id: int, user: User | None, status: str
) -> Document:
    if status not in {s.value for s in ProcessingStatus}:
        raise ValidationError("status", f"Unknown processing status: {status}")
    doc = await _load_document_for_mutation(session, document_id=document_id, user=user)
    now = utcnow()
    doc.processing_status = status
    doc.updated_at = now
    if status == ProcessingStatus.COMPLETED.value:
        doc.processed_at = now
    return doc


async def search_documents(
    session: AsyncSession, *, project_id: int, user: User | None, query: str
) -> list[Document]:
    if await find_owned_project(session, project_id=project_id, user=user) is None:
        return []
    needle = query.strip()
    if not needle:
        return []
    pattern = f"%{needle.lower()}%"
    return list(
        (
            await session.execute(
                select(Document)
                .where(
                    Document.project_id == project_id,
                    or_(
                        func.lower(Document.content).like(pattern),
                        func.lower(Document.title).like(pattern),
                    ),
                )
                .order_by(Document.order_index.asc())
            )
        ).scalars().all()
    )


async def list_documents_needing_review(
    session: AsyncSession, *, project_id: int, user: User | None
) -> list[dict[str, Any]]:
    """Completed documents that still have pending entities or facts."""
    if await find_owned_project(session, project_id=project_id, user=user) is None:
        return []
    docs = (
        await session.execute(
            select(Document)
            .where(
                Document.project_id == project_id,
                Document.processing_status == ProcessingStatus.COMPLETED.value,
            )
            .order_by(Document.order_index.asc())
        )
    ).scalars().all()

    out: list[dict[str, Any]] = []
    for doc in docs:
        pending_entities = int(
            (
                await session.execute(
                    select(func.count(Entity.id)).where(
                        Entity.project_id == project_id,
                        Entity.status == EntityStatus.PENDING.value,
                        Entity.first_mentioned_in == doc.id,
                    )
                )
            ).scalar()
            or 0
        )
        pending_facts = int(
            (
                await session.execute(
                    select(func.count(Fact.id)).where(
                        Fact.document_id == doc.id, Fact.status == FactStatus.PENDING.value
                    )
                )
            ).scalar()
            or 0
        )
        if pending_entities or pending_facts:
            out.append(
                {
                    "document": doc,
                    "pending_entity_count": pending_entities,
                    "pending_fact_count": pending_facts,
                }
            )
    return out
