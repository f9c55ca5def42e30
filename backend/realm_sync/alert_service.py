"""Alert lifecycle: open -> resolved | dismissed, reopen, remove.

Every status change goes through `transition_alert_status`, which owns the
`alertCount` bookkeeping so that redundant calls never double-count.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.access import find_owned_project, require_owned_project, require_user
from realm_sync.db import utcnow
from realm_sync.errors import NotFoundError, UnauthorizedError, ValidationError
from realm_sync.metrics import ALERT_TRANSITIONS_TOTAL
from realm_sync.models.alert import Alert, AlertStatus
from realm_sync.models.document import Document, ProcessingStatus
from realm_sync.models.entity import Entity
from realm_sync.models.fact import Fact
from realm_sync.models.project import Project
from realm_sync.models.user import User
from realm_sync.project_stats import adjust_project_stats

logger = logging.getLogger(__name__)


def _status_value(value: AlertStatus | str) -> str:
    if isinstance(value, AlertStatus):
        return value.value
    return str(value)


async def transition_alert_status(
    session: AsyncSession,
    *,
    alert: Alert,
    new_status: AlertStatus,
    resolution_notes: str | None = None,
) -> bool:
    """Move `alert` to `new_status` and keep the project's open-alert count in step.

    Returns `True` when the open/closed side of the alert changed.
    """
    old_status = _status_value(alert.status)
    target = _status_value(new_status)
    was_open = old_status == AlertStatus.OPEN.value

    alert.status = target
    if target == AlertStatus.OPEN.value:
        alert.resolved_at = None
        alert.resolution_notes = None
    else:
        alert.resolved_at = utcnow()
        alert.resolution_notes = resolution_notes

    delta = 0
    if was_open and target != AlertStatus.OPEN.value:
        delta = -1
    elif not was_open and target == AlertStatus.OPEN.value:
        delta = 1
    if delta:
        await adjust_project_stats(session, project_id=alert.project_id, alertCount=delta)

    if old_status != target:
        ALERT_TRANSITIONS_TOTAL.labels(from_status=old_status, to_status=target).inc()
    return delta != 0


async def _load_alert_for_mutation(session: AsyncSession, *, alert_id: int, user: User | None) -> Alert:
    user = require_user(user)
    alert = await session.get(Alert, alert_id)
    if alert is None:
        raise NotFoundError("alert", alert_id)
    project = await session.get(Project, alert.project_id)
    if project is None or project.user_id != user.id:
        raise UnauthorizedError()
    return alert


# ── Queries ──


async def list_alerts_by_project(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    status: str | None = None,
    alert_type: str | None = None,
    severity: str | None = None,
) -> list[Alert]:
    if await find_owned_project(session, project_id=project_id, user=user) is None:
        return []
    stmt = select(Alert).where(Alert.project_id == project_id)
    if status:
        stmt = stmt.where(Alert.status == status)
    if alert_type:
        stmt = stmt.where(Alert.type == alert_type)
    if severity:
        stmt = stmt.where(Alert.severity == severity)
    stmt = stmt.order_by(Alert.created_at.desc(), Alert.id.desc())
    return list((await session.execute(stmt)).scalars().all())


async def list_alerts_by_document(
    session: AsyncSession, *, document_id: int, user: User | None
) -> list[Alert]:
    doc = await session.get(Document, document_id)
    if doc is None:
        return []
    if await find_owned_project(session, project_id=doc.project_id, user=user) is None:
        return []
    return list(
        (
            await session.execute(
                select(Alert).where(Alert.document_id == document_id).order_by(Alert.id.asc())
            )
        ).scalars().all()
    )


async def get_alert(session: AsyncSession, *, alert_id: int, user: User | None) -> Alert | None:
    alert = await session.get(Alert, alert_id)
    if alert is None:
        return None
    if await find_owned_project(session, project_id=alert.project_id, user=user) is None:
        return None
    return alert


@dataclass(slots=True)
class AlertDetails:
    alert: Alert
    entities: list[dict[str, Any]] = field(default_factory=list)
    facts: list[dict[str, Any]] = field(default_factory=list)
    document: dict[str, Any] | None = None


async def get_alert_with_details(
    session: AsyncSession, *, alert_id: int, user: User | None
) -> AlertDetails | None:
    """Alert plus the still-existing entities/facts it references."""
    alert = await get_alert(session, alert_id=alert_id, user=user)
    if alert is None:
        return None

    details = AlertDetails(alert=alert)
    for entity_id in alert.entity_ids or []:
        entity = await session.get(Entity, entity_id)
        if entity is not None:
            details.entities.append({"id": entity.id, "name": entity.name, "type": entity.type})
    for fact_id in alert.fact_ids or []:
        fact = await session.get(Fact, fact_id)
        if fact is not None:
            details.facts.append(
                {
                    "id": fact.id,
                    "subject": fact.subject,
                    "predicate": fact.predicate,
                    "object": fact.object,
                    "evidence_snippet": fact.evidence_snippet,
                }
            )
    document = await session.get(Document, alert.document_id)
    if document is not None:
        details.document = {"id": document.id, "title": document.title}
    return details


async def count_alerts_by_project(
    session: AsyncSession, *, project_id: int, user: User | None
) -> dict[str, int]:
    counts = {"open": 0, "resolved": 0, "dismissed": 0, "total": 0}
    if await find_owned_project(session, project_id=project_id, user=user) is None:
        return counts
    statuses = (
        await session.execute(select(Alert.status).where(Alert.project_id == project_id))
    ).scalars().all()
    for status in statuses:
        if status in counts:
            counts[status] += 1
        counts["total"] += 1
    return counts


async def list_open_alerts_for_user(
    session: AsyncSession, *, user: User | None, limit: int = 20
) -> dict[str, Any]:
    """Open alerts across all of the caller's projects, newest first."""
    if user is None:
        return {"total": 0, "alerts": []}
    owned_open = (Project.user_id == user.id, Alert.status == AlertStatus.OPEN.value)
    total = (
        await session.execute(
            select(func.count(Alert.id))
            .join(Project, Project.id == Alert.project_id)
            .where(*owned_open)
        )
    ).scalar_one()
    rows = (
        await session.execute(
            select(Alert, Project.name)
            .join(Project, Project.id == Alert.project_id)
            .where(*owned_open)
            .order_by(Alert.created_at.desc(), Alert.id.desc())
            .limit(max(0, limit))
        )
    ).all()
    return {
        "total": total,
        "alerts": [{"alert": alert, "project_name": name} for alert, name in rows],
    }


# ── Mutations ──


async def resolve_alert(
    session: AsyncSession,
    *,
    alert_id: int,
    user: User | None,
    resolution_notes: str | None = None,
) -> Alert:
    alert = await _load_alert_for_mutation(session, alert_id=alert_id, user=user)
    await transition_alert_status(
        session, alert=alert, new_status=AlertStatus.RESOLVED, resolution_notes=resolution_notes
    )
    return alert


async def dismiss_alert(
    session: AsyncSession,
    *,
    alert_id: int,
    user: User | None,
    resolution_notes: str | None = None,
) -> Alert:
    alert = await _load_alert_for_mutation(session, alert_id=alert_id, user=user)
    await transition_alert_status(
        session, alert=alert, new_status=AlertStatus.DISMISSED, resolution_notes=resolution_notes
    )
    return alert


async def reopen_alert(session: AsyncSession, *, alert_id: int, user: User | None) -> Alert:
    alert = await _load_alert_for_mutation(session, alert_id=alert_id, user=user)
    await transition_alert_status(session, alert=alert, new_status=AlertStatus.OPEN)
    return alert


async def remove_alert(session: AsyncSession, *, alert_id: int, user: User | None) -> int:
    alert = await _load_alert_for_mutation(session, alert_id=alert_id, user=user)
    was_open = alert.is_open
    project_id = alert.project_id
    await session.delete(alert)
    if was_open:
        await adjust_project_stats(session, project_id=project_id, alertCount=-1)
    return alert_id


@dataclass(slots=True)
class CanonUpdateResult:
    alert_id: int
    fact_id: int
    document_id: int | None
    document_updated: bool


async def resolve_with_canon_update(
    session: AsyncSession,
    *,
    alert_id: int,
    fact_id: int,
    new_value: str,
    user: User | None,
    resolution_notes: str | None = None,
) -> CanonUpdateResult:
    """Rewrite a canon fact and resolve the alert in one unit of work.

    - fact.object becomes `new_value`; the old object is replaced inside the
      evidence snippet
    - the source document has the old snippet swapped for the new one and is
      queued for re-extraction (`pending`)
    - the alert is resolved with a default note describing the change
    """
    alert = await _load_alert_for_mutation(session, alert_id=alert_id, user=user)
    fact = await session.get(Fact, fact_id)
    if fact is None:
        raise NotFoundError("fact", fact_id)
    if fact_id not in (alert.fact_ids or []):
        raise ValidationError("factId", "Fact not associated with this alert")

    old_object = fact.object
    old_snippet = fact.evidence_snippet or ""
    new_snippet = old_snippet.replace(old_object, new_value) if old_object else old_snippet

    fact.object = new_value
    fact.evidence_snippet = new_snippet

    document_updated = False
    if fact.document_id is not None:
        document = await session.get(Document, fact.document_id)
        if document is not None:
            if old_snippet and document.content and old_snippet in document.content:
                document.content = document.content.replace(old_snippet, new_snippet)
                document.word_count = len(document.content.split())
                document_updated = True
            document.processing_status = ProcessingStatus.PENDING.value
            document.updated_at = utcnow()

    await transition_alert_status(
        session,
        alert=alert,
        new_status=AlertStatus.RESOLVED,
        resolution_notes=resolution_notes
        or f"Updated fact: {fact.subject} {fact.predicate} {new_value}",
    )
    logger.info(
        "Alert %s resolved with canon update on fact %s (document rewritten=%s)",
        alert_id,
        fact_id,
        document_updated,
    )
    return CanonUpdateResult(
        alert_id=alert_id,
        fact_id=fact_id,
        document_id=fact.document_id,
        document_updated=document_updated,
    )


async def _close_all_open(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    new_status: AlertStatus,
    resolution_notes: str | None,
) -> int:
    project = await require_owned_project(session, project_id=project_id, user=user)
    open_alerts = (
        await session.execute(
            select(Alert).where(
                Alert.project_id == project_id, Alert.status == AlertStatus.OPEN.value
            )
        )
    ).scalars().all()

    now = utcnow()
    for alert in open_alerts:
        alert.status = new_status.value
        alert.resolved_at = now
        alert.resolution_notes = resolution_notes
    if open_alerts:
        ALERT_TRANSITIONS_TOTAL.labels(
            from_status=AlertStatus.OPEN.value, to_status=new_status.value
        ).inc(len(open_alerts))

    project.alert_count = 0
    project.updated_at = now
    return len(open_alerts)


async def resolve_all_alerts(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    resolution_notes: str | None = None,
) -> int:
    return await _close_all_open(
        session,
        project_id=project_id,
        user=user,
        new_status=AlertStatus.RESOLVED,
        resolution_notes=resolution_notes,
    )


async def dismiss_all_alerts(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    resolution_notes: str | None = None,
) -> int:
    return await _close_all_open(
        session,
        project_id=project_id,
        user=user,
        new_status=AlertStatus.DISMISSED,
        resolution_notes=resolution_notes,
    )
