"""Denormalised project counter maintenance.

Counters live on `projects.*_count`. Every adjustment is clamped at zero and
bumps `updated_at`; callers run inside the request's unit of work.
"""
from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.db import utcnow
from realm_sync.models.alert import Alert, AlertStatus
from realm_sync.models.document import Document
from realm_sync.models.entity import Entity
from realm_sync.models.fact import Fact, FactStatus
from realm_sync.models.note import Note
from realm_sync.models.project import Project

logger = logging.getLogger(__name__)

# camelCase stat key -> column attribute
STAT_COLUMNS = {
    "documentCount": "document_count",
    "entityCount": "entity_count",
    "factCount": "fact_count",
    "alertCount": "alert_count",
    "noteCount": "note_count",
}


async def adjust_project_stats(
    session: AsyncSession,
    *,
    project_id: int,
    **deltas: int,
) -> Project | None:
    """Apply signed deltas, e.g. `alertCount=-1`. Missing project is a no-op."""
    project = await session.get(Project, project_id)
    if project is None:
        logger.debug("Stats adjustment skipped: project %s gone", project_id)
        return None
    for key, delta in deltas.items():
        column = STAT_COLUMNS[key]
        current = getattr(project, column) or 0
        setattr(project, column, max(0, current + int(delta)))
    project.updated_at = utcnow()
    return project


def set_project_stats(project: Project, **values: int) -> Project:
    """Partial overwrite of stat values, clamped at zero."""
    for key, value in values.items():
        if value is None:
            continue
        setattr(project, STAT_COLUMNS[key], max(0, int(value)))
    project.updated_at = utcnow()
    return project


async def _count(session: AsyncSession, stmt) -> int:
    return int((await session.execute(stmt)).scalar() or 0)


async def recompute_project_stats(session: AsyncSession, *, project: Project) -> dict[str, int]:
    """Rebuild every counter from live rows (repair path)."""
    pid = project.id
    values = {
        "documentCount": await _count(
            session, select(func.count(Document.id)).where(Document.project_id == pid)
        ),
        "entityCount": await _count(
            session, select(func.count(Entity.id)).where(Entity.project_id == pid)
        ),
        "factCount": await _count(
            session,
            select(func.count(Fact.id)).where(
                Fact.project_id == pid, Fact.status != FactStatus.REJECTED.value
            ),
        ),
        "alertCount": await _count(
            session,
            select(func.count(Alert.id)).where(
                Alert.project_id == pid, Alert.status == AlertStatus.OPEN.value
            ),
        ),
        "noteCount": await _count(
            session, select(func.count(Note.id)).where(Note.project_id == pid)
        ),
    }
    before = project.stats
    set_project_stats(project, **values)
    if before != values:
        logger.info("Project %s stats drift repaired: %s -> %s", pid, before, values)
    return values
