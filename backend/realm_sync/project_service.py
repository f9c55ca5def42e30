"""Project CRUD and the project-wide delete cascade."""
from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.access import find_owned_project, require_owned_project, require_user
from realm_sync.db import utcnow
from realm_sync.errors import ValidationError
from realm_sync.models.alert import Alert
from realm_sync.models.document import Document
from realm_sync.models.entity import Entity
from realm_sync.models.fact import Fact
from realm_sync.models.note import EntityNote, Note
from realm_sync.models.project import Project, ProjectType
from realm_sync.models.user import User
from realm_sync.project_stats import STAT_COLUMNS, recompute_project_stats, set_project_stats
from realm_sync.usage_service import ensure_project_quota

logger = logging.getLogger(__name__)

_PROJECT_TYPES = {t.value for t in ProjectType}


def _check_project_type(project_type: str | None) -> None:
    if project_type is not None and project_type not in _PROJECT_TYPES:
        raise ValidationError("projectType", f"Unknown project type: {project_type}")


async def list_projects(session: AsyncSession, *, user: User | None) -> list[Project]:
    if user is None:
        return []
    return list(
        (
            await session.execute(
                select(Project)
                .where(Project.user_id == user.id)
                .order_by(Project.updated_at.desc(), Project.id.desc())
            )
        ).scalars().all()
    )


async def get_project(session: AsyncSession, *, project_id: int, user: User | None) -> Project | None:
    return await find_owned_project(session, project_id=project_id, user=user)


async def create_project(
    session: AsyncSession,
    *,
    user: User | None,
    name: str,
    description: str | None = None,
    project_type: str | None = None,
) -> Project:
    user = require_user(user)
    if not name.strip():
        raise ValidationError("name", "Project name is required")
    _check_project_type(project_type)
    await ensure_project_quota(session, user=user)

    now = utcnow()
    project = Project(
        user_id=user.id,
        name=name.strip(),
        description=description,
        project_type=project_type or ProjectType.GENERAL.value,
        document_count=0,
        entity_count=0,
        fact_count=0,
        alert_count=0,
        note_count=0,
        created_at=now,
        updated_at=now,
    )
    session.add(project)
    await session.flush()
    logger.info("Created project %s for user %s", project.id, user.id)
    return project


async def update_project(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    name: str | None = None,
    description: str | None = None,
    project_type: str | None = None,
    revealed_to_viewers: bool | None = None,
) -> Project:
    project = await require_owned_project(session, project_id=project_id, user=user)
    _check_project_type(project_type)
    if name is not None:
        if not name.strip():
            raise ValidationError("name", "Project name is required")
        project.name = name.strip()
    if description is not None:
        project.description = description
    if project_type is not None:
        project.project_type = project_type
    if revealed_to_viewers is not None:
        project.revealed_to_viewers = revealed_to_viewers
    project.updated_at = utcnow()
    return project


async def delete_project_tree(session: AsyncSession, *, project_id: int) -> None:
    """Remove a project and every row that belongs to it. No access checks."""
    for model in (Alert, Fact, EntityNote, Entity, Note, Document):
        await session.execute(delete(model).where(model.project_id == project_id))
    await session.execute(delete(Project).where(Project.id == project_id))


async def remove_project(session: AsyncSession, *, project_id: int, user: User | None) -> int:
    await require_owned_project(session, project_id=project_id, user=user)
    await delete_project_tree(session, project_id=project_id)
    logger.info("Removed project %s", project_id)
    return project_id


async def update_project_stats(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    stats: dict[str, int | None],
) -> Project:
    """Overwrite the given counters; absent keys keep their value."""
    project = await require_owned_project(session, project_id=project_id, user=user)
    unknown = set(stats) - set(STAT_COLUMNS)
    if unknown:
        raise ValidationError("stats", f"Unknown stat keys: {sorted(unknown)}")
    return set_project_stats(project, **stats)


async def repair_project_stats(
    session: AsyncSession, *, project_id: int, user: User | None
) -> dict[str, int]:
    project = await require_owned_project(session, project_id=project_id, user=user)
    return await recompute_project_stats(session, project=project)

