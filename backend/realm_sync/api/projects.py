"""Project API: CRUD plus counter maintenance."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.api.serializers import project_to_dict
from realm_sync.auth import get_current_user_optional
from realm_sync.db import get_session
from realm_sync.errors import NotFoundError
from realm_sync.models.user import User
from realm_sync import project_service

router = APIRouter(prefix="/api/projects", tags=["projects"])
logger = logging.getLogger(__name__)


class ProjectCreatePayload(BaseModel):
    name: str
    description: str | None = None
    project_type: str | None = None


class ProjectUpdatePayload(BaseModel):
    name: str | None = None
    description: str | None = None
    project_type: str | None = None
    revealed_to_viewers: bool | None = None


class ProjectStatsPayload(BaseModel):
    documentCount: int | None = None
    entityCount: int | None = None
    factCount: int | None = None
    alertCount: int | None = None
    noteCount: int | None = None


@router.get("")
async def list_projects(
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    projects = await project_service.list_projects(db, user=user)
    return [project_to_dict(p) for p in projects]


@router.get("/{project_id}")
async def get_project(
    project_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    project = await project_service.get_project(db, project_id=project_id, user=user)
    if project is None:
        raise NotFoundError("project", project_id)
    return project_to_dict(project)


@router.post("", status_code=201)
async def create_project(
    payload: ProjectCreatePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    project = await project_service.create_project(db, user=user, **payload.model_dump())
    await db.commit()
    return project_to_dict(project)


@router.patch("/{project_id}")
async def update_project(
    project_id: int,
    payload: ProjectUpdatePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    project = await project_service.update_project(
        db, project_id=project_id, user=user, **payload.model_dump(exclude_none=True)
    )
    await db.commit()
    return project_to_dict(project)


@router.delete("/{project_id}")
async def remove_project(
    project_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    removed = await project_service.remove_project(db, project_id=project_id, user=user)
    await db.commit()
    return {"id": removed}


@router.patch("/{project_id}/stats")
async def update_project_stats(
    project_id: int,
    payload: ProjectStatsPayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    project = await project_service.update_project_stats(
        db, project_id=project_id, user=user, stats=payload.model_dump(exclude_none=True)
    )
    await db.commit()
    return project_to_dict(project)


@router.post("/{project_id}/stats/repair")
async def repair_project_stats(
    project_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    stats = await project_service.repair_project_stats(db, project_id=project_id, user=user)
    await db.commit()
    return {"stats": stats}
