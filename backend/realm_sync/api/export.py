"""Project export download."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.responses import Response

from realm_sync.auth import get_current_user_optional
from realm_sync.db import get_session
from realm_sync.errors import NotFoundError
from realm_sync.export_service import MEDIA_TYPES, export_project
from realm_sync.models.user import User

router = APIRouter(tags=["export"])
logger = logging.getLogger(__name__)

_EXTENSIONS = {"json": "json", "markdown": "md", "csv": "csv"}


@router.get("/api/projects/{project_id}/export")
async def export(
    project_id: int,
    format: str = "json",
    include_unrevealed: bool = True,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> Response:
    body = await export_project(
        db, project_id=project_id, user=user, fmt=format, include_unrevealed=include_unrevealed
    )
    if body is None:
        raise NotFoundError("project", project_id)
    return Response(
        content=body,
        media_type=MEDIA_TYPES[format],
        headers={"Content-Disposition": f'attachment; filename="project-{project_id}.{_EXTENSIONS[format]}"'},
    )
