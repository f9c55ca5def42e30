"""Ownership checks shared by services.

Queries use the `find_*` helpers and get `None` back for anything the caller
may not see. Mutations use the `require_*` helpers, which raise.
"""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.errors import NotFoundError, UnauthenticatedError, UnauthorizedError
from realm_sync.models.project import Project
from realm_sync.models.user import User


def require_user(user: User | None) -> User:
    if user is None:
        raise UnauthenticatedError()
    return user


async def find_owned_project(
    session: AsyncSession, *, project_id: int, user: User | None
) -> Project | None:
    if user is None:
        return None
    project = await session.get(Project, project_id)
    if project is None or project.user_id != user.id:
        return None
    return project


async def require_owned_project(
    session: AsyncSession, *, project_id: int, user: User | None
) -> Project:
    user = require_user(user)
    project = await session.get(Project, project_id)
    if project is None:
        raise NotFoundError("project", project_id)
    if project.user_id != user.id:
        raise UnauthorizedError()
    return project
