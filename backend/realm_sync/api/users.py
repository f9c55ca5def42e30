"""Signed-in user: profile, onboarding, tutorial and usage."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.api.serializers import user_to_dict
from realm_sync.auth import get_current_user, get_current_user_optional
from realm_sync.db import get_session
from realm_sync.models.user import User
from realm_sync import user_service
from realm_sync.usage_service import usage_stats

router = APIRouter(prefix="/api/me", tags=["users"])
logger = logging.getLogger(__name__)


class ProfilePayload(BaseModel):
    name: str | None = None
    bio: str | None = None


class EmailPayload(BaseModel):
    email: str


class TutorialStepPayload(BaseModel):
    step_id: str


class TutorialCompletePayload(BaseModel):
    completed_steps: list[str] = Field(default_factory=list)


class ProjectModesPayload(BaseModel):
    project_modes: list[str]


@router.get("")
async def get_me(user: User | None = Depends(get_current_user_optional)) -> dict | None:
    return user_to_dict(user) if user is not None else None


@router.patch("")
async def update_profile(
    payload: ProfilePayload,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> dict:
    user_service.update_profile(user, name=payload.name, bio=payload.bio)
    await db.commit()
    return user_to_dict(user)


@router.put("/email")
async def update_email(
    payload: EmailPayload,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> dict:
    await user_service.update_email(db, user=user, new_email=payload.email)
    await db.commit()
    return user_to_dict(user)


@router.get("/email-available")
async def is_email_available(
    email: str,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    normalized = user_service.normalize_email(email)
    available = await user_service.is_email_available(
        db, email=normalized, exclude_user_id=user.id if user else None
    )
    return {"email": normalized, "available": available}


@router.post("/onboarding/complete")
async def complete_onboarding(
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> dict:
    user_service.complete_onboarding(user)
    await db.commit()
    return user_to_dict(user)


@router.post("/tutorial/start")
async def start_tutorial_tour(
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> dict:
    result = user_service.start_tutorial_tour(user)
    await db.commit()
    return result


@router.post("/tutorial/step")
async def record_tutorial_step(
    payload: TutorialStepPayload,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> dict:
    result = user_service.record_tutorial_step(user, step_id=payload.step_id)
    await db.commit()
    return result


@router.post("/tutorial/complete")
async def complete_tutorial_tour(
    payload: TutorialCompletePayload,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> dict:
    result = user_service.complete_tutorial_tour(user, completed_steps=payload.completed_steps)
    await db.commit()
    return result


@router.put("/project-modes")
async def update_project_modes(
    payload: ProjectModesPayload,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> dict:
    user_service.update_project_modes(user, project_modes=payload.project_modes)
    await db.commit()
    return user_to_dict(user)


@router.get("/usage")
async def get_usage(
    db: AsyncSession = Depends(get_session),
    user: User = Depends(get_current_user),
) -> dict:
    return await usage_stats(db, user=user)
