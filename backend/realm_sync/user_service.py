"""Profile, email, onboarding and tutorial state for the signed-in user."""
from __future__ import annotations

import logging
from typing import Any

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.access import require_user
from realm_sync.db import utcnow
from realm_sync.errors import ConflictError, ValidationError
from realm_sync.models.project import ProjectType
from realm_sync.models.user import User

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 80
MAX_BIO_LENGTH = 500
PROJECT_MODES = {t.value for t in ProjectType} - {ProjectType.GENERAL.value}


def update_profile(user: User | None, *, name: str | None = None, bio: str | None = None) -> User:
    user = require_user(user)
    if name is None and bio is None:
        raise ValidationError("profile", "No fields to update")
    if name is not None:
        trimmed = name.strip()
        if len(trimmed) > MAX_NAME_LENGTH:
            raise ValidationError("name", f"Name must be {MAX_NAME_LENGTH} characters or less")
        user.name = trimmed
    if bio is not None:
        trimmed = bio.strip()
        if len(trimmed) > MAX_BIO_LENGTH:
            raise ValidationError("bio", f"Bio must be {MAX_BIO_LENGTH} characters or less")
        user.bio = trimmed
    return user


def normalize_email(raw: str) -> str:
    normalized = raw.lower().strip()
    try:
        validate_email(normalized, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError("email", "Invalid email format") from exc
    return normalized


async def is_email_available(session: AsyncSession, *, email: str, exclude_user_id: int | None = None) -> bool:
    existing = (await session.execute(select(User.id).where(User.email == email).limit(1))).scalar()
    return existing is None or existing == exclude_user_id


async def update_email(session: AsyncSession, *, user: User | None, new_email: str) -> User:
    user = require_user(user)
    normalized = normalize_email(new_email)
    if user.email == normalized:
        raise ValidationError("email", "New email is the same as current email")
    if not await is_email_available(session, email=normalized, exclude_user_id=user.id):
        raise ConflictError("Email already in use", field="email")
    logger.info("User %s changed email", user.id)
    user.email = normalized
    return user


def complete_onboarding(user: User | None) -> User:
    user = require_user(user)
    user.onboarding_completed = True
    return user


def _tutorial_state(user: User) -> dict[str, Any]:
    state = dict(user.tutorial_state or {})
    state.setdefault("has_seen_tour", False)
    state["completed_steps"] = list(state.get("completed_steps") or [])
    return state


def start_tutorial_tour(user: User | None) -> dict[str, Any]:
    user = require_user(user)
    state = _tutorial_state(user)
    if not state.get("tour_started_at"):
        state["tour_started_at"] = utcnow().isoformat()
    user.tutorial_state = state
    return {"started_at": state["tour_started_at"]}


def record_tutorial_step(user: User | None, *, step_id: str) -> dict[str, Any]:
    user = require_user(user)
    state = _tutorial_state(user)
    if step_id not in state["completed_steps"]:
        state["completed_steps"] = state["completed_steps"] + [step_id]
    user.tutorial_state = state
    return {"completed_steps": state["completed_steps"]}


def complete_tutorial_tour(user: User | None, *, completed_steps: list[str]) -> dict[str, Any]:
    user = require_user(user)
    state = _tutorial_state(user)
    merged = list(state["completed_steps"])
    for step in completed_steps:
        if step not in merged:
            merged.append(step)
    now = utcnow().isoformat()
    state.update(
        has_seen_tour=True,
        completed_steps=merged,
        tour_started_at=state.get("tour_started_at") or now,
        tour_completed_at=now,
    )
    user.tutorial_state = state
    return {"completed_steps": merged, "completed_at": now}


def update_project_modes(user: User | None, *, project_modes: list[str]) -> User:
    user = require_user(user)
    unknown = [m for m in project_modes if m not in PROJECT_MODES]
    if unknown:
        raise ValidationError("projectModes", f"Unknown project modes: {unknown}")
    settings_json = dict(user.settings_json or {})
    settings_json["project_modes"] = list(project_modes)
    user.settings_json = settings_json
    return user
