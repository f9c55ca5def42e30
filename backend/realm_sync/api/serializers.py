"""ORM rows to JSON-ready dicts for the HTTP layer."""
from __future__ import annotations

from typing import Any

from sqlalchemy import inspect

from realm_sync.models.project import Project
from realm_sync.models.user import User


def row_to_dict(row: Any) -> dict[str, Any]:
    return {attr.key: getattr(row, attr.key) for attr in inspect(row).mapper.column_attrs}


def rows_to_dicts(rows) -> list[dict[str, Any]]:
    return [row_to_dict(r) for r in rows]


def project_to_dict(project: Project) -> dict[str, Any]:
    payload = row_to_dict(project)
    for column in ("document_count", "entity_count", "fact_count", "alert_count", "note_count"):
        payload.pop(column, None)
    payload["stats"] = project.stats
    return payload


def user_to_dict(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "bio": user.bio,
        "is_demo": user.is_demo,
        "onboarding_completed": user.onboarding_completed,
        "tutorial_state": user.tutorial_state,
        "settings": user.settings_json or {},
        "subscription_tier": user.subscription_tier,
        "subscription_status": user.subscription_status,
        "trial_ends_at": user.trial_ends_at,
        "created_at": user.created_at,
    }
