from __future__ import annotations

import pytest

from realm_sync import user_service
from realm_sync.errors import ConflictError, UnauthenticatedError, ValidationError


def test_update_profile_trims_and_validates(user) -> None:
    user_service.update_profile(user, name="  Ada  ", bio=" Writes sagas ")
    assert (user.name, user.bio) == ("Ada", "Writes sagas")

    with pytest.raises(ValidationError):
        user_service.update_profile(user, name="x" * 81)
    with pytest.raises(ValidationError):
        user_service.update_profile(user)
    with pytest.raises(UnauthenticatedError):
        user_service.update_profile(None, name="Ghost")


def test_normalize_email_rejects_garbage() -> None:
    assert user_service.normalize_email("  Ada@RealmSync.App ") == "ada@realmsync.app"
    with pytest.raises(ValidationError):
        user_service.normalize_email("not-an-email")


async def test_update_email_conflicts_with_existing_account(session, user, other_user) -> None:
    with pytest.raises(ConflictError):
        await user_service.update_email(session, user=user, new_email="Stranger@realmsync.app")
    with pytest.raises(ValidationError):
        await user_service.update_email(session, user=user, new_email="writer@realmsync.app")

    await user_service.update_email(session, user=user, new_email="pen@realmsync.app")
    assert user.email == "pen@realmsync.app"
    assert await user_service.is_email_available(session, email="writer@realmsync.app")


def test_tutorial_flow_merges_steps(user) -> None:
    started = user_service.start_tutorial_tour(user)
    again = user_service.start_tutorial_tour(user)
    user_service.record_tutorial_step(user, step_id="create-project")
    user_service.record_tutorial_step(user, step_id="create-project")

    done = user_service.complete_tutorial_tour(user, completed_steps=["create-project", "run-check"])

    assert started == again
    assert done["completed_steps"] == ["create-project", "run-check"]
    assert user.tutorial_state["has_seen_tour"] is True
    assert user.tutorial_state["tour_completed_at"] == done["completed_at"]


def test_onboarding_and_project_modes(user) -> None:
    user_service.complete_onboarding(user)
    user_service.update_project_modes(user, project_modes=["ttrpg", "fanfiction"])

    assert user.onboarding_completed is True
    assert user.settings_json["project_modes"] == ["ttrpg", "fanfiction"]
    with pytest.raises(ValidationError):
        user_service.update_project_modes(user, project_modes=["general"])
