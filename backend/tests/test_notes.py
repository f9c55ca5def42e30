from __future__ import annotations

import pytest

from conftest import add_entity
from realm_sync import note_service
from realm_sync.errors import UnauthorizedError, ValidationError


async def test_note_counter_follows_create_and_remove(session, user, project) -> None:
    note = await note_service.create_note(session, project_id=project.id, user=user, title="  Magic rules  ")
    assert note.title == "Magic rules"
    assert project.note_count == 1

    await note_service.remove_note(session, note_id=note.id, user=user)
    assert project.note_count == 0


async def test_blank_title_is_rejected(session, user, project) -> None:
    with pytest.raises(ValidationError):
        await note_service.create_note(session, project_id=project.id, user=user, title="   ")


async def test_pinned_notes_list_first(session, user, project) -> None:
    older = await note_service.create_note(session, project_id=project.id, user=user, title="Older")
    await note_service.create_note(session, project_id=project.id, user=user, title="Newer")
    await note_service.toggle_note_pin(session, note_id=older.id, user=user)

    notes = await note_service.list_notes(session, project_id=project.id, user=user)

    assert notes[0].id == older.id
    assert notes[0].pinned is True


async def test_search_and_foreign_access(session, user, other_user, project) -> None:
    note = await note_service.create_note(
        session, project_id=project.id, user=user, title="Calendar", content="Thirteen moons a year"
    )

    found = await note_service.search_notes(session, project_id=project.id, user=user, query="moons")
    assert [n.id for n in found] == [note.id]
    assert await note_service.get_note(session, note_id=note.id, user=other_user) is None
    with pytest.raises(UnauthorizedError):
        await note_service.update_note(session, note_id=note.id, user=other_user, title="Mine now")


async def test_entity_notes_do_not_touch_project_counters(session, user, project) -> None:
    marcus = await add_entity(session, project)

    note = await note_service.create_entity_note(session, entity_id=marcus.id, user=user, content="Scar on left hand")
    await note_service.update_entity_note(session, note_id=note.id, user=user, content="Scar on right hand")
    notes = await note_service.list_entity_notes(session, entity_id=marcus.id, user=user)

    assert [n.content for n in notes] == ["Scar on right hand"]
    assert project.note_count == 0

    await note_service.remove_entity_note(session, note_id=note.id, user=user)
    assert await note_service.list_entity_notes(session, entity_id=marcus.id, user=user) == []
