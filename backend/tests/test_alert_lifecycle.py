from __future__ import annotations

import pytest

from conftest import add_alert, add_document, add_entity, add_fact
from realm_sync import alert_service
from realm_sync.errors import NotFoundError, UnauthenticatedError, UnauthorizedError, ValidationError
from realm_sync.models.document import Document
from realm_sync.models.fact import Fact
from realm_sync.models.project import Project


async def test_resolve_decrements_open_count_once(session, user, project) -> None:
    doc = await add_document(session, project)
    alert = await add_alert(session, project, doc)
    assert project.alert_count == 1

    await alert_service.resolve_alert(session, alert_id=alert.id, user=user, resolution_notes="fixed")
    await alert_service.resolve_alert(session, alert_id=alert.id, user=user)

    assert alert.status == "resolved"
    assert alert.resolved_at is not None
    assert project.alert_count == 0


async def test_resolved_to_dismissed_keeps_count(session, user, project) -> None:
    doc = await add_document(session, project)
    alert = await add_alert(session, project, doc)
    await add_alert(session, project, doc, title="Timeline gap")

    await alert_service.resolve_alert(session, alert_id=alert.id, user=user)
    await alert_service.dismiss_alert(session, alert_id=alert.id, user=user)

    assert alert.status == "dismissed"
    assert project.alert_count == 1


async def test_reopen_restores_count_and_clears_resolution(session, user, project) -> None:
    doc = await add_document(session, project)
    alert = await add_alert(session, project, doc)
    await alert_service.dismiss_alert(session, alert_id=alert.id, user=user, resolution_notes="intended")

    await alert_service.reopen_alert(session, alert_id=alert.id, user=user)
    await alert_service.reopen_alert(session, alert_id=alert.id, user=user)

    assert alert.status == "open"
    assert alert.resolved_at is None
    assert alert.resolution_notes is None
    assert project.alert_count == 1


async def test_remove_only_decrements_for_open_alerts(session, user, project) -> None:
    doc = await add_document(session, project)
    open_alert = await add_alert(session, project, doc)
    closed = await add_alert(session, project, doc, status="resolved")
    assert project.alert_count == 1

    await alert_service.remove_alert(session, alert_id=closed.id, user=user)
    assert project.alert_count == 1
    await alert_service.remove_alert(session, alert_id=open_alert.id, user=user)
    assert project.alert_count == 0


async def test_counter_never_goes_negative(session, user, project) -> None:
    doc = await add_document(session, project)
    alert = await add_alert(session, project, doc)
    project.alert_count = 0

    await alert_service.resolve_alert(session, alert_id=alert.id, user=user)

    assert project.alert_count == 0


async def test_mutations_require_identity_and_ownership(session, user, other_user, project) -> None:
    doc = await add_document(session, project)
    alert = await add_alert(session, project, doc)

    with pytest.raises(UnauthenticatedError):
        await alert_service.resolve_alert(session, alert_id=alert.id, user=None)
    with pytest.raises(UnauthorizedError):
        await alert_service.dismiss_alert(session, alert_id=alert.id, user=other_user)
    with pytest.raises(NotFoundError):
        await alert_service.reopen_alert(session, alert_id=9999, user=user)
    assert alert.status == "open"


async def test_queries_hide_foreign_projects(session, user, other_user, project) -> None:
    doc = await add_document(session, project)
    alert = await add_alert(session, project, doc)

    assert await alert_service.get_alert(session, alert_id=alert.id, user=other_user) is None
    assert await alert_service.list_alerts_by_project(session, project_id=project.id, user=None) == []
    counts = await alert_service.count_alerts_by_project(session, project_id=project.id, user=other_user)
    assert counts == {"open": 0, "resolved": 0, "dismissed": 0, "total": 0}


async def test_list_filters_and_counts(session, user, project) -> None:
    doc = await add_document(session, project)
    await add_alert(session, project, doc, severity="warning", type="timeline")
    await add_alert(session, project, doc)
    await add_alert(session, project, doc, status="dismissed")

    warnings = await alert_service.list_alerts_by_project(
        session, project_id=project.id, user=user, severity="warning"
    )
    open_rows = await alert_service.list_alerts_by_project(
        session, project_id=project.id, user=user, status="open"
    )
    counts = await alert_service.count_alerts_by_project(session, project_id=project.id, user=user)

    assert [a.type for a in warnings] == ["timeline"]
    assert len(open_rows) == 2
    assert counts == {"open": 2, "resolved": 0, "dismissed": 1, "total": 3}


async def test_open_alerts_for_user_spans_projects(session, user, project) -> None:
    doc = await add_document(session, project)
    await add_alert(session, project, doc)
    await add_alert(session, project, doc, status="resolved")

    found = await alert_service.list_open_alerts_for_user(session, user=user)

    assert found["total"] == 1
    assert found["alerts"][0]["project_name"] == "Ashfall Saga"


async def test_open_alerts_for_user_counts_all_and_limits_rows(session, user, other_user, project) -> None:
    second_project = Project(user_id=user.id, name="Emberfall")
    foreign_project = Project(user_id=other_user.id, name="Not Mine")
    session.add_all([second_project, foreign_project])
    await session.flush()
    doc = await add_document(session, project)
    other_doc = await add_document(session, second_project)
    foreign_doc = await add_document(session, foreign_project)
    await add_alert(session, project, doc)
    newer = await add_alert(session, second_project, other_doc)
    newest = await add_alert(session, project, doc)
    await add_alert(session, foreign_project, foreign_doc)

    found = await alert_service.list_open_alerts_for_user(session, user=user, limit=2)

    assert found["total"] == 3
    assert [row["alert"].id for row in found["alerts"]] == [newest.id, newer.id]
    assert [row["project_name"] for row in found["alerts"]] == ["Ashfall Saga", "Emberfall"]


async def test_resolve_all_closes_every_open_alert(session, user, project) -> None:
    doc = await add_document(session, project)
    first = await add_alert(session, project, doc)
    second = await add_alert(session, project, doc)
    await add_alert(session, project, doc, status="dismissed")

    closed = await alert_service.resolve_all_alerts(session, project_id=project.id, user=user)

    assert closed == 2
    assert first.status == second.status == "resolved"
    assert project.alert_count == 0


async def test_dismiss_all_with_nothing_open(session, user, project) -> None:
    closed = await alert_service.dismiss_all_alerts(session, project_id=project.id, user=user)
    assert closed == 0
    assert project.alert_count == 0


async def test_resolve_with_canon_update_rewrites_fact_and_document(session, user, project) -> None:
    doc = await add_document(
        session, project, content="Marcus had blue eyes and a quiet voice.", processing_status="completed"
    )
    marcus = await add_entity(session, project)
    fact = await add_fact(session, project, marcus, doc)
    alert = await add_alert(session, project, doc, fact_ids=[fact.id], entity_ids=[marcus.id])

    result = await alert_service.resolve_with_canon_update(
        session, alert_id=alert.id, fact_id=fact.id, new_value="brown", user=user
    )

    refreshed_doc = await session.get(Document, doc.id)
    refreshed_fact = await session.get(Fact, fact.id)
    assert result.document_updated is True
    assert refreshed_fact.object == "brown"
    assert refreshed_fact.evidence_snippet == "Marcus had brown eyes"
    assert refreshed_doc.content == "Marcus had brown eyes and a quiet voice."
    assert refreshed_doc.processing_status == "pending"
    assert alert.status == "resolved"
    assert alert.resolution_notes == "Updated fact: Marcus has eye color brown"
    assert project.alert_count == 0


async def test_resolve_with_canon_update_rejects_unrelated_fact(session, user, project) -> None:
    doc = await add_document(session, project)
    marcus = await add_entity(session, project)
    fact = await add_fact(session, project, marcus, doc)
    alert = await add_alert(session, project, doc, fact_ids=[])

    with pytest.raises(ValidationError):
        await alert_service.resolve_with_canon_update(
            session, alert_id=alert.id, fact_id=fact.id, new_value="green", user=user
        )
    assert fact.object == "blue"
    assert alert.status == "open"


async def test_get_alert_with_details_collects_links(session, user, project) -> None:
    doc = await add_document(session, project)
    marcus = await add_entity(session, project)
    fact = await add_fact(session, project, marcus, doc)
    alert = await add_alert(session, project, doc, fact_ids=[fact.id], entity_ids=[marcus.id])

    details = await alert_service.get_alert_with_details(session, alert_id=alert.id, user=user)

    assert details is not None
    assert [e["id"] for e in details.entities] == [marcus.id]
    assert [f["id"] for f in details.facts] == [fact.id]
    assert details.document["id"] == doc.id
