from __future__ import annotations

import pytest
from sqlalchemy import select

from conftest import add_alert, add_document, add_entity, add_fact
from realm_sync import document_service
from realm_sync.errors import LimitError, UnauthorizedError, ValidationError
from realm_sync.models.alert import Alert
from realm_sync.models.document import Document
from realm_sync.models.entity import Entity
from realm_sync.models.fact import Fact


async def test_create_appends_and_counts(session, user, project) -> None:
    first = await document_service.create_document(
        session, project_id=project.id, user=user, title="One", content="a b c"
    )
    second = await document_service.create_document(
        session, project_id=project.id, user=user, title="Two", content=None
    )

    assert (first.order_index, second.order_index) == (0, 1)
    assert first.word_count == 3
    assert second.word_count == 0
    assert first.processing_status == "pending"
    assert project.document_count == 2


async def test_create_rejects_unknown_content_type(session, user, project) -> None:
    with pytest.raises(ValidationError):
        await document_service.create_document(
            session, project_id=project.id, user=user, title="Scan", content_type="pdf"
        )
    assert project.document_count == 0


async def test_create_enforces_free_tier_quota(session, user, project) -> None:
    for i in range(10):
        await add_document(session, project, title=f"Ch {i}", order_index=i)
    with pytest.raises(LimitError):
        await document_service.create_document(session, project_id=project.id, user=user, title="Eleven")


async def test_create_in_foreign_project_is_unauthorized(session, other_user, project) -> None:
    with pytest.raises(UnauthorizedError):
        await document_service.create_document(session, project_id=project.id, user=other_user, title="x")


async def test_update_content_recounts_and_requeues(session, user, project) -> None:
    doc = await add_document(session, project, processing_status="completed")

    await document_service.update_document(
        session, document_id=doc.id, user=user, content="The tide came in early"
    )

    assert doc.word_count == 5
    assert doc.processing_status == "pending"


async def test_update_title_only_keeps_processing_state(session, user, project) -> None:
    doc = await add_document(session, project, processing_status="completed")
    await document_service.update_document(session, document_id=doc.id, user=user, title="Prologue")
    assert doc.title == "Prologue"
    assert doc.processing_status == "completed"


async def test_remove_cascades_facts_alerts_and_mentions(session, user, project) -> None:
    doomed = await add_document(session, project, title="Chapter 1")
    keeper = await add_document(session, project, title="Chapter 2", order_index=1)
    marcus = await add_entity(session, project, first_mentioned_in=doomed.id)
    live = await add_fact(session, project, marcus, doomed)
    await add_fact(session, project, marcus, doomed, object="grey", status="rejected")
    survivor = await add_fact(session, project, marcus, keeper, predicate="lives in", object="Dunmere")
    await add_alert(session, project, doomed)
    await add_alert(session, project, keeper, fact_ids=[live.id])
    await add_alert(session, project, keeper, fact_ids=[live.id], status="resolved")
    untouched = await add_alert(session, project, keeper, fact_ids=[survivor.id])
    assert project.stats == {
        "documentCount": 2,
        "entityCount": 1,
        "factCount": 2,
        "alertCount": 3,
        "noteCount": 0,
    }

    result = await document_service.remove_document(session, document_id=doomed.id, user=user)

    assert result.facts_deleted == 2
    assert result.alerts_deleted == 3
    assert result.open_alerts_deleted == 2
    assert result.entities_unlinked == 1
    assert await session.get(Document, doomed.id) is None
    remaining_facts = (await session.execute(select(Fact.id))).scalars().all()
    remaining_alerts = (await session.execute(select(Alert.id))).scalars().all()
    assert remaining_facts == [survivor.id]
    assert remaining_alerts == [untouched.id]
    entity = (await session.execute(select(Entity).where(Entity.id == marcus.id))).scalar_one()
    assert entity.first_mentioned_in is None
    assert project.stats == {
        "documentCount": 1,
        "entityCount": 1,
        "factCount": 1,
        "alertCount": 1,
        "noteCount": 0,
    }


async def test_remove_foreign_document_is_unauthorized(session, other_user, project) -> None:
    doc = await add_document(session, project)
    with pytest.raises(UnauthorizedError):
        await document_service.remove_document(session, document_id=doc.id, user=other_user)
    assert project.document_count == 1


async def test_reorder_rejects_foreign_ids(session, user, project) -> None:
    a = await add_document(session, project, title="A", order_index=0)
    b = await add_document(session, project, title="B", order_index=1)

    await document_service.reorder_documents(session, project_id=project.id, user=user, document_ids=[b.id, a.id])
    assert (a.order_index, b.order_index) == (1, 0)

    with pytest.raises(ValidationError):
        await document_service.reorder_documents(
            session, project_id=project.id, user=user, document_ids=[a.id, 777]
        )


async def test_processing_status_completion_stamps_time(session, user, project) -> None:
    doc = await add_document(session, project)
    await document_service.update_processing_status(session, document_id=doc.id, user=user, status="completed")
    assert doc.processed_at is not None
    with pytest.raises(ValidationError):
        await document_service.update_processing_status(session, document_id=doc.id, user=user, status="done")


async def test_search_matches_title_or_content(session, user, project) -> None:
    await add_document(session, project, title="The Harbor", content="Ships at rest.")
    await add_document(session, project, title="Inland", content="No harbor here.", order_index=1)
    await add_document(session, project, title="Mountains", content="Snow.", order_index=2)

    found = await document_service.search_documents(session, project_id=project.id, user=user, query="HARBOR")

    assert [d.title for d in found] == ["The Harbor", "Inland"]
    assert await document_service.search_documents(session, project_id=project.id, user=user, query="  ") == []


async def test_needing_review_lists_completed_docs_with_pending_work(session, user, project) -> None:
    reviewed = await add_document(session, project, title="Done", processing_status="completed")
    pending = await add_document(session, project, title="Open", processing_status="completed", order_index=1)
    await add_document(session, project, title="Queued", order_index=2)
    confirmed = await add_entity(session, project, first_mentioned_in=reviewed.id)
    await add_fact(session, project, confirmed, reviewed)
    await add_entity(session, project, name="Lyra", status="pending", first_mentioned_in=pending.id)
    await add_fact(session, project, confirmed, pending, status="pending")

    rows = await document_service.list_documents_needing_review(session, project_id=project.id, user=user)

    assert [r["document"].title for r in rows] == ["Open"]
    assert rows[0]["pending_entity_count"] == 1
    assert rows[0]["pending_fact_count"] == 1
