from __future__ import annotations

import pytest
from sqlalchemy import select

from conftest import add_document, add_entity, add_fact
from realm_sync import check_service
from realm_sync.check_service import (
    CanonEntity,
    CanonFact,
    build_canon_context,
    create_alerts,
    normalize_check_result,
    run_check,
)
from realm_sync.config import settings
from realm_sync.errors import ConfigurationError, NotFoundError, UnauthenticatedError, UnauthorizedError
from realm_sync.models.alert import Alert
from realm_sync.schemas.check_result import CheckResult, EvidenceSource

CHECKER_REPLY = {
    "alerts": [
        {
            "type": "contradiction",
            "severity": "error",
            "title": "Eye color changed",
            "description": "Marcus is described with brown eyes, canon says blue.",
            "evidence": [
                {"source": "canon", "quote": "Marcus had blue eyes"},
                {"source": "new_document", "quote": "his brown eyes narrowed", "entityName": "Marcus"},
            ],
            "suggestedFix": "Use blue eyes",
            "affectedEntities": ["Marcus"],
        }
    ],
    "summary": {"totalIssues": 1, "errors": 1, "warnings": 0, "checkedEntities": ["Marcus"]},
}


@pytest.fixture
def checker_configured(monkeypatch) -> None:
    monkeypatch.setattr(settings, "OPENROUTER_API_KEY", "test-key")
    monkeypatch.setattr(settings, "MODEL", "test/model")


def _canon(entity_id: int = 1, *, aliases: list[str] | None = None) -> list[CanonEntity]:
    return [
        CanonEntity(
            id=entity_id,
            name="Marcus",
            type="character",
            aliases=aliases or [],
            facts=[
                CanonFact(id=11, predicate="has eye color", object="blue", evidence="Marcus had blue eyes", document_title="Chapter 1"),
                CanonFact(id=12, predicate="lives in", object="Dunmere", evidence="He lived in Dunmere", document_title="Chapter 1"),
            ],
        )
    ]


def test_normalize_fills_defaults() -> None:
    result = normalize_check_result({"alerts": [{"evidence": [{"quote": "x", "source": "elsewhere"}]}]})

    alert = result.alerts[0]
    assert alert.type == "ambiguity"
    assert alert.severity == "warning"
    assert alert.title == "Unknown Issue"
    assert alert.description == ""
    assert alert.evidence[0].source == EvidenceSource.NEW_DOCUMENT
    assert result.summary.total_issues == 1
    assert result.summary.warnings == 1
    assert result.summary.checked_entities == []


def test_normalize_tolerates_garbage() -> None:
    result = normalize_check_result("not json")
    assert result.alerts == []
    assert result.summary.total_issues == 0


def test_check_result_serialises_camel_case() -> None:
    result = normalize_check_result(CHECKER_REPLY)
    payload = result.model_dump(by_alias=True, mode="json")
    assert payload["summary"]["totalIssues"] == 1
    assert payload["alerts"][0]["affectedEntities"] == ["Marcus"]
    assert payload["alerts"][0]["suggestedFix"] == "Use blue eyes"


async def test_create_alerts_dedupes_entities_case_insensitively(session, project) -> None:
    doc = await add_document(session, project, title="Chapter 2")
    result = normalize_check_result(
        {
            "alerts": [
                {
                    "title": "Eye color",
                    "affectedEntities": ["MARCUS", "marcus", "Marcus"],
                    "evidence": [
                        {"source": "canon", "quote": "Marcus had blue eyes", "entityName": "marcus"},
                        {"source": "new_document", "quote": "Marcus had blue eyes, once"},
                    ],
                }
            ]
        }
    )

    created = await create_alerts(
        session, document_id=doc.id, project_id=project.id, check_result=result, canon_context=_canon()
    )

    alert = (await session.execute(select(Alert))).scalar_one()
    assert created == 1
    assert alert.entity_ids == [1]
    assert alert.fact_ids == [11, 12]
    assert [e["document_title"] for e in alert.evidence] == ["Canon", "Chapter 2"]
    assert project.alert_count == 1


async def test_create_alerts_resolves_aliases(session, project) -> None:
    doc = await add_document(session, project)
    result = normalize_check_result(
        {"alerts": [{"title": "Alias clash", "affectedEntities": ["The Grey Wolf", "Nobody"]}]}
    )

    await create_alerts(
        session,
        document_id=doc.id,
        project_id=project.id,
        check_result=result,
        canon_context=_canon(7, aliases=["the grey wolf"]),
    )

    alert = (await session.execute(select(Alert))).scalar_one()
    assert alert.entity_ids == [7]
    assert alert.status == "open"


async def test_create_alerts_matches_quoted_canon_facts(session, project) -> None:
    doc = await add_document(session, project)
    result = normalize_check_result(
        {
            "alerts": [
                {
                    "title": "Quoted",
                    "evidence": [{"source": "canon", "quote": "He lived in Dunmere", "entityName": "Marcus"}],
                }
            ]
        }
    )

    await create_alerts(
        session, document_id=doc.id, project_id=project.id, check_result=result, canon_context=_canon()
    )

    alert = (await session.execute(select(Alert))).scalar_one()
    assert alert.entity_ids == [1]
    assert alert.fact_ids == [12]


async def test_create_alerts_skips_deleted_document(session, project) -> None:
    result = normalize_check_result(CHECKER_REPLY)
    created = await create_alerts(
        session, document_id=4242, project_id=project.id, check_result=result, canon_context=_canon()
    )
    assert created == 0
    assert project.alert_count == 0


async def test_build_canon_context_uses_confirmed_rows_only(session, project) -> None:
    doc = await add_document(session, project, title="Chapter 1")
    marcus = await add_entity(session, project)
    await add_fact(session, project, marcus, doc)
    await add_fact(session, project, marcus, doc, predicate="fears", object="water", status="pending")
    pending = await add_entity(session, project, name="Lyra", status="pending")
    await add_fact(session, project, pending, doc, predicate="is", object="a thief")
    await add_entity(session, project, name="Empty", status="confirmed")

    canon = await build_canon_context(session, project_id=project.id)

    assert [e.name for e in canon.entities] == ["Marcus"]
    assert [f.object for f in canon.entities[0].facts] == ["blue"]
    assert "## Entity: Marcus" in canon.formatted
    assert "- has eye color blue [Chapter 1]" in canon.formatted
    assert "Lyra" not in canon.formatted


async def test_run_check_guards(session, user, other_user, project, checker_configured) -> None:
    doc = await add_document(session, project)
    empty = await add_document(session, project, content="", order_index=1)

    with pytest.raises(UnauthenticatedError):
        await run_check(session, document_id=doc.id, user=None)
    with pytest.raises(NotFoundError):
        await run_check(session, document_id=999, user=user)
    with pytest.raises(UnauthorizedError):
        await run_check(session, document_id=doc.id, user=other_user)
    with pytest.raises(NotFoundError):
        await run_check(session, document_id=empty.id, user=user)


async def test_run_check_requires_configuration(session, user, project, monkeypatch) -> None:
    doc = await add_document(session, project)
    monkeypatch.setattr(settings, "OPENROUTER_API_KEY", None)
    with pytest.raises(ConfigurationError):
        await run_check(session, document_id=doc.id, user=user)


async def test_run_check_empty_canon_skips_checker(session, user, project, checker_configured, monkeypatch) -> None:
    doc = await add_document(session, project)

    async def _fail(**kwargs):
        raise AssertionError("checker must not be called")

    monkeypatch.setattr(check_service, "request_structured_completion", _fail)

    result = await run_check(session, document_id=doc.id, user=user)

    assert result == CheckResult.empty()
    assert user.llm_extractions_this_month == 0


async def test_run_check_persists_alerts_then_serves_cache(
    session, user, project, checker_configured, monkeypatch
) -> None:
    canon_doc = await add_document(session, project, title="Chapter 1")
    marcus = await add_entity(session, project)
    fact = await add_fact(session, project, marcus, canon_doc)
    new_doc = await add_document(
        session, project, title="Chapter 2", content="Marcus turned; his brown eyes narrowed.", order_index=1
    )
    calls: list[dict] = []

    async def _checker(**kwargs):
        calls.append(kwargs)
        return CHECKER_REPLY

    monkeypatch.setattr(check_service, "request_structured_completion", _checker)

    first = await run_check(session, document_id=new_doc.id, user=user)
    second = await run_check(session, document_id=new_doc.id, user=user)

    alerts = (await session.execute(select(Alert))).scalars().all()
    assert len(calls) == 1
    assert "Marcus" in calls[0]["prompt"]
    assert first.summary.total_issues == 1
    assert second == first
    assert len(alerts) == 1
    assert alerts[0].entity_ids == [marcus.id]
    assert alerts[0].fact_ids == [fact.id]
    assert project.alert_count == 1
    assert user.llm_extractions_this_month == 1


def test_normalize_coerces_malformed_fields() -> None:
    result = normalize_check_result(
        {
            "alerts": [
                {
                    "title": 42,
                    "affectedEntities": "Marcus",
                    "suggestedFix": 3,
                    "evidence": [{"source": "canon", "quote": 7, "entityName": ["Marcus"]}],
                },
                {"affectedEntities": ["Elena", 5, None], "evidence": "not a list"},
            ],
            "summary": {"totalIssues": 1.6, "errors": "two", "warnings": float("nan"), "checkedEntities": "Marcus"},
        }
    )

    first, second = result.alerts
    assert first.title == "42"
    assert first.affected_entities == ["Marcus"]
    assert first.suggested_fix == "3"
    assert first.evidence[0].quote == "7"
    assert first.evidence[0].entity_name == "['Marcus']"
    assert second.affected_entities == ["Elena"]
    assert second.evidence == []
    assert result.summary.total_issues == 2
    assert result.summary.errors == 0
    assert result.summary.warnings == 2
    assert result.summary.checked_entities == ["Marcus"]


def test_normalize_ignores_non_list_alerts() -> None:
    result = normalize_check_result({"alerts": {"title": "x"}, "summary": "none"})
    assert result.alerts == []
    assert result.summary.total_issues == 0


async def test_create_alerts_links_facts_only_from_full_canon_quotes(session, project) -> None:
    doc = await add_document(session, project)
    result = normalize_check_result(
        {
            "alerts": [
                {
                    "title": "Loose quotes",
                    "evidence": [
                        {"source": "canon", "quote": "blue", "entityName": "Marcus"},
                        {"source": "new_document", "quote": "He lived in Dunmere"},
                    ],
                },
                {
                    "title": "Full quote",
                    "evidence": [
                        {"source": "canon", "quote": "As told: Marcus had blue eyes.", "entityName": "Marcus"},
                    ],
                },
            ]
        }
    )

    await create_alerts(
        session, document_id=doc.id, project_id=project.id, check_result=result, canon_context=_canon()
    )

    loose, full = (await session.execute(select(Alert).order_by(Alert.id))).scalars().all()
    assert loose.entity_ids == [1]
    assert loose.fact_ids == []
    assert full.fact_ids == [11]


async def test_run_check_refresh_bypasses_cached_reply(
    session, user, project, checker_configured, monkeypatch
) -> None:
    canon_doc = await add_document(session, project, title="Chapter 1")
    marcus = await add_entity(session, project)
    await add_fact(session, project, marcus, canon_doc)
    new_doc = await add_document(
        session, project, title="Chapter 2", content="Marcus turned; his brown eyes narrowed.", order_index=1
    )
    calls: list[dict] = []

    async def _checker(**kwargs):
        calls.append(kwargs)
        return CHECKER_REPLY

    monkeypatch.setattr(check_service, "request_structured_completion", _checker)

    await run_check(session, document_id=new_doc.id, user=user)
    await run_check(session, document_id=new_doc.id, user=user, refresh=True)

    assert len(calls) == 2
    assert project.alert_count == 2
    assert user.llm_extractions_this_month == 2
