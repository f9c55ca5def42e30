"""Continuity checks: canon context, checker call, alert creation.

`run_check` compares one document against the project's confirmed canon and
persists any proposed alerts through `create_alerts`.
"""
from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.access import require_user
from realm_sync.config import settings
from realm_sync.errors import ConfigurationError, NotFoundError, UnauthorizedError
from realm_sync.llm_cache_service import (
    compute_hash,
    get_cached_response,
    invalidate_cache,
    save_cached_response,
)
from realm_sync.llm_client import request_structured_completion
from realm_sync.metrics import ALERTS_CREATED_TOTAL, CHECK_LATENCY_SECONDS, CHECK_RUNS_TOTAL
from realm_sync.models.alert import Alert, AlertStatus
from realm_sync.models.document import Document
from realm_sync.models.entity import Entity, EntityStatus
from realm_sync.models.fact import Fact, FactStatus
from realm_sync.models.project import Project
from realm_sync.models.user import User
from realm_sync.project_stats import adjust_project_stats
from realm_sync.schemas.check_result import (
    CHECK_RESPONSE_SCHEMA,
    CheckResult,
    CheckSummary,
    EvidenceItem,
    EvidenceSource,
    ProposedAlert,
)
from realm_sync.usage_service import consume_usage

logger = logging.getLogger(__name__)

PROMPT_VERSION = "check-v1"
CANON_EVIDENCE_TITLE = "Canon"

CHECK_PROMPT = """You are the archivist of a fictional world. Review the new text against the established canon and report inconsistencies.

ESTABLISHED CANON:
{canon_context}

NEW TEXT TO CHECK:
{document_content}

TASK:
Find inconsistencies between the new text and the established canon. For each issue:
1. Classify it as contradiction, timeline or ambiguity.
2. Quote the conflicting evidence from both sources.
3. Explain the inconsistency.
4. Suggest a resolution.
5. Assign severity: error for a definite conflict, warning for a potential one.

Report only real inconsistencies. New information that does not conflict,
intentional character development and differing perspectives on one event are
not issues.

OUTPUT: structured JSON matching the provided schema."""


@dataclass(slots=True)
class CanonFact:
    id: int
    predicate: str
    object: str
    evidence: str
    document_title: str


@dataclass(slots=True)
class CanonEntity:
    id: int
    name: str
    type: str
    aliases: list[str] = field(default_factory=list)
    facts: list[CanonFact] = field(default_factory=list)


@dataclass(slots=True)
class CanonContext:
    entities: list[CanonEntity]
    formatted: str

    @property
    def is_empty(self) -> bool:
        return not self.formatted.strip()


async def build_canon_context(session: AsyncSession, *, project_id: int) -> CanonContext:
    """Confirmed entities with at least one confirmed fact, plus their text rendering."""
    entities = (
        await session.execute(
            select(Entity)
            .where(Entity.project_id == project_id, Entity.status == EntityStatus.CONFIRMED.value)
            .order_by(Entity.id.asc())
        )
    ).scalars().all()

    titles: dict[int, str] = {}
    canon: list[CanonEntity] = []
    chunks: list[str] = []
    for entity in entities:
        facts = (
            await session.execute(
                select(Fact)
                .where(Fact.entity_id == entity.id, Fact.status == FactStatus.CONFIRMED.value)
                .order_by(Fact.id.asc())
            )
        ).scalars().all()
        if not facts:
            continue

        canon_facts: list[CanonFact] = []
        for fact in facts:
            title = "Unknown"
            if fact.document_id is not None:
                if fact.document_id not in titles:
                    doc = await session.get(Document, fact.document_id)
                    titles[fact.document_id] = doc.title if doc is not None else "Unknown"
                title = titles[fact.document_id]
            canon_facts.append(
                CanonFact(
                    id=fact.id,
                    predicate=fact.predicate,
                    object=fact.object,
                    evidence=fact.evidence_snippet or "",
                    document_title=title,
                )
            )

        canon.append(
            CanonEntity(
                id=entity.id,
                name=entity.name,
                type=entity.type,
                aliases=list(entity.aliases or []),
                facts=canon_facts,
            )
        )
        chunk = f"\n## Entity: {entity.name}\nType: {entity.type}\nFacts:\n"
        chunk += "".join(f"- {f.predicate} {f.object} [{f.document_title}]\n" for f in canon_facts)
        chunks.append(chunk)

    return CanonContext(entities=canon, formatted="".join(chunks))


def _text(value: Any, default: str) -> str:
    return default if value is None else str(value)


def _optional_text(value: Any) -> str | None:
    return None if value is None else str(value)


def _names(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _count(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return default
    return max(0, round(value))


def _evidence_source(value: Any) -> EvidenceSource:
    if value == EvidenceSource.CANON.value:
        return EvidenceSource.CANON
    return EvidenceSource.NEW_DOCUMENT


def normalize_check_result(raw: Any) -> CheckResult:
    """Coerce loosely-shaped checker JSON into a `CheckResult` with defaults.

    Never raises on shape: scalars are stringified, name lists keep their
    string items only and summary counts are rounded to integers.
    """
    data = raw if isinstance(raw, dict) else {}
    alerts: list[ProposedAlert] = []
    raw_alerts = data.get("alerts")
    for item in raw_alerts if isinstance(raw_alerts, list) else []:
        if not isinstance(item, dict):
            continue
        raw_evidence = item.get("evidence")
        evidence = [
            EvidenceItem(
                source=_evidence_source(ev.get("source")),
                quote=_text(ev.get("quote"), ""),
                entity_name=_optional_text(ev.get("entityName")),
            )
            for ev in (raw_evidence if isinstance(raw_evidence, list) else [])
            if isinstance(ev, dict)
        ]
        affected = item.get("affectedEntities")
        alerts.append(
            ProposedAlert(
                type=_text(item.get("type"), "ambiguity"),
                severity=_text(item.get("severity"), "warning"),
                title=_text(item.get("title"), "Unknown Issue"),
                description=_text(item.get("description"), ""),
                evidence=evidence,
                suggested_fix=_optional_text(item.get("suggestedFix")),
                affected_entities=None if affected is None else _names(affected),
            )
        )

    summary = data.get("summary") if isinstance(data.get("summary"), dict) else {}
    return CheckResult(
        alerts=alerts,
        summary=CheckSummary(
            total_issues=_count(summary.get("totalIssues"), len(alerts)),
            errors=_count(summary.get("errors"), sum(1 for a in alerts if a.severity == "error")),
            warnings=_count(
                summary.get("warnings"), sum(1 for a in alerts if a.severity == "warning")
            ),
            checked_entities=_names(summary.get("checkedEntities")),
        ),
    )


def _append_unique(items: list[int], value: int) -> None:
    if value not in items:
        items.append(value)


def _quotes_fact(quote: str, evidence: str) -> bool:
    """True when the canon quote contains the fact's evidence snippet."""
    q = quote.strip().lower()
    e = evidence.strip().lower()
    if not q or not e:
        return False
    return e in q


async def create_alerts(
    session: AsyncSession,
    *,
    document_id: int,
    project_id: int,
    check_result: CheckResult,
    canon_context: list[CanonEntity],
) -> int:
    """Persist proposed alerts against `document_id`; returns how many were inserted.

    Entity lookups are case-insensitive over names and aliases. A deleted
    document means the batch is dropped without error.
    """
    doc = await session.get(Document, document_id)
    if doc is None:
        logger.info("Alert batch skipped: document %s no longer exists", document_id)
        return 0

    name_to_id: dict[str, int] = {}
    for entity in canon_context:
        name_to_id[entity.name.lower()] = entity.id
    for entity in canon_context:
        for alias in entity.aliases:
            name_to_id.setdefault(alias.lower(), entity.id)
    facts_by_entity = {entity.id: entity.facts for entity in canon_context}

    created = 0
    for proposed in check_result.alerts:
        entity_ids: list[int] = []
        fact_ids: list[int] = []

        for name in proposed.affected_entities or []:
            entity_id = name_to_id.get(name.lower())
            if entity_id is None or entity_id in entity_ids:
                continue
            entity_ids.append(entity_id)
            for fact in facts_by_entity.get(entity_id, []):
                _append_unique(fact_ids, fact.id)

        evidence_records: list[dict[str, Any]] = []
        for ev in proposed.evidence:
            if ev.entity_name:
                entity_id = name_to_id.get(ev.entity_name.lower())
                if entity_id is not None:
                    _append_unique(entity_ids, entity_id)
            evidence_records.append(
                {
                    "snippet": ev.quote,
                    "document_id": document_id,
                    "document_title": doc.title
                    if ev.source == EvidenceSource.NEW_DOCUMENT
                    else CANON_EVIDENCE_TITLE,
                }
            )

        # Canon facts quoted verbatim by canon evidence are linked as well.
        canon_quotes = [ev.quote for ev in proposed.evidence if ev.source == EvidenceSource.CANON]
        for entity_id in entity_ids:
            for fact in facts_by_entity.get(entity_id, []):
                if any(_quotes_fact(quote, fact.evidence) for quote in canon_quotes):
                    _append_unique(fact_ids, fact.id)

        session.add(
            Alert(
                project_id=project_id,
                document_id=document_id,
                fact_ids=fact_ids,
                entity_ids=entity_ids,
                type=proposed.type,
                severity=proposed.severity,
                title=proposed.title,
                description=proposed.description,
                evidence=evidence_records,
                suggested_fix=proposed.suggested_fix,
                status=AlertStatus.OPEN.value,
            )
        )
        ALERTS_CREATED_TOTAL.labels(type=proposed.type, severity=proposed.severity).inc()
        created += 1

    if created:
        await adjust_project_stats(session, project_id=project_id, alertCount=created)
        await session.flush()
    logger.info("Created %s alerts for document %s", created, document_id)
    return created


async def run_check(
    session: AsyncSession,
    *,
    document_id: int,
    user: User | None,
    refresh: bool = False,
) -> CheckResult:
    """Check one document against canon; persists alerts on a fresh checker result.

    `refresh` drops the cached reply for this exact input before the lookup.
    """
    user = require_user(user)
    doc = await session.get(Document, document_id)
    if doc is None:
        raise NotFoundError("document", document_id)
    project = await session.get(Project, doc.project_id)
    if project is None or project.user_id != user.id:
        raise UnauthorizedError()
    if not doc.content:
        raise NotFoundError("document", document_id, "Document not found or empty")
    if not settings.OPENROUTER_API_KEY:
        raise ConfigurationError("OPENROUTER_API_KEY")
    if not settings.MODEL:
        raise ConfigurationError("MODEL")

    canon = await build_canon_context(session, project_id=doc.project_id)
    if canon.is_empty:
        CHECK_RUNS_TOTAL.labels(outcome="empty_canon").inc()
        return CheckResult.empty()

    input_hash = compute_hash(f"{PROMPT_VERSION}:{canon.formatted}:{doc.content}")
    if refresh:
        await invalidate_cache(session, prompt_version=PROMPT_VERSION, input_hash=input_hash)
    cached = await get_cached_response(session, input_hash=input_hash, prompt_version=PROMPT_VERSION)
    if cached is not None:
        CHECK_RUNS_TOTAL.labels(outcome="cache_hit").inc()
        return normalize_check_result(cached)

    consume_usage(user, "llmExtractionsPerMonth")

    prompt = CHECK_PROMPT.format(canon_context=canon.formatted, document_content=doc.content)
    started = time.perf_counter()
    try:
        raw = await request_structured_completion(
            prompt=prompt,
            schema_name="continuity_check",
            schema=CHECK_RESPONSE_SCHEMA,
            api_key=settings.OPENROUTER_API_KEY,
            model=settings.MODEL,
        )
    except Exception:
        CHECK_RUNS_TOTAL.labels(outcome="error").inc()
        raise
    finally:
        CHECK_LATENCY_SECONDS.observe(time.perf_counter() - started)

    result = normalize_check_result(raw)
    await save_cached_response(
        session,
        input_hash=input_hash,
        prompt_version=PROMPT_VERSION,
        model_id=settings.MODEL,
        response=result.to_json(),
    )
    if result.alerts:
        await create_alerts(
            session,
            document_id=doc.id,
            project_id=doc.project_id,
            check_result=result,
            canon_context=canon.entities,
        )
    CHECK_RUNS_TOTAL.labels(outcome="completed").inc()
    return result
