"""Project export as JSON, Markdown or CSV (confirmed canon only)."""
from __future__ import annotations

import csv
import io
import json
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.access import find_owned_project
from realm_sync.db import utcnow
from realm_sync.errors import ValidationError
from realm_sync.models.document import Document
from realm_sync.models.entity import Entity, EntityStatus, EntityType
from realm_sync.models.fact import Fact, FactStatus
from realm_sync.models.project import ProjectType
from realm_sync.models.user import User

EXPORT_FORMATS = ("json", "markdown", "csv")
MEDIA_TYPES = {
    "json": "application/json",
    "markdown": "text/markdown",
    "csv": "text/csv",
}


async def gather_export_data(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    include_unrevealed: bool = True,
) -> dict[str, Any] | None:
    project = await find_owned_project(session, project_id=project_id, user=user)
    if project is None:
        return None

    documents = (
        await session.execute(
            select(Document).where(Document.project_id == project_id).order_by(Document.order_index.asc())
        )
    ).scalars().all()
    entities = (
        await session.execute(
            select(Entity)
            .where(Entity.project_id == project_id, Entity.status == EntityStatus.CONFIRMED.value)
            .order_by(Entity.name.asc())
        )
    ).scalars().all()
    facts = (
        await session.execute(
            select(Fact)
            .where(Fact.project_id == project_id, Fact.status == FactStatus.CONFIRMED.value)
            .order_by(Fact.id.asc())
        )
    ).scalars().all()

    # TTRPG projects can hide unrevealed canon from player-facing exports.
    if project.project_type == ProjectType.TTRPG.value and not include_unrevealed:
        entities = [e for e in entities if e.revealed_to_viewers]
        visible = {e.id for e in entities}
        facts = [f for f in facts if f.entity_id is None or f.entity_id in visible]

    names = {e.id: e.name for e in entities}
    return {
        "project": {
            "name": project.name,
            "description": project.description,
            "exportedAt": utcnow().isoformat(),
        },
        "documents": [
            {
                "title": d.title,
                "contentType": d.content_type,
                "wordCount": d.word_count,
                "processingStatus": d.processing_status,
            }
            for d in documents
        ],
        "entities": [
            {
                "name": e.name,
                "type": e.type,
                "description": e.description,
                "aliases": list(e.aliases or []),
                "status": e.status,
            }
            for e in entities
        ],
        "facts": [
            {
                "entityName": names.get(f.entity_id, "Unknown") if f.entity_id else "Unlinked",
                "subject": f.subject,
                "predicate": f.predicate,
                "object": f.object,
                "confidence": f.confidence,
                "evidenceSnippet": f.evidence_snippet or "",
                "status": f.status,
            }
            for f in facts
        ],
    }


def format_as_json(data: dict[str, Any]) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def format_as_markdown(data: dict[str, Any]) -> str:
    lines: list[str] = [f"# {data['project']['name']}", ""]
    if data["project"].get("description"):
        lines += [data["project"]["description"], ""]
    lines += [f"*Exported: {data['project']['exportedAt']}*", "", "## Documents", ""]

    if not data["documents"]:
        lines.append("*No documents*")
    for doc in data["documents"]:
        lines.append(f"- **{doc['title']}** ({doc['wordCount']} words, {doc['processingStatus']})")
    lines += ["", "## Canon Entities", ""]

    for entity_type in EntityType:
        group = [e for e in data["entities"] if e["type"] == entity_type.value]
        if not group:
            continue
        lines += [f"### {entity_type.value.capitalize()}s", ""]
        for entity in group:
            lines.append(f"#### {entity['name']}")
            if entity.get("description"):
                lines.append(entity["description"])
            if entity["aliases"]:
                lines.append(f"*Also known as: {', '.join(entity['aliases'])}*")
            facts = [f for f in data["facts"] if f["entityName"] == entity["name"]]
            if facts:
                lines += ["", "**Facts:**"]
                for fact in facts:
                    lines.append(f"- {fact['subject']} {fact['predicate']} {fact['object']}")
                    lines.append(f'  > "{fact["evidenceSnippet"]}"')
            lines.append("")
    return "\n".join(lines)


def format_as_csv(data: dict[str, Any]) -> str:
    """Three sections (entities, facts, documents) separated by `# SECTION` lines."""
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")

    buf.write("# ENTITIES\n")
    buf.write("Name,Type,Description,Aliases,Status\n")
    for e in data["entities"]:
        writer.writerow([e["name"], e["type"], e.get("description") or "", "; ".join(e["aliases"]), e["status"]])

    buf.write("\n# FACTS\n")
    buf.write("Entity,Subject,Predicate,Object,Confidence,Evidence,Status\n")
    for f in data["facts"]:
        writer.writerow(
            [
                f["entityName"],
                f["subject"],
                f["predicate"],
                f["object"],
                float(f["confidence"]),
                f["evidenceSnippet"],
                f["status"],
            ]
        )

    buf.write("\n# DOCUMENTS\n")
    buf.write("Title,ContentType,WordCount,Status\n")
    for d in data["documents"]:
        writer.writerow([d["title"], d["contentType"], int(d["wordCount"]), d["processingStatus"]])
    return buf.getvalue()


_FORMATTERS = {
    "json": format_as_json,
    "markdown": format_as_markdown,
    "csv": format_as_csv,
}


async def export_project(
    session: AsyncSession,
    *,
    project_id: int,
    user: User | None,
    fmt: str,
    include_unrevealed: bool = True,
) -> str | None:
    if fmt not in _FORMATTERS:
        raise ValidationError("format", f"Unsupported export format: {fmt}")
    data = await gather_export_data(
        session, project_id=project_id, user=user, include_unrevealed=include_unrevealed
    )
    if data is None:
        return None
    return _FORMATTERS[fmt](data)
