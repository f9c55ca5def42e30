"""Sample project used for the demo account.

`seed_demo_project` inserts two chapters, a handful of entities and facts and
then rebuilds the counters from what was inserted.
"""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.config import settings
from realm_sync.db import utcnow
from realm_sync.document_service import count_words
from realm_sync.models.document import Document
from realm_sync.models.entity import Entity
from realm_sync.models.fact import Fact
from realm_sync.models.project import Project, ProjectType
from realm_sync.models.user import User
from realm_sync.project_service import delete_project_tree
from realm_sync.project_stats import recompute_project_stats

logger = logging.getLogger(__name__)

PROJECT_NAME = "The Northern Chronicles"
PROJECT_DESCRIPTION = "A fantasy epic set in a frozen kingdom where winter has lasted for generations."

CHAPTERS: list[dict[str, str]] = [
    {
        "key": "ch1",
        "title": "Chapter 1: The Frozen Throne",
        "content": (
            "The wind howled across the battlements of Winterhold Castle as King Aldric surveyed his "
            "domain. His steel-gray eyes, weathered by countless winters, scanned the endless white "
            "expanse stretching to the horizon.\n"
            "\"Your Grace,\" said Commander Thorne, approaching with measured steps. \"The scouts have "
            "returned from the Northern Pass. They bring troubling news.\"\n"
            "Aldric turned, his fur-lined cloak swirling around him. At sixty winters, he was still an "
            "imposing figure, broad-shouldered and tall, with a crown of iron resting upon his silver "
            "hair. The crown had belonged to his father, and his father's father before him, forged "
            "from the ore of the Sacred Mountain.\n"
            "\"Speak, Commander. I would hear it plain.\"\n"
            "\"The Frostborne have been sighted, my lord. A host of them, moving south through the "
            "Shattered Peaks. Lady Elara estimates their numbers at three thousand.\"\n"
            "The king's jaw tightened. The Frostborne, those cursed beings who had once been men, "
            "transformed by the endless winter into something other. Something hungry.\n"
            "\"Send word to the other holds. Summon the Council of Lords. And find my daughter; tell "
            "Princess Sera that her nameday celebrations must wait.\""
        ),
    },
    {
        "key": "ch2",
        "title": "Chapter 2: The Ancient Pact",
        "content": (
            "Princess Sera stood in the Great Library, her fingers tracing the spines of books older "
            "than the kingdom itself. At twenty winters, she had her father's determination but her "
            "mother's curiosity, a dangerous combination, the court whispered.\n"
            "\"You should not be here alone, Princess,\" came a voice from the shadows.\n"
            "She did not turn. \"Neither should you, Magister Crow. This section is forbidden to all "
            "but the royal bloodline.\"\n"
            "The old man emerged from between the towering shelves, his black robes rustling like "
            "wings. His eyes were milky white, blinded in service to the old magic, yet he moved with "
            "uncanny precision.\n"
            "\"There are things you seek that should remain buried,\" he warned. \"The Pact of Frost "
            "was sealed for good reason.\"\n"
            "\"A pact made by desperate men who had no other choice,\" Sera countered. \"But the "
            "Frostborne still come. Whatever bargain our ancestors struck, it is failing.\"\n"
            "Magister Crow was silent for a long moment. When he spoke again, his voice was barely "
            "above a whisper. \"The Pact was not a bargain, child. It was a binding, a prison. And "
            "prisons, given enough time, always fail.\""
        ),
    },
]

ENTITIES: list[dict[str, Any]] = [
    {
        "key": "aldric",
        "name": "King Aldric",
        "type": "character",
        "description": "The aging king of the frozen kingdom, sixty winters old, with steel-gray eyes and silver hair.",
        "aliases": ["His Grace", "The Winter King"],
        "chapter": "ch1",
        "status": "confirmed",
    },
    {
        "key": "sera",
        "name": "Princess Sera",
        "type": "character",
        "description": "The twenty-year-old princess, daughter of King Aldric, known for her curiosity and determination.",
        "aliases": [],
        "chapter": "ch1",
        "status": "pending",
    },
    {
        "key": "thorne",
        "name": "Commander Thorne",
        "type": "character",
        "description": "Military commander serving King Aldric.",
        "aliases": [],
        "chapter": "ch1",
        "status": "pending",
    },
    {
        "key": "crow",
        "name": "Magister Crow",
        "type": "character",
        "description": "A blind old magister who serves the old magic, wears black robes.",
        "aliases": [],
        "chapter": "ch2",
        "status": "pending",
    },
    {
        "key": "winterhold",
        "name": "Winterhold Castle",
        "type": "location",
        "description": "The seat of power for King Aldric, featuring battlements overlooking a frozen landscape.",
        "aliases": ["The Frozen Throne"],
        "chapter": "ch1",
        "status": "confirmed",
    },
    {
        "key": "frostborne",
        "name": "The Frostborne",
        "type": "concept",
        "description": "Cursed beings who were once men, transformed by the endless winter into something hungry and dangerous.",
        "aliases": [],
        "chapter": "ch1",
        "status": "pending",
    },
    {
        "key": "pact",
        "name": "The Pact of Frost",
        "type": "event",
        "description": "An ancient binding and prison created by desperate ancestors, which is now failing.",
        "aliases": ["The Ancient Pact"],
        "chapter": "ch2",
        "status": "pending",
    },
]

FACTS: list[dict[str, Any]] = [
    {"entity": "aldric", "chapter": "ch1", "subject": "King Aldric", "predicate": "has age",
     "object": "sixty winters", "confidence": 1.0,
     "snippet": "At sixty winters, he was still an imposing figure", "status": "confirmed"},
    {"entity": "aldric", "chapter": "ch1", "subject": "King Aldric", "predicate": "rules from",
     "object": "Winterhold Castle", "confidence": 1.0,
     "snippet": "King Aldric surveyed his domain", "status": "confirmed"},
    {"entity": "sera", "chapter": "ch1", "subject": "Princess Sera", "predicate": "is daughter of",
     "object": "King Aldric", "confidence": 1.0,
     "snippet": "find my daughter; tell Princess Sera", "status": "pending"},
    {"entity": "sera", "chapter": "ch2", "subject": "Princess Sera", "predicate": "has age",
     "object": "twenty winters", "confidence": 1.0,
     "snippet": "At twenty winters, she had her father's determination", "status": "pending"},
    {"entity": "frostborne", "chapter": "ch1", "subject": "Frostborne", "predicate": "were once",
     "object": "men", "confidence": 1.0,
     "snippet": "those cursed beings who had once been men", "status": "pending"},
    {"entity": "frostborne", "chapter": "ch1", "subject": "Frostborne army", "predicate": "numbers approximately",
     "object": "three thousand", "confidence": 0.9,
     "snippet": "Lady Elara estimates their numbers at three thousand", "status": "pending"},
    {"entity": "crow", "chapter": "ch2", "subject": "Magister Crow", "predicate": "is",
     "object": "blind", "confidence": 1.0,
     "snippet": "His eyes were milky white, blinded in service to the old magic", "status": "pending"},
    {"entity": "pact", "chapter": "ch2", "subject": "The Pact of Frost", "predicate": "was",
     "object": "a binding and prison, not a bargain", "confidence": 0.85,
     "snippet": "The Pact was not a bargain, child. It was a binding, a prison.", "status": "pending"},
]


def _position(content: str, snippet: str) -> dict[str, int] | None:
    start = content.find(snippet)
    if start < 0:
        return None
    return {"start": start, "end": start + len(snippet)}


async def seed_demo_project(session: AsyncSession, *, user: User) -> Project:
    now = utcnow()
    project = Project(
        user_id=user.id,
        name=PROJECT_NAME,
        description=PROJECT_DESCRIPTION,
        project_type=ProjectType.ORIGINAL_FICTION.value,
        created_at=now,
        updated_at=now,
    )
    session.add(project)
    await session.flush()

    docs: dict[str, Document] = {}
    for index, chapter in enumerate(CHAPTERS):
        doc = Document(
            project_id=project.id,
            title=chapter["title"],
            content=chapter["content"],
            content_type="text",
            order_index=index,
            word_count=count_words(chapter["content"]),
            processing_status="completed",
            processed_at=now,
            created_at=now,
            updated_at=now,
        )
        session.add(doc)
        docs[chapter["key"]] = doc
    await session.flush()

    entities: dict[str, Entity] = {}
    for spec in ENTITIES:
        entity = Entity(
            project_id=project.id,
            name=spec["name"],
            type=spec["type"],
            description=spec["description"],
            aliases=list(spec["aliases"]),
            first_mentioned_in=docs[spec["chapter"]].id,
            status=spec["status"],
            created_at=now,
            updated_at=now,
        )
        session.add(entity)
        entities[spec["key"]] = entity
    await session.flush()

    for spec in FACTS:
        doc = docs[spec["chapter"]]
        session.add(
            Fact(
                project_id=project.id,
                entity_id=entities[spec["entity"]].id,
                document_id=doc.id,
                subject=spec["subject"],
                predicate=spec["predicate"],
                object=spec["object"],
                confidence=spec["confidence"],
                evidence_snippet=spec["snippet"],
                evidence_position=_position(doc.content or "", spec["snippet"]),
                status=spec["status"],
            )
        )
    await session.flush()

    await recompute_project_stats(session, project=project)
    logger.info("Seeded demo project %s for user %s", project.id, user.id)
    return project


async def reset_demo_account(session: AsyncSession) -> int:
    """Wipe the demo user's projects and usage, then seed a fresh sample project.

    Returns the number of projects removed. Missing demo user is a no-op.
    """
    email = settings.DEMO_ACCOUNT_EMAIL.strip().lower()
    user = (await session.execute(select(User).where(User.email == email))).scalar()
    if user is None:
        logger.warning("Demo account %s not found, skipping reset", email)
        return 0

    project_ids = (
        await session.execute(select(Project.id).where(Project.user_id == user.id))
    ).scalars().all()
    for project_id in project_ids:
        await delete_project_tree(session, project_id=project_id)

    user.is_demo = True
    user.llm_extractions_this_month = 0
    user.chat_messages_this_month = 0
    user.usage_reset_at = utcnow()

    await seed_demo_project(session, user=user)
    logger.info("Demo account reset", extra={"user_id": user.id, "removed_projects": len(project_ids)})
    return len(project_ids)
