from __future__ import annotations

from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import realm_sync.models  # noqa: F401
from realm_sync.db import Base
from realm_sync.models.alert import Alert
from realm_sync.models.document import Document
from realm_sync.models.entity import Entity
from realm_sync.models.fact import Fact
from realm_sync.models.project import Project
from realm_sync.models.user import User


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine) -> AsyncSession:
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
async def user(session) -> User:
    row = User(name="Writer", email="writer@realmsync.app")
    session.add(row)
    await session.flush()
    return row


@pytest.fixture
async def other_user(session) -> User:
    row = User(name="Stranger", email="stranger@realmsync.app")
    session.add(row)
    await session.flush()
    return row


@pytest.fixture
async def project(session, user) -> Project:
    row = Project(user_id=user.id, name="Ashfall Saga", project_type="original-fiction")
    session.add(row)
    await session.flush()
    return row


async def add_document(session: AsyncSession, project: Project, **fields: Any) -> Document:
    fields.setdefault("title", "Chapter 1")
    fields.setdefault("content", "Marcus had blue eyes and a quiet voice.")
    fields.setdefault("order_index", 0)
    doc = Document(project_id=project.id, **fields)
    session.add(doc)
    project.document_count = (project.document_count or 0) + 1
    await session.flush()
    return doc


async def add_entity(session: AsyncSession, project: Project, **fields: Any) -> Entity:
    fields.setdefault("name", "Marcus")
    fields.setdefault("type", "character")
    fields.setdefault("status", "confirmed")
    fields.setdefault("aliases", [])
    entity = Entity(project_id=project.id, **fields)
    session.add(entity)
    project.entity_count = (project.entity_count or 0) + 1
    await session.flush()
    return entity


async def add_fact(
    session: AsyncSession, project: Project, entity: Entity, document: Document, **fields: Any
) -> Fact:
    fields.setdefault("subject", entity.name)
    fields.setdefault("predicate", "has eye color")
    fields.setdefault("object", "blue")
    fields.setdefault("confidence", 1.0)
    fields.setdefault("evidence_snippet", "Marcus had blue eyes")
    fields.setdefault("status", "confirmed")
    fact = Fact(project_id=project.id, entity_id=entity.id, document_id=document.id, **fields)
    session.add(fact)
    if fields["status"] != "rejected":
        project.fact_count = (project.fact_count or 0) + 1
    await session.flush()
    return fact


async def add_alert(session: AsyncSession, project: Project, document: Document, **fields: Any) -> Alert:
    fields.setdefault("type", "contradiction")
    fields.setdefault("severity", "error")
    fields.setdefault("title", "Eye color mismatch")
    fields.setdefault("description", "Marcus's eyes changed color")
    fields.setdefault("status", "open")
    fields.setdefault("fact_ids", [])
    fields.setdefault("entity_ids", [])
    fields.setdefault("evidence", [])
    alert = Alert(project_id=project.id, document_id=document.id, **fields)
    session.add(alert)
    if fields["status"] == "open":
        project.alert_count = (project.alert_count or 0) + 1
    await session.flush()
    return alert
