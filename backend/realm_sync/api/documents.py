"""Document API: manuscript chapters and their deletion cascade."""
from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.api.serializers import row_to_dict, rows_to_dicts
from realm_sync.auth import get_current_user_optional
from realm_sync.db import get_session
from realm_sync.errors import NotFoundError
from realm_sync.models.user import User
from realm_sync import document_service

router = APIRouter(tags=["documents"])
logger = logging.getLogger(__name__)


class DocumentCreatePayload(BaseModel):
    title: str
    content: str | None = None
    storage_key: str | None = None
    content_type: str = "text"


class DocumentUpdatePayload(BaseModel):
    title: str | None = None
    content: str | None = None
    storage_key: str | None = None
    content_type: str | None = None


class ReorderPayload(BaseModel):
    document_ids: list[int]


class ProcessingStatusPayload(BaseModel):
    status: str


@router.get("/api/projects/{project_id}/documents")
async def list_documents(
    project_id: int,
    q: str | None = None,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    if q:
        docs = await document_service.search_documents(db, project_id=project_id, user=user, query=q)
    else:
        docs = await document_service.list_documents(db, project_id=project_id, user=user)
    return rows_to_dicts(docs)


@router.get("/api/projects/{project_id}/documents/needing-review")
async def list_documents_needing_review(
    project_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    rows = await document_service.list_documents_needing_review(db, project_id=project_id, user=user)
    return [
        {
            **row_to_dict(row["document"]),
            "pending_entity_count": row["pending_entity_count"],
            "pending_fact_count": row["pending_fact_count"],
        }
        for row in rows
    ]


@router.post("/api/projects/{project_id}/documents", status_code=201)
async def create_document(
    project_id: int,
    payload: DocumentCreatePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    doc = await document_service.create_document(
        db, project_id=project_id, user=user, **payload.model_dump()
    )
    await db.commit()
    return row_to_dict(doc)


@router.post("/api/projects/{project_id}/documents/reorder")
async def reorder_documents(
    project_id: int,
    payload: ReorderPayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    await document_service.reorder_documents(
        db, project_id=project_id, user=user, document_ids=payload.document_ids
    )
    await db.commit()
    return {"status": "ok"}


@router.get("/api/documents/{document_id}")
async def get_document(
    document_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    doc = await document_service.get_document(db, document_id=document_id, user=user)
    if doc is None:
        raise NotFoundError("document", document_id)
    return row_to_dict(doc)


@router.patch("/api/documents/{document_id}")
async def update_document(
    document_id: int,
    payload: DocumentUpdatePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    doc = await document_service.update_document(
        db, document_id=document_id, user=user, **payload.model_dump(exclude_unset=True)
    )
    await db.commit()
    return row_to_dict(doc)


@router.patch("/api/documents/{document_id}/processing-status")
async def update_processing_status(
    document_id: int,
    payload: ProcessingStatusPayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    doc = await document_service.update_processing_status(
        db, document_id=document_id, user=user, status=payload.status
    )
    await db.commit()
    return row_to_dict(doc)


@router.delete("/api/documents/{document_id}")
async def remove_document(
    document_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    result = await document_service.remove_document(db, document_id=document_id, user=user)
    await db.commit()
    return asdict(result)
