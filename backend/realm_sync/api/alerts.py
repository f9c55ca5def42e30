"""Alert API: continuity alerts and their lifecycle."""
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
from realm_sync import alert_service

router = APIRouter(tags=["alerts"])
logger = logging.getLogger(__name__)


class ResolutionPayload(BaseModel):
    resolution_notes: str | None = None


class CanonUpdatePayload(BaseModel):
    fact_id: int
    new_value: str
    resolution_notes: str | None = None


@router.get("/api/alerts/open")
async def list_open_alerts_for_user(
    limit: int = 20,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    found = await alert_service.list_open_alerts_for_user(db, user=user, limit=limit)
    return {
        "total": found["total"],
        "alerts": [
            {**row_to_dict(row["alert"]), "project_name": row["project_name"]}
            for row in found["alerts"]
        ],
    }


@router.get("/api/projects/{project_id}/alerts")
async def list_alerts_by_project(
    project_id: int,
    status: str | None = None,
    type: str | None = None,
    severity: str | None = None,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    alerts = await alert_service.list_alerts_by_project(
        db, project_id=project_id, user=user, status=status, alert_type=type, severity=severity
    )
    return rows_to_dicts(alerts)


@router.get("/api/projects/{project_id}/alerts/counts")
async def count_alerts_by_project(
    project_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    return await alert_service.count_alerts_by_project(db, project_id=project_id, user=user)


@router.post("/api/projects/{project_id}/alerts/resolve-all")
async def resolve_all_alerts(
    project_id: int,
    payload: ResolutionPayload | None = None,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    notes = payload.resolution_notes if payload else None
    count = await alert_service.resolve_all_alerts(
        db, project_id=project_id, user=user, resolution_notes=notes
    )
    await db.commit()
    return {"count": count}


@router.post("/api/projects/{project_id}/alerts/dismiss-all")
async def dismiss_all_alerts(
    project_id: int,
    payload: ResolutionPayload | None = None,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    notes = payload.resolution_notes if payload else None
    count = await alert_service.dismiss_all_alerts(
        db, project_id=project_id, user=user, resolution_notes=notes
    )
    await db.commit()
    return {"count": count}


@router.get("/api/documents/{document_id}/alerts")
async def list_alerts_by_document(
    document_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> list[dict]:
    return rows_to_dicts(await alert_service.list_alerts_by_document(db, document_id=document_id, user=user))


@router.get("/api/alerts/{alert_id}")
async def get_alert(
    alert_id: int,
    details: bool = False,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    if not details:
        alert = await alert_service.get_alert(db, alert_id=alert_id, user=user)
        if alert is None:
            raise NotFoundError("alert", alert_id)
        return row_to_dict(alert)

    found = await alert_service.get_alert_with_details(db, alert_id=alert_id, user=user)
    if found is None:
        raise NotFoundError("alert", alert_id)
    return {
        **row_to_dict(found.alert),
        "entities": found.entities,
        "facts": found.facts,
        "document": found.document,
    }


@router.post("/api/alerts/{alert_id}/resolve")
async def resolve_alert(
    alert_id: int,
    payload: ResolutionPayload | None = None,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    notes = payload.resolution_notes if payload else None
    alert = await alert_service.resolve_alert(db, alert_id=alert_id, user=user, resolution_notes=notes)
    await db.commit()
    return row_to_dict(alert)


@router.post("/api/alerts/{alert_id}/dismiss")
async def dismiss_alert(
    alert_id: int,
    payload: ResolutionPayload | None = None,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    notes = payload.resolution_notes if payload else None
    alert = await alert_service.dismiss_alert(db, alert_id=alert_id, user=user, resolution_notes=notes)
    await db.commit()
    return row_to_dict(alert)


@router.post("/api/alerts/{alert_id}/reopen")
async def reopen_alert(
    alert_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    alert = await alert_service.reopen_alert(db, alert_id=alert_id, user=user)
    await db.commit()
    return row_to_dict(alert)


@router.post("/api/alerts/{alert_id}/resolve-with-canon-update")
async def resolve_with_canon_update(
    alert_id: int,
    payload: CanonUpdatePayload,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    result = await alert_service.resolve_with_canon_update(
        db,
        alert_id=alert_id,
        fact_id=payload.fact_id,
        new_value=payload.new_value,
        user=user,
        resolution_notes=payload.resolution_notes,
    )
    await db.commit()
    return asdict(result)


@router.delete("/api/alerts/{alert_id}")
async def remove_alert(
    alert_id: int,
    db: AsyncSession = Depends(get_session),
    user: User | None = Depends(get_current_user_optional),
) -> dict:
    removed = await alert_service.remove_alert(db, alert_id=alert_id, user=user)
    await db.commit()
    return {"id": removed}
