"""FastAPI application: health, metrics, CORS and the product APIs."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    generate_latest,
    multiprocess,
)
from starlette.responses import PlainTextResponse, Response

from realm_sync.api.alerts import router as alerts_router
from realm_sync.api.checks import router as checks_router
from realm_sync.api.documents import router as documents_router
from realm_sync.api.entities import router as entities_router
from realm_sync.api.export import router as export_router
from realm_sync.api.facts import router as facts_router
from realm_sync.api.notes import router as notes_router
from realm_sync.api.projects import router as projects_router
from realm_sync.api.users import router as users_router
from realm_sync.config import settings
from realm_sync.errors import AppError
from realm_sync.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("Realm Sync API starting", extra={"env": settings.APP_ENV})
    yield
    logger.info("Realm Sync API shutting down")


app = FastAPI(
    title="Realm Sync",
    version="0.1.0",
    description="Canon tracking and continuity checks for long-form fiction",
    lifespan=lifespan,
)

# ── CORS ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.APP_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed: %s", exc.message, extra={"path": request.url.path, "code": exc.code})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(projects_router)
app.include_router(documents_router)
app.include_router(entities_router)
app.include_router(facts_router)
app.include_router(alerts_router)
app.include_router(checks_router)
app.include_router(notes_router)
app.include_router(users_router)
app.include_router(export_router)


# ── Health ──
@app.get("/health", tags=["ops"])
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok", "service": "realm-sync"}


# ── Prometheus Metrics ──
@app.get("/metrics", tags=["ops"])
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    try:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        data = generate_latest(registry)
    except ValueError:
        # Not running in multiprocess mode
        data = generate_latest()
    return PlainTextResponse(content=data, media_type=CONTENT_TYPE_LATEST)
