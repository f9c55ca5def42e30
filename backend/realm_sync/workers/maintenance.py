"""Scheduled housekeeping tasks.

Each task opens its own session, runs one job and commits.
"""
from __future__ import annotations

import asyncio
import logging

from realm_sync.celery_app import celery
from realm_sync.db import async_session_factory
from realm_sync.llm_cache_service import purge_expired_cache
from realm_sync.maintenance_service import cleanup_expired_refresh_tokens
from realm_sync.metrics import MAINTENANCE_ROWS_TOTAL
from realm_sync.seeds.demo_project import reset_demo_account as reset_demo_account_rows
from realm_sync.usage_service import reset_stale_usage_counters

logger = logging.getLogger(__name__)


async def _run(job: str, fn) -> int:
    async with async_session_factory() as session:
        count = await fn(session)
        await session.commit()
    MAINTENANCE_ROWS_TOTAL.labels(job=job).inc(count)
    logger.info("Maintenance job finished", extra={"job": job, "rows": count})
    return count


@celery.task(name="realm_sync.workers.maintenance.cleanup_refresh_tokens")
def cleanup_refresh_tokens() -> int:
    return asyncio.run(_run("refresh_tokens", cleanup_expired_refresh_tokens))


@celery.task(name="realm_sync.workers.maintenance.reset_demo_account")
def reset_demo_account() -> int:
    return asyncio.run(_run("demo_account", reset_demo_account_rows))


@celery.task(name="realm_sync.workers.maintenance.reset_stale_usage")
def reset_stale_usage() -> int:
    return asyncio.run(_run("usage_reset", reset_stale_usage_counters))


@celery.task(name="realm_sync.workers.maintenance.purge_llm_cache")
def purge_llm_cache() -> int:
    return asyncio.run(_run("llm_cache", purge_expired_cache))
