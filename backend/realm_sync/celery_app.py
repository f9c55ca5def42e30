"""Celery application: Redis broker and result backend, beat-driven housekeeping."""
from __future__ import annotations

from celery import Celery
from celery.schedules import crontab
from kombu import Exchange, Queue

from realm_sync.config import settings

celery = Celery(
    "realm_sync",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.REDIS_URL,
)

# ── Serialisation ──
celery.conf.accept_content = ["json"]
celery.conf.task_serializer = "json"
celery.conf.result_serializer = "json"
celery.conf.timezone = "UTC"
celery.conf.enable_utc = True

# ── Reliability ──
celery.conf.task_acks_late = True
celery.conf.worker_prefetch_multiplier = 1
celery.conf.task_reject_on_worker_lost = True

# ── Exchanges & Queues ──
default_exchange = Exchange("realm_sync", type="direct")

celery.conf.task_queues = (
    Queue("maintenance", default_exchange, routing_key="maintenance"),
)

celery.conf.task_default_queue = "maintenance"
celery.conf.task_default_exchange = "realm_sync"
celery.conf.task_default_routing_key = "maintenance"

# ── Task routes ──
celery.conf.task_routes = {
    "realm_sync.workers.maintenance.*": {"queue": "maintenance"},
}

# ── Beat Schedule ──
celery.conf.beat_schedule = {
    "cleanup-expired-refresh-tokens-weekly": {
        "task": "realm_sync.workers.maintenance.cleanup_refresh_tokens",
        "schedule": crontab(day_of_week="sunday", hour=3, minute=0),
    },
    "reset-demo-account-daily": {
        "task": "realm_sync.workers.maintenance.reset_demo_account",
        "schedule": crontab(hour=8, minute=0),
    },
    "reset-stale-usage-daily": {
        "task": "realm_sync.workers.maintenance.reset_stale_usage",
        "schedule": crontab(hour=0, minute=15),
    },
    "purge-llm-cache-daily": {
        "task": "realm_sync.workers.maintenance.purge_llm_cache",
        "schedule": crontab(hour=4, minute=30),
    },
}

# ── Auto-discover tasks ──
celery.autodiscover_tasks(["realm_sync.workers"], related_name="maintenance", force=True)
