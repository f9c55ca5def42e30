from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from realm_sync.celery_app import celery
from realm_sync.maintenance_service import cleanup_expired_refresh_tokens
from realm_sync.models.user import RefreshToken, User
from realm_sync.workers import maintenance


def test_beat_schedule_points_at_registered_tasks() -> None:
    registered = set(celery.tasks.keys())
    for entry in celery.conf.beat_schedule.values():
        assert entry["task"] in registered


def test_demo_reset_runs_daily_at_eight_utc() -> None:
    schedule = celery.conf.beat_schedule["reset-demo-account-daily"]["schedule"]
    assert schedule.hour == {8}
    assert schedule.minute == {0}
    assert celery.conf.timezone == "UTC"


def test_token_cleanup_runs_weekly() -> None:
    schedule = celery.conf.beat_schedule["cleanup-expired-refresh-tokens-weekly"]["schedule"]
    assert schedule.day_of_week == {0}
    assert schedule.hour == {3}


def test_maintenance_tasks_route_to_maintenance_queue() -> None:
    routes = celery.conf.task_routes
    assert routes["realm_sync.workers.maintenance.*"] == {"queue": "maintenance"}
    assert [q.name for q in celery.conf.task_queues] == ["maintenance"]


async def test_run_commits_job_results(engine, monkeypatch) -> None:
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    monkeypatch.setattr(maintenance, "async_session_factory", factory)
    now = datetime.now(timezone.utc)

    async with factory() as session:
        owner = User(email="owner@realmsync.app")
        session.add(owner)
        await session.flush()
        session.add_all(
            [
                RefreshToken(user_id=owner.id, expires_at=now - timedelta(days=1)),
                RefreshToken(user_id=owner.id, expires_at=now - timedelta(minutes=5)),
                RefreshToken(user_id=owner.id, expires_at=now + timedelta(days=1)),
            ]
        )
        await session.commit()

    assert await maintenance._run("refresh_tokens", cleanup_expired_refresh_tokens) == 2

    async with factory() as session:
        remaining = (await session.execute(select(RefreshToken))).scalars().all()
    assert len(remaining) == 1
