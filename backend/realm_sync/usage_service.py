"""Subscription tiers, free-tier limits and monthly usage counters.

Counters older than the 30-day reset interval are read as zero; the daily
maintenance job writes the reset back.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from realm_sync.db import utcnow
from realm_sync.errors import LimitError
from realm_sync.models.document import Document
from realm_sync.models.entity import Entity
from realm_sync.models.project import Project
from realm_sync.models.user import SubscriptionTier, User

logger = logging.getLogger(__name__)

MONTHLY_RESET_INTERVAL = timedelta(days=30)
TRIAL_DURATION = timedelta(days=7)
WARNING_THRESHOLD = 0.8

FREE_TIER_LIMITS: dict[str, int] = {
    "projects": 3,
    "documentsPerProject": 10,
    "entitiesPerProject": 50,
    "llmExtractionsPerMonth": 20,
    "chatMessagesPerMonth": 50,
}

_USAGE_COLUMNS = {
    "llmExtractionsPerMonth": "llm_extractions_this_month",
    "chatMessagesPerMonth": "chat_messages_this_month",
}


@dataclass(slots=True)
class LimitCheckResult:
    allowed: bool
    current: int
    limit: int | None  # None means unlimited
    warning: bool = False
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None or k == "limit"}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_trial_active(user: User, now: datetime | None = None) -> bool:
    if user.subscription_status != "trialing" or user.trial_ends_at is None:
        return False
    return (now or utcnow()) < _as_utc(user.trial_ends_at)


def is_trial_expired(user: User, now: datetime | None = None) -> bool:
    if user.subscription_status != "trialing" or user.trial_ends_at is None:
        return False
    return (now or utcnow()) >= _as_utc(user.trial_ends_at)


def user_tier(user: User, now: datetime | None = None) -> SubscriptionTier:
    """Unlimited while the subscription is active or the trial has not ended."""
    if user.subscription_tier != SubscriptionTier.UNLIMITED.value:
        return SubscriptionTier.FREE
    if user.subscription_status == "active" or is_trial_active(user, now):
        return SubscriptionTier.UNLIMITED
    return SubscriptionTier.FREE


def should_reset_usage(user: User, now: datetime | None = None) -> bool:
    if user.usage_reset_at is None:
        return True
    return (now or utcnow()) >= _as_utc(user.usage_reset_at) + MONTHLY_RESET_INTERVAL


def current_usage(user: User, limit_type: str, now: datetime | None = None) -> int:
    if should_reset_usage(user, now):
        return 0
    return int(getattr(user, _USAGE_COLUMNS[limit_type]) or 0)


def _evaluate(current: int, limit: int) -> LimitCheckResult:
    if current >= limit:
        return LimitCheckResult(allowed=False, current=current, limit=limit, reason="limit_exceeded")
    return LimitCheckResult(
        allowed=True, current=current, limit=limit, warning=current >= limit * WARNING_THRESHOLD
    )


def check_usage_limit(user: User, limit_type: str, now: datetime | None = None) -> LimitCheckResult:
    """Monthly extraction/chat quota; stale counters count as zero."""
    if user_tier(user, now) == SubscriptionTier.UNLIMITED:
        return LimitCheckResult(allowed=True, current=0, limit=None)
    return _evaluate(current_usage(user, limit_type, now), FREE_TIER_LIMITS[limit_type])


def check_resource_limit(user: User, limit_type: str, current_count: int) -> LimitCheckResult:
    if user_tier(user) == SubscriptionTier.UNLIMITED:
        return LimitCheckResult(allowed=True, current=current_count, limit=None)
    return _evaluate(current_count, FREE_TIER_LIMITS[limit_type])


def _reset_counters(user: User, now: datetime) -> None:
    user.llm_extractions_this_month = 0
    user.chat_messages_this_month = 0
    user.usage_reset_at = now


def increment_usage(user: User, limit_type: str, now: datetime | None = None) -> int:
    """Bump a monthly counter, starting a fresh period first when stale."""
    now = now or utcnow()
    if should_reset_usage(user, now):
        _reset_counters(user, now)
    column = _USAGE_COLUMNS[limit_type]
    value = int(getattr(user, column) or 0) + 1
    setattr(user, column, value)
    return value


def consume_usage(user: User, limit_type: str, now: datetime | None = None) -> LimitCheckResult:
    """Check then increment; raises `LimitError` when the quota is spent."""
    result = check_usage_limit(user, limit_type, now)
    if not result.allowed:
        raise LimitError(limit_type, result.limit or 0, f"Monthly {limit_type} limit reached")
    increment_usage(user, limit_type, now)
    return result


async def ensure_project_quota(session: AsyncSession, *, user: User) -> None:
    count = int(
        (await session.execute(select(func.count(Project.id)).where(Project.user_id == user.id))).scalar()
        or 0
    )
    result = check_resource_limit(user, "projects", count)
    if not result.allowed:
        raise LimitError("projects", result.limit or 0, "Project limit reached for your plan")


async def ensure_document_quota(session: AsyncSession, *, user: User, project_id: int) -> None:
    count = int(
        (
            await session.execute(
                select(func.count(Document.id)).where(Document.project_id == project_id)
            )
        ).scalar()
        or 0
    )
    result = check_resource_limit(user, "documentsPerProject", count)
    if not result.allowed:
        raise LimitError("documentsPerProject", result.limit or 0, "Document limit reached for this project")


async def ensure_entity_quota(session: AsyncSession, *, user: User, project_id: int) -> None:
    count = int(
        (
            await session.execute(select(func.count(Entity.id)).where(Entity.project_id == project_id))
        ).scalar()
        or 0
    )
    result = check_resource_limit(user, "entitiesPerProject", count)
    if not result.allowed:
        raise LimitError("entitiesPerProject", result.limit or 0, "Entity limit reached for this project")


async def usage_stats(session: AsyncSession, *, user: User) -> dict[str, Any]:
    """Per-limit snapshot for the settings page."""
    project_count = int(
        (await session.execute(select(func.count(Project.id)).where(Project.user_id == user.id))).scalar()
        or 0
    )
    return {
        "tier": user_tier(user).value,
        "status": user.subscription_status or "free",
        "trialActive": is_trial_active(user),
        "trialExpired": is_trial_expired(user),
        "trialEndsAt": user.trial_ends_at.isoformat() if user.trial_ends_at else None,
        "projects": check_resource_limit(user, "projects", project_count).to_dict(),
        "llmExtractionsPerMonth": check_usage_limit(user, "llmExtractionsPerMonth").to_dict(),
        "chatMessagesPerMonth": check_usage_limit(user, "chatMessagesPerMonth").to_dict(),
    }


async def reset_stale_usage_counters(session: AsyncSession, *, now: datetime | None = None) -> int:
    """Zero stale counters; users without usage or inside their period are left alone."""
    now = now or utcnow()
    users = (
        await session.execute(select(User).where(User.usage_reset_at.is_not(None)))
    ).scalars().all()
    reset_count = 0
    for user in users:
        if not should_reset_usage(user, now):
            continue
        _reset_counters(user, now)
        reset_count += 1
    if reset_count:
        logger.info("Reset stale usage counters for %s users", reset_count)
    return reset_count
