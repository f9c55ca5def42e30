from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from realm_sync import usage_service
from realm_sync.errors import LimitError
from realm_sync.models.project import Project
from realm_sync.models.user import User


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _user(**fields) -> User:
    fields.setdefault("subscription_tier", "free")
    fields.setdefault("llm_extractions_this_month", 0)
    fields.setdefault("chat_messages_this_month", 0)
    return User(email="reader@realmsync.app", **fields)


def test_stale_counters_read_as_zero() -> None:
    user = _user(llm_extractions_this_month=19, usage_reset_at=NOW - timedelta(days=31))
    assert usage_service.current_usage(user, "llmExtractionsPerMonth", NOW) == 0
    assert usage_service.check_usage_limit(user, "llmExtractionsPerMonth", NOW).allowed


def test_warning_at_eighty_percent() -> None:
    user = _user(llm_extractions_this_month=16, usage_reset_at=NOW - timedelta(days=2))
    result = usage_service.check_usage_limit(user, "llmExtractionsPerMonth", NOW)
    assert result.allowed is True
    assert result.warning is True
    assert result.limit == 20


def test_consume_raises_when_spent() -> None:
    user = _user(chat_messages_this_month=50, usage_reset_at=NOW - timedelta(days=1))
    with pytest.raises(LimitError):
        usage_service.consume_usage(user, "chatMessagesPerMonth", NOW)
    assert user.chat_messages_this_month == 50


def test_increment_starts_fresh_period() -> None:
    user = _user(llm_extractions_this_month=12, usage_reset_at=NOW - timedelta(days=45))
    assert usage_service.increment_usage(user, "llmExtractionsPerMonth", NOW) == 1
    assert user.usage_reset_at == NOW


def test_unlimited_tier_needs_active_subscription() -> None:
    active = _user(subscription_tier="unlimited", subscription_status="active")
    lapsed = _user(subscription_tier="unlimited", subscription_status="canceled")

    assert usage_service.check_resource_limit(active, "projects", 99).limit is None
    assert usage_service.check_resource_limit(lapsed, "projects", 3).allowed is False


def test_trial_grants_unlimited_only_until_it_ends() -> None:
    trialing = _user(
        subscription_tier="unlimited", subscription_status="trialing", trial_ends_at=NOW + timedelta(days=2)
    )
    expired = _user(
        subscription_tier="unlimited",
        subscription_status="trialing",
        trial_ends_at=NOW - timedelta(hours=1),
        llm_extractions_this_month=20,
        usage_reset_at=NOW - timedelta(days=1),
    )

    assert usage_service.is_trial_active(trialing, NOW) is True
    assert usage_service.user_tier(trialing, NOW).value == "unlimited"
    assert usage_service.check_usage_limit(trialing, "llmExtractionsPerMonth", NOW).limit is None
    assert usage_service.is_trial_expired(expired, NOW) is True
    assert usage_service.user_tier(expired, NOW).value == "free"
    assert usage_service.check_usage_limit(expired, "llmExtractionsPerMonth", NOW).allowed is False


def test_limit_result_dict_keeps_unlimited_marker() -> None:
    result = usage_service.LimitCheckResult(allowed=True, current=0, limit=None)
    assert result.to_dict() == {"allowed": True, "current": 0, "limit": None, "warning": False}


async def test_reset_stale_usage_counters_only_touches_stale_users(session) -> None:
    stale = _user(llm_extractions_this_month=7, usage_reset_at=NOW - timedelta(days=40))
    fresh = User(
        email="fresh@realmsync.app", llm_extractions_this_month=3, usage_reset_at=NOW - timedelta(days=3)
    )
    never = User(email="never@realmsync.app")
    session.add_all([stale, fresh, never])
    await session.flush()

    reset = await usage_service.reset_stale_usage_counters(session, now=NOW)

    assert reset == 1
    assert stale.llm_extractions_this_month == 0
    assert fresh.llm_extractions_this_month == 3
    assert never.usage_reset_at is None


async def test_project_quota(session, user) -> None:
    session.add_all([Project(user_id=user.id, name=f"P{i}") for i in range(3)])
    await session.flush()
    with pytest.raises(LimitError):
        await usage_service.ensure_project_quota(session, user=user)


async def test_usage_stats_snapshot(session, user) -> None:
    stats = await usage_service.usage_stats(session, user=user)
    assert stats["tier"] == "free"
    assert stats["status"] == "free"
    assert stats["trialActive"] is False
    assert stats["trialEndsAt"] is None
    assert stats["projects"]["limit"] == 3
    assert stats["llmExtractionsPerMonth"]["current"] == 0
