"""Tests for the challenge status sweep and its in-process scheduler."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from app.models.challenge import ActivityType, ChallengeStatus
from app.services.challenge_lifecycle_service import (
    ChallengeLifecycleScheduler,
    ChallengeLifecycleService,
)

from fakes import make_challenge

NOW = datetime(2024, 2, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def lifecycle(repository, cache, feed, notifications):
    return ChallengeLifecycleService(
        repository=repository, cache=cache, feed=feed, notifications=notifications
    )


async def test_upcoming_challenge_starts(repository, cache, lifecycle, feed, notifications):
    repository.add_challenge(
        make_challenge(
            id="c1",
            status="upcoming",
            start_date=datetime(2024, 2, 1, tzinfo=timezone.utc),
            end_date=datetime(2024, 2, 28, tzinfo=timezone.utc),
            participants=[{"user_id": "creator"}, {"user_id": "u2", "linked_habit_ids": ["h-1"]}],
        )
    )
    cache.warm("u2")

    summary = await lifecycle.transition_challenges(NOW)

    assert summary == {"activated": 1, "completed": 0, "errors": []}
    assert repository.stored("c1").status == ChallengeStatus.ACTIVE
    assert [c.args[2] for c in feed.record.await_args_list] == [ActivityType.CHALLENGE_STARTED]
    notifications.notify_started.assert_awaited_once()
    # Entries warmed while upcoming must not hide the new challenge
    assert cache.is_cold("u2")


async def test_ended_challenge_completes_with_stats(repository, lifecycle, feed, notifications):
    repository.add_challenge(
        make_challenge(
            id="c1",
            end_date=datetime(2024, 1, 31, 23, 59, tzinfo=timezone.utc),
            participants=[
                {"user_id": "creator", "status": "completed", "progress": {"current_value": 30}},
                {"user_id": "u2", "progress": {"current_value": 10}},
            ],
        )
    )

    summary = await lifecycle.transition_challenges(NOW)

    assert summary["completed"] == 1
    stored = repository.stored("c1")
    assert stored.status == ChallengeStatus.COMPLETED
    data = feed.record.await_args.args[3]
    assert feed.record.await_args.args[2] == ActivityType.CHALLENGE_COMPLETED
    assert data["stats"]["completed_count"] == 1
    assert data["stats"]["average_progress"] == 20
    notifications.notify_ended.assert_awaited_once()


async def test_sweep_is_idempotent(repository, lifecycle, feed):
    repository.add_challenge(
        make_challenge(
            id="c1",
            status="upcoming",
            start_date=datetime(2024, 2, 1, tzinfo=timezone.utc),
            end_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
        )
    )

    await lifecycle.transition_challenges(NOW)
    second = await lifecycle.transition_challenges(NOW)

    assert second == {"activated": 0, "completed": 0, "errors": []}
    assert feed.record.await_count == 1


async def test_future_and_terminal_challenges_are_untouched(repository, lifecycle):
    repository.add_challenge(
        make_challenge(
            id="later",
            status="upcoming",
            start_date=datetime(2024, 3, 1, tzinfo=timezone.utc),
            end_date=datetime(2024, 3, 31, tzinfo=timezone.utc),
        )
    )
    repository.add_challenge(
        make_challenge(
            id="cancelled",
            status="cancelled",
            end_date=datetime(2024, 1, 15, tzinfo=timezone.utc),
        )
    )

    summary = await lifecycle.transition_challenges(NOW)

    assert summary == {"activated": 0, "completed": 0, "errors": []}
    assert repository.stored("later").status == ChallengeStatus.UPCOMING
    assert repository.stored("cancelled").status == ChallengeStatus.CANCELLED


async def test_activate_is_gated_on_status(lifecycle):
    challenge = make_challenge(status="active")

    assert await lifecycle.activate(challenge) is False
    assert await lifecycle.complete(make_challenge(status="expired")) is False


async def test_scheduler_runs_sweep_until_stopped():
    service = AsyncMock()
    scheduler = ChallengeLifecycleScheduler(lifecycle=service, interval_seconds=3600)

    scheduler.start()
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert scheduler.running
    service.transition_challenges.assert_awaited_once()

    await scheduler.stop()
    assert not scheduler.running


async def test_scheduler_survives_sweep_failure():
    service = AsyncMock()
    service.transition_challenges.side_effect = RuntimeError("boom")
    scheduler = ChallengeLifecycleScheduler(lifecycle=service, interval_seconds=3600)

    scheduler.start()
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert scheduler.running
    await scheduler.stop()
