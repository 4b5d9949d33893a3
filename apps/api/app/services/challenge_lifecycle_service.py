"""
Challenge Lifecycle Service

Advances challenge status by wall-clock date:
- upcoming -> active once start_date has passed
- active -> completed once end_date has passed

Each transition is gated on the stored status, so running the sweep twice
(or from both the in-process scheduler and the Celery beat task) is safe.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

from app.core.config import settings
from app.models.challenge import ActivityType, Challenge, ChallengeStatus, utc_now
from app.services.activity_feed_service import ActivityFeedService, activity_feed_service
from app.services.challenge_notification_service import (
    ChallengeNotificationService,
    challenge_notification_service,
)
from app.services.challenge_repository import ChallengeRepository, challenge_repository
from app.services.challenge_stats import refresh_stats
from app.services.logger import logger
from app.services.membership_cache import MembershipCache, membership_cache


class ChallengeLifecycleService:
    def __init__(
        self,
        repository: Optional[ChallengeRepository] = None,
        cache: Optional[MembershipCache] = None,
        feed: Optional[ActivityFeedService] = None,
        notifications: Optional[ChallengeNotificationService] = None,
    ):
        self.repository = repository or challenge_repository
        self.cache = cache or membership_cache
        self.feed = feed or activity_feed_service
        self.notifications = notifications or challenge_notification_service

    async def transition_challenges(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utc_now()
        activated = 0
        completed = 0
        errors = []

        for challenge in self.repository.find_due_for_activation(now):
            try:
                if await self.activate(challenge):
                    activated += 1
            except Exception as e:
                logger.error(
                    f"Failed to activate challenge {challenge.id}",
                    {"error": str(e), "challenge_id": challenge.id},
                )
                errors.append(str(e))

        for challenge in self.repository.find_due_for_completion(now):
            try:
                if await self.complete(challenge):
                    completed += 1
            except Exception as e:
                logger.error(
                    f"Failed to complete challenge {challenge.id}",
                    {"error": str(e), "challenge_id": challenge.id},
                )
                errors.append(str(e))

        if activated or completed:
            logger.info(
                f"Challenge sweep: {activated} started, {completed} completed",
                {"activated": activated, "completed": completed, "errors": len(errors)},
            )
        return {"activated": activated, "completed": completed, "errors": errors}

    async def activate(self, challenge: Challenge) -> bool:
        if challenge.status != ChallengeStatus.UPCOMING:
            return False

        challenge.status = ChallengeStatus.ACTIVE
        self.repository.save_challenge(challenge)

        # Entries warmed while the challenge was upcoming do not include it
        for participant in challenge.participants:
            self.cache.invalidate(participant.user_id)

        await self.feed.record(
            challenge.workspace_id,
            challenge.created_by,
            ActivityType.CHALLENGE_STARTED,
            {
                "challengeId": challenge.id,
                "challengeTitle": challenge.title,
                "participantCount": challenge.stats.participant_count,
            },
        )
        await self.notifications.notify_started(challenge)
        return True

    async def complete(self, challenge: Challenge) -> bool:
        if challenge.status != ChallengeStatus.ACTIVE:
            return False

        challenge.status = ChallengeStatus.COMPLETED
        refresh_stats(challenge)
        self.repository.save_challenge(challenge)

        await self.feed.record(
            challenge.workspace_id,
            challenge.created_by,
            ActivityType.CHALLENGE_COMPLETED,
            {
                "challengeId": challenge.id,
                "challengeTitle": challenge.title,
                "stats": challenge.stats.model_dump(),
            },
        )
        await self.notifications.notify_ended(challenge)
        return True


class ChallengeLifecycleScheduler:
    """Runs the lifecycle sweep on a fixed interval inside the API process."""

    def __init__(
        self,
        lifecycle: Optional[ChallengeLifecycleService] = None,
        interval_seconds: Optional[int] = None,
    ):
        self.lifecycle = lifecycle or challenge_lifecycle_service
        self.interval_seconds = interval_seconds or settings.CHALLENGE_SWEEP_INTERVAL_SECONDS
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Challenge lifecycle scheduler started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            try:
                await self.lifecycle.transition_challenges()
            except Exception as e:
                logger.error("Challenge lifecycle sweep failed", {"error": str(e)})
            await asyncio.sleep(self.interval_seconds)


# Global instances
challenge_lifecycle_service = ChallengeLifecycleService()
challenge_lifecycle_scheduler = ChallengeLifecycleScheduler()
