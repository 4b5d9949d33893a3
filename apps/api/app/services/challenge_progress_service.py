"""
Challenge Progress Service

Entry point called after a completed check-in is stored. For the checked-in
(user, habit) it:

1. consults the membership cache and returns early for unrelated habits
2. resolves the candidate active challenges
3. recomputes the participant's progress with the computer for each
   challenge type, merges it, detects completion and milestones
4. persists the challenge document and emits feed, push and analytics events

A check-in must never fail because of challenge bookkeeping, so every
failure here is logged and turned into a {"processed": False} result.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from app.core import analytics
from app.models.challenge import (
    ActivityType,
    Challenge,
    ChallengeStatus,
    EntityId,
    ParticipantStatus,
    utc_now,
)
from app.services.activity_feed_service import ActivityFeedService, activity_feed_service
from app.services.challenge_notification_service import (
    ChallengeNotificationService,
    challenge_notification_service,
)
from app.services.challenge_query_resolver import ChallengeQueryResolver
from app.services.challenge_repository import ChallengeRepository, challenge_repository
from app.services.challenge_stats import refresh_stats, team_goal_reached, team_total
from app.services.logger import logger
from app.services.membership_cache import MembershipCache, membership_cache
from app.services.milestone_detector import detect_milestones
from app.services.participant_progress_updater import apply_progress
from app.services.progress_computers import get_progress_computer


class ChallengeProgressService:
    """Recomputes challenge progress for check-ins"""

    def __init__(
        self,
        repository: Optional[ChallengeRepository] = None,
        cache: Optional[MembershipCache] = None,
        feed: Optional[ActivityFeedService] = None,
        notifications: Optional[ChallengeNotificationService] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.repository = repository or challenge_repository
        self.cache = cache or membership_cache
        self.feed = feed or activity_feed_service
        self.notifications = notifications or challenge_notification_service
        self.resolver = ChallengeQueryResolver(self.repository)
        self.clock = clock or utc_now

    def warm_cache_for_user(self, user_id: str) -> None:
        self.cache.warm(user_id)

    def invalidate_cache(self, user_id: str) -> None:
        self.cache.invalidate(user_id)

    async def process_challenge_progress(self, user_id: str, habit_id: str) -> Dict[str, Any]:
        try:
            user_id = EntityId(user_id)
            habit_id = EntityId(habit_id)
        except ValueError as e:
            return {"processed": False, "message": str(e)}

        try:
            cold = self.cache.is_cold(user_id)
            if not cold and self.cache.should_skip(user_id, habit_id):
                return {
                    "processed": False,
                    "message": "Habit is not linked to any active challenge",
                }

            habit = self.repository.get_habit(habit_id)
            if habit is None:
                return {"processed": False, "message": f"Habit {habit_id} not found"}

            now = self.clock()
            updates: List[Dict[str, Any]] = []

            for challenge in self.resolver.resolve(user_id, habit_id, habit):
                participant = challenge.get_participant(user_id)
                if participant is None or participant.status != ParticipantStatus.ACTIVE:
                    continue

                # One bad challenge must not block the rest of the batch
                try:
                    update = await self._update_challenge(challenge, user_id, habit_id, now)
                except Exception as e:
                    logger.error(
                        f"Failed to update progress for challenge {challenge.id}",
                        {"error": str(e), "challenge_id": challenge.id, "user_id": user_id},
                    )
                    continue
                if update:
                    updates.append(update)

            if cold:
                self.warm_cache_for_user(user_id)

            return {"processed": True, "updates": updates}

        except Exception as e:
            logger.error(
                f"Failed to process challenge progress for user {user_id}",
                {"error": str(e), "user_id": user_id, "habit_id": habit_id},
            )
            return {"processed": False, "error": str(e)}

    async def _update_challenge(
        self,
        challenge: Challenge,
        user_id: EntityId,
        habit_id: EntityId,
        now: datetime,
    ) -> Optional[Dict[str, Any]]:
        participant = challenge.get_participant(user_id)
        computer = get_progress_computer(challenge.type, self.repository)

        delta = computer.compute(challenge, participant, habit_id, now)
        if delta is None:
            return None

        result = apply_progress(challenge, user_id, delta, now)
        if not result:
            return None
        participant, completed_now = result

        crossed = detect_milestones(participant, challenge.milestones)
        refresh_stats(challenge)

        team_completed = team_goal_reached(challenge)
        if team_completed:
            challenge.status = ChallengeStatus.COMPLETED

        self.repository.save_challenge(challenge)

        for milestone in crossed:
            await self.feed.record(
                challenge.workspace_id,
                user_id,
                ActivityType.CHALLENGE_MILESTONE,
                {
                    "challengeId": challenge.id,
                    "challengeTitle": challenge.title,
                    "milestone": milestone.value,
                    "label": milestone.label,
                },
            )
            await self.notifications.notify_milestone(challenge, user_id, milestone)
            analytics.track_challenge_milestone(
                user_id, challenge.id, milestone.value, {"type": challenge.type.value}
            )

        if completed_now:
            await self.feed.record(
                challenge.workspace_id,
                user_id,
                ActivityType.CHALLENGE_COMPLETED,
                {
                    "challengeId": challenge.id,
                    "challengeTitle": challenge.title,
                    "finalValue": participant.progress.current_value,
                },
            )
            await self.notifications.notify_completed(challenge, user_id)
            analytics.track_challenge_completed(
                user_id, challenge.id, {"type": challenge.type.value}
            )

        if team_completed:
            logger.info(
                f"Team goal reached for challenge {challenge.id}",
                {"challenge_id": challenge.id, "team_total": team_total(challenge)},
            )
            await self.feed.record(
                challenge.workspace_id,
                user_id,
                ActivityType.CHALLENGE_COMPLETED,
                {
                    "challengeId": challenge.id,
                    "challengeTitle": challenge.title,
                    "teamTotal": team_total(challenge),
                    "stats": challenge.stats.model_dump(),
                },
            )

        return {
            "challenge_id": challenge.id,
            "type": challenge.type.value,
            "progress": participant.progress.model_dump(mode="json"),
            "status": participant.status.value,
        }


# Global instance
challenge_progress_service = ChallengeProgressService()
