"""
Challenge Service

Handles challenge creation, participation, rule edits and leaderboards.

Domain-rule violations raise ValueError and a missing challenge raises
LookupError; the API layer maps them to 400 and 404.
"""

from typing import Any, Dict, List, Optional
from uuid import uuid4

from app.core import analytics
from app.models.challenge import (
    ActivityType,
    Challenge,
    ChallengeCreate,
    ChallengeRules,
    ChallengeRulesUpdate,
    ChallengeStatus,
    ChallengeType,
    EntityId,
    HabitMatchMode,
    Participant,
    ParticipantStatus,
    check_match_minimum,
    utc_now,
)
from app.services.activity_feed_service import ActivityFeedService, activity_feed_service
from app.services.challenge_repository import ChallengeRepository, challenge_repository
from app.services.challenge_stats import refresh_stats
from app.services.logger import logger
from app.services.membership_cache import MembershipCache, membership_cache

OPEN_STATUSES = (ChallengeStatus.UPCOMING, ChallengeStatus.ACTIVE)

RULE_FIELDS = (
    "target_value",
    "target_unit",
    "grace_period_hours",
    "allow_makeup_days",
    "minimum_daily_value",
)


class ChallengeService:
    """Service for managing challenges"""

    def __init__(
        self,
        repository: Optional[ChallengeRepository] = None,
        cache: Optional[MembershipCache] = None,
        feed: Optional[ActivityFeedService] = None,
    ):
        self.repository = repository or challenge_repository
        self.cache = cache or membership_cache
        self.feed = feed or activity_feed_service

    def _get_or_raise(self, challenge_id: str) -> Challenge:
        challenge = self.repository.get_challenge(EntityId(challenge_id))
        if challenge is None:
            raise LookupError(f"Challenge {challenge_id} not found")
        return challenge

    def _require_creator(self, challenge: Challenge, user_id: EntityId, action: str) -> None:
        if challenge.created_by != user_id:
            raise ValueError(f"Only the challenge creator can {action}")

    def _refresh_membership(self, user_id: EntityId) -> None:
        self.cache.invalidate(user_id)
        self.cache.warm(user_id)

    def _validate_linked_habits(
        self,
        user_id: EntityId,
        habit_match_mode: HabitMatchMode,
        habit_match_minimum: Optional[int],
        linked_habit_ids: List[EntityId],
    ) -> List[EntityId]:
        """Ownership and match-mode habit-count requirements for a participation."""
        linked = list(dict.fromkeys(EntityId(h) for h in linked_habit_ids))

        for habit_id in linked:
            habit = self.repository.get_habit(habit_id)
            if habit is None or habit.user_id != user_id:
                raise ValueError(f"Habit {habit_id} does not belong to this user")

        if habit_match_mode == HabitMatchMode.ALL and not linked:
            raise ValueError("This challenge requires at least one linked habit")
        if habit_match_mode == HabitMatchMode.MINIMUM and len(linked) < (
            habit_match_minimum or 1
        ):
            raise ValueError(
                f"This challenge requires at least {habit_match_minimum} linked habits"
            )
        return linked

    async def create_challenge(
        self, workspace_id: str, creator_id: str, payload: ChallengeCreate
    ) -> Challenge:
        """
        Create a challenge in a workspace. The creator becomes the first
        participant. The challenge starts active when its start date has
        already passed, upcoming otherwise.
        """
        if not isinstance(payload, ChallengeCreate):
            payload = ChallengeCreate.model_validate(payload)

        creator_id = EntityId(creator_id)
        now = utc_now()
        start_date = payload.start_date or now

        linked = self._validate_linked_habits(
            creator_id,
            payload.habit_match_mode,
            payload.habit_match_minimum,
            payload.linked_habit_ids,
        )

        challenge = Challenge(
            id=str(uuid4()),
            workspace_id=workspace_id,
            created_by=creator_id,
            title=payload.title.strip(),
            description=payload.description,
            icon=payload.icon,
            type=payload.type,
            habit_id=payload.habit_id,
            habit_match_mode=payload.habit_match_mode,
            habit_match_minimum=payload.habit_match_minimum,
            start_date=start_date,
            end_date=payload.end_date,
            status=ChallengeStatus.ACTIVE if start_date <= now else ChallengeStatus.UPCOMING,
            rules=payload.rules,
            milestones=sorted(payload.milestones, key=lambda m: m.value),
            participants=[Participant(user_id=creator_id, joined_at=now, linked_habit_ids=linked)],
            settings=payload.settings,
            reward=payload.reward,
        )
        refresh_stats(challenge)
        self.repository.insert_challenge(challenge)

        logger.info(
            f"Created challenge '{challenge.title}' by user {creator_id}",
            {
                "challenge_id": challenge.id,
                "workspace_id": challenge.workspace_id,
                "type": challenge.type.value,
            },
        )

        self._refresh_membership(creator_id)
        return challenge

    async def get_challenge(self, challenge_id: str) -> Challenge:
        return self._get_or_raise(challenge_id)

    async def join_challenge(
        self, challenge_id: str, user_id: str, linked_habit_ids: Optional[List[str]] = None
    ) -> Challenge:
        challenge = self._get_or_raise(challenge_id)
        user_id = EntityId(user_id)

        if challenge.status not in OPEN_STATUSES:
            raise ValueError("This challenge is no longer open")
        if challenge.status == ChallengeStatus.ACTIVE and not challenge.settings.allow_late_join:
            raise ValueError("This challenge does not allow late joins")

        existing = challenge.get_participant(user_id)
        if existing is not None and existing.status != ParticipantStatus.DROPPED:
            raise ValueError("Already participating in this challenge")

        max_participants = challenge.settings.max_participants
        if max_participants and len(challenge.non_dropped_participants()) >= max_participants:
            raise ValueError("This challenge is full")

        linked = self._validate_linked_habits(
            user_id,
            challenge.habit_match_mode,
            challenge.habit_match_minimum,
            linked_habit_ids or [],
        )

        if existing is not None:
            # One record per (challenge, user): a returning member reuses theirs
            existing.status = ParticipantStatus.ACTIVE
            existing.linked_habit_ids = linked
            existing.linked_habit_id = None
            existing.joined_at = utc_now()
        else:
            challenge.participants.append(Participant(user_id=user_id, linked_habit_ids=linked))

        refresh_stats(challenge)
        self.repository.save_challenge(challenge)

        await self.feed.record(
            challenge.workspace_id,
            user_id,
            ActivityType.CHALLENGE_JOINED,
            {"challengeId": challenge.id, "challengeTitle": challenge.title},
        )
        analytics.track_challenge_joined(
            user_id, challenge.id, {"type": challenge.type.value, "linked_habits": len(linked)}
        )

        self._refresh_membership(user_id)
        return challenge

    async def leave_challenge(self, challenge_id: str, user_id: str) -> Challenge:
        challenge = self._get_or_raise(challenge_id)
        user_id = EntityId(user_id)

        if challenge.created_by == user_id:
            raise ValueError("The creator cannot leave a challenge, cancel it instead")

        participant = challenge.get_participant(user_id)
        if participant is None or participant.status == ParticipantStatus.DROPPED:
            raise ValueError("Not participating in this challenge")
        if participant.status == ParticipantStatus.COMPLETED:
            raise ValueError("A completed challenge cannot be left")

        participant.status = ParticipantStatus.DROPPED
        refresh_stats(challenge)
        self.repository.save_challenge(challenge)

        self._refresh_membership(user_id)
        return challenge

    async def cancel_challenge(self, challenge_id: str, user_id: str) -> Challenge:
        challenge = self._get_or_raise(challenge_id)
        self._require_creator(challenge, EntityId(user_id), "cancel it")

        if challenge.status not in OPEN_STATUSES:
            raise ValueError(f"A {challenge.status.value} challenge cannot be cancelled")

        challenge.status = ChallengeStatus.CANCELLED
        self.repository.save_challenge(challenge)

        for participant in challenge.participants:
            self.cache.invalidate(participant.user_id)

        logger.info(
            f"Cancelled challenge {challenge.id}", {"challenge_id": challenge.id}
        )
        return challenge

    async def update_challenge_rules(
        self, challenge_id: str, user_id: str, changes: ChallengeRulesUpdate
    ) -> Challenge:
        """
        Edit rules before the challenge starts. A new habit_match_minimum is
        checked against every active participant's linked habits, and the
        whole edit is rejected if any participant would fall short.
        """
        if not isinstance(changes, ChallengeRulesUpdate):
            changes = ChallengeRulesUpdate.model_validate(changes)

        challenge = self._get_or_raise(challenge_id)
        self._require_creator(challenge, EntityId(user_id), "edit its rules")
        if challenge.status != ChallengeStatus.UPCOMING:
            raise ValueError("Rules can only be edited before the challenge starts")

        provided = changes.model_dump(exclude_unset=True)

        rules = challenge.rules.model_dump()
        rules.update({k: v for k, v in provided.items() if k in RULE_FIELDS and v is not None})
        new_rules = ChallengeRules.model_validate(rules)

        minimum = provided.get("habit_match_minimum", challenge.habit_match_minimum)
        check_match_minimum(challenge.habit_match_mode, minimum)
        if challenge.habit_match_mode == HabitMatchMode.MINIMUM:
            for participant in challenge.participants:
                if participant.status != ParticipantStatus.ACTIVE:
                    continue
                if len(participant.linked_habits()) < minimum:
                    raise ValueError(
                        f"habit_match_minimum {minimum} exceeds the linked habits of "
                        f"participant {participant.user_id}"
                    )

        challenge.rules = new_rules
        challenge.habit_match_minimum = minimum
        if changes.milestones is not None:
            challenge.milestones = sorted(changes.milestones, key=lambda m: m.value)

        self.repository.save_challenge(challenge)
        return challenge

    async def get_leaderboard(self, challenge_id: str) -> List[Dict[str, Any]]:
        challenge = self._get_or_raise(challenge_id)
        if not challenge.settings.show_leaderboard:
            raise ValueError("The leaderboard is hidden for this challenge")

        def score(participant: Participant) -> float:
            if challenge.type == ChallengeType.STREAK:
                return participant.progress.current_streak
            if challenge.type == ChallengeType.CONSISTENCY:
                return participant.progress.completion_rate
            return participant.progress.current_value

        ranked = sorted(challenge.non_dropped_participants(), key=score, reverse=True)

        leaderboard = []
        for rank, participant in enumerate(ranked, start=1):
            leaderboard.append(
                {
                    "rank": rank,
                    "user_id": (
                        f"participant-{rank}"
                        if challenge.settings.anonymize_leaderboard
                        else participant.user_id
                    ),
                    "status": participant.status.value,
                    "score": score(participant),
                    "progress": participant.progress.model_dump(mode="json"),
                }
            )
        return leaderboard


# Global instance
challenge_service = ChallengeService()
