from datetime import datetime, timedelta
from typing import List, Optional

from app.models.challenge import Challenge, EntityId, Participant
from app.services.progress_computers.base import (
    ProgressComputer,
    ProgressDelta,
    bucket_by_day,
    day_qualifies,
)


class StreakComputer(ProgressComputer):
    """Consecutive qualifying days, counted backward from today (UTC)."""

    def _compute(
        self,
        challenge: Challenge,
        participant: Participant,
        habit_ids: List[EntityId],
        now: datetime,
    ) -> Optional[ProgressDelta]:
        previous_best = participant.progress.best_streak

        entries = self.repository.get_completed_entries(participant.user_id, habit_ids)
        if not entries:
            return {"current_streak": 0, "current_value": 0, "best_streak": previous_best}

        days = bucket_by_day(entries)
        streak = 0
        day = now.date()
        while day in days and day_qualifies(
            challenge.habit_match_mode, habit_ids, days[day], challenge.habit_match_minimum
        ):
            streak += 1
            day -= timedelta(days=1)

        return {
            "current_streak": streak,
            "current_value": streak,
            "best_streak": max(previous_best, streak),
        }
