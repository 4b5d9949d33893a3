from datetime import datetime
from typing import List, Optional

from app.models.challenge import Challenge, EntityId, Participant
from app.services.progress_computers.base import (
    ProgressComputer,
    ProgressDelta,
    bucket_by_day,
    is_per_habit_mode,
    round_half_up,
)


class ConsistencyComputer(ProgressComputer):
    """Share of the elapsed challenge days that were logged."""

    def _compute(
        self,
        challenge: Challenge,
        participant: Participant,
        habit_ids: List[EntityId],
        now: datetime,
    ) -> Optional[ProgressDelta]:
        if challenge.start_date is None:
            raise ValueError(f"Consistency challenge {challenge.id} has no start date")

        start = challenge.start_date
        until = min(now, challenge.end_date) if challenge.end_date else now

        if until < start:
            return None
        # Calendar days, inclusive of both ends, like the logged-day count
        duration_days = (until.date() - start.date()).days + 1

        entries = self.repository.get_completed_entries(
            participant.user_id, habit_ids, start=start.date(), end=until.date()
        )
        days = bucket_by_day(
            e for e in entries if start.date() <= e.date <= until.date()
        )

        if is_per_habit_mode(challenge.habit_match_mode):
            logged_days = len(self._qualifying_days(challenge, habit_ids, days))
        else:
            logged_days = len(days)

        return {
            "current_value": logged_days,
            "completion_rate": round_half_up(logged_days * 100 / duration_days),
        }
