from datetime import datetime
from typing import List, Optional

from app.models.challenge import Challenge, EntityId, Participant
from app.services.progress_computers.base import (
    ProgressComputer,
    ProgressDelta,
    bucket_by_day,
    is_per_habit_mode,
)


class CumulativeComputer(ProgressComputer):
    """
    Running total over the challenge window. Also used for team goals, where
    the team total is the sum of the participants' individual totals.

    single/any sum entry values (an entry without a value counts as 1);
    all/minimum score one point per qualifying day.
    """

    def _compute(
        self,
        challenge: Challenge,
        participant: Participant,
        habit_ids: List[EntityId],
        now: datetime,
    ) -> Optional[ProgressDelta]:
        start = challenge.start_date.date() if challenge.start_date else None
        end = challenge.end_date.date() if challenge.end_date else None

        entries = self.repository.get_completed_entries(
            participant.user_id, habit_ids, start=start, end=end
        )
        # Keep the window exact even if the store is looser than the query
        entries = [
            e
            for e in entries
            if (start is None or e.date >= start) and (end is None or e.date <= end)
        ]

        if is_per_habit_mode(challenge.habit_match_mode):
            value = len(self._qualifying_days(challenge, habit_ids, bucket_by_day(entries)))
        else:
            value = sum(e.value if e.value is not None else 1 for e in entries if e.completed)

        return {"current_value": value}
