"""
Shared pieces of the progress computers: the day-qualification rule, entry
bucketing by UTC calendar day, and the ProgressComputer base class.
"""

import math
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from app.models.challenge import (
    Challenge,
    EntityId,
    HabitEntry,
    HabitMatchMode,
    Participant,
    utc_now,
)
from app.services.challenge_repository import ChallengeRepository

# Keys of ParticipantProgress a computer may return
ProgressDelta = Dict[str, Any]


def day_qualifies(
    mode: HabitMatchMode,
    effective_habit_ids: Iterable[EntityId],
    completed_habit_ids: Set[EntityId],
    minimum: Optional[int] = None,
) -> bool:
    """Whether one calendar day counts under the challenge's match mode."""
    effective = set(effective_habit_ids)
    done = effective & completed_habit_ids

    if mode == HabitMatchMode.ALL:
        return bool(effective) and done == effective
    if mode == HabitMatchMode.MINIMUM:
        if minimum is None:
            raise ValueError("habit_match_minimum is required for minimum mode")
        return len(done) >= minimum
    # single / any
    return len(done) > 0


def bucket_by_day(entries: Iterable[HabitEntry]) -> Dict[date, Set[EntityId]]:
    """Completed habit ids per UTC calendar day."""
    days: Dict[date, Set[EntityId]] = {}
    for entry in entries:
        if not entry.completed:
            continue
        days.setdefault(entry.date, set()).add(entry.habit_id)
    return days


def round_half_up(value: float) -> int:
    """Round halves up (62.5 -> 63)."""
    return int(math.floor(value + 0.5))


def is_per_habit_mode(mode: HabitMatchMode) -> bool:
    """all/minimum combine habits per day instead of counting raw entries."""
    return mode in (HabitMatchMode.ALL, HabitMatchMode.MINIMUM)


class ProgressComputer(ABC):
    """One strategy per challenge type."""

    def __init__(self, repository: ChallengeRepository):
        self.repository = repository

    def compute(
        self,
        challenge: Challenge,
        participant: Participant,
        trigger_habit_id: Any,
        now: Optional[datetime] = None,
    ) -> Optional[ProgressDelta]:
        """
        Return the progress fields to merge into the participant record, or
        None when this computer has nothing to update.
        """
        habit_ids = participant.effective_habit_ids(trigger_habit_id)
        return self._compute(challenge, participant, habit_ids, now or utc_now())

    @abstractmethod
    def _compute(
        self,
        challenge: Challenge,
        participant: Participant,
        habit_ids: List[EntityId],
        now: datetime,
    ) -> Optional[ProgressDelta]:
        pass

    def _qualifying_days(
        self, challenge: Challenge, habit_ids: List[EntityId], days: Dict[date, Set[EntityId]]
    ) -> List[date]:
        return [
            day
            for day, completed in days.items()
            if day_qualifies(
                challenge.habit_match_mode,
                habit_ids,
                completed,
                challenge.habit_match_minimum,
            )
        ]
