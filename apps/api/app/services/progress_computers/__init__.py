"""
Progress computers, one per challenge type.

get_progress_computer() is the single dispatch point; adding a challenge type
means adding a computer class and one registry entry.
"""

from typing import Dict, Type, Union

from app.models.challenge import ChallengeType
from app.services.challenge_repository import ChallengeRepository
from app.services.progress_computers.base import (
    ProgressComputer,
    ProgressDelta,
    bucket_by_day,
    day_qualifies,
)
from app.services.progress_computers.consistency import ConsistencyComputer
from app.services.progress_computers.cumulative import CumulativeComputer
from app.services.progress_computers.streak import StreakComputer

PROGRESS_COMPUTERS: Dict[ChallengeType, Type[ProgressComputer]] = {
    ChallengeType.STREAK: StreakComputer,
    ChallengeType.CUMULATIVE: CumulativeComputer,
    ChallengeType.CONSISTENCY: ConsistencyComputer,
    ChallengeType.TEAM_GOAL: CumulativeComputer,
}


def get_progress_computer(
    challenge_type: Union[ChallengeType, str], repository: ChallengeRepository
) -> ProgressComputer:
    try:
        computer_cls = PROGRESS_COMPUTERS[ChallengeType(challenge_type)]
    except (KeyError, ValueError):
        raise ValueError(f"No progress computer for challenge type '{challenge_type}'")
    return computer_cls(repository)


__all__ = [
    "PROGRESS_COMPUTERS",
    "ProgressComputer",
    "ProgressDelta",
    "StreakComputer",
    "CumulativeComputer",
    "ConsistencyComputer",
    "bucket_by_day",
    "day_qualifies",
    "get_progress_computer",
]
