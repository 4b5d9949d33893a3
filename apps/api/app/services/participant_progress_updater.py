"""
Participant Progress Updater

Merges a progress computer's output into the stored participant record and
flags the one-time transition to "completed" when the target is reached.
Completion is terminal: a completed participant is no longer updated.
"""

from datetime import datetime
from typing import Any, Optional, Tuple

from app.models.challenge import (
    Challenge,
    Participant,
    ParticipantProgress,
    ParticipantStatus,
    utc_now,
)
from app.services.progress_computers import ProgressDelta


def apply_progress(
    challenge: Challenge,
    user_id: Any,
    delta: ProgressDelta,
    now: Optional[datetime] = None,
) -> Optional[Tuple[Participant, bool]]:
    """
    Returns (participant, completed_now), or None when the participant is
    missing or not active.
    """
    participant = challenge.get_participant(user_id)
    if participant is None or participant.status != ParticipantStatus.ACTIVE:
        return None

    now = now or utc_now()
    merged = participant.progress.model_dump()
    merged.update(delta)
    merged["last_logged_at"] = now
    if "best_streak" in delta:
        merged["best_streak"] = max(
            participant.progress.best_streak, int(delta["best_streak"] or 0)
        )
    participant.progress = ParticipantProgress.model_validate(merged)

    completed_now = False
    if (
        participant.progress.current_value >= challenge.rules.target_value
        and participant.status != ParticipantStatus.COMPLETED
    ):
        participant.status = ParticipantStatus.COMPLETED
        participant.completed_at = now
        completed_now = True

    return participant, completed_now
