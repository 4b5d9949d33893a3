from app.models.challenge import (
    Challenge,
    ChallengeStats,
    ChallengeStatus,
    ChallengeType,
    ParticipantStatus,
)
from app.services.progress_computers.base import round_half_up


def refresh_stats(challenge: Challenge) -> ChallengeStats:
    """Recompute the aggregate stats after any participant change."""
    counted = [
        p
        for p in challenge.participants
        if p.status in (ParticipantStatus.ACTIVE, ParticipantStatus.COMPLETED)
    ]
    non_dropped = challenge.non_dropped_participants()

    average = 0
    if non_dropped:
        average = round_half_up(
            sum(p.progress.current_value for p in non_dropped) / len(non_dropped)
        )

    challenge.stats = ChallengeStats(
        participant_count=len(counted),
        completed_count=sum(
            1 for p in challenge.participants if p.status == ParticipantStatus.COMPLETED
        ),
        average_progress=average,
        top_streak=max((p.progress.current_streak for p in non_dropped), default=0),
    )
    return challenge.stats


def team_total(challenge: Challenge) -> float:
    return sum(p.progress.current_value for p in challenge.non_dropped_participants())


def team_goal_reached(challenge: Challenge) -> bool:
    """True when an active team goal's collective total reaches its target."""
    return (
        challenge.type == ChallengeType.TEAM_GOAL
        and challenge.status == ChallengeStatus.ACTIVE
        and team_total(challenge) >= challenge.rules.target_value
    )
