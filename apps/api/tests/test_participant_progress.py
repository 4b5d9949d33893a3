"""Tests for progress merging, completion, milestones and aggregate stats."""

from app.models.challenge import ChallengeStatus, Milestone, ParticipantStatus
from app.services.challenge_stats import refresh_stats, team_goal_reached
from app.services.milestone_detector import detect_milestones
from app.services.participant_progress_updater import apply_progress

from fakes import at, make_challenge


def test_merge_overwrites_only_given_fields():
    challenge = make_challenge(
        participants=[
            {"user_id": "u1", "progress": {"current_value": 2, "completion_rate": 40}}
        ]
    )

    participant, completed_now = apply_progress(
        challenge, "u1", {"current_value": 3}, now=at(5)
    )

    assert participant.progress.current_value == 3
    assert participant.progress.completion_rate == 40
    assert participant.progress.last_logged_at == at(5)
    assert completed_now is False


def test_completion_fires_exactly_once():
    challenge = make_challenge(
        rules={"target_value": 5}, participants=[{"user_id": "u1"}]
    )

    participant, completed_now = apply_progress(challenge, "u1", {"current_value": 5}, now=at(5))
    assert completed_now is True
    assert participant.status == ParticipantStatus.COMPLETED
    assert participant.completed_at == at(5)

    # Same value again: completed participants are no longer updated
    assert not apply_progress(challenge, "u1", {"current_value": 5}, now=at(6))
    assert challenge.get_participant("u1").completed_at == at(5)


def test_missing_or_inactive_participant_is_a_no_op():
    challenge = make_challenge(
        participants=[{"user_id": "u1", "status": "dropped"}]
    )

    assert apply_progress(challenge, "u1", {"current_value": 1}) is None
    assert apply_progress(challenge, "someone-else", {"current_value": 1}) is None


def test_best_streak_is_monotonic_across_updates():
    challenge = make_challenge(participants=[{"user_id": "u1"}])

    for streak, expected_best in [(3, 3), (6, 6), (0, 6), (2, 6)]:
        participant, _ = apply_progress(
            challenge,
            "u1",
            {"current_streak": streak, "current_value": streak, "best_streak": streak},
        )
        assert participant.progress.best_streak == expected_best


def test_milestones_fire_once_each():
    challenge = make_challenge(
        rules={"target_value": 100},
        milestones=[{"value": 10, "label": "Ten"}, {"value": 5, "label": "Five"}],
        participants=[{"user_id": "u1"}],
    )

    participant, _ = apply_progress(challenge, "u1", {"current_value": 7})
    assert [m.value for m in detect_milestones(participant, challenge.milestones)] == [5]

    participant, _ = apply_progress(challenge, "u1", {"current_value": 12})
    assert [m.value for m in detect_milestones(participant, challenge.milestones)] == [10]

    assert detect_milestones(participant, challenge.milestones) == []
    assert participant.milestones_reached == [5, 10]


def test_milestones_crossed_together_are_all_returned():
    participant = make_challenge(
        participants=[{"user_id": "u1", "progress": {"current_value": 25}}]
    ).get_participant("u1")
    milestones = [Milestone(value=v, label=str(v)) for v in (5, 10, 50)]

    assert [m.value for m in detect_milestones(participant, milestones)] == [5, 10]


def test_stats_refresh():
    challenge = make_challenge(
        participants=[
            {"user_id": "a", "progress": {"current_value": 4, "current_streak": 4}},
            {"user_id": "b", "status": "completed", "progress": {"current_value": 9, "current_streak": 9}},
            {"user_id": "c", "status": "dropped", "progress": {"current_value": 30, "current_streak": 30}},
        ]
    )

    stats = refresh_stats(challenge)

    assert stats.participant_count == 2
    assert stats.completed_count == 1
    assert stats.average_progress == 7
    assert stats.top_streak == 9


def test_team_goal_reached_by_collective_total():
    challenge = make_challenge(
        type="team_goal",
        rules={"target_value": 10},
        participants=[
            {"user_id": "a", "progress": {"current_value": 6}},
            {"user_id": "b", "progress": {"current_value": 3}},
        ],
    )
    assert not team_goal_reached(challenge)

    challenge.get_participant("b").progress.current_value = 4
    assert team_goal_reached(challenge)

    challenge.status = ChallengeStatus.COMPLETED
    assert not team_goal_reached(challenge)
