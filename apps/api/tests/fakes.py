"""In-memory stand-ins for the Supabase-backed repository."""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from app.models.challenge import (
    Challenge,
    ChallengeStatus,
    EntityId,
    Habit,
    HabitEntry,
    HabitMatchMode,
    ParticipantStatus,
)
from app.services.challenge_repository import ChallengeRepository

UTC = timezone.utc


def day(n: int, month: int = 1, year: int = 2024) -> date:
    """Calendar day n of the given month (day(1) == 2024-01-01)."""
    return date(year, month, n)


def at(n: int, hour: int = 12) -> datetime:
    return datetime(2024, 1, n, hour, tzinfo=UTC)


def make_challenge(**overrides: Any) -> Challenge:
    data: Dict[str, Any] = {
        "id": "challenge-1",
        "workspace_id": "workspace-1",
        "created_by": "creator",
        "title": "January Challenge",
        "type": "streak",
        "habit_match_mode": "single",
        "start_date": datetime(2024, 1, 1, tzinfo=UTC),
        "end_date": datetime(2024, 1, 31, 23, 59, 59, tzinfo=UTC),
        "status": "active",
        "rules": {"target_value": 30, "target_unit": "days"},
        "participants": [{"user_id": "creator"}],
    }
    data.update(overrides)
    return Challenge.model_validate(data)


class InMemoryChallengeRepository(ChallengeRepository):
    """ChallengeRepository over plain dicts; records round-trip through JSON."""

    def __init__(self):
        super().__init__(client=None)
        self.records: Dict[str, Dict[str, Any]] = {}
        self.habits: Dict[str, Habit] = {}
        self.entries: List[HabitEntry] = []
        self.save_count = 0

    # Test helpers

    def add_challenge(self, challenge: Challenge) -> Challenge:
        self.records[challenge.id] = challenge.to_record()
        return challenge

    def add_habit(
        self,
        habit_id: str,
        user_id: str,
        workspace_habit_id: Optional[str] = None,
        workspace_id: Optional[str] = None,
    ) -> Habit:
        habit = Habit(
            id=habit_id,
            user_id=user_id,
            workspace_habit_id=workspace_habit_id,
            workspace_id=workspace_id,
        )
        self.habits[habit.id] = habit
        return habit

    def add_entry(
        self,
        user_id: str,
        habit_id: str,
        entry_day: date,
        value: Optional[float] = None,
        completed: bool = True,
    ) -> None:
        self.entries.append(
            HabitEntry(
                user_id=user_id,
                habit_id=habit_id,
                date=entry_day,
                completed=completed,
                value=value,
            )
        )

    def stored(self, challenge_id: str) -> Challenge:
        return Challenge.model_validate(self.records[EntityId(challenge_id)])

    def _all(self) -> List[Challenge]:
        return [Challenge.model_validate(r) for r in self.records.values()]

    def _active(self) -> List[Challenge]:
        return [c for c in self._all() if c.status == ChallengeStatus.ACTIVE]

    # ChallengeRepository interface

    def get_challenge(self, challenge_id: str) -> Optional[Challenge]:
        record = self.records.get(EntityId(challenge_id))
        return Challenge.model_validate(record) if record else None

    def insert_challenge(self, challenge: Challenge) -> Challenge:
        return self.add_challenge(challenge)

    def save_challenge(self, challenge: Challenge) -> Challenge:
        self.save_count += 1
        self.records[challenge.id] = challenge.to_record()
        return challenge

    def find_active_by_template_habit(self, workspace_habit_id: str) -> List[Challenge]:
        return [c for c in self._active() if c.habit_id == EntityId(workspace_habit_id)]

    def find_active_linked_to_habit(self, user_id: str, habit_id: str) -> List[Challenge]:
        habit_id = EntityId(habit_id)
        found = []
        for challenge in self._active():
            participant = challenge.get_participant(user_id)
            if participant is not None and habit_id in participant.linked_habits():
                found.append(challenge)
        return found

    def find_active_workspace_wide(self, workspace_id: str) -> List[Challenge]:
        return [
            c
            for c in self._active()
            if c.workspace_id == EntityId(workspace_id)
            and c.habit_id is None
            and c.habit_match_mode == HabitMatchMode.SINGLE
        ]

    def find_active_for_user(self, user_id: str) -> List[Challenge]:
        found = []
        for challenge in self._active():
            participant = challenge.get_participant(user_id)
            if participant is not None and participant.status == ParticipantStatus.ACTIVE:
                found.append(challenge)
        return found

    def find_due_for_activation(self, now: datetime) -> List[Challenge]:
        return [
            c
            for c in self._all()
            if c.status == ChallengeStatus.UPCOMING and c.start_date and c.start_date <= now
        ]

    def find_due_for_completion(self, now: datetime) -> List[Challenge]:
        return [
            c
            for c in self._all()
            if c.status == ChallengeStatus.ACTIVE and c.end_date and c.end_date <= now
        ]

    def get_habit(self, habit_id: str) -> Optional[Habit]:
        return self.habits.get(EntityId(habit_id))

    def find_user_habit_ids(
        self,
        user_id: str,
        workspace_habit_ids: Optional[Iterable[str]] = None,
        workspace_ids: Optional[Iterable[str]] = None,
    ) -> List[EntityId]:
        templates = {EntityId(h) for h in workspace_habit_ids or []}
        workspaces = {EntityId(w) for w in workspace_ids or []}
        return [
            h.id
            for h in self.habits.values()
            if h.user_id == EntityId(user_id)
            and (h.workspace_habit_id in templates or h.workspace_id in workspaces)
        ]

    def get_completed_entries(
        self,
        user_id: str,
        habit_ids: Iterable[str],
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[HabitEntry]:
        wanted = {EntityId(h) for h in habit_ids}
        entries = [
            e
            for e in self.entries
            if e.user_id == EntityId(user_id)
            and e.habit_id in wanted
            and e.completed
            and (start is None or e.date >= start)
            and (end is None or e.date < end + timedelta(days=1))
        ]
        return sorted(entries, key=lambda e: e.date, reverse=True)


class FailingRepository(InMemoryChallengeRepository):
    """Raises on every read, like an unreachable datastore."""

    def get_habit(self, habit_id: str):
        raise ConnectionError("datastore unavailable")

    def find_active_for_user(self, user_id: str):
        raise ConnectionError("datastore unavailable")
