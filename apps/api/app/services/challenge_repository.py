"""
Challenge Repository

Single data-access seam for the challenge progress engine, the membership
service and the lifecycle sweep. Rows are validated into the models in
app.models.challenge on the way out and serialised back on the way in.

Participants are embedded in the challenge document (JSON column), so the
"linked habit" lookups below use PostgREST JSON containment (`cs`) filters.
"""

import json
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from app.core.database import get_supabase_client
from app.models.challenge import (
    Challenge,
    ChallengeStatus,
    EntityId,
    Habit,
    HabitEntry,
    HabitMatchMode,
    ParticipantStatus,
    utc_now,
)
from app.services.logger import logger

CHALLENGES_TABLE = "challenges"
HABITS_TABLE = "habits"
HABIT_ENTRIES_TABLE = "habit_entries"


class ChallengeRepository:
    """Reads and writes challenge documents, habits and habit entries"""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_supabase_client()
        return self._client

    # ------------------------------------------------------------------
    # Challenges
    # ------------------------------------------------------------------

    def _to_challenges(self, rows: Optional[List[Dict[str, Any]]]) -> List[Challenge]:
        challenges = []
        for row in rows or []:
            try:
                challenges.append(Challenge.model_validate(row))
            except ValueError as e:
                # One malformed document must not hide the others
                logger.error(
                    f"Skipping malformed challenge record {row.get('id')}",
                    {"error": str(e), "challenge_id": row.get("id")},
                )
        return challenges

    def get_challenge(self, challenge_id: str) -> Optional[Challenge]:
        result = (
            self.client.table(CHALLENGES_TABLE)
            .select("*")
            .eq("id", str(challenge_id))
            .limit(1)
            .execute()
        )
        challenges = self._to_challenges(result.data)
        return challenges[0] if challenges else None

    def insert_challenge(self, challenge: Challenge) -> Challenge:
        self.client.table(CHALLENGES_TABLE).insert(challenge.to_record()).execute()
        return challenge

    def save_challenge(self, challenge: Challenge) -> Challenge:
        """Rewrite the mutable parts of a challenge document."""
        record = challenge.to_record()
        self.client.table(CHALLENGES_TABLE).update(
            {
                "status": record["status"],
                "rules": record["rules"],
                "habit_match_minimum": record["habit_match_minimum"],
                "milestones": record["milestones"],
                "participants": record["participants"],
                "stats": record["stats"],
                "settings": record["settings"],
                "updated_at": utc_now().isoformat(),
            }
        ).eq("id", str(challenge.id)).execute()
        return challenge

    def find_active_by_template_habit(self, workspace_habit_id: str) -> List[Challenge]:
        """Active challenges bound to a workspace template habit."""
        result = (
            self.client.table(CHALLENGES_TABLE)
            .select("*")
            .eq("status", ChallengeStatus.ACTIVE.value)
            .eq("habit_id", str(workspace_habit_id))
            .execute()
        )
        return self._to_challenges(result.data)

    def find_active_linked_to_habit(self, user_id: str, habit_id: str) -> List[Challenge]:
        """
        Active challenges where this user explicitly linked this habit, through
        either the multi-habit list or the legacy single link.
        """
        user_id = str(user_id)
        habit_id = str(habit_id)
        containment_filters = [
            [{"user_id": user_id, "linked_habit_ids": [habit_id]}],
            [{"user_id": user_id, "linked_habit_id": habit_id}],
        ]

        found: Dict[str, Challenge] = {}
        for containment in containment_filters:
            result = (
                self.client.table(CHALLENGES_TABLE)
                .select("*")
                .eq("status", ChallengeStatus.ACTIVE.value)
                .contains("participants", json.dumps(containment))
                .execute()
            )
            for challenge in self._to_challenges(result.data):
                found.setdefault(challenge.id, challenge)
        return list(found.values())

    def find_active_workspace_wide(self, workspace_id: str) -> List[Challenge]:
        """Active single-mode challenges in a workspace with no habit binding."""
        result = (
            self.client.table(CHALLENGES_TABLE)
            .select("*")
            .eq("status", ChallengeStatus.ACTIVE.value)
            .eq("workspace_id", str(workspace_id))
            .is_("habit_id", "null")
            .eq("habit_match_mode", HabitMatchMode.SINGLE.value)
            .execute()
        )
        return self._to_challenges(result.data)

    def find_active_for_user(self, user_id: str) -> List[Challenge]:
        """Active challenges where the user is an active participant."""
        containment = [
            {"user_id": str(user_id), "status": ParticipantStatus.ACTIVE.value}
        ]
        result = (
            self.client.table(CHALLENGES_TABLE)
            .select("*")
            .eq("status", ChallengeStatus.ACTIVE.value)
            .contains("participants", json.dumps(containment))
            .execute()
        )
        return self._to_challenges(result.data)

    def find_due_for_activation(self, now: datetime) -> List[Challenge]:
        result = (
            self.client.table(CHALLENGES_TABLE)
            .select("*")
            .eq("status", ChallengeStatus.UPCOMING.value)
            .lte("start_date", now.isoformat())
            .execute()
        )
        return self._to_challenges(result.data)

    def find_due_for_completion(self, now: datetime) -> List[Challenge]:
        result = (
            self.client.table(CHALLENGES_TABLE)
            .select("*")
            .eq("status", ChallengeStatus.ACTIVE.value)
            .not_.is_("end_date", "null")
            .lte("end_date", now.isoformat())
            .execute()
        )
        return self._to_challenges(result.data)

    # ------------------------------------------------------------------
    # Habits and entries (read-only)
    # ------------------------------------------------------------------

    def get_habit(self, habit_id: str) -> Optional[Habit]:
        result = (
            self.client.table(HABITS_TABLE)
            .select("id, user_id, workspace_habit_id, workspace_id")
            .eq("id", str(habit_id))
            .limit(1)
            .execute()
        )
        if not result.data:
            return None
        return Habit.model_validate(result.data[0])

    def find_user_habit_ids(
        self,
        user_id: str,
        workspace_habit_ids: Optional[Iterable[str]] = None,
        workspace_ids: Optional[Iterable[str]] = None,
    ) -> List[EntityId]:
        """
        Habit ids owned by the user that derive from any of the given workspace
        template habits or belong to any of the given workspaces.
        """
        habit_ids: List[EntityId] = []

        template_ids = [str(h) for h in workspace_habit_ids or []]
        if template_ids:
            result = (
                self.client.table(HABITS_TABLE)
                .select("id")
                .eq("user_id", str(user_id))
                .in_("workspace_habit_id", template_ids)
                .execute()
            )
            habit_ids.extend(EntityId(row["id"]) for row in result.data or [])

        workspaces = [str(w) for w in workspace_ids or []]
        if workspaces:
            result = (
                self.client.table(HABITS_TABLE)
                .select("id")
                .eq("user_id", str(user_id))
                .in_("workspace_id", workspaces)
                .execute()
            )
            habit_ids.extend(EntityId(row["id"]) for row in result.data or [])

        return habit_ids

    def get_completed_entries(
        self,
        user_id: str,
        habit_ids: Iterable[str],
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[HabitEntry]:
        """Completed entries for the user's habits, optionally within [start, end]."""
        query = (
            self.client.table(HABIT_ENTRIES_TABLE)
            .select("user_id, habit_id, date, completed, value")
            .eq("user_id", str(user_id))
            .in_("habit_id", [str(h) for h in habit_ids])
            .eq("completed", True)
        )
        if start is not None:
            query = query.gte("date", start.isoformat())
        if end is not None:
            # Day-granular upper bound, whatever the column precision
            query = query.lt("date", (end + timedelta(days=1)).isoformat())

        result = query.order("date", desc=True).execute()
        return [HabitEntry.model_validate(row) for row in result.data or []]


# Global instance
challenge_repository = ChallengeRepository()
