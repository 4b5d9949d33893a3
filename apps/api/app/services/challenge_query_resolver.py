"""
Challenge Query Resolver

Finds the active challenges a single check-in can affect. Three rules are
unioned and de-duplicated by challenge id:

1. challenges bound to the workspace template the checked-in habit derives from
2. challenges where the user explicitly linked the habit
3. workspace-wide single-mode challenges in the habit's own workspace

Participant filtering (record exists, status active) is left to the caller.
"""

from typing import Dict, List, Optional

from app.models.challenge import Challenge, EntityId, Habit
from app.services.challenge_repository import ChallengeRepository


class ChallengeQueryResolver:
    def __init__(self, repository: ChallengeRepository):
        self.repository = repository

    def resolve(
        self, user_id: str, habit_id: str, habit: Optional[Habit] = None
    ) -> List[Challenge]:
        user_id = EntityId(user_id)
        habit_id = EntityId(habit_id)
        found: Dict[str, Challenge] = {}

        def add(challenges: List[Challenge]) -> None:
            for challenge in challenges:
                found.setdefault(challenge.id, challenge)

        if habit is not None and habit.workspace_habit_id:
            add(self.repository.find_active_by_template_habit(habit.workspace_habit_id))

        add(self.repository.find_active_linked_to_habit(user_id, habit_id))

        if habit is not None and habit.workspace_id:
            add(self.repository.find_active_workspace_wide(habit.workspace_id))

        return list(found.values())
