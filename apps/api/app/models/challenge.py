"""
Challenge domain models.

Rows read from the document store are validated into these models at the
repository boundary; everything above the repository works with typed
objects. Identifiers are normalised into EntityId so that a habit id coming
from a check-in compares equal to the same id stored in a participant's
link list, whatever its original casing or type.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Set
from uuid import UUID

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    model_validator,
)


class EntityId(str):
    """Canonical identifier: stripped, lower-cased text."""

    def __new__(cls, value: Any) -> "EntityId":
        if isinstance(value, EntityId):
            return value
        if isinstance(value, UUID):
            value = str(value)
        text = str(value).strip().lower()
        if not text:
            raise ValueError("Identifier must not be empty")
        return super().__new__(cls, text)


# Habit ids are the identifiers the engine compares most often
HabitId = EntityId


def _id_text(value: Any) -> Any:
    if isinstance(value, UUID):
        return str(value)
    return value


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _date_to_datetime(value: Any) -> Any:
    # Bare dates mean midnight UTC
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return value


def _to_utc_day(value: Any) -> Any:
    if isinstance(value, str) and len(value) > 10:
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        return _as_utc(value).date()
    return value


Identifier = Annotated[str, BeforeValidator(_id_text), AfterValidator(EntityId)]
UtcDateTime = Annotated[
    datetime, BeforeValidator(_date_to_datetime), AfterValidator(_as_utc)
]
CalendarDay = Annotated[date, BeforeValidator(_to_utc_day)]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ChallengeType(str, Enum):
    STREAK = "streak"
    CUMULATIVE = "cumulative"
    CONSISTENCY = "consistency"
    TEAM_GOAL = "team_goal"


class HabitMatchMode(str, Enum):
    SINGLE = "single"
    ANY = "any"
    ALL = "all"
    MINIMUM = "minimum"


class ChallengeStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ParticipantStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    DROPPED = "dropped"


class ActivityType(str, Enum):
    CHALLENGE_STARTED = "challenge_started"
    CHALLENGE_COMPLETED = "challenge_completed"
    CHALLENGE_MILESTONE = "challenge_milestone"
    CHALLENGE_JOINED = "challenge_joined"


TARGET_UNITS = ("days", "completions", "minutes", "hours", "percent", "custom")


class ChallengeRules(BaseModel):
    target_value: float = Field(..., ge=1)
    target_unit: str = "days"
    grace_period_hours: int = Field(default=4, ge=0, le=12)
    allow_makeup_days: bool = False
    minimum_daily_value: Optional[float] = None

    @model_validator(mode="after")
    def _check_unit(self) -> "ChallengeRules":
        if self.target_unit not in TARGET_UNITS:
            raise ValueError(f"Unsupported target unit: {self.target_unit}")
        return self


class Milestone(BaseModel):
    value: float
    label: str = Field(..., max_length=100)


class ChallengeStats(BaseModel):
    participant_count: int = 0
    completed_count: int = 0
    average_progress: float = 0
    top_streak: int = 0


class ChallengeSettings(BaseModel):
    max_participants: Optional[int] = None
    allow_late_join: bool = True
    show_leaderboard: bool = True
    anonymize_leaderboard: bool = False


class ParticipantProgress(BaseModel):
    current_value: float = 0
    current_streak: int = 0
    best_streak: int = 0
    completion_rate: int = 0
    last_logged_at: Optional[UtcDateTime] = None


class Participant(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    user_id: Identifier
    joined_at: UtcDateTime = Field(default_factory=utc_now)
    status: ParticipantStatus = ParticipantStatus.ACTIVE
    # Legacy single-habit link, kept for records created before multi-habit links
    linked_habit_id: Optional[Identifier] = None
    linked_habit_ids: List[Identifier] = Field(default_factory=list)
    progress: ParticipantProgress = Field(default_factory=ParticipantProgress)
    milestones_reached: List[float] = Field(default_factory=list)
    completed_at: Optional[UtcDateTime] = None

    def linked_habits(self) -> Set[EntityId]:
        """Every habit this participant linked, through either link field."""
        habits = set(self.linked_habit_ids)
        if self.linked_habit_id:
            habits.add(self.linked_habit_id)
        return habits

    def effective_habit_ids(self, trigger_habit_id: Any) -> List[EntityId]:
        """
        Habits whose entries count for this participant.

        The multi-habit list wins when non-empty, then the legacy single link,
        then the habit that triggered the check-in.
        """
        if self.linked_habit_ids:
            return list(dict.fromkeys(self.linked_habit_ids))
        if self.linked_habit_id:
            return [self.linked_habit_id]
        return [EntityId(trigger_habit_id)]


class Challenge(BaseModel):
    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    id: Identifier
    workspace_id: Identifier
    created_by: Identifier
    title: str
    description: Optional[str] = None
    icon: str = "🏆"
    type: ChallengeType
    # Workspace template habit this challenge is bound to, if any
    habit_id: Optional[Identifier] = None
    habit_match_mode: HabitMatchMode = HabitMatchMode.SINGLE
    habit_match_minimum: Optional[int] = None
    start_date: Optional[UtcDateTime] = None
    end_date: Optional[UtcDateTime] = None
    status: ChallengeStatus = ChallengeStatus.UPCOMING
    rules: ChallengeRules
    milestones: List[Milestone] = Field(default_factory=list)
    participants: List[Participant] = Field(default_factory=list)
    stats: ChallengeStats = Field(default_factory=ChallengeStats)
    settings: ChallengeSettings = Field(default_factory=ChallengeSettings)
    reward: str = "🏆 Challenge Completion Badge"

    def get_participant(self, user_id: Any) -> Optional[Participant]:
        user_id = EntityId(user_id)
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def non_dropped_participants(self) -> List[Participant]:
        return [
            p for p in self.participants if p.status != ParticipantStatus.DROPPED
        ]

    def to_record(self) -> Dict[str, Any]:
        """Serialise into the JSON shape stored in the challenges table."""
        return self.model_dump(mode="json")


class Habit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Identifier
    user_id: Identifier
    workspace_habit_id: Optional[Identifier] = None
    workspace_id: Optional[Identifier] = None


class HabitEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: Identifier
    habit_id: Identifier
    date: CalendarDay
    completed: bool = False
    value: Optional[float] = None


class ChallengeCreate(BaseModel):
    """Payload for creating a challenge in a workspace"""

    title: str = Field(..., min_length=3, max_length=60)
    description: Optional[str] = Field(default=None, max_length=500)
    icon: str = "🏆"
    type: ChallengeType
    habit_id: Optional[Identifier] = None
    habit_match_mode: HabitMatchMode = HabitMatchMode.SINGLE
    habit_match_minimum: Optional[int] = None
    start_date: Optional[UtcDateTime] = None
    end_date: Optional[UtcDateTime] = None
    rules: ChallengeRules
    milestones: List[Milestone] = Field(default_factory=list)
    settings: ChallengeSettings = Field(default_factory=ChallengeSettings)
    reward: str = "🏆 Challenge Completion Badge"
    # Habits the creator links on their own participation
    linked_habit_ids: List[Identifier] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_consistency(self) -> "ChallengeCreate":
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        check_match_minimum(self.habit_match_mode, self.habit_match_minimum)
        return self


class ChallengeRulesUpdate(BaseModel):
    """Partial rules edit, allowed only before a challenge starts"""

    target_value: Optional[float] = Field(default=None, ge=1)
    target_unit: Optional[str] = None
    grace_period_hours: Optional[int] = Field(default=None, ge=0, le=12)
    allow_makeup_days: Optional[bool] = None
    minimum_daily_value: Optional[float] = None
    habit_match_minimum: Optional[int] = Field(default=None, ge=1)
    milestones: Optional[List[Milestone]] = None


def check_match_minimum(mode: HabitMatchMode, minimum: Optional[int]) -> None:
    """habit_match_minimum is required for, and only for, minimum mode."""
    if mode == HabitMatchMode.MINIMUM:
        if minimum is None or minimum < 1:
            raise ValueError("habit_match_minimum must be at least 1 for minimum mode")
    elif minimum is not None:
        raise ValueError("habit_match_minimum is only allowed for minimum mode")
