"""
Challenge Membership Cache

Per-user fast path for check-ins: the set of habit ids that can possibly
affect one of the user's active challenges. When a user has a warm entry and
the checked-in habit is not in it, the engine skips the challenge queries
altogether. Entries also record the workspaces and templates the user's
challenges match on, so a habit created after warming is not skipped. The
cache is never authoritative: a cold entry always falls through to the full
resolver, and any failure evicts the entry.

Backends:
- InMemoryMembershipBackend: process-local dict, for single-instance deploys.
- RedisMembershipBackend: shared Redis sets, so an invalidation issued by
  one instance is seen by all of them.
Both expire entries after CHALLENGE_CACHE_TTL_SECONDS, which bounds the
staleness of anything that is not explicitly invalidated.
"""

import time
from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Set, Tuple

from app.core.cache import get_redis_client
from app.core.config import settings
from app.models.challenge import (
    Challenge,
    EntityId,
    HabitMatchMode,
    ParticipantStatus,
)
from app.services.challenge_repository import ChallengeRepository, challenge_repository
from app.services.logger import logger

# Marks a warm entry in Redis, since an empty set cannot be stored there
WARM_MARKER = "__warm__"

# Scope members: habits created after warming still match by workspace or template
WORKSPACE_SCOPE = "workspace:"
TEMPLATE_SCOPE = "template:"


class MembershipCacheBackend(ABC):
    """Storage for user -> habit id sets"""

    @abstractmethod
    def get(self, user_id: str) -> Optional[Set[str]]:
        """Return the cached set, or None when the entry is cold."""

    @abstractmethod
    def set(self, user_id: str, habit_ids: Set[str]) -> None:
        pass

    @abstractmethod
    def invalidate(self, user_id: str) -> None:
        pass


class InMemoryMembershipBackend(MembershipCacheBackend):
    def __init__(self, ttl_seconds: int = 0):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, Tuple[float, Set[str]]] = {}

    def get(self, user_id: str) -> Optional[Set[str]]:
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        stored_at, habit_ids = entry
        if self.ttl_seconds and time.monotonic() - stored_at > self.ttl_seconds:
            self._entries.pop(user_id, None)
            return None
        return habit_ids

    def set(self, user_id: str, habit_ids: Set[str]) -> None:
        self._entries[user_id] = (time.monotonic(), set(habit_ids))

    def invalidate(self, user_id: str) -> None:
        self._entries.pop(user_id, None)

    def clear(self) -> None:
        self._entries.clear()


class RedisMembershipBackend(MembershipCacheBackend):
    def __init__(self, client=None, ttl_seconds: int = 0, key_prefix: str = "challenge_habits"):
        self._client = client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    @property
    def client(self):
        if self._client is None:
            self._client = get_redis_client()
        return self._client

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}:{user_id}"

    def get(self, user_id: str) -> Optional[Set[str]]:
        if self.client is None:
            return None
        members = {
            m.decode() if isinstance(m, bytes) else m
            for m in self.client.smembers(self._key(user_id)) or set()
        }
        if WARM_MARKER not in members:
            return None
        members.discard(WARM_MARKER)
        return members

    def set(self, user_id: str, habit_ids: Set[str]) -> None:
        if self.client is None:
            return
        key = self._key(user_id)
        pipe = self.client.pipeline()
        pipe.delete(key)
        pipe.sadd(key, WARM_MARKER, *sorted(habit_ids))
        if self.ttl_seconds:
            pipe.expire(key, self.ttl_seconds)
        pipe.execute()

    def invalidate(self, user_id: str) -> None:
        if self.client is None:
            return
        self.client.delete(self._key(user_id))


def build_backend() -> MembershipCacheBackend:
    ttl = int(settings.CHALLENGE_CACHE_TTL_SECONDS or 0)
    if settings.CHALLENGE_CACHE_BACKEND.lower() == "redis":
        return RedisMembershipBackend(
            ttl_seconds=ttl, key_prefix=settings.CHALLENGE_CACHE_KEY_PREFIX
        )
    return InMemoryMembershipBackend(ttl_seconds=ttl)


def _match_sources(
    user_id: EntityId, challenges: Iterable[Challenge]
) -> Tuple[Set[EntityId], Set[str], Set[str]]:
    """Linked habit ids, bound template ids and workspace-wide workspace ids."""
    habit_ids: Set[EntityId] = set()
    template_ids: Set[str] = set()
    workspace_ids: Set[str] = set()

    for challenge in challenges:
        participant = challenge.get_participant(user_id)
        if participant is None or participant.status != ParticipantStatus.ACTIVE:
            continue

        habit_ids.update(participant.linked_habits())

        if challenge.habit_id:
            template_ids.add(challenge.habit_id)
        elif challenge.habit_match_mode == HabitMatchMode.SINGLE:
            workspace_ids.add(challenge.workspace_id)

    return habit_ids, template_ids, workspace_ids


def relevant_habit_ids(
    user_id: str,
    challenges: Iterable[Challenge],
    repository: ChallengeRepository,
) -> Set[EntityId]:
    """
    Every habit id of this user that the query resolver could match to one of
    the given challenges: explicit links, habits derived from a bound workspace
    template, and all habits in the workspace of a workspace-wide challenge.
    """
    user_id = EntityId(user_id)
    habit_ids, template_ids, workspace_ids = _match_sources(user_id, challenges)

    if template_ids or workspace_ids:
        habit_ids.update(
            repository.find_user_habit_ids(
                user_id,
                workspace_habit_ids=sorted(template_ids),
                workspace_ids=sorted(workspace_ids),
            )
        )

    return habit_ids


class MembershipCache:
    """Fast-path filter in front of the challenge query resolver"""

    def __init__(
        self,
        backend: Optional[MembershipCacheBackend] = None,
        repository: Optional[ChallengeRepository] = None,
    ):
        self.backend = backend or build_backend()
        self.repository = repository or challenge_repository

    def warm(self, user_id: str) -> Optional[Set[EntityId]]:
        """
        Load the habit ids linked to the user's active challenge participations
        and store them. On any failure the entry is evicted instead.
        """
        user_id = EntityId(user_id)
        try:
            challenges = self.repository.find_active_for_user(user_id)
            habit_ids = relevant_habit_ids(user_id, challenges, self.repository)
            _, template_ids, workspace_ids = _match_sources(user_id, challenges)
            members = {str(h) for h in habit_ids}
            members.update(f"{TEMPLATE_SCOPE}{t}" for t in template_ids)
            members.update(f"{WORKSPACE_SCOPE}{w}" for w in workspace_ids)
            self.backend.set(user_id, members)
            return habit_ids
        except Exception as e:
            logger.warning(
                f"Failed to warm challenge cache for user {user_id}",
                {"error": str(e), "user_id": user_id},
            )
            self.invalidate(user_id)
            return None

    def invalidate(self, user_id: str) -> None:
        try:
            self.backend.invalidate(EntityId(user_id))
        except Exception as e:
            logger.warning(
                f"Failed to invalidate challenge cache for user {user_id}",
                {"error": str(e), "user_id": user_id},
            )

    def is_cold(self, user_id: str) -> bool:
        return self._lookup(user_id) is None

    def should_skip(self, user_id: str, habit_id: str) -> bool:
        """
        True only when a warm entry exists, does not contain the habit, and
        the habit is outside every workspace and template the entry scopes.
        A cold entry never skips; this method does not warm it.
        """
        members = self._lookup(user_id)
        if members is None:
            return False

        habit_id = EntityId(habit_id)
        if habit_id in members:
            return False

        scopes = {m for m in members if m.startswith((WORKSPACE_SCOPE, TEMPLATE_SCOPE))}
        if not scopes:
            return True
        return not self._in_scope(habit_id, scopes)

    def _in_scope(self, habit_id: EntityId, scopes: Set[str]) -> bool:
        try:
            habit = self.repository.get_habit(habit_id)
        except Exception as e:
            logger.warning(
                f"Challenge cache scope check failed for habit {habit_id}",
                {"error": str(e), "habit_id": habit_id},
            )
            return True
        if habit is None:
            return False
        return (
            habit.workspace_id is not None
            and f"{WORKSPACE_SCOPE}{habit.workspace_id}" in scopes
        ) or (
            habit.workspace_habit_id is not None
            and f"{TEMPLATE_SCOPE}{habit.workspace_habit_id}" in scopes
        )

    def _lookup(self, user_id: str) -> Optional[Set[EntityId]]:
        try:
            cached = self.backend.get(EntityId(user_id))
        except Exception as e:
            logger.warning(
                f"Challenge cache read failed for user {user_id}",
                {"error": str(e), "user_id": user_id},
            )
            return None
        if cached is None:
            return None
        return {EntityId(h) for h in cached}


# Global instance
membership_cache = MembershipCache()
