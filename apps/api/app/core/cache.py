import redis
from typing import Any, Optional

from app.core.config import settings


class DummyRedis:
    """No-op redis client used when Redis is unavailable."""

    def get(self, *args: Any, **kwargs: Any) -> Optional[str]:
        return None

    def delete(self, *args: Any, **kwargs: Any) -> None:
        return None

    def exists(self, *args: Any, **kwargs: Any) -> int:
        return 0

    def sadd(self, *args: Any, **kwargs: Any) -> None:
        return None

    def expire(self, *args: Any, **kwargs: Any) -> None:
        return None

    def smembers(self, *args: Any, **kwargs: Any):
        return set()

    def pipeline(self, *args: Any, **kwargs: Any) -> "DummyRedis":
        return self

    def execute(self, *args: Any, **kwargs: Any) -> list:
        return []

    def ping(self, *args: Any, **kwargs: Any) -> None:
        return None


_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Lazily initialize and return a shared Redis client. Falls back to a no-op
    dummy instance when Redis is unavailable so callers can continue gracefully.
    A dummy client never returns members, which the membership cache reads as
    a cold entry.
    """

    global _redis_client

    if _redis_client is not None:
        return _redis_client

    redis_url = settings.redis_connection_url
    if not redis_url:
        return None

    try:
        client = redis.from_url(redis_url, decode_responses=True)
        client.ping()
        _redis_client = client  # type: ignore[assignment]
    except Exception as exc:
        print(
            f"⚠️ Redis connection failed ({exc}). "
            "Falling back to in-memory dummy client."
        )
        _redis_client = DummyRedis()  # type: ignore[assignment]

    return _redis_client
