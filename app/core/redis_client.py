"""Redis client, cache helpers and the per-user table status cache."""

import json
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, cast

import redis

from app.config import settings

# Global Redis client instance
_redis_client: redis.Redis | None = None


def get_redis_client() -> redis.Redis:
    """
    Get or create Redis client instance.

    Returns:
        Redis client instance
    """
    global _redis_client

    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            username=settings.redis_username,
            password=settings.redis_password,
            decode_responses=settings.redis_decode_responses,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )

    return _redis_client


async def check_redis_connection() -> bool:
    """Check if Redis connection is healthy."""
    try:
        client = get_redis_client()
        client.ping()
        return True
    except Exception:
        return False


def close_redis_connection() -> None:
    """Close Redis connection."""
    global _redis_client

    if _redis_client is not None:
        _redis_client.close()
        _redis_client = None


class CacheManager:
    """Redis-based cache manager.

    Every helper fails open: a Redis outage turns into cache misses, never
    into request errors.
    """

    def __init__(self, redis_client: redis.Redis):
        """Initialize cache manager with Redis client."""
        self.redis = redis_client

    def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """Set a raw string value, optionally expiring after ``ttl`` seconds."""
        try:
            if ttl:
                self.redis.setex(key, ttl, value)
            else:
                self.redis.set(key, value)
            return True
        except Exception:
            return False

    def delete(self, key: str) -> bool:
        """Delete key from cache."""
        try:
            self.redis.delete(key)
            return True
        except Exception:
            return False

    def exists(self, key: str) -> bool:
        """Check if key exists in cache."""
        try:
            return bool(self.redis.exists(key))
        except Exception:
            return False

    def get_json(self, key: str) -> Any | None:
        """Get JSON value from cache and deserialize."""
        try:
            value = cast(str | None, self.redis.get(key))
            if value:
                return json.loads(value)
            return None
        except Exception:
            return None

    def set_json(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Serialize and set JSON value in cache."""
        try:
            json_value = json.dumps(value, default=str)
            if ttl:
                self.redis.setex(key, ttl, json_value)
            else:
                self.redis.set(key, json_value)
            return True
        except Exception:
            return False


def utcnow() -> datetime:
    return datetime.now(UTC)


class TableStatusCache:
    """
    Short-lived answer to "is this user seated at a table?".

    Entries carry the time they were written according to the injected clock,
    so freshness is decided by the clock rather than by Redis expiry alone.
    The Redis TTL only garbage-collects entries.
    """

    KEY_PREFIX = "table_status"

    def __init__(
        self,
        cache: CacheManager,
        ttl_seconds: int = 10,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cache = cache
        self.ttl_seconds = ttl_seconds
        self.clock = clock

    def _key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}:{user_id}"

    def get(self, user_id: str) -> bool | None:
        """Return the cached status, or ``None`` when missing or stale."""
        entry = self.cache.get_json(self._key(user_id))
        if not entry or entry.get("user_id") != user_id:
            return None

        age = self.clock().timestamp() - entry.get("checked_at", 0)
        if age < 0 or age >= self.ttl_seconds:
            return None
        return bool(entry.get("in_table"))

    def set(self, user_id: str, in_table: bool) -> None:
        self.cache.set_json(
            self._key(user_id),
            {"user_id": user_id, "in_table": in_table, "checked_at": self.clock().timestamp()},
            ttl=self.ttl_seconds,
        )

    def invalidate(self, user_id: str) -> None:
        self.cache.delete(self._key(user_id))
