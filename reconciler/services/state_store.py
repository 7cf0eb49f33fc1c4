"""
Durable key-value store adapter.

Redis is the engine's only memory across deliveries. Besides plain get/set/delete and
list push/read, the adapter exposes the two conditional primitives the workflows rely
on to avoid duplicate side effects under concurrent deliveries:

- ``claim``: SET NX PX marker, used to serialize waitlist drains;
- ``compare_and_set``: WATCH/MULTI optimistic write, used for the low-stock snapshot.
"""

import logging
from typing import List, Optional

import redis

from reconciler.core.config import Settings, get_settings
from reconciler.core.exceptions import StateStoreError

logger = logging.getLogger(__name__)


class RedisStateStore:
    """Thin wrapper translating redis-py errors into StateStoreError."""

    def __init__(self, client: redis.Redis):
        self._redis = client

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RedisStateStore":
        settings = settings or get_settings()
        return cls(redis.Redis.from_url(settings.REDIS_URL, decode_responses=True))

    def ping(self) -> bool:
        try:
            return bool(self._redis.ping())
        except redis.exceptions.RedisError as exc:
            raise StateStoreError(f"Redis ping failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Scalars
    # ------------------------------------------------------------------
    def get(self, key: str) -> Optional[str]:
        try:
            return self._redis.get(key)
        except redis.exceptions.RedisError as exc:
            raise StateStoreError(f"GET {key} failed: {exc}") from exc

    def set(self, key: str, value: str) -> None:
        try:
            self._redis.set(key, value)
        except redis.exceptions.RedisError as exc:
            raise StateStoreError(f"SET {key} failed: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(key)
        except redis.exceptions.RedisError as exc:
            raise StateStoreError(f"DEL {key} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Lists (newest entry first, duplicates allowed)
    # ------------------------------------------------------------------
    def list_push(self, key: str, value: str) -> int:
        try:
            return self._redis.lpush(key, value)
        except redis.exceptions.RedisError as exc:
            raise StateStoreError(f"LPUSH {key} failed: {exc}") from exc

    def list_read(self, key: str) -> List[str]:
        try:
            return list(self._redis.lrange(key, 0, -1))
        except redis.exceptions.RedisError as exc:
            raise StateStoreError(f"LRANGE {key} failed: {exc}") from exc

    def list_remove_oldest(self, key: str, count: int) -> None:
        """
        Drop the ``count`` oldest entries. Entries pushed after the list was read stay
        in place; removing every entry deletes the key.
        """
        if count <= 0:
            return
        try:
            self._redis.ltrim(key, 0, -(count + 1))
        except redis.exceptions.RedisError as exc:
            raise StateStoreError(f"LTRIM {key} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Conditional writes
    # ------------------------------------------------------------------
    def claim(self, key: str, ttl_ms: int, token: str = "1") -> bool:
        """Set ``key`` only if absent. Returns True when this caller now holds it."""
        try:
            return bool(self._redis.set(key, token, nx=True, px=ttl_ms))
        except redis.exceptions.RedisError as exc:
            raise StateStoreError(f"SET NX {key} failed: {exc}") from exc

    def compare_and_set(self, key: str, expected: Optional[str], new: Optional[str]) -> bool:
        """
        Replace ``expected`` with ``new`` atomically; ``None`` means "key absent" on
        either side. Returns False when another writer changed the key first.
        """
        try:
            with self._redis.pipeline() as pipe:
                try:
                    pipe.watch(key)
                    current = pipe.get(key)
                    if current != expected:
                        return False
                    pipe.multi()
                    if new is None:
                        pipe.delete(key)
                    else:
                        pipe.set(key, new)
                    pipe.execute()
                    return True
                except redis.exceptions.WatchError:
                    logger.info("Concurrent write detected on %s; compare-and-set lost", key)
                    return False
        except redis.exceptions.RedisError as exc:
            raise StateStoreError(f"compare-and-set on {key} failed: {exc}") from exc
