"""Ephemeral key-value store with per-key TTL.

Holds perishable state only: queued commands, status reports and rate-limit
windows. Production uses Redis; the in-memory store exists for tests.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable
from uuid import uuid4

from fastapi import Request
from redis.asyncio import Redis
from redis.exceptions import RedisError

from coordinator.errors import StoreUnavailable

logger = logging.getLogger(__name__)

# Drop entries outside the window, then admit the new one only if the window has room.
_RECORD_IN_WINDOW_LUA = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local ttl = tonumber(ARGV[4])
redis.call("ZREMRANGEBYSCORE", key, "-inf", now - window)
local count = redis.call("ZCARD", key)
if count >= limit then
    local oldest = redis.call("ZRANGE", key, 0, 0, "WITHSCORES")
    return {0, count, tonumber(oldest[2])}
end
redis.call("ZADD", key, now, ARGV[5])
redis.call("EXPIRE", key, ttl)
return {1, count + 1, 0}
"""


@dataclass
class WindowState:
    """Result of one record_in_window call."""

    allowed: bool
    count: int
    oldest_ms: int


class EphemeralStore(ABC):
    """Minimal TTL key-value contract used by the mailbox and rate limiter."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value for key, or None when absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key if present."""

    @abstractmethod
    async def get_and_delete(self, key: str) -> str | None:
        """Atomically read and remove key. At most one caller sees the value."""

    @abstractmethod
    async def record_in_window(
        self, key: str, now_ms: int, window_ms: int, limit: int, ttl_seconds: int
    ) -> WindowState:
        """Atomically prune a sliding window of timestamps and record now_ms if under limit.

        count is the number of entries in the window after the call; oldest_ms
        is only set when the request was refused.
        """

    async def close(self) -> None:
        """Release underlying connections."""


class RedisEphemeralStore(EphemeralStore):
    """Redis-backed store. Connectivity failures surface as StoreUnavailable."""

    def __init__(self, client: Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisEphemeralStore":
        return cls(Redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except RedisError as exc:
            raise StoreUnavailable(f"redis get failed: {exc}") from exc

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client.set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise StoreUnavailable(f"redis set failed: {exc}") from exc

    async def delete(self, key: str) -> None:
        try:
            await self._client.delete(key)
        except RedisError as exc:
            raise StoreUnavailable(f"redis delete failed: {exc}") from exc

    async def get_and_delete(self, key: str) -> str | None:
        # GETDEL (Redis >= 6.2) is a single atomic command
        try:
            return await self._client.getdel(key)
        except RedisError as exc:
            raise StoreUnavailable(f"redis getdel failed: {exc}") from exc

    async def record_in_window(
        self, key: str, now_ms: int, window_ms: int, limit: int, ttl_seconds: int
    ) -> WindowState:
        member = f"{now_ms}-{uuid4().hex}"
        try:
            allowed, count, oldest = await self._client.eval(
                _RECORD_IN_WINDOW_LUA, 1, key, now_ms, window_ms, limit, ttl_seconds, member
            )
        except RedisError as exc:
            raise StoreUnavailable(f"redis window update failed: {exc}") from exc
        return WindowState(allowed=bool(int(allowed)), count=int(count), oldest_ms=int(oldest))

    async def close(self) -> None:
        await self._client.aclose()


class InMemoryEphemeralStore(EphemeralStore):
    """Process-local store for tests. Expiry is evaluated lazily on access."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._items: dict[str, tuple[str, float]] = {}
        self._windows: dict[str, tuple[list[int], float]] = {}

    def _live(self, key: str) -> str | None:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            del self._items[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._items[key] = (value, self._clock() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    async def get_and_delete(self, key: str) -> str | None:
        # No await between read and delete, so this is atomic on one event loop
        value = self._live(key)
        self._items.pop(key, None)
        return value

    async def record_in_window(
        self, key: str, now_ms: int, window_ms: int, limit: int, ttl_seconds: int
    ) -> WindowState:
        # Same single-step guarantee as get_and_delete: no await below
        stamps: list[int] = []
        entry = self._windows.get(key)
        if entry is not None and self._clock() < entry[1]:
            stamps = [ts for ts in entry[0] if now_ms - ts < window_ms]
        if len(stamps) >= limit:
            self._windows[key] = (stamps, entry[1])
            return WindowState(allowed=False, count=len(stamps), oldest_ms=min(stamps))
        stamps.append(now_ms)
        self._windows[key] = (stamps, self._clock() + ttl_seconds)
        return WindowState(allowed=True, count=len(stamps), oldest_ms=0)


def build_ephemeral_store(redis_url: str | None) -> EphemeralStore | None:
    """Create the configured store, or None when no Redis URL is set."""
    if not redis_url:
        logger.warning("ephemeral_store_not_configured")
        return None
    return RedisEphemeralStore.from_url(redis_url)


async def get_ephemeral_store(request: Request) -> EphemeralStore | None:
    """Dependency returning the store created during application startup."""
    return getattr(request.app.state, "ephemeral_store", None)
