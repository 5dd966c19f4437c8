"""Per-sender sliding-window rate limiter for the shared channel.

Strategy:
- Each sender has a window of request timestamps (epoch ms) in the ephemeral store,
  pruned and appended in one atomic store call so concurrent posts cannot overshoot
- Entries older than the window are dropped on every check, so the limit
  relaxes continuously instead of resetting at bucket boundaries
- The key TTL is longer than the window so idle senders expire on their own
- If the store is missing or unreachable the limiter allows the request
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable

from coordinator.errors import StoreUnavailable
from coordinator.storage.ephemeral import EphemeralStore

logger = logging.getLogger(__name__)

RATE_LIMIT = 30
RATE_WINDOW_MS = 60_000
RATE_TTL_SECONDS = 120


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class RateLimitResult:
    """Outcome of a single check_and_record call."""

    allowed: bool
    remaining: int
    reset_ms: int


class SlidingWindowRateLimiter:
    """Caps actions per sender within a rolling window."""

    def __init__(
        self,
        store: EphemeralStore | None,
        limit: int = RATE_LIMIT,
        window_ms: int = RATE_WINDOW_MS,
        ttl_seconds: int = RATE_TTL_SECONDS,
        clock: Callable[[], float] = _now_ms,
    ):
        self.store = store
        self.limit = limit
        self.window_ms = window_ms
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    @staticmethod
    def key(sender: str) -> str:
        return f"ratelimit:{sender}"

    def _fail_open(self) -> RateLimitResult:
        return RateLimitResult(allowed=True, remaining=self.limit, reset_ms=0)

    async def check_and_record(self, sender: str) -> RateLimitResult:
        """Check the sender's window and record this request if allowed."""
        if self.store is None:
            return self._fail_open()

        now = int(self._clock())
        key = self.key(sender)
        try:
            state = await self.store.record_in_window(key, now, self.window_ms, self.limit, self.ttl_seconds)
        except StoreUnavailable as exc:
            logger.warning(f"[RateLimit] store unavailable, allowing {sender}: {exc}")
            return self._fail_open()

        if not state.allowed:
            reset_ms = state.oldest_ms + self.window_ms - now
            logger.info(f"[RateLimit] {sender} blocked, resets in {reset_ms}ms")
            return RateLimitResult(allowed=False, remaining=0, reset_ms=reset_ms)

        return RateLimitResult(allowed=True, remaining=self.limit - state.count, reset_ms=0)
