# =============================================================================
# Stage Rate Limiter — Redis-Based Sliding Window
# =============================================================================
#
# Bounds how many jobs of one stage may START within a rolling window, across
# every worker of that stage (e.g. AI enrichment: 5 starts per 60 s). This is
# independent of concurrency: idle workers still wait for a slot.
#
# Each granted start is a member of a Redis sorted set (ZSET) scored by its
# timestamp. A request runs in one MULTI/EXEC transaction:
#
#   ZREMRANGEBYSCORE key 0 (now - window)   # forget starts outside the window
#   ZADD key now member                     # claim a slot optimistically
#   ZCARD key                               # count starts in the window
#
# If the count exceeds the limit the claim is withdrawn (ZREM) and the caller
# is told how long until the oldest start leaves the window.
#
# DESIGN DECISION: Sliding window over fixed window. A fixed window allows
# 2× the limit across a boundary; a sliding window never does.
#
# DESIGN DECISION: Claim-then-count rather than count-then-claim. Two
# workers racing for the last slot may BOTH back off, but they can never
# both get it, so the limit is never exceeded.
#
# DESIGN DECISION: No fail-open. If Redis is unreachable the job fails and
# the queue's retry policy takes over, like any other infrastructure error.
# =============================================================================

from __future__ import annotations

import logging
import math
import threading
import time
import uuid
from collections import deque
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class RateLimiter(Protocol):
    def try_acquire(self, key: str, limit: int, window_seconds: float) -> float:
        """Claim a slot. Returns 0.0 on success, else seconds to wait."""
        ...


def acquire(
    limiter: RateLimiter,
    key: str,
    limit: int,
    window_seconds: float,
    poll_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> float:
    """
    Block until `limiter` grants a slot. Returns the total time waited.

    Sleeps for the limiter's suggested wait, capped at `poll_seconds` so a
    slot freed early by a withdrawn claim is picked up promptly.
    """
    waited = 0.0
    while True:
        wait = limiter.try_acquire(key, limit, window_seconds)
        if wait <= 0:
            if waited:
                logger.info("Rate limit slot for %s granted after %.1fs", key, waited)
            return waited
        pause = min(wait, poll_seconds) if poll_seconds > 0 else wait
        sleep(pause)
        waited += pause


# ---------------------------------------------------------------------------
# Redis implementation (shared across workers)
# ---------------------------------------------------------------------------


class RedisRateLimiter:
    """Sliding-window limiter shared by every worker of a stage."""

    def __init__(
        self,
        redis_client,
        key_prefix: str = "docpipe",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis_client
        self._prefix = key_prefix
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{self._prefix}:ratelimit:{key}"

    def try_acquire(self, key: str, limit: int, window_seconds: float) -> float:
        redis_key = self._key(key)
        now = self._clock()
        member = f"{now:.6f}:{uuid.uuid4().hex}"

        pipe = self._redis.pipeline()
        pipe.zremrangebyscore(redis_key, 0, now - window_seconds)
        pipe.zadd(redis_key, {member: now})
        pipe.zcard(redis_key)
        pipe.expire(redis_key, math.ceil(window_seconds) + 10)
        _, _, count, _ = pipe.execute()

        if count <= limit:
            return 0.0

        # Over the limit: withdraw the claim and report when a slot frees up.
        self._redis.zrem(redis_key, member)
        oldest = self._redis.zrange(redis_key, 0, 0, withscores=True)
        if not oldest:
            return 0.001
        _, oldest_score = oldest[0]
        return max(float(oldest_score) + window_seconds - now, 0.001)

    def starts_in_window(self, key: str, window_seconds: float) -> int:
        """Number of granted starts still inside the window."""
        redis_key = self._key(key)
        now = self._clock()
        return int(self._redis.zcount(redis_key, now - window_seconds, "+inf"))


# ---------------------------------------------------------------------------
# In-process implementation (local runner)
# ---------------------------------------------------------------------------


class InMemoryRateLimiter:
    """Same sliding-window semantics for a single process."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._starts: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def try_acquire(self, key: str, limit: int, window_seconds: float) -> float:
        now = self._clock()
        with self._lock:
            starts = self._starts.setdefault(key, deque())
            while starts and starts[0] <= now - window_seconds:
                starts.popleft()
            if len(starts) < limit:
                starts.append(now)
                return 0.0
            return max(starts[0] + window_seconds - now, 0.001)
