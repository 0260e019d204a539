# =============================================================================
# Job Registry — Per-Stage Job States in Redis
# =============================================================================
#
# The Celery broker only knows what is WAITING. Operators also need active,
# delayed (retry scheduled), completed and failed counts per stage, and the
# last K completed / M failed jobs. The registry tracks those in Redis db 2.
#
# KEYS (prefix = settings.registry_key_prefix):
#   {p}:jobs:{stage}:waiting    ZSET  job_id → broker_priority × 1e12 + seq
#   {p}:jobs:{stage}:active     ZSET  job_id → start timestamp
#   {p}:jobs:{stage}:delayed    ZSET  job_id → ready-at timestamp
#   {p}:jobs:{stage}:completed  LIST  newest first, trimmed to K
#   {p}:jobs:{stage}:failed     LIST  newest first, trimmed to M
#   {p}:job:{job_id}            HASH  stage, document, priority, state, ...
#   {p}:jobs:seq                counter for FIFO order within a priority
#
# DESIGN DECISION: The waiting ZSET is ordered exactly like the broker
# serves messages (priority step, then insertion), so `waiting()` shows the
# true dispatch order.
#
# DESIGN DECISION: Retention prunes on write. When a job id falls off the
# completed/failed list, its hash is deleted in the same round trip.
# =============================================================================

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from docpipe.config import settings
from docpipe.models.jobs import BaseJob, Stage

logger = logging.getLogger(__name__)

JOB_STATES = ("waiting", "active", "delayed", "completed", "failed")
_SEQ_SPAN = 10**12

# Lazy Redis connection
_redis_client = None


def get_redis():
    """Lazily create and cache the sync Redis client for registry + limiter."""
    global _redis_client
    if _redis_client is None:
        import redis
        _redis_client = redis.Redis.from_url(settings.redis_url, decode_responses=True)
    return _redis_client


class JobRegistry:
    """Tracks job ids per stage and state, with bounded terminal history."""

    def __init__(
        self,
        redis_client,
        key_prefix: str = "docpipe",
        retain_completed: int = 100,
        retain_failed: int = 50,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._redis = redis_client
        self._prefix = key_prefix
        self.retain_completed = retain_completed
        self.retain_failed = retain_failed
        self._clock = clock

    # -------------------------------------------------------------------------
    # Keys
    # -------------------------------------------------------------------------

    def _state_key(self, stage: Stage, state: str) -> str:
        return f"{self._prefix}:jobs:{stage.value}:{state}"

    def _job_key(self, job_id: str) -> str:
        return f"{self._prefix}:job:{job_id}"

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def mark_waiting(
        self,
        stage: Stage,
        job_id: str,
        job: BaseJob,
        broker_priority: int,
        delay_seconds: float = 0.0,
    ) -> None:
        now = self._clock()
        seq = int(self._redis.incr(f"{self._prefix}:jobs:seq"))
        pipe = self._redis.pipeline()
        pipe.hset(self._job_key(job_id), mapping={
            "stage": stage.value,
            "document_id": job.document_id,
            "owner_kind": job.owner_kind.value,
            "priority": job.priority.value,
            "user_id": job.user_id,
            "state": "delayed" if delay_seconds > 0 else "waiting",
            "attempts": 0,
            "enqueued_at": now,
            "updated_at": now,
        })
        if delay_seconds > 0:
            pipe.zadd(self._state_key(stage, "delayed"), {job_id: now + delay_seconds})
        else:
            pipe.zadd(
                self._state_key(stage, "waiting"),
                {job_id: broker_priority * _SEQ_SPAN + seq},
            )
        pipe.execute()

    def discard(self, stage: Stage, job_id: str) -> None:
        """Forget a job the broker never accepted."""
        pipe = self._redis.pipeline()
        pipe.zrem(self._state_key(stage, "waiting"), job_id)
        pipe.zrem(self._state_key(stage, "delayed"), job_id)
        pipe.delete(self._job_key(job_id))
        pipe.execute()

    def mark_active(self, stage: Stage, job_id: str, attempt: int) -> None:
        now = self._clock()
        pipe = self._redis.pipeline()
        pipe.zrem(self._state_key(stage, "waiting"), job_id)
        pipe.zrem(self._state_key(stage, "delayed"), job_id)
        pipe.zadd(self._state_key(stage, "active"), {job_id: now})
        pipe.hset(self._job_key(job_id), mapping={
            "state": "active", "attempts": attempt, "updated_at": now,
        })
        pipe.execute()

    def mark_delayed(self, stage: Stage, job_id: str, ready_at: float, error: str) -> None:
        pipe = self._redis.pipeline()
        pipe.zrem(self._state_key(stage, "active"), job_id)
        pipe.zadd(self._state_key(stage, "delayed"), {job_id: ready_at})
        pipe.hset(self._job_key(job_id), mapping={
            "state": "delayed", "error": error[:1000], "updated_at": self._clock(),
        })
        pipe.execute()

    def mark_completed(self, stage: Stage, job_id: str) -> None:
        self._finish(stage, job_id, "completed", self.retain_completed, error=None)

    def mark_failed(self, stage: Stage, job_id: str, error: str) -> None:
        self._finish(stage, job_id, "failed", self.retain_failed, error=error[:1000])

    def _finish(
        self,
        stage: Stage,
        job_id: str,
        state: str,
        retain: int,
        error: str | None,
    ) -> None:
        list_key = self._state_key(stage, state)
        fields: dict = {"state": state, "updated_at": self._clock()}
        if error is not None:
            fields["error"] = error

        pipe = self._redis.pipeline()
        pipe.zrem(self._state_key(stage, "active"), job_id)
        pipe.zrem(self._state_key(stage, "waiting"), job_id)
        pipe.zrem(self._state_key(stage, "delayed"), job_id)
        pipe.hset(self._job_key(job_id), mapping=fields)
        # A redelivered job finishes twice; keep one list entry per id
        pipe.lrem(list_key, 0, job_id)
        pipe.lpush(list_key, job_id)
        pipe.lrange(list_key, retain, -1)
        pipe.ltrim(list_key, 0, retain - 1)
        results = pipe.execute()

        pruned = results[6]
        if pruned:
            self._redis.delete(*(self._job_key(j) for j in pruned))
            logger.debug("Pruned %d %s %s job records", len(pruned), stage.value, state)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def counts(self, stage: Stage) -> dict[str, int]:
        pipe = self._redis.pipeline()
        pipe.zcard(self._state_key(stage, "waiting"))
        pipe.zcard(self._state_key(stage, "active"))
        pipe.zcard(self._state_key(stage, "delayed"))
        pipe.llen(self._state_key(stage, "completed"))
        pipe.llen(self._state_key(stage, "failed"))
        return dict(zip(JOB_STATES, (int(n) for n in pipe.execute()), strict=True))

    def stats(self) -> dict[str, dict[str, int]]:
        return {stage.value: self.counts(stage) for stage in Stage}

    def waiting(self, stage: Stage, limit: int = 50) -> list[str]:
        """Waiting job ids in dispatch order (highest priority, oldest first)."""
        return list(self._redis.zrange(self._state_key(stage, "waiting"), 0, limit - 1))

    def recent(self, stage: Stage, state: str, limit: int = 20) -> list[str]:
        """Most recent completed or failed job ids, newest first."""
        return list(self._redis.lrange(self._state_key(stage, state), 0, limit - 1))

    def get(self, job_id: str) -> dict[str, str]:
        return dict(self._redis.hgetall(self._job_key(job_id)))

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def clean(self) -> int:
        """Delete every job record in every state. Returns keys removed."""
        removed = 0
        for pattern in (f"{self._prefix}:jobs:*", f"{self._prefix}:job:*"):
            keys = list(self._redis.scan_iter(match=pattern))
            if keys:
                removed += int(self._redis.delete(*keys))
        logger.warning("Job registry cleaned: %d keys removed", removed)
        return removed


def get_registry() -> JobRegistry:
    return JobRegistry(
        get_redis(),
        key_prefix=settings.registry_key_prefix,
        retain_completed=settings.retain_completed_jobs,
        retain_failed=settings.retain_failed_jobs,
    )
