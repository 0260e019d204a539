# =============================================================================
# Local Dispatcher — In-Process Priority Queues for One Machine
# =============================================================================
#
# A JobPublisher that keeps every stage queue in memory and drains them in
# the current process. Used by `scripts/process_local.py` for smoke runs
# without Redis, and by the end-to-end tests.
#
# It applies the same queue semantics as the Celery deployment:
#   - priority first (critical > high > normal > low), FIFO within a priority
#   - attempts with exponential backoff (failed attempts are re-delayed)
#   - per-stage sliding-window start limits through a RateLimiter
#   - retention of the last K completed / M failed job records per stage
#
# NOT enforced locally: job timeouts (no way to pre-empt a running Python
# call in-process) and per-stage concurrency (jobs run one at a time).
# =============================================================================

from __future__ import annotations

import itertools
import logging
import time
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from docpipe.config import Settings
from docpipe.models.jobs import BaseJob, JobOptions, Stage
from docpipe.pipeline.context import PipelineContext
from docpipe.pipeline.runner import (
    MONOTONIC_STAGES,
    JobPolicy,
    parse_job,
    resolve_policy,
    run_stage,
)
from docpipe.services.rate_limiter import InMemoryRateLimiter, RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class QueuedJob:
    job_id: str
    stage: Stage
    job: BaseJob
    policy: JobPolicy
    seq: int
    ready_at: float
    attempt: int = 1


@dataclass
class FinishedJob:
    job_id: str
    stage: Stage
    document_id: str
    attempts: int
    result: dict | None = None
    error: str | None = None


@dataclass
class StageQueue:
    waiting: list[QueuedJob] = field(default_factory=list)
    completed: deque[FinishedJob] = field(default_factory=deque)
    failed: deque[FinishedJob] = field(default_factory=deque)


class LocalDispatcher:
    """In-memory JobPublisher that also runs the jobs."""

    def __init__(
        self,
        settings: Settings,
        limiter: RateLimiter | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings
        self.limiter = limiter or InMemoryRateLimiter(clock)
        self.clock = clock
        self.sleep = sleep
        self.context: PipelineContext | None = None
        self.queues: dict[Stage, StageQueue] = {
            stage: StageQueue(
                completed=deque(maxlen=settings.retain_completed_jobs),
                failed=deque(maxlen=settings.retain_failed_jobs),
            )
            for stage in Stage
        }
        # (stage, job_id, start time) for every attempt that actually ran
        self.starts: list[tuple[Stage, str, float]] = []
        self._seq = itertools.count()

    def bind(self, context: PipelineContext) -> None:
        self.context = context

    # -------------------------------------------------------------------------
    # JobPublisher
    # -------------------------------------------------------------------------

    def enqueue(
        self,
        stage: Stage,
        job: BaseJob,
        options: JobOptions | None = None,
    ) -> str:
        policy = resolve_policy(self.settings.stage(stage), options or job.options)
        job_id = str(uuid.uuid4())
        self.queues[stage].waiting.append(
            QueuedJob(
                job_id=job_id,
                stage=stage,
                job=parse_job(stage, job),
                policy=policy,
                seq=next(self._seq),
                ready_at=self.clock() + policy.delay_seconds,
            )
        )
        logger.debug("Queued %s job %s for %s (%s)", stage.value, job_id,
                     job.ref, job.priority.value)
        return job_id

    # -------------------------------------------------------------------------
    # Draining
    # -------------------------------------------------------------------------

    def _pick(self, now: float) -> QueuedJob | None:
        ready = [
            item
            for queue in self.queues.values()
            for item in queue.waiting
            if item.ready_at <= now
        ]
        if not ready:
            return None
        return min(ready, key=lambda i: (-i.job.priority.weight, i.seq))

    def _earliest_ready_at(self) -> float | None:
        times = [i.ready_at for q in self.queues.values() for i in q.waiting]
        return min(times) if times else None

    def has_pending(self) -> bool:
        return any(q.waiting for q in self.queues.values())

    def run_next(self) -> bool:
        """Run one job (waiting for backoff or rate limit as needed)."""
        if self.context is None:
            raise RuntimeError("LocalDispatcher.bind(context) was not called")

        while True:
            if not self.has_pending():
                return False
            item = self._pick(self.clock())
            if item is not None:
                break
            self.sleep(max(self._earliest_ready_at() - self.clock(), 0.001))

        cfg = self.settings.stage(item.stage)
        while True:
            wait = self.limiter.try_acquire(
                item.stage.value, cfg.rate_limit_max, cfg.rate_limit_window_seconds,
            )
            if wait <= 0:
                break
            self.sleep(wait)

        queue = self.queues[item.stage]
        queue.waiting.remove(item)
        self.starts.append((item.stage, item.job_id, self.clock()))
        self._execute(item, queue)
        return True

    def _execute(self, item: QueuedJob, queue: StageQueue) -> None:
        try:
            result = run_stage(item.stage, item.job, self.context)
        except Exception as exc:
            if item.attempt < item.policy.attempts:
                countdown = item.policy.backoff_delay(item.attempt)
                self.context.reporter.mark_retrying(
                    item.job.ref, item.stage, item.attempt, item.policy.attempts,
                    countdown, monotonic=item.stage in MONOTONIC_STAGES,
                )
                item.attempt += 1
                item.ready_at = self.clock() + countdown
                queue.waiting.append(item)
                return
            logger.error(
                "%s job %s failed permanently after %d attempts: %s",
                item.stage.label, item.job_id, item.attempt, exc,
            )
            queue.failed.append(
                FinishedJob(item.job_id, item.stage, item.job.document_id,
                            item.attempt, error=str(exc))
            )
            return

        queue.completed.append(
            FinishedJob(item.job_id, item.stage, item.job.document_id,
                        item.attempt, result=result)
        )

    def run_until_idle(self, max_jobs: int = 10_000) -> int:
        """Drain every queue, including retries. Returns attempts executed."""
        executed = 0
        while executed < max_jobs and self.run_next():
            executed += 1
        return executed

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def stats(self) -> dict[str, dict[str, int]]:
        now = self.clock()
        return {
            stage.value: {
                "waiting": sum(1 for i in q.waiting if i.ready_at <= now),
                "active": 0,
                "delayed": sum(1 for i in q.waiting if i.ready_at > now),
                "completed": len(q.completed),
                "failed": len(q.failed),
            }
            for stage, q in self.queues.items()
        }

    def jobs_for(self, document_id: str) -> list[tuple[Stage, str]]:
        """Every job id ever created for a document, finished or not."""
        found: list[tuple[Stage, str]] = []
        for stage, queue in self.queues.items():
            for item in queue.waiting:
                if item.job.document_id == document_id:
                    found.append((stage, item.job_id))
            for finished in (*queue.completed, *queue.failed):
                if finished.document_id == document_id:
                    found.append((stage, finished.job_id))
        return found
