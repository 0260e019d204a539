# =============================================================================
# Celery Task Definitions — One Task per Pipeline Stage
# =============================================================================
#
# Each task is a thin shell around a queue-agnostic stage function
# (docpipe/pipeline/*). The shell adds what only the queue layer can do:
#
#   1. Rate limit: block until the stage's sliding window has a free slot
#   2. Run the stage (status writes + downstream enqueues happen inside)
#   3. On failure: retry with exponential backoff until attempts run out
#
# Job state bookkeeping for /admin/queues happens in PipelineTask hooks:
#   before_start → active, on_success → completed, on_failure → failed.
#   Scheduled retries are recorded as delayed just before `self.retry`.
#
# IMPORTANT: Celery workers are SYNCHRONOUS.
# - Do NOT use `async/await` in Celery tasks
# - Do NOT use the async SQLAlchemy engine (use sync engine instead)
#
# TIMEOUTS: each task carries its stage's soft/hard time limits; publishers
# may override them per job. SoftTimeLimitExceeded is an ordinary exception
# to the stage boundary, so a timed-out attempt is a failed attempt.
# =============================================================================

from __future__ import annotations

import logging
import time

from celery import Task
from celery.signals import worker_process_init

from docpipe.config import settings
from docpipe.models.jobs import Stage
from docpipe.pipeline.context import PipelineContext, build_context, stage_boundary
from docpipe.pipeline.runner import (
    MONOTONIC_STAGES,
    parse_job,
    resolve_policy,
    run_stage,
)
from docpipe.services.rate_limiter import RedisRateLimiter, acquire
from docpipe.workers.celery_app import HARD_LIMIT_GRACE_SECONDS, TASK_NAMES, celery_app
from docpipe.workers.registry import get_redis, get_registry

logger = logging.getLogger(__name__)

# Lazy per-process collaborators (built on first task, after fork)
_context: PipelineContext | None = None
_limiter: RedisRateLimiter | None = None


def get_worker_context() -> PipelineContext:
    global _context
    if _context is None:
        from docpipe.services.repository import SqlAlchemyDocumentRepository
        from docpipe.workers.queues import CeleryJobPublisher

        _context = build_context(
            settings,
            SqlAlchemyDocumentRepository(),
            CeleryJobPublisher(get_registry()),
        )
    return _context


def get_rate_limiter() -> RedisRateLimiter:
    global _limiter
    if _limiter is None:
        _limiter = RedisRateLimiter(get_redis(), key_prefix=settings.registry_key_prefix)
    return _limiter


@worker_process_init.connect
def _reset_after_fork(**kwargs) -> None:
    """Drop database connections inherited from the parent worker process."""
    from docpipe.db.engine import reset_sync_engine

    reset_sync_engine()


# ---------------------------------------------------------------------------
# Base Task
# ---------------------------------------------------------------------------


class PipelineTask(Task):
    """Celery task bound to one pipeline stage."""

    stage: Stage

    def before_start(self, task_id, args, kwargs):
        get_registry().mark_active(self.stage, task_id, attempt=self.request.retries + 1)

    def on_success(self, retval, task_id, args, kwargs):
        get_registry().mark_completed(self.stage, task_id)

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        get_registry().mark_failed(self.stage, task_id, f"{type(exc).__name__}: {exc}")

    def run_stage(self, payload: dict) -> dict:
        ctx = get_worker_context()
        job = parse_job(self.stage, payload)
        stage_settings = ctx.settings.stage(self.stage)
        policy = resolve_policy(stage_settings, job.options)
        attempt = self.request.retries + 1
        task_id = self.request.id

        monotonic = self.stage in MONOTONIC_STAGES

        try:
            # A limiter outage is a failed attempt like any stage error
            with stage_boundary(ctx, self.stage, job, monotonic=monotonic):
                acquire(
                    get_rate_limiter(),
                    self.stage.value,
                    stage_settings.rate_limit_max,
                    stage_settings.rate_limit_window_seconds,
                    poll_seconds=ctx.settings.rate_limit_poll_seconds,
                )

            logger.info(
                "[%s] %s attempt %d/%d for %s",
                task_id, self.stage.label, attempt, policy.attempts, job.ref,
            )
            summary = run_stage(self.stage, job, ctx)
        except Exception as exc:
            if attempt >= policy.attempts:
                logger.error(
                    "[%s] %s failed permanently after %d attempts",
                    task_id, self.stage.label, attempt,
                )
                raise

            countdown = policy.backoff_delay(attempt)
            ctx.reporter.mark_retrying(
                job.ref, self.stage, attempt, policy.attempts, countdown,
                monotonic=monotonic,
            )
            get_registry().mark_delayed(
                self.stage, task_id, time.time() + countdown, f"{type(exc).__name__}: {exc}",
            )
            raise self.retry(exc=exc, countdown=countdown, max_retries=policy.attempts - 1)

        logger.info("[%s] %s complete: %s", task_id, self.stage.label, summary)
        return summary


def _limits(stage: Stage) -> dict:
    timeout = settings.stage(stage).timeout_seconds
    return {
        "soft_time_limit": timeout,
        "time_limit": timeout + HARD_LIMIT_GRACE_SECONDS,
    }


# ---------------------------------------------------------------------------
# Stage Tasks
# ---------------------------------------------------------------------------


@celery_app.task(
    bind=True,
    base=PipelineTask,
    name=TASK_NAMES[Stage.EXTRACTION],
    stage=Stage.EXTRACTION,
    **_limits(Stage.EXTRACTION),
)
def extract_document(self, payload: dict) -> dict:
    """Extract text + structure, then fan out to analysis and enrichment."""
    return self.run_stage(payload)


@celery_app.task(
    bind=True,
    base=PipelineTask,
    name=TASK_NAMES[Stage.LINGUISTIC_ANALYSIS],
    stage=Stage.LINGUISTIC_ANALYSIS,
    **_limits(Stage.LINGUISTIC_ANALYSIS),
)
def analyze_document(self, payload: dict) -> dict:
    """Keywords, summary, sentiment, entities. Leaf of the pipeline."""
    return self.run_stage(payload)


@celery_app.task(
    bind=True,
    base=PipelineTask,
    name=TASK_NAMES[Stage.AI_ENRICHMENT],
    stage=Stage.AI_ENRICHMENT,
    **_limits(Stage.AI_ENRICHMENT),
)
def enrich_document(self, payload: dict) -> dict:
    """LLM summary, concepts, questions, difficulty; then queue validation."""
    return self.run_stage(payload)


@celery_app.task(
    bind=True,
    base=PipelineTask,
    name=TASK_NAMES[Stage.VALIDATION],
    stage=Stage.VALIDATION,
    **_limits(Stage.VALIDATION),
)
def validate_document(self, payload: dict) -> dict:
    """Rule-based quality score. Marks the document completed."""
    return self.run_stage(payload)


STAGE_TASKS = {
    Stage.EXTRACTION: extract_document,
    Stage.LINGUISTIC_ANALYSIS: analyze_document,
    Stage.AI_ENRICHMENT: enrich_document,
    Stage.VALIDATION: validate_document,
}
