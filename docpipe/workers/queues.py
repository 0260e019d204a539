# =============================================================================
# Queue Publishing & Administration
# =============================================================================
#
# CeleryJobPublisher is the production JobPublisher: stages call
# `ctx.publisher.enqueue(stage, job)` and the job lands on that stage's
# Celery queue with its broker priority, delay and time limits.
#
# FLOW:
#   enqueue(stage, job)
#     ├── resolve policy (job.options ?? stage settings)
#     ├── pre-generate task id
#     ├── registry.mark_waiting(...)     ← visible in /admin/queues at once
#     └── celery_app.send_task(name, args=[payload], queue, priority,
#                              countdown, soft_time_limit, time_limit)
#
# DESIGN DECISION: `send_task` by name instead of importing the task
# functions, so the API process never imports worker-side code (docling,
# the sync database engine).
# =============================================================================

from __future__ import annotations

import logging
import uuid

from kombu.exceptions import OperationalError
from redis.exceptions import RedisError

from docpipe.config import Settings, settings
from docpipe.errors import QueueError
from docpipe.models.jobs import (
    BaseJob,
    DocumentRef,
    ExtractionJob,
    FileType,
    JobOptions,
    JobPriority,
    Stage,
)
from docpipe.pipeline.runner import resolve_policy
from docpipe.workers.celery_app import (
    BROKER_PRIORITY,
    HARD_LIMIT_GRACE_SECONDS,
    QUEUE_NAMES,
    TASK_NAMES,
    celery_app,
)
from docpipe.workers.registry import JOB_STATES, JobRegistry, get_registry

logger = logging.getLogger(__name__)


class CeleryJobPublisher:
    """Publishes job envelopes onto the per-stage Celery queues."""

    def __init__(
        self,
        registry: JobRegistry,
        app=celery_app,
        settings: Settings = settings,
    ) -> None:
        self.registry = registry
        self.app = app
        self.settings = settings

    def enqueue(
        self,
        stage: Stage,
        job: BaseJob,
        options: JobOptions | None = None,
    ) -> str:
        if options is not None:
            job = job.model_copy(update={"options": options})
        policy = resolve_policy(self.settings.stage(stage), job.options)
        priority = BROKER_PRIORITY[job.priority]
        job_id = str(uuid.uuid4())

        try:
            self.registry.mark_waiting(stage, job_id, job, priority, policy.delay_seconds)
            self.app.send_task(
                TASK_NAMES[stage],
                args=[job.model_dump(mode="json")],
                task_id=job_id,
                queue=QUEUE_NAMES[stage],
                priority=priority,
                countdown=policy.delay_seconds or None,
                soft_time_limit=policy.timeout_seconds,
                time_limit=policy.timeout_seconds + HARD_LIMIT_GRACE_SECONDS,
            )
        except (RedisError, OperationalError) as exc:
            self._forget(stage, job_id)
            raise QueueError(
                f"Could not enqueue {stage.value} job for {job.ref}: {exc}"
            ) from exc

        logger.info(
            "Enqueued %s job %s for %s (priority=%s)",
            stage.value, job_id, job.ref, job.priority.value,
        )
        return job_id

    def _forget(self, stage: Stage, job_id: str) -> None:
        """Drop the registry entry of a job the broker rejected."""
        try:
            self.registry.discard(stage, job_id)
        except RedisError:
            logger.warning(
                "Could not discard %s job %s from the registry", stage.value, job_id,
                exc_info=True,
            )


def get_publisher() -> CeleryJobPublisher:
    return CeleryJobPublisher(get_registry())


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


def enqueue_extraction(
    ref: DocumentRef,
    file_type: FileType,
    source_file_url: str,
    *,
    priority: JobPriority = JobPriority.NORMAL,
    user_id: str = "system",
    source_file_id: str | None = None,
    options: JobOptions | None = None,
    publisher=None,
) -> str:
    """
    Start the pipeline for one document.

    Called after an upload (priority high), for manual reprocessing and
    by the source-change observer.
    The caller is responsible for setting the record to `queued`.
    """
    job = ExtractionJob(
        document_id=ref.id,
        owner_kind=ref.kind,
        priority=priority,
        user_id=user_id,
        file_type=file_type,
        source_file_url=source_file_url,
        source_file_id=source_file_id,
    )
    return (publisher or get_publisher()).enqueue(Stage.EXTRACTION, job, options)


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


def get_queue_stats(registry: JobRegistry | None = None) -> dict:
    """Per-stage job counts plus totals across stages."""
    stages = (registry or get_registry()).stats()
    totals = dict.fromkeys(JOB_STATES, 0)
    for counts in stages.values():
        for state, n in counts.items():
            totals[state] += n
    return {"stages": stages, "totals": totals}


def purge_all_queues(registry: JobRegistry | None = None, app=celery_app) -> dict:
    """
    Drop every waiting message and every job record in every stage.

    Documents already mid-pipeline keep whatever status they last reported.
    """
    try:
        messages = app.control.purge()
        keys = (registry or get_registry()).clean()
    except (RedisError, OperationalError) as exc:
        raise QueueError(f"Queue purge failed: {exc}") from exc
    logger.warning("Purged %d queued messages and %d registry keys", messages, keys)
    return {"messages_purged": messages, "registry_keys_removed": keys}
