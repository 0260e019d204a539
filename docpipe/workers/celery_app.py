# =============================================================================
# Celery Application Configuration — One Queue per Pipeline Stage
# =============================================================================
#
# ARCHITECTURE:
# ┌──────────┐   ┌──────────────────────────────┐   ┌───────────────────────┐
# │ FastAPI  │──▶│ Redis db 0 (broker)          │──▶│ worker -Q extraction  │ c=3
# │ triggers │   │  docpipe.extraction          │   │ worker -Q linguistic… │ c=2
# └──────────┘   │  docpipe.linguistic_analysis │   │ worker -Q ai_enrich…  │ c=1
#                │  docpipe.ai_enrichment       │   │ worker -Q validation  │ c=3
#                │  docpipe.validation          │   └───────────────────────┘
#                └──────────────────────────────┘
#
# Each stage is an independent consumer group: a slow or expensive stage
# cannot starve a cheap one because no worker consumes more than one queue.
#
# PRIORITY: Redis has no native priority queue. With `priority_steps`, kombu
# keeps one list per priority step and always drains the lower step first
# (on Redis, 0 is the HIGHEST priority). Job priorities map onto steps:
#
#   critical → 0    high → 3    normal → 6    low → 9
#
# Within one step the list is FIFO.
# =============================================================================

from __future__ import annotations

from celery import Celery
from kombu import Queue

from docpipe.config import settings
from docpipe.models.jobs import JobPriority, Stage

# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

QUEUE_NAMES: dict[Stage, str] = {stage: f"docpipe.{stage.value}" for stage in Stage}

TASK_NAMES: dict[Stage, str] = {
    Stage.EXTRACTION: "docpipe.extract_document",
    Stage.LINGUISTIC_ANALYSIS: "docpipe.analyze_document",
    Stage.AI_ENRICHMENT: "docpipe.enrich_document",
    Stage.VALIDATION: "docpipe.validate_document",
}

BROKER_PRIORITY: dict[JobPriority, int] = {
    JobPriority.CRITICAL: 0,
    JobPriority.HIGH: 3,
    JobPriority.NORMAL: 6,
    JobPriority.LOW: 9,
}

# Seconds between the soft limit (SoftTimeLimitExceeded raised in the task)
# and the hard limit (worker process killed).
HARD_LIMIT_GRACE_SECONDS = 30

# ---------------------------------------------------------------------------
# Create Celery Application
# ---------------------------------------------------------------------------
celery_app = Celery(
    "docpipe.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # JSON only: job envelopes are pydantic models dumped with mode="json".
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Reliability ---
    # Acknowledge after the task finishes so a crashed worker's job is
    # redelivered (at-least-once; stage writes are idempotent).
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # One job at a time per worker process. Priority ordering only holds for
    # messages still in the broker, so prefetching must stay minimal.
    worker_prefetch_multiplier=1,

    # --- Queues & Routing ---
    task_queues=[Queue(QUEUE_NAMES[stage]) for stage in Stage],
    task_default_queue=QUEUE_NAMES[Stage.EXTRACTION],
    task_routes={TASK_NAMES[stage]: {"queue": QUEUE_NAMES[stage]} for stage in Stage},

    # --- Priority ---
    task_default_priority=BROKER_PRIORITY[JobPriority.NORMAL],
    broker_transport_options={
        "priority_steps": list(range(10)),
        "sep": ":",
        "queue_order_strategy": "priority",
        # Must exceed the longest stage timeout, or Redis redelivers
        # unacknowledged long-running extraction jobs to another worker.
        "visibility_timeout": settings.extraction.timeout_seconds * 2,
    },

    # --- Timeouts ---
    # Per-stage limits are set on each task (workers/tasks.py) and per job at
    # publish time. These are the fallbacks.
    task_soft_time_limit=300,
    task_time_limit=300 + HARD_LIMIT_GRACE_SECONDS,

    # --- Results ---
    result_expires=3600,

    # --- Task Discovery ---
    include=["docpipe.workers.tasks"],
)
