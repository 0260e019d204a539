# =============================================================================
# Workers Package — Celery Queue Layer
# =============================================================================
# - celery_app.py: Celery config, one queue per stage, priority steps
# - registry.py:   per-stage job states and retention in Redis
# - queues.py:     CeleryJobPublisher, triggers, queue stats / purge
# - tasks.py:      one task per stage, retries with exponential backoff
# - launcher.py:   `python -m docpipe.workers.launcher <stage>`
# =============================================================================
