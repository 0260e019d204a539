# =============================================================================
# API Dependencies — Queue Collaborators for Route Handlers
# =============================================================================
#
# DESIGN DECISION: The publisher and registry are FastAPI dependencies, not
# module imports, so tests swap them for in-memory doubles through
# `app.dependency_overrides` without Redis.
# =============================================================================

from __future__ import annotations

from docpipe.pipeline.context import JobPublisher
from docpipe.workers.queues import get_publisher
from docpipe.workers.registry import JobRegistry, get_registry


def get_job_publisher() -> JobPublisher:
    """Publisher used by the trigger endpoints."""
    return get_publisher()


def get_job_registry() -> JobRegistry:
    """Registry used by the queue admin endpoints."""
    return get_registry()
