# =============================================================================
# FastAPI Application — Entry Point
# =============================================================================
#
# Serves the pipeline triggers and the queue admin surface. All document
# processing happens in the per-stage Celery workers
# (`python -m docpipe.workers.launcher <stage>`).
#
# USAGE:
#   uvicorn docpipe.main:app --reload
# =============================================================================

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from docpipe.api.admin import router as admin_router
from docpipe.api.documents import router as documents_router
from docpipe.config import settings
from docpipe.db.observers import SourceChangeObserver
from docpipe.models.jobs import Stage
from docpipe.models.responses import HealthResponse
from docpipe.workers.queues import get_publisher

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the queue configuration and watch for replaced source files."""
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    for stage in Stage:
        cfg = settings.stage(stage)
        logger.info(
            "Stage %s: concurrency=%d, rate=%d/%.0fs, attempts=%d, timeout=%ds",
            stage.value, cfg.concurrency, cfg.rate_limit_max,
            cfg.rate_limit_window_seconds, cfg.attempts, cfg.timeout_seconds,
        )

    observer = SourceChangeObserver(get_publisher, settings.processing_log_max_chars)
    observer.register()

    yield

    observer.unregister()
    from docpipe.db.engine import async_engine
    await async_engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=(
        "Asynchronous document processing: extraction, linguistic analysis, "
        "AI enrichment and validation on prioritized per-stage queues."
    ),
    lifespan=lifespan,
)

app.include_router(documents_router)
app.include_router(admin_router)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health() -> HealthResponse:
    return HealthResponse(version=settings.app_version, service=settings.app_name)
