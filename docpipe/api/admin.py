# =============================================================================
# Admin API — Queue Inspection and Purge
# =============================================================================
#
# ENDPOINTS:
#   GET  /admin/queues         — per-stage waiting/active/delayed/completed/failed
#   POST /admin/queues/purge   — drop every queued job (requires confirm=true)
#
# DESIGN DECISION: Plain `def` handlers. The registry uses the sync Redis
# client, so FastAPI runs these in its threadpool instead of blocking the
# event loop.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from docpipe.api.deps import get_job_registry
from docpipe.errors import QueueError
from docpipe.models.responses import PurgeResponse, QueueStatsResponse
from docpipe.workers.queues import get_queue_stats, purge_all_queues
from docpipe.workers.registry import JobRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Admin"])


@router.get(
    "/admin/queues",
    response_model=QueueStatsResponse,
    summary="Job counts per pipeline stage",
)
def queue_stats(
    registry: JobRegistry = Depends(get_job_registry),
) -> QueueStatsResponse:
    return QueueStatsResponse.model_validate(get_queue_stats(registry))


@router.post(
    "/admin/queues/purge",
    response_model=PurgeResponse,
    summary="Drop every queued job in every stage",
    description=(
        "Irreversible. Removes waiting messages from every stage queue and "
        "every job record from the registry. Documents keep their last "
        "reported status."
    ),
)
def purge_queues(
    confirm: bool = Query(default=False, description="Must be true"),
    registry: JobRegistry = Depends(get_job_registry),
) -> PurgeResponse:
    if not confirm:
        raise HTTPException(
            status_code=400,
            detail="Purging is irreversible. Repeat the call with confirm=true.",
        )
    try:
        result = purge_all_queues(registry)
    except QueueError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return PurgeResponse(**result)
