# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data going OUT of the API. The status response exposes the
# processing spine only; stage outputs (keywords, AI summary, validation
# report) belong to the owning record's own read endpoints.
# =============================================================================

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from docpipe.db.models import ProcessingStatus


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class EnqueueResponse(BaseModel):
    """
    Response for the trigger endpoints.

    The document is NOT processed yet. Poll
    GET /documents/{kind}/{document_id}/status for progress.
    """

    document_id: str
    owner_kind: str
    job_id: str | None = Field(
        default=None,
        description="Extraction job id; None when the request was skipped",
    )
    status: str = Field(description="Document processing status after the call")
    skipped: bool = False
    message: str


class DocumentStatusResponse(BaseModel):
    """Response for GET /documents/{kind}/{document_id}/status."""

    id: str
    filename: str | None = None
    file_type: str | None = None
    processing_status: ProcessingStatus
    processing_progress: int
    processing_logs: str | None = None
    processing_completed: bool
    processing_completed_at: datetime | None = None
    last_processed: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class StageCounts(BaseModel):
    waiting: int = 0
    active: int = 0
    delayed: int = 0
    completed: int = 0
    failed: int = 0


class QueueStatsResponse(BaseModel):
    """Response for GET /admin/queues."""

    stages: dict[str, StageCounts]
    totals: StageCounts


class PurgeResponse(BaseModel):
    """Response for POST /admin/queues/purge."""

    messages_purged: int
    registry_keys_removed: int
