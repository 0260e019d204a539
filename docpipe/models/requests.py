# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shapes of data coming INTO the trigger endpoints. Uploads arrive as
# multipart form data (file + form fields), so only the reprocess trigger
# takes a JSON body.
# =============================================================================

from __future__ import annotations

from pydantic import BaseModel, Field

from docpipe.models.jobs import JobOptions, JobPriority


class ProcessRequest(BaseModel):
    """
    Request body for POST /documents/{kind}/{document_id}/process.

    Example:
        {
            "priority": "critical",
            "force": false,
            "options": {"attempts": 5}
        }
    """

    priority: JobPriority = Field(
        default=JobPriority.NORMAL,
        description="Queue priority of the extraction job",
    )
    force: bool = Field(
        default=False,
        description="Enqueue even if the document is already being processed",
    )
    user_id: str = Field(
        default="system",
        max_length=100,
        description="Who requested the run (recorded in the processing log)",
    )
    options: JobOptions | None = Field(
        default=None,
        description="Per-job overrides of attempts, backoff, timeout and delay",
    )
