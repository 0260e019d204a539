# =============================================================================
# Documents API — Pipeline Triggers and Status
# =============================================================================
#
# ENDPOINTS:
#   POST /documents/upload                          — upload + enqueue (high)
#   POST /documents/{kind}/{document_id}/process    — manual reprocess
#   GET  /documents/{kind}/{document_id}/status     — status + processing log
#
# FLOW (upload):
#   save file → create knowledge_base entry (status `queued`, first log
#   line) → COMMIT → enqueue extraction → 202 with the job id
#
# DESIGN DECISION: Commit BEFORE enqueueing. A worker can pick the job up
# within milliseconds; the row must already be visible to the sync engine.
#
# DESIGN DECISION: 202 Accepted. Processing runs in the stage workers; the
# client polls the status endpoint.
# =============================================================================

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from docpipe.api.deps import get_job_publisher
from docpipe.config import settings
from docpipe.db.engine import get_async_session
from docpipe.db.models import KnowledgeBaseEntry, OwnerKind, ProcessingStatus
from docpipe.errors import QueueError
from docpipe.models.jobs import DocumentRef, FileType, JobPriority
from docpipe.models.requests import ProcessRequest
from docpipe.models.responses import DocumentStatusResponse, EnqueueResponse
from docpipe.pipeline.context import JobPublisher
from docpipe.services.repository import KIND_PROFILES
from docpipe.services.status import append_log, format_log_line
from docpipe.workers.queues import enqueue_extraction

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Documents"])

UPLOAD_FILE_TYPES = (FileType.PDF, FileType.DOCX, FileType.TXT)

IN_FLIGHT_STATUSES = frozenset({
    ProcessingStatus.QUEUED,
    ProcessingStatus.EXTRACTING,
    ProcessingStatus.ANALYZING,
    ProcessingStatus.ENRICHING,
    ProcessingStatus.VALIDATING,
    ProcessingStatus.RETRYING,
})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _log(record, status: ProcessingStatus, progress: int, message: str) -> None:
    """Set status on an ORM record and append the matching log line."""
    now = datetime.now(UTC)
    record.processing_status = status
    record.processing_progress = progress
    record.processing_logs = append_log(
        record.processing_logs,
        format_log_line(now, status, progress, message),
        settings.processing_log_max_chars,
    )


async def _load(session: AsyncSession, kind: OwnerKind, document_id: str):
    record = await session.get(KIND_PROFILES[kind].model, document_id)
    if record is None:
        raise HTTPException(
            status_code=404,
            detail=f"{kind.value} document {document_id} not found.",
        )
    return record


async def _enqueue_or_fail(
    session: AsyncSession,
    record,
    ref: DocumentRef,
    *,
    priority: JobPriority,
    user_id: str,
    publisher: JobPublisher,
    options=None,
) -> str:
    """Enqueue extraction; on a broker error mark the record failed and 503."""
    try:
        return enqueue_extraction(
            ref,
            FileType(record.file_type),
            record.source_file_url,
            priority=priority,
            user_id=user_id,
            options=options,
            publisher=publisher,
        )
    except QueueError as exc:
        logger.error("Could not enqueue extraction for %s: %s", ref, exc)
        _log(record, ProcessingStatus.FAILED, 0, f"Could not queue extraction: {exc}")
        await session.commit()
        raise HTTPException(
            status_code=503,
            detail="Processing queue unavailable. Try again later.",
        ) from exc


# ---------------------------------------------------------------------------
# POST /documents/upload
# ---------------------------------------------------------------------------


@router.post(
    "/documents/upload",
    response_model=EnqueueResponse,
    status_code=202,
    summary="Upload a document and start the processing pipeline",
)
async def upload_document(
    file: UploadFile = File(..., description="PDF, DOCX or TXT file"),
    user_id: str = Form(default="system", max_length=100),
    session: AsyncSession = Depends(get_async_session),
    publisher: JobPublisher = Depends(get_job_publisher),
) -> EnqueueResponse:
    """
    Save the upload, create a knowledge-base entry and queue extraction
    with priority `high`.
    """
    file_type = FileType.from_filename(file.filename or "")
    if file_type not in UPLOAD_FILE_TYPES:
        allowed = ", ".join(f".{t.value}" for t in UPLOAD_FILE_TYPES)
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type. Accepted: {allowed}.",
        )

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)

    # Prefix with the entry id to avoid filename collisions.
    document_id = str(uuid.uuid4())
    file_path = upload_dir / f"{document_id}_{Path(file.filename).name}"
    file_path.write_bytes(content)
    logger.info("Saved upload: %s (%d bytes) → %s", file.filename, len(content), file_path)

    entry = KnowledgeBaseEntry(
        id=document_id,
        filename=file.filename,
        file_type=file_type.value,
        source_file_url=file_path.resolve().as_uri(),
        file_size=len(content),
        processing_logs="",
        uploaded_by=user_id,
    )
    _log(entry, ProcessingStatus.QUEUED, 0, f"Queued for processing (uploaded by {user_id})")
    session.add(entry)
    await session.commit()

    ref = DocumentRef(kind=OwnerKind.KNOWLEDGE_BASE, id=document_id)
    job_id = await _enqueue_or_fail(
        session, entry, ref,
        priority=JobPriority.HIGH, user_id=user_id, publisher=publisher,
    )

    return EnqueueResponse(
        document_id=document_id,
        owner_kind=OwnerKind.KNOWLEDGE_BASE.value,
        job_id=job_id,
        status=ProcessingStatus.QUEUED.value,
        message=f"Document '{file.filename}' uploaded. Processing queued.",
    )


# ---------------------------------------------------------------------------
# POST /documents/{kind}/{document_id}/process
# ---------------------------------------------------------------------------


@router.post(
    "/documents/{kind}/{document_id}/process",
    response_model=EnqueueResponse,
    status_code=202,
    summary="Run the pipeline again for an existing document",
)
async def process_document(
    kind: OwnerKind,
    document_id: str,
    response: Response,
    request: ProcessRequest | None = None,
    session: AsyncSession = Depends(get_async_session),
    publisher: JobPublisher = Depends(get_job_publisher),
) -> EnqueueResponse:
    """
    Queue extraction for a stored document.

    Skipped (200, `skipped=true`) while the document is still in flight,
    unless `force` is set.
    """
    request = request or ProcessRequest()
    record = await _load(session, kind, document_id)
    current = ProcessingStatus(record.processing_status)

    if current in IN_FLIGHT_STATUSES and not request.force:
        response.status_code = 200
        return EnqueueResponse(
            document_id=document_id,
            owner_kind=kind.value,
            status=current.value,
            skipped=True,
            message=f"Document is already being processed ({current.value}).",
        )

    _log(record, ProcessingStatus.QUEUED, 0,
         f"Queued for reprocessing (requested by {request.user_id})")
    await session.commit()

    ref = DocumentRef(kind=kind, id=document_id)
    job_id = await _enqueue_or_fail(
        session, record, ref,
        priority=request.priority,
        user_id=request.user_id,
        publisher=publisher,
        options=request.options,
    )

    return EnqueueResponse(
        document_id=document_id,
        owner_kind=kind.value,
        job_id=job_id,
        status=ProcessingStatus.QUEUED.value,
        message=f"Reprocessing queued with priority {request.priority.value}.",
    )


# ---------------------------------------------------------------------------
# GET /documents/{kind}/{document_id}/status
# ---------------------------------------------------------------------------


@router.get(
    "/documents/{kind}/{document_id}/status",
    response_model=DocumentStatusResponse,
    summary="Processing status, progress and log of a document",
)
async def get_document_status(
    kind: OwnerKind,
    document_id: str,
    session: AsyncSession = Depends(get_async_session),
) -> DocumentStatusResponse:
    record = await _load(session, kind, document_id)
    return DocumentStatusResponse.model_validate(record)
