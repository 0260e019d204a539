# =============================================================================
# Status Reporter — Processing Status + Append-Only Processing Log
# =============================================================================
#
# Every stage reports progress through this one helper. A report:
#   1. appends "[<ISO timestamp>] <status> <progress>% - <message>" to the
#      document's processing log,
#   2. truncates the log to `max_log_chars` (the head is kept; once the cap
#      is hit later lines are cut, never rotated in),
#   3. sets processing_status, processing_progress and last_processed.
#
# DESIGN DECISION: MONOTONIC reports. Linguistic analysis runs in parallel
# with AI enrichment and may finish after enrichment moved the document to
# `validating` or `completed`. A monotonic report still appends its log line
# but never moves the status backwards, never leaves `failed`, and never
# overwrites `completed`.
#
# DESIGN DECISION: `mark_failed` never masks the stage error. If writing the
# failure itself fails (repository down), that secondary error is logged and
# the caller re-raises the ORIGINAL exception.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from docpipe.db.models import ProcessingStatus
from docpipe.models.jobs import DocumentRef, Stage
from docpipe.services.repository import DocumentRepository

logger = logging.getLogger(__name__)

_STATUS_RANK = {
    ProcessingStatus.QUEUED: 0,
    ProcessingStatus.RETRYING: 0,
    ProcessingStatus.EXTRACTING: 1,
    ProcessingStatus.ANALYZING: 2,
    ProcessingStatus.ENRICHING: 3,
    ProcessingStatus.VALIDATING: 4,
    ProcessingStatus.COMPLETED: 5,
}


def format_log_line(
    timestamp: datetime,
    status: ProcessingStatus,
    progress: int,
    message: str,
) -> str:
    return f"[{timestamp.isoformat()}] {status.value} {progress}% - {message}"


def append_log(existing: str | None, line: str, max_chars: int) -> str:
    """Append one line, keeping at most the first `max_chars` characters."""
    combined = f"{existing}\n{line}" if existing else line
    return combined[:max_chars]


def status_may_advance(
    current: ProcessingStatus | str | None,
    new: ProcessingStatus,
) -> bool:
    """Whether a monotonic report may replace `current` with `new`."""
    if current is None:
        return True
    current = ProcessingStatus(current)
    if current == ProcessingStatus.COMPLETED:
        return False
    if current == ProcessingStatus.FAILED:
        return False
    if new == ProcessingStatus.FAILED:
        return True
    return _STATUS_RANK[new] >= _STATUS_RANK[current]


class StatusReporter:
    """Writes status + log lines for one repository."""

    def __init__(
        self,
        repository: DocumentRepository,
        max_log_chars: int = 50_000,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.max_log_chars = max_log_chars
        self._clock = clock or (lambda: datetime.now(UTC))

    def report(
        self,
        ref: DocumentRef,
        status: ProcessingStatus,
        progress: int,
        message: str,
        *,
        monotonic: bool = False,
        extra_fields: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Append a log line and (unless held back) set the status."""
        now = self._clock()
        progress = max(0, min(100, int(progress)))
        record = self.repository.find_by_id(ref.kind, ref.id)

        fields: dict[str, Any] = dict(extra_fields or {})
        fields["processing_logs"] = append_log(
            record.get("processing_logs"),
            format_log_line(now, status, progress, message),
            self.max_log_chars,
        )
        fields["last_processed"] = now

        current = record.get("processing_status")
        if not monotonic or status_may_advance(current, status):
            fields["processing_status"] = status
            fields["processing_progress"] = progress
        else:
            logger.debug(
                "Holding status of %s at %s (monotonic report of %s)",
                ref, current, status.value,
            )

        return self.repository.update(ref.kind, ref.id, fields)

    def mark_failed(
        self,
        ref: DocumentRef,
        stage: Stage,
        error: BaseException,
        *,
        monotonic: bool = False,
    ) -> None:
        """Record a stage failure. Never raises."""
        message = f"{stage.label} failed: {error}"
        try:
            self.report(ref, ProcessingStatus.FAILED, 0, message, monotonic=monotonic)
        except Exception:
            logger.exception(
                "Could not record %s failure for %s (original error: %s)",
                stage.value, ref, error,
            )

    def mark_retrying(
        self,
        ref: DocumentRef,
        stage: Stage,
        attempt: int,
        attempts: int,
        countdown: float,
        *,
        monotonic: bool = False,
    ) -> None:
        """Record that the queue scheduled another attempt. Never raises."""
        message = (
            f"{stage.label} attempt {attempt}/{attempts} failed, "
            f"retrying in {countdown:g}s"
        )
        try:
            self.report(
                ref, ProcessingStatus.RETRYING, 0, message, monotonic=monotonic,
            )
        except Exception:
            logger.exception("Could not record %s retry for %s", stage.value, ref)
