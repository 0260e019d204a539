# =============================================================================
# Data-Change Observer — Re-Queue Documents Whose Source File Changed
# =============================================================================
#
# The third trigger next to upload and manual reprocess: any code path that
# replaces a document's file (an admin edit, a sync job, a migration) gets
# the pipeline re-run without calling the API.
#
# FLOW (SQLAlchemy session events):
#   before_flush  → for each dirty pipeline record whose source_file_url
#                   changed: status `queued`, log line, remember the ref
#   after_commit  → enqueue extraction for every remembered ref
#   after_rollback→ forget them
#
# DESIGN DECISION: Enqueue AFTER COMMIT, never inside the flush. A worker
# may pick the job up immediately and must read the new file reference.
#
# Register on the `Session` class to observe every session (the async API
# sessions included, since AsyncSession runs on a sync Session), or on one
# sessionmaker to scope it.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import event
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session

from docpipe.db.models import ProcessingStatus
from docpipe.models.jobs import DocumentRef, FileType, JobPriority
from docpipe.pipeline.context import JobPublisher
from docpipe.services.repository import KIND_PROFILES
from docpipe.services.status import append_log, format_log_line

logger = logging.getLogger(__name__)

_PENDING_KEY = "docpipe_pending_extractions"

_KIND_BY_MODEL = {profile.model: kind for kind, profile in KIND_PROFILES.items()}


@dataclass(frozen=True)
class PendingExtraction:
    ref: DocumentRef
    file_type: FileType
    source_file_url: str


def source_file_changed(record) -> bool:
    return sa_inspect(record).attrs.source_file_url.history.has_changes()


class SourceChangeObserver:
    def __init__(
        self,
        publisher_factory: Callable[[], JobPublisher],
        max_log_chars: int,
        priority: JobPriority = JobPriority.NORMAL,
    ) -> None:
        self._publisher_factory = publisher_factory
        self.max_log_chars = max_log_chars
        self.priority = priority

    def register(self, target=Session) -> None:
        event.listen(target, "before_flush", self._collect)
        event.listen(target, "after_commit", self._publish)
        event.listen(target, "after_rollback", self._discard)

    def unregister(self, target=Session) -> None:
        event.remove(target, "before_flush", self._collect)
        event.remove(target, "after_commit", self._publish)
        event.remove(target, "after_rollback", self._discard)

    def _collect(self, session: Session, flush_context, instances) -> None:
        for record in session.dirty:
            kind = _KIND_BY_MODEL.get(type(record))
            if kind is None or not source_file_changed(record):
                continue

            record.processing_status = ProcessingStatus.QUEUED
            record.processing_progress = 0
            record.processing_completed = False
            record.processing_logs = append_log(
                record.processing_logs,
                format_log_line(
                    datetime.now(UTC), ProcessingStatus.QUEUED, 0,
                    "Source file changed, queued for reprocessing",
                ),
                self.max_log_chars,
            )
            session.info.setdefault(_PENDING_KEY, []).append(
                PendingExtraction(
                    DocumentRef(kind=kind, id=record.id),
                    FileType(record.file_type),
                    record.source_file_url,
                )
            )

    def _publish(self, session: Session) -> None:
        pending: list[PendingExtraction] = session.info.pop(_PENDING_KEY, [])
        if not pending:
            return

        from docpipe.workers.queues import enqueue_extraction

        publisher = self._publisher_factory()
        for item in pending:
            job_id = enqueue_extraction(
                item.ref,
                item.file_type,
                item.source_file_url,
                priority=self.priority,
                user_id="source-change",
                publisher=publisher,
            )
            logger.info("Source of %s changed, extraction queued as %s", item.ref, job_id)

    def _discard(self, session: Session) -> None:
        session.info.pop(_PENDING_KEY, None)
