# =============================================================================
# Document Repository — find_by_id / partial update per owning record kind
# =============================================================================
#
# Stages talk to storage through a two-method Protocol:
#
#   find_by_id(kind, id) → dict of column values
#   update(kind, id, fields) → dict of column values after the update
#
# Updates are PARTIAL: stages write disjoint subsets of fields, and anything
# not in `fields` is left untouched.
#
# DESIGN DECISION: Each OwnerKind maps to an OwnerKindProfile declaring the
# ORM model and the set of writable fields. Fields outside the profile are
# dropped before the write (a media asset silently receives text only), so
# stages never branch on the record kind themselves.
#
# DESIGN DECISION: No optimistic concurrency. The fanned-out stages do
# read-modify-write on the same row; concurrent writers are last-writer-wins.
# This is safe in practice because each stage owns a disjoint set of fields,
# with `processing_status` / `processing_logs` as the shared exception.
#
# IMPLEMENTATIONS:
#   SqlAlchemyDocumentRepository  — sync session, used by Celery workers
#   InMemoryDocumentRepository    — dict-backed, used by the local runner
# =============================================================================

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from sqlalchemy import inspect as sa_inspect

from docpipe.db.models import (
    Base,
    KnowledgeBaseEntry,
    MediaAsset,
    OwnerKind,
    ProcessingStatus,
)
from docpipe.errors import DocumentNotFoundError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Owning Record Kinds
# ---------------------------------------------------------------------------

SPINE_FIELDS = frozenset({
    "processing_status",
    "processing_progress",
    "processing_logs",
    "extracted_content",
    "processing_completed",
    "processing_completed_at",
    "last_processed",
})

KNOWLEDGE_BASE_FIELDS = SPINE_FIELDS | frozenset({
    # extraction
    "title", "document_type", "word_count", "page_count", "language", "chapters",
    # linguistic analysis
    "keywords", "auto_summary", "sentiment", "extracted_entities",
    # AI enrichment
    "ai_summary", "extracted_concepts", "suggested_questions",
    "difficulty_score", "ai_enriched", "ai_usage",
    # validation
    "validation_score", "validation_passed", "validation_issues",
    "validation_recommendations",
})


@dataclass(frozen=True)
class OwnerKindProfile:
    """Write strategy for one owning record kind."""

    kind: OwnerKind
    model: type[Base]
    writable: frozenset[str]

    def filter(self, fields: dict[str, Any]) -> dict[str, Any]:
        accepted = {k: v for k, v in fields.items() if k in self.writable}
        dropped = sorted(set(fields) - set(accepted))
        if dropped:
            logger.debug("%s ignores fields: %s", self.kind.value, ", ".join(dropped))
        return accepted


KIND_PROFILES: dict[OwnerKind, OwnerKindProfile] = {
    OwnerKind.KNOWLEDGE_BASE: OwnerKindProfile(
        OwnerKind.KNOWLEDGE_BASE, KnowledgeBaseEntry, KNOWLEDGE_BASE_FIELDS,
    ),
    OwnerKind.MEDIA: OwnerKindProfile(OwnerKind.MEDIA, MediaAsset, SPINE_FIELDS),
}


class DocumentRepository(Protocol):
    """Storage boundary used by every stage."""

    def find_by_id(self, kind: OwnerKind, document_id: str) -> dict[str, Any]:
        ...

    def update(
        self,
        kind: OwnerKind,
        document_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        ...


def _row_to_dict(row: Base) -> dict[str, Any]:
    return {
        attr.key: getattr(row, attr.key)
        for attr in sa_inspect(row).mapper.column_attrs
    }


# ---------------------------------------------------------------------------
# SQLAlchemy (workers)
# ---------------------------------------------------------------------------


class SqlAlchemyDocumentRepository:
    """Repository over the sync engine. One short transaction per call."""

    def find_by_id(self, kind: OwnerKind, document_id: str) -> dict[str, Any]:
        from docpipe.db.engine import get_sync_session

        profile = KIND_PROFILES[kind]
        with get_sync_session() as session:
            row = session.get(profile.model, document_id)
            if row is None:
                raise DocumentNotFoundError(kind.value, document_id)
            return _row_to_dict(row)

    def update(
        self,
        kind: OwnerKind,
        document_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        from docpipe.db.engine import get_sync_session

        profile = KIND_PROFILES[kind]
        values = profile.filter(fields)
        with get_sync_session() as session:
            row = session.get(profile.model, document_id)
            if row is None:
                raise DocumentNotFoundError(kind.value, document_id)
            for key, value in values.items():
                setattr(row, key, value)
            session.flush()
            return _row_to_dict(row)


# ---------------------------------------------------------------------------
# In-Memory (local runner)
# ---------------------------------------------------------------------------


class InMemoryDocumentRepository:
    """
    Dict-backed repository with the same kind profiles as the SQL one.

    Records returned are copies; mutating them does not touch the store.
    """

    def __init__(self) -> None:
        self._records: dict[tuple[OwnerKind, str], dict[str, Any]] = {}
        self._lock = threading.Lock()

    def create(self, kind: OwnerKind, document_id: str, **fields: Any) -> dict[str, Any]:
        record: dict[str, Any] = {
            "id": document_id,
            "processing_status": ProcessingStatus.QUEUED,
            "processing_progress": 0,
            "processing_logs": "",
            "extracted_content": None,
            "processing_completed": False,
            "processing_completed_at": None,
            "last_processed": None,
            "created_at": datetime.now(UTC),
        }
        record.update(fields)
        with self._lock:
            self._records[(kind, document_id)] = record
        return copy.deepcopy(record)

    def find_by_id(self, kind: OwnerKind, document_id: str) -> dict[str, Any]:
        with self._lock:
            record = self._records.get((kind, document_id))
            if record is None:
                raise DocumentNotFoundError(kind.value, document_id)
            return copy.deepcopy(record)

    def update(
        self,
        kind: OwnerKind,
        document_id: str,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        values = KIND_PROFILES[kind].filter(fields)
        with self._lock:
            record = self._records.get((kind, document_id))
            if record is None:
                raise DocumentNotFoundError(kind.value, document_id)
            record.update(copy.deepcopy(values))
            return copy.deepcopy(record)
