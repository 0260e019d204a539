# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# Two kinds of record can own a pipeline run. They share the same pipeline
# "spine" (status, log, extracted text, completion flag) but expose different
# enrichment fields downstream.
#
# ┌──────────────────────────────┐   ┌──────────────────────────────┐
# │  knowledge_base_entries      │   │  media_assets                │
# ├──────────────────────────────┤   ├──────────────────────────────┤
# │ id (PK, uuid string)         │   │ id (PK, uuid string)         │
# │ filename, file_type          │   │ filename, file_type          │
# │ source_file_url              │   │ source_file_url              │
# │ ── pipeline spine ──         │   │ ── pipeline spine ──         │
# │ processing_status            │   │ processing_status            │
# │ processing_progress          │   │ processing_progress          │
# │ processing_logs (text)       │   │ processing_logs (text)       │
# │ extracted_content (text)     │   │ extracted_content (text)     │
# │ processing_completed(_at)    │   │ processing_completed(_at)    │
# │ last_processed               │   │ last_processed               │
# │ ── extraction metadata ──    │   └──────────────────────────────┘
# │ chapters, word_count, ...    │
# │ ── NLP / AI / validation ──  │
# │ keywords, ai_summary, ...    │
# └──────────────────────────────┘
#
# DESIGN DECISION: JSON columns use the JSONB variant on PostgreSQL and
# plain JSON elsewhere, so the same models run under SQLite in local
# tooling.
#
# DESIGN DECISION: The record kind is a closed enum (OwnerKind). Which
# fields a kind accepts is declared once, in services/repository.py, and
# never inferred from the object at runtime.
# =============================================================================

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class OwnerKind(str, enum.Enum):
    """The two record kinds a pipeline run can belong to."""

    KNOWLEDGE_BASE = "knowledge_base"  # Full enrichment: chapters, NLP, AI, score
    MEDIA = "media"                    # Text-only: extracted content + status


class ProcessingStatus(str, enum.Enum):
    """
    Coarse pipeline progress for one document.

    State machine:
        QUEUED → EXTRACTING → ANALYZING / ENRICHING (parallel)
               → VALIDATING → COMPLETED
        any non-terminal state → FAILED
        RETRYING: written when the queue schedules another attempt

    It is a progress indicator, not queue membership: a document can be
    FAILED while no job for it exists anywhere.
    """

    QUEUED = "queued"
    EXTRACTING = "extracting"
    ANALYZING = "analyzing"
    ENRICHING = "enriching"
    VALIDATING = "validating"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


def _new_id() -> str:
    return str(uuid.uuid4())


class PipelineSpineMixin:
    """Columns every pipeline-owned record carries."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    filename: Mapped[str] = mapped_column(String(500), nullable=False)
    file_type: Mapped[str] = mapped_column(String(16), nullable=False)
    source_file_url: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    processing_status: Mapped[ProcessingStatus] = mapped_column(
        Enum(ProcessingStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ProcessingStatus.QUEUED,
    )
    processing_progress: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    # Append-only, truncated at settings.processing_log_max_chars
    processing_logs: Mapped[str] = mapped_column(Text, nullable=False, default="")
    extracted_content: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Set true ONLY by the validation stage
    processing_completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    processing_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_processed: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    uploaded_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class KnowledgeBaseEntry(PipelineSpineMixin, Base):
    """
    A document in the knowledge base.

    Receives every stage's output: chapters and metadata from extraction,
    keywords/summary/entities from linguistic analysis, AI summary, concepts,
    questions and difficulty from enrichment, and the quality score from
    validation.
    """

    __tablename__ = "knowledge_base_entries"

    # --- Extraction metadata ---
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    document_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    word_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    page_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    language: Mapped[str | None] = mapped_column(String(8), nullable=True)
    chapters: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    # --- Linguistic analysis ---
    keywords: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    auto_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    sentiment: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    extracted_entities: Mapped[list | None] = mapped_column(JSONType, nullable=True)

    # --- AI enrichment ---
    ai_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    extracted_concepts: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    suggested_questions: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    difficulty_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    ai_enriched: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_usage: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    # --- Validation ---
    validation_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    validation_passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    validation_issues: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    validation_recommendations: Mapped[list | None] = mapped_column(
        JSONType, nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<KnowledgeBaseEntry(id={self.id}, filename='{self.filename}', "
            f"status={self.processing_status})>"
        )


class MediaAsset(PipelineSpineMixin, Base):
    """
    An uploaded media file whose text is extracted for search only.

    Exposes the pipeline spine and nothing else: enrichment output addressed
    to a media asset is dropped by the repository.
    """

    __tablename__ = "media_assets"

    def __repr__(self) -> str:
        return (
            f"<MediaAsset(id={self.id}, filename='{self.filename}', "
            f"status={self.processing_status})>"
        )
