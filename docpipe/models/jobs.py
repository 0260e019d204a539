# =============================================================================
# Job Envelopes — Pydantic V2 Schemas for Stage Queues
# =============================================================================
#
# One envelope per stage, sharing a common spine:
#
#   BaseJob
#   ├── document_id + owner_kind   → which record owns the run
#   ├── priority                   → low | normal | high | critical
#   ├── user_id                    → audit/log attribution only
#   └── options                    → per-job retry/timeout/delay overrides
#
#   ExtractionJob          file_type, source_file_url
#   LinguisticAnalysisJob  extracted_text, language, features
#   AIEnrichmentJob        content_type, tasks, context
#   ValidationJob          validation_type, rules
#
# DESIGN DECISION: Envelopes travel through Celery as plain JSON dicts
# (`model_dump(mode="json")`) and are re-validated by the consuming task.
# The JSON serializer is the only one the workers accept.
# =============================================================================

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from docpipe.db.models import OwnerKind

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Stage(str, enum.Enum):
    """Pipeline stages. Each has its own queue and worker pool."""

    EXTRACTION = "extraction"
    LINGUISTIC_ANALYSIS = "linguistic_analysis"
    AI_ENRICHMENT = "ai_enrichment"
    VALIDATION = "validation"

    @property
    def settings_key(self) -> str:
        """Attribute name of this stage's StageSettings on Settings."""
        return self.value

    @property
    def label(self) -> str:
        """Human-readable stage name used in processing log lines."""
        return _STAGE_LABELS[self]


_STAGE_LABELS = {
    Stage.EXTRACTION: "Extraction",
    Stage.LINGUISTIC_ANALYSIS: "Linguistic analysis",
    Stage.AI_ENRICHMENT: "AI enrichment",
    Stage.VALIDATION: "Validation",
}


class JobPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def weight(self) -> int:
        """Larger weight is served first."""
        return _PRIORITY_WEIGHTS[self]


_PRIORITY_WEIGHTS = {
    JobPriority.LOW: 1,
    JobPriority.NORMAL: 5,
    JobPriority.HIGH: 10,
    JobPriority.CRITICAL: 20,
}


class FileType(str, enum.Enum):
    PDF = "pdf"
    EPUB = "epub"
    DOCX = "docx"
    TXT = "txt"

    @classmethod
    def from_filename(cls, filename: str) -> FileType | None:
        """Guess the file type from an extension, None when unknown."""
        suffix = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        try:
            return cls(suffix)
        except ValueError:
            return None


class Language(str, enum.Enum):
    FR = "fr"
    EN = "en"


class NlpFeature(str, enum.Enum):
    KEYWORDS = "keywords"
    SUMMARY = "summary"
    SENTIMENT = "sentiment"
    ENTITIES = "entities"


class ContentType(str, enum.Enum):
    MEDICAL = "medical"
    GENERAL = "general"


class AITask(str, enum.Enum):
    SUMMARY = "summary"
    CONCEPT_EXTRACTION = "concept-extraction"
    QUIZ_GENERATION = "quiz-generation"
    DIFFICULTY_ASSESSMENT = "difficulty-assessment"


class ValidationType(str, enum.Enum):
    MEDICAL = "medical"
    QUALITY = "quality"
    PLAGIARISM = "plagiarism"


class RuleSeverity(str, enum.Enum):
    WARNING = "warning"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Envelope Spine
# ---------------------------------------------------------------------------


class DocumentRef(BaseModel):
    """Owner-tagged document identifier."""

    kind: OwnerKind
    id: str

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class JobOptions(BaseModel):
    """Per-job overrides of the stage's queue policy. None = stage default."""

    attempts: int | None = Field(default=None, ge=1)
    backoff_base_seconds: float | None = Field(default=None, ge=0)
    timeout_seconds: int | None = Field(default=None, ge=1)
    delay_seconds: float | None = Field(default=None, ge=0)


class BaseJob(BaseModel):
    """Fields every stage envelope carries."""

    document_id: str = Field(min_length=1)
    owner_kind: OwnerKind = OwnerKind.KNOWLEDGE_BASE
    priority: JobPriority = JobPriority.NORMAL
    user_id: str = "system"
    options: JobOptions | None = None

    @property
    def ref(self) -> DocumentRef:
        return DocumentRef(kind=self.owner_kind, id=self.document_id)

    def spine(self) -> dict[str, Any]:
        """The shared fields, for building the next stage's envelope."""
        return {
            "document_id": self.document_id,
            "owner_kind": self.owner_kind,
            "priority": self.priority,
            "user_id": self.user_id,
        }


# ---------------------------------------------------------------------------
# Stage Envelopes
# ---------------------------------------------------------------------------


class ExtractionJob(BaseJob):
    file_type: FileType
    source_file_url: str = Field(min_length=1)
    source_file_id: str | None = None


class LinguisticAnalysisJob(BaseJob):
    extracted_text: str
    language: Language = Language.FR
    features: list[NlpFeature] = Field(
        default_factory=lambda: [
            NlpFeature.KEYWORDS, NlpFeature.SUMMARY, NlpFeature.ENTITIES,
        ],
    )


class AIEnrichmentJob(BaseJob):
    content_type: ContentType = ContentType.MEDICAL
    tasks: list[AITask] = Field(
        default_factory=lambda: [
            AITask.SUMMARY,
            AITask.CONCEPT_EXTRACTION,
            AITask.DIFFICULTY_ASSESSMENT,
        ],
    )
    context: dict[str, Any] = Field(default_factory=dict)


class ValidationRule(BaseModel):
    id: str
    name: str = ""
    description: str = ""
    category: str = "quality"
    severity: RuleSeverity = RuleSeverity.WARNING


class ValidationJob(BaseJob):
    validation_type: ValidationType = ValidationType.QUALITY
    rules: list[ValidationRule] = Field(
        default_factory=lambda: list(DEFAULT_VALIDATION_RULES),
    )


# Rule set attached by the AI-enrichment stage to every validation job.
DEFAULT_VALIDATION_RULES: tuple[ValidationRule, ...] = (
    ValidationRule(
        id="medical_accuracy",
        name="Medical accuracy",
        description="Flags absolute medical claims",
        category="medical",
        severity=RuleSeverity.ERROR,
    ),
    ValidationRule(
        id="content_length",
        name="Content length",
        description="Requires at least 100 words",
        category="quality",
        severity=RuleSeverity.WARNING,
    ),
    ValidationRule(
        id="structure_quality",
        name="Structure quality",
        description="Requires headings, paragraphs or lists",
        category="quality",
        severity=RuleSeverity.WARNING,
    ),
)

DEFAULT_AI_CONTEXT: dict[str, str] = {
    "medical_domain": "general",
    "target_audience": "medical_students",
}

JOB_MODELS: dict[Stage, type[BaseJob]] = {
    Stage.EXTRACTION: ExtractionJob,
    Stage.LINGUISTIC_ANALYSIS: LinguisticAnalysisJob,
    Stage.AI_ENRICHMENT: AIEnrichmentJob,
    Stage.VALIDATION: ValidationJob,
}
