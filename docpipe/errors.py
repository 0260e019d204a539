# =============================================================================
# Pipeline Error Taxonomy
# =============================================================================
#
# Every stage failure is raised as a PipelineError subclass so the stage
# boundary can write a stable error code into the processing log. Failing
# validation RULES are not errors: they are scored issues. Only the
# infrastructure around validation raises ValidationStageError.
#
#   PipelineError
#   ├── ExtractionError          — unsupported type, unreadable or empty file
#   ├── LinguisticAnalysisError  — NLP failure or missing precondition
#   ├── AIEnrichmentError        — LLM failure or no extracted text yet
#   ├── ValidationStageError     — validation could not run at all
#   ├── DocumentNotFoundError    — repository miss
#   └── QueueError               — broker/registry unreachable on publish
# =============================================================================

from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base class for errors raised by pipeline stages and collaborators."""

    code = "PIPELINE_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ExtractionError(PipelineError):
    """Raised when a file cannot be turned into non-empty text."""

    def __init__(
        self,
        message: str,
        file_type: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=f"EXTRACTION_{file_type.upper()}_ERROR",
            details=details,
        )
        self.file_type = file_type


class LinguisticAnalysisError(PipelineError):
    code = "NLP_PROCESSING_ERROR"


class AIEnrichmentError(PipelineError):
    code = "AI_SERVICE_ERROR"


class ValidationStageError(PipelineError):
    code = "VALIDATION_ERROR"


class DocumentNotFoundError(PipelineError):
    code = "DOCUMENT_NOT_FOUND"

    def __init__(self, kind: str, document_id: str) -> None:
        super().__init__(
            f"{kind} document {document_id} not found",
            details={"kind": kind, "document_id": document_id},
        )
        self.kind = kind
        self.document_id = document_id


class QueueError(PipelineError):
    code = "QUEUE_ERROR"
