# =============================================================================
# Validation Stage — Quality Score, Terminal Completion
# =============================================================================
#
# The chain's only leaf that COMPLETES a document: it writes the score and
# issues, sets processing_completed + processing_completed_at, and moves the
# status to `completed`. It never enqueues anything.
#
# Failing rules lower the score; only an inability to run validation at all
# (no text, repository down) is an error.
# =============================================================================

from __future__ import annotations

import logging
from datetime import UTC, datetime

from docpipe.db.models import ProcessingStatus
from docpipe.errors import ValidationStageError
from docpipe.models.jobs import Stage, ValidationJob
from docpipe.pipeline.context import PipelineContext, stage_boundary

logger = logging.getLogger(__name__)


def run_validation(job: ValidationJob, ctx: PipelineContext) -> dict:
    ref = job.ref
    validation_type = job.validation_type.value

    with stage_boundary(ctx, Stage.VALIDATION, job):
        ctx.reporter.report(
            ref, ProcessingStatus.VALIDATING, 10,
            f"Validation {validation_type} started ({len(job.rules)} rules)",
        )

        record = ctx.repository.find_by_id(ref.kind, ref.id)
        text = record.get("extracted_content") or ""
        if not text.strip():
            raise ValidationStageError("No extracted text available for validation")

        try:
            result = ctx.validator.validate(text, job.validation_type, job.rules)
        except Exception as exc:
            raise ValidationStageError(f"Validation could not run: {exc}") from exc

        fields = result.to_fields()
        fields["processing_completed"] = True
        fields["processing_completed_at"] = datetime.now(UTC)
        ctx.reporter.report(
            ref, ProcessingStatus.COMPLETED, 100,
            f"Validation {validation_type} completed (score: {result.score}/100)",
            extra_fields=fields,
        )

    logger.info(
        "Validation complete for %s: score=%d passed=%s issues=%d",
        ref, result.score, result.passed, len(result.issues),
    )
    return {
        "document": str(ref),
        "stage": Stage.VALIDATION.value,
        "score": result.score,
        "passed": result.passed,
        "issues": len(result.issues),
    }
