# =============================================================================
# AI-Enrichment Stage — LLM Summary, Concepts, Quiz, Difficulty
# =============================================================================
#
# The metered stage: concurrency 1 and a tight rate limit by default.
#
# The extracted text is RE-FETCHED from the owning document immediately
# before running, never taken from the payload, because this stage runs in
# parallel with linguistic analysis. No text yet is an AIEnrichmentError and
# goes through the normal retry path.
#
# On success this stage is the SOLE producer of validation jobs: it enqueues
# exactly one, with the default rule set and the same priority.
# =============================================================================

from __future__ import annotations

import logging

from docpipe.db.models import ProcessingStatus
from docpipe.errors import AIEnrichmentError
from docpipe.models.jobs import (
    DEFAULT_VALIDATION_RULES,
    AIEnrichmentJob,
    Stage,
    ValidationJob,
    ValidationType,
)
from docpipe.pipeline.context import PipelineContext, stage_boundary

logger = logging.getLogger(__name__)


def run_ai_enrichment(job: AIEnrichmentJob, ctx: PipelineContext) -> dict:
    ref = job.ref
    tasks = [t.value for t in job.tasks]

    with stage_boundary(ctx, Stage.AI_ENRICHMENT, job):
        ctx.reporter.report(
            ref, ProcessingStatus.ENRICHING, 10,
            f"AI enrichment started ({', '.join(tasks)})",
        )

        record = ctx.repository.find_by_id(ref.kind, ref.id)
        text = record.get("extracted_content") or ""
        if not text.strip():
            raise AIEnrichmentError("No extracted text available for enrichment")

        try:
            result = ctx.enricher.enrich(text, job.content_type, job.tasks, job.context)
        except AIEnrichmentError:
            raise
        except Exception as exc:
            raise AIEnrichmentError(f"Enrichment failed: {exc}") from exc

        usage = result.usage
        cost = (
            f"${usage.estimated_cost_usd:.4f}"
            if usage.estimated_cost_usd is not None else "unknown cost"
        )
        ctx.reporter.report(
            ref, ProcessingStatus.ENRICHING, 100,
            f"AI enrichment completed: {len(tasks)} tasks, "
            f"{usage.calls} LLM calls, {cost}",
            extra_fields=result.to_fields(),
        )

        validation_job_id = ctx.publisher.enqueue(
            Stage.VALIDATION,
            ValidationJob(
                **job.spine(),
                validation_type=ValidationType.QUALITY,
                rules=list(DEFAULT_VALIDATION_RULES),
            ),
        )

    logger.info(
        "AI enrichment complete for %s (%d LLM calls), validation job %s",
        ref, usage.calls, validation_job_id,
    )
    return {
        "document": str(ref),
        "stage": Stage.AI_ENRICHMENT.value,
        "llm_calls": usage.calls,
        "estimated_cost_usd": usage.estimated_cost_usd,
        "enqueued": [validation_job_id],
    }
