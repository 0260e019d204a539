# =============================================================================
# Linguistic-Analysis Stage — Keywords / Summary / Sentiment / Entities
# =============================================================================
#
# Runs only the requested features and writes only what they produced, so a
# re-run with fewer features never clears earlier output.
#
# This stage is a LEAF of the fan-out: it enqueues nothing. Its status
# reports are monotonic because AI enrichment, running in parallel, may
# already have moved the document further along.
# =============================================================================

from __future__ import annotations

import logging

from docpipe.db.models import ProcessingStatus
from docpipe.errors import LinguisticAnalysisError
from docpipe.models.jobs import LinguisticAnalysisJob, Stage
from docpipe.pipeline.context import PipelineContext, stage_boundary

logger = logging.getLogger(__name__)


def run_linguistic_analysis(job: LinguisticAnalysisJob, ctx: PipelineContext) -> dict:
    ref = job.ref
    features = [f.value for f in job.features]

    with stage_boundary(ctx, Stage.LINGUISTIC_ANALYSIS, job, monotonic=True):
        ctx.reporter.report(
            ref, ProcessingStatus.ANALYZING, 10,
            f"Linguistic analysis started ({', '.join(features)})",
            monotonic=True,
        )
        if not job.extracted_text.strip():
            raise LinguisticAnalysisError("No extracted text to analyse")

        try:
            result = ctx.analyzer.analyze(job.extracted_text, job.language, job.features)
        except Exception as exc:
            raise LinguisticAnalysisError(f"Analysis failed: {exc}") from exc

        fields = result.to_fields()
        ctx.reporter.report(
            ref, ProcessingStatus.ANALYZING, 100,
            f"Linguistic analysis completed: {len(result.keywords or [])} keywords, "
            f"{len(result.entities or [])} entities",
            monotonic=True,
            extra_fields=fields,
        )

    logger.info("Linguistic analysis complete for %s: wrote %s", ref, sorted(fields))
    return {
        "document": str(ref),
        "stage": Stage.LINGUISTIC_ANALYSIS.value,
        "fields": sorted(fields),
    }
