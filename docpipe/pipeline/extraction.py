# =============================================================================
# Extraction Stage — File → Text, then Fan-Out
# =============================================================================
#
# STEPS:
#   1. Status EXTRACTING 10%
#   2. Pick the extractor for job.file_type (unknown type → ExtractionError)
#   3. Reject success=False or whitespace-only text (ExtractionError)
#   4. Persist text + metadata; chapters only reach knowledge-base entries
#   5. Status EXTRACTING 100%
#   6. Fan-out: one linguistic-analysis job AND one AI-enrichment job
#
# The two successors run in parallel. Neither waits for the other, and the
# AI-enrichment stage re-reads the persisted text rather than trusting its
# payload.
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import asdict

from docpipe.db.models import ProcessingStatus
from docpipe.errors import ExtractionError
from docpipe.models.jobs import (
    DEFAULT_AI_CONTEXT,
    AIEnrichmentJob,
    AITask,
    ContentType,
    ExtractionJob,
    Language,
    LinguisticAnalysisJob,
    NlpFeature,
    Stage,
)
from docpipe.pipeline.context import PipelineContext, stage_boundary
from docpipe.services.extractors import get_extractor

logger = logging.getLogger(__name__)

ANALYSIS_FEATURES = [NlpFeature.KEYWORDS, NlpFeature.SUMMARY, NlpFeature.ENTITIES]
ENRICHMENT_TASKS = [
    AITask.SUMMARY,
    AITask.CONCEPT_EXTRACTION,
    AITask.DIFFICULTY_ASSESSMENT,
]


def run_extraction(job: ExtractionJob, ctx: PipelineContext) -> dict:
    """Extract text for one document and fan out to the enrichment stages."""
    ref = job.ref
    file_type = job.file_type.value

    with stage_boundary(ctx, Stage.EXTRACTION, job):
        ctx.reporter.report(
            ref, ProcessingStatus.EXTRACTING, 10,
            f"Extraction started ({file_type}, requested by {job.user_id})",
        )

        extractor = get_extractor(ctx.extractors, job.file_type)
        result = extractor.extract(job.source_file_url)
        if not result.success:
            raise ExtractionError(
                result.error or "Extractor reported failure", file_type=file_type,
            )
        text = result.extracted_text
        if not text.strip():
            raise ExtractionError("Extracted text is empty", file_type=file_type)

        meta = result.metadata
        fields = {
            "extracted_content": text,
            "word_count": meta.word_count,
            "language": meta.language,
            "page_count": meta.page_count,
            "document_type": file_type,
        }
        if meta.title:
            fields["title"] = meta.title
        if result.chapters:
            fields["chapters"] = [asdict(c) for c in result.chapters]

        ctx.reporter.report(
            ref, ProcessingStatus.EXTRACTING, 100,
            f"Extraction completed: {meta.word_count} words, "
            f"{len(result.chapters)} chapters, language {meta.language}",
            extra_fields=fields,
        )

        language = Language.EN if meta.language == Language.EN.value else Language.FR
        analysis_job_id = ctx.publisher.enqueue(
            Stage.LINGUISTIC_ANALYSIS,
            LinguisticAnalysisJob(
                **job.spine(),
                extracted_text=text,
                language=language,
                features=list(ANALYSIS_FEATURES),
            ),
        )
        enrichment_job_id = ctx.publisher.enqueue(
            Stage.AI_ENRICHMENT,
            AIEnrichmentJob(
                **job.spine(),
                content_type=ContentType.MEDICAL,
                tasks=list(ENRICHMENT_TASKS),
                context=dict(DEFAULT_AI_CONTEXT),
            ),
        )

    logger.info(
        "Extraction complete for %s: %d words, fan-out analysis=%s enrichment=%s",
        ref, meta.word_count, analysis_job_id, enrichment_job_id,
    )
    return {
        "document": str(ref),
        "stage": Stage.EXTRACTION.value,
        "word_count": meta.word_count,
        "language": meta.language,
        "chapters": len(result.chapters),
        "enqueued": [analysis_job_id, enrichment_job_id],
    }
