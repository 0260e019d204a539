# =============================================================================
# Pipeline Context — Everything a Stage Needs, Built Once at Startup
# =============================================================================
#
# Stage functions are plain `run_<stage>(job, ctx)` callables. They know
# nothing about Celery: the same functions run inside Celery tasks
# (workers/tasks.py) and inside the in-process LocalDispatcher used by the
# local runner and the end-to-end tests.
#
# DESIGN DECISION: Push-based chaining. There is no orchestrator; a stage
# that succeeds calls `ctx.publisher.enqueue(next_stage, job)` itself.
#
# DESIGN DECISION: One context per worker process, built from Settings at
# startup. Stages never read configuration from module globals.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Protocol

from docpipe.config import Settings
from docpipe.models.jobs import BaseJob, FileType, JobOptions, Stage
from docpipe.services.enrichment import AIEnricher
from docpipe.services.extractors import Extractor
from docpipe.services.nlp import LinguisticAnalyzer
from docpipe.services.repository import DocumentRepository
from docpipe.services.status import StatusReporter
from docpipe.services.validation import ContentValidator

logger = logging.getLogger(__name__)


class JobPublisher(Protocol):
    """Puts a job envelope on a stage queue and returns its job id."""

    def enqueue(
        self,
        stage: Stage,
        job: BaseJob,
        options: JobOptions | None = None,
    ) -> str:
        ...


@dataclass
class PipelineContext:
    settings: Settings
    repository: DocumentRepository
    reporter: StatusReporter
    publisher: JobPublisher
    extractors: dict[FileType, Extractor]
    analyzer: LinguisticAnalyzer
    enricher: AIEnricher
    validator: ContentValidator


def build_context(
    settings: Settings,
    repository: DocumentRepository,
    publisher: JobPublisher,
    extractors: dict[FileType, Extractor] | None = None,
    enricher: AIEnricher | None = None,
) -> PipelineContext:
    """Assemble a context with the default collaborators."""
    from docpipe.services.extractors import default_extractors
    from docpipe.services.llm import get_llm_provider

    return PipelineContext(
        settings=settings,
        repository=repository,
        reporter=StatusReporter(repository, settings.processing_log_max_chars),
        publisher=publisher,
        extractors=default_extractors() if extractors is None else extractors,
        analyzer=LinguisticAnalyzer(),
        enricher=enricher or AIEnricher(
            lambda: get_llm_provider(settings),
            summary_input_chars=settings.ai_summary_input_chars,
            quiz_input_chars=settings.ai_quiz_input_chars,
            quiz_question_count=settings.ai_quiz_question_count,
        ),
        validator=ContentValidator(settings.validation_pass_threshold),
    )


@contextmanager
def stage_boundary(
    ctx: PipelineContext,
    stage: Stage,
    job: BaseJob,
    *,
    monotonic: bool = False,
) -> Iterator[None]:
    """
    Catch, log, record and RE-RAISE any failure inside a stage.

    The document goes to `failed` with "<Stage> failed: <error>" in its log;
    the exception continues to the queue layer, which owns retries.
    """
    try:
        yield
    except Exception as exc:
        logger.exception("%s failed for %s: %s", stage.label, job.ref, exc)
        ctx.reporter.mark_failed(job.ref, stage, exc, monotonic=monotonic)
        raise
