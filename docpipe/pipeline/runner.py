# =============================================================================
# Stage Runner — Stage → Function Table and Effective Retry Policy
# =============================================================================
#
# Shared by the Celery tasks and the LocalDispatcher so both queue layers
# apply the same attempts / backoff / timeout rules:
#
#   effective = job.options (per-job override) ?? stage settings (default)
#   delay before attempt n+1 = backoff_base × 2^(n−1)
# =============================================================================

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from docpipe.config import StageSettings
from docpipe.models.jobs import JOB_MODELS, BaseJob, JobOptions, Stage
from docpipe.pipeline.analysis import run_linguistic_analysis
from docpipe.pipeline.context import PipelineContext
from docpipe.pipeline.enrichment import run_ai_enrichment
from docpipe.pipeline.extraction import run_extraction
from docpipe.pipeline.validation import run_validation

StageFunction = Callable[[Any, PipelineContext], dict]

STAGE_RUNNERS: dict[Stage, StageFunction] = {
    Stage.EXTRACTION: run_extraction,
    Stage.LINGUISTIC_ANALYSIS: run_linguistic_analysis,
    Stage.AI_ENRICHMENT: run_ai_enrichment,
    Stage.VALIDATION: run_validation,
}

# Monotonic stages must not move the status backwards when retrying either.
MONOTONIC_STAGES = frozenset({Stage.LINGUISTIC_ANALYSIS})


@dataclass(frozen=True)
class JobPolicy:
    """Queue policy for one job after applying per-job overrides."""

    attempts: int
    backoff_base_seconds: float
    timeout_seconds: int
    delay_seconds: float = 0.0

    def backoff_delay(self, attempt: int) -> float:
        """Delay after failed attempt `attempt` (1-indexed)."""
        return self.backoff_base_seconds * (2 ** max(attempt - 1, 0))


def resolve_policy(stage_settings: StageSettings, options: JobOptions | None) -> JobPolicy:
    options = options or JobOptions()
    return JobPolicy(
        attempts=options.attempts or stage_settings.attempts,
        backoff_base_seconds=(
            stage_settings.backoff_base_seconds
            if options.backoff_base_seconds is None
            else options.backoff_base_seconds
        ),
        timeout_seconds=options.timeout_seconds or stage_settings.timeout_seconds,
        delay_seconds=options.delay_seconds or 0.0,
    )


def parse_job(stage: Stage, payload: dict[str, Any] | BaseJob) -> BaseJob:
    """Re-validate a JSON payload into the stage's envelope type."""
    model = JOB_MODELS[stage]
    if isinstance(payload, model):
        return payload
    if isinstance(payload, BaseJob):
        payload = payload.model_dump()
    return model.model_validate(payload)


def run_stage(stage: Stage, job: BaseJob, ctx: PipelineContext) -> dict:
    return STAGE_RUNNERS[stage](job, ctx)
