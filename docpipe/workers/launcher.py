# =============================================================================
# Worker Launcher — Start a Celery Worker for One Stage
# =============================================================================
#
# USAGE:
#   python -m docpipe.workers.launcher extraction
#   python -m docpipe.workers.launcher ai_enrichment --loglevel debug
#
# Equivalent to:
#   celery -A docpipe.workers.celery_app worker \
#       -Q docpipe.<stage> -c <stage concurrency> -n <stage>@%h
#
# Concurrency comes from settings (e.g. AI_ENRICHMENT__CONCURRENCY=2), so a
# deployment scales a stage by changing one environment variable.
# =============================================================================

from __future__ import annotations

import argparse
import logging

from docpipe.config import Settings, settings
from docpipe.models.jobs import Stage
from docpipe.workers.celery_app import QUEUE_NAMES, celery_app


def worker_argv(stage: Stage, app_settings: Settings, loglevel: str = "info") -> list[str]:
    """Celery worker arguments for a single-stage worker."""
    return [
        "worker",
        "--queues", QUEUE_NAMES[stage],
        "--concurrency", str(app_settings.stage(stage).concurrency),
        "--hostname", f"{stage.value}@%h",
        "--loglevel", loglevel,
    ]


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run a pipeline stage worker.")
    parser.add_argument("stage", choices=[s.value for s in Stage])
    parser.add_argument("--loglevel", default="info")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=args.loglevel.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    celery_app.worker_main(worker_argv(Stage(args.stage), settings, args.loglevel))


if __name__ == "__main__":
    main()
