#!/usr/bin/env python3
"""
Run the whole pipeline for one file in-process, without Redis or Postgres.

Uses the LocalDispatcher (in-memory priority queues, same retry / backoff /
rate-limit rules as the Celery deployment) and an in-memory repository,
then prints the resulting record and per-stage job counts.

The AI-enrichment stage calls the configured LLM provider, so set
ANTHROPIC_API_KEY (or LLM_PROVIDER=openai_compatible + LLM_API_KEY) first.
Lower the backoff for quick experiments:

    AI_ENRICHMENT__BACKOFF_BASE_SECONDS=1 python scripts/process_local.py doc.pdf

Usage:
    python scripts/process_local.py data/samples/cours_insuffisance_cardiaque.pdf
    python scripts/process_local.py notes.txt --kind media --priority critical
"""

import argparse
import json
import logging
import sys
import uuid
from pathlib import Path

from docpipe.config import settings
from docpipe.db.models import OwnerKind
from docpipe.models.jobs import ExtractionJob, FileType, JobPriority, Stage
from docpipe.pipeline.context import build_context
from docpipe.pipeline.dispatch import LocalDispatcher
from docpipe.services.repository import InMemoryDocumentRepository

SHOWN_FIELDS = (
    "processing_status", "processing_progress", "processing_completed",
    "title", "language", "word_count", "page_count", "keywords",
    "auto_summary", "ai_summary", "difficulty_score", "ai_usage",
    "validation_score", "validation_passed", "validation_issues",
)


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.split("\n\n")[0])
    parser.add_argument("path", type=Path)
    parser.add_argument("--kind", choices=[k.value for k in OwnerKind],
                        default=OwnerKind.KNOWLEDGE_BASE.value)
    parser.add_argument("--priority", choices=[p.value for p in JobPriority],
                        default=JobPriority.HIGH.value)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    file_type = FileType.from_filename(args.path.name)
    if file_type is None:
        print(f"Unknown file type: {args.path.name}", file=sys.stderr)
        return 2

    kind = OwnerKind(args.kind)
    document_id = str(uuid.uuid4())
    repository = InMemoryDocumentRepository()
    repository.create(
        kind, document_id,
        filename=args.path.name,
        file_type=file_type.value,
        source_file_url=str(args.path.resolve()),
    )

    dispatcher = LocalDispatcher(settings)
    dispatcher.bind(build_context(settings, repository, dispatcher))
    dispatcher.enqueue(
        Stage.EXTRACTION,
        ExtractionJob(
            document_id=document_id,
            owner_kind=kind,
            priority=JobPriority(args.priority),
            user_id="local",
            file_type=file_type,
            source_file_url=str(args.path.resolve()),
        ),
    )

    executed = dispatcher.run_until_idle()
    record = repository.find_by_id(kind, document_id)

    print(f"\n=== {kind.value}:{document_id} ({executed} job attempts) ===")
    print(json.dumps(
        {k: record.get(k) for k in SHOWN_FIELDS if k in record},
        indent=2, ensure_ascii=False, default=str,
    ))
    print("\n--- processing log ---")
    print(record["processing_logs"])
    print("\n--- queues ---")
    print(json.dumps(dispatcher.stats(), indent=2))
    return 0 if record["processing_completed"] else 1


if __name__ == "__main__":
    sys.exit(main())
