#!/usr/bin/env python3
"""
Operator commands for the per-stage queues.

Usage:
    python scripts/queue_admin.py stats
    python scripts/queue_admin.py waiting ai_enrichment --limit 20
    python scripts/queue_admin.py failed extraction
    python scripts/queue_admin.py requeue knowledge_base <document_id> --priority critical
    python scripts/queue_admin.py purge --yes
"""

import argparse
import json
import sys

from docpipe.config import settings
from docpipe.db.models import OwnerKind, ProcessingStatus
from docpipe.models.jobs import DocumentRef, FileType, JobPriority, Stage
from docpipe.services.repository import SqlAlchemyDocumentRepository
from docpipe.services.status import StatusReporter
from docpipe.workers.queues import enqueue_extraction, get_queue_stats, purge_all_queues
from docpipe.workers.registry import get_registry


def cmd_stats(args) -> int:
    print(json.dumps(get_queue_stats(), indent=2))
    return 0


def cmd_list(args) -> int:
    registry = get_registry()
    stage = Stage(args.stage)
    if args.command == "waiting":
        job_ids = registry.waiting(stage, args.limit)
    else:
        job_ids = registry.recent(stage, args.command, args.limit)
    for job_id in job_ids:
        print(job_id, json.dumps(registry.get(job_id), ensure_ascii=False))
    return 0


def cmd_requeue(args) -> int:
    repository = SqlAlchemyDocumentRepository()
    ref = DocumentRef(kind=OwnerKind(args.kind), id=args.document_id)
    record = repository.find_by_id(ref.kind, ref.id)

    StatusReporter(repository, settings.processing_log_max_chars).report(
        ref, ProcessingStatus.QUEUED, 0, "Queued for reprocessing (queue_admin)",
    )
    job_id = enqueue_extraction(
        ref,
        FileType(record["file_type"]),
        record["source_file_url"],
        priority=JobPriority(args.priority),
        user_id="queue_admin",
    )
    print(f"Enqueued extraction job {job_id} for {ref}")
    return 0


def cmd_purge(args) -> int:
    if not args.yes:
        print("Purging drops every queued job in every stage. Re-run with --yes.",
              file=sys.stderr)
        return 2
    print(json.dumps(purge_all_queues(), indent=2))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Pipeline queue administration")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("stats", help="job counts per stage").set_defaults(func=cmd_stats)

    for name in ("waiting", "completed", "failed"):
        p = sub.add_parser(name, help=f"list {name} jobs of a stage")
        p.add_argument("stage", choices=[s.value for s in Stage])
        p.add_argument("--limit", type=int, default=20)
        p.set_defaults(func=cmd_list)

    p = sub.add_parser("requeue", help="run the pipeline again for a document")
    p.add_argument("kind", choices=[k.value for k in OwnerKind])
    p.add_argument("document_id")
    p.add_argument("--priority", choices=[pr.value for pr in JobPriority],
                   default=JobPriority.NORMAL.value)
    p.set_defaults(func=cmd_requeue)

    p = sub.add_parser("purge", help="drop every queued job (irreversible)")
    p.add_argument("--yes", action="store_true")
    p.set_defaults(func=cmd_purge)

    args = parser.parse_args()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
