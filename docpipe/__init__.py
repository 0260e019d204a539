# =============================================================================
# Document Processing Pipeline
# =============================================================================
# Asynchronous multi-stage processing of uploaded documents:
#
#   extraction ──┬──▶ linguistic analysis
#                └──▶ AI enrichment ──▶ validation
#
# Each stage has its own prioritized queue with retries, exponential backoff,
# timeouts, concurrency and rate limits. Progress is written to the owning
# document record as a status, a percentage and an append-only log.
#
# Package structure:
#   docpipe/
#   ├── api/          → FastAPI triggers (upload, reprocess, status, admin)
#   ├── db/           → Database engine, sessions and ORM models
#   ├── models/       → Job envelopes, stage results, API schemas
#   ├── pipeline/     → Queue-agnostic stage functions + local dispatcher
#   ├── services/     → Extractors, NLP, LLM, validation, status, limiter
#   └── workers/      → Celery app, per-stage tasks, registry, launcher
# =============================================================================
