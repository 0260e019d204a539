# =============================================================================
# Services Package — collaborators used by the pipeline stages
# =============================================================================
# - extractors.py:   PDF (Docling), DOCX (python-docx), TXT → text + chapters
# - text.py:         cleaning, language/title/chapter detection
# - nlp.py:          keywords, extractive summary, sentiment, entities
# - llm.py:          Anthropic / OpenAI-compatible providers
# - pricing.py:      per-model token pricing for AI usage accounting
# - enrichment.py:   AI summary, concepts, quiz questions, difficulty
# - validation.py:   rule-based quality score
# - repository.py:   find/update owning records, per-kind write profiles
# - status.py:       processing status + append-only processing log
# - rate_limiter.py: sliding-window start limits per stage
# =============================================================================
