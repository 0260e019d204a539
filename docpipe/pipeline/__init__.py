# =============================================================================
# Pipeline Package — Queue-Agnostic Stage Logic
# =============================================================================
# Push-based chain, one function per stage:
#
#   run_extraction ──┬──▶ run_linguistic_analysis        (leaf)
#                    └──▶ run_ai_enrichment ──▶ run_validation (terminal)
#
# - context.py:    PipelineContext, JobPublisher protocol, stage_boundary
# - runner.py:     stage → function table, effective retry policy
# - dispatch.py:   LocalDispatcher, an in-process priority queue
# - extraction.py / analysis.py / enrichment.py / validation.py: the stages
# =============================================================================
