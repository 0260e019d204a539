# =============================================================================
# API Package — FastAPI Routers
# =============================================================================
# - documents.py: upload / reprocess triggers and document status
# - admin.py:     queue statistics and purge
# - deps.py:      publisher and registry dependencies
# =============================================================================
