# =============================================================================
# Models Package — job envelopes, stage results and API schemas
# =============================================================================
# - jobs.py:      Pydantic envelopes carried through the stage queues
# - results.py:   Dataclasses produced by extractors and enrichment services
# - requests.py:  API request bodies
# - responses.py: API response bodies
# =============================================================================
