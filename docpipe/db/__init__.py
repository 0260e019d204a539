# =============================================================================
# Database Package — engines, sessions, ORM models and the source-change observer
# =============================================================================
