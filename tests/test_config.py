# =============================================================================
# Unit Tests — Settings
# =============================================================================

from docpipe.config import StageSettings
from docpipe.models.jobs import Stage
from tests.helpers import make_settings


class TestStageDefaults:
    def test_per_stage_defaults(self, settings):
        assert (settings.extraction.concurrency, settings.extraction.timeout_seconds) == (3, 1800)
        assert settings.linguistic_analysis.rate_limit_max == 20
        assert settings.ai_enrichment.attempts == 2
        assert settings.ai_enrichment.rate_limit_max == 5
        assert settings.validation.timeout_seconds == 120

    def test_shared_defaults(self, settings):
        for stage in Stage:
            policy = settings.stage(stage)
            assert isinstance(policy, StageSettings)
            assert policy.backoff_base_seconds == 5.0
            assert policy.rate_limit_window_seconds == 60.0


class TestEnvironmentOverrides:
    def test_nested_override_keeps_stage_defaults(self, monkeypatch):
        monkeypatch.setenv("EXTRACTION__CONCURRENCY", "5")
        settings = make_settings()
        assert settings.extraction.concurrency == 5
        assert settings.extraction.timeout_seconds == 1800
        assert settings.extraction.rate_limit_max == 10

    def test_retention_override(self, monkeypatch):
        monkeypatch.setenv("RETAIN_FAILED_JOBS", "7")
        assert make_settings().retain_failed_jobs == 7
