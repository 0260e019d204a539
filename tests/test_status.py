# =============================================================================
# Unit Tests — Status Reporter
# =============================================================================
#
# Log line format, log truncation, monotonic status rules and the
# never-raises contract of mark_failed / mark_retrying.
# =============================================================================

from datetime import UTC, datetime
from unittest.mock import MagicMock

import pytest

from docpipe.db.models import ProcessingStatus
from docpipe.models.jobs import Stage
from docpipe.services.status import (
    StatusReporter,
    append_log,
    format_log_line,
    status_may_advance,
)
from tests.helpers import create_document

FIXED_NOW = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)


def _reporter(repository, max_log_chars=50_000) -> StatusReporter:
    return StatusReporter(repository, max_log_chars, clock=lambda: FIXED_NOW)


class TestLogFormatting:
    def test_line_format(self):
        line = format_log_line(FIXED_NOW, ProcessingStatus.EXTRACTING, 10, "Starting")
        assert line == "[2026-03-01T09:30:00+00:00] extracting 10% - Starting"

    def test_append_to_empty(self):
        assert append_log("", "first", 100) == "first"
        assert append_log(None, "first", 100) == "first"

    def test_truncation_keeps_head(self):
        log = append_log("a" * 8, "bbbb", 10)
        assert log == "aaaaaaaa\nb"
        assert append_log(log, "cccc", 10) == log


class TestStatusMayAdvance:
    @pytest.mark.parametrize("current,new,expected", [
        (None, ProcessingStatus.ANALYZING, True),
        (ProcessingStatus.EXTRACTING, ProcessingStatus.ANALYZING, True),
        (ProcessingStatus.VALIDATING, ProcessingStatus.ANALYZING, False),
        (ProcessingStatus.COMPLETED, ProcessingStatus.ANALYZING, False),
        (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED, False),
        (ProcessingStatus.FAILED, ProcessingStatus.ANALYZING, False),
        (ProcessingStatus.ENRICHING, ProcessingStatus.FAILED, True),
        ("validating", ProcessingStatus.RETRYING, False),
    ])
    def test_rules(self, current, new, expected):
        assert status_may_advance(current, new) is expected


class TestStatusReporter:
    def test_report_sets_status_and_appends_log(self, repository):
        ref = create_document(repository)
        reporter = _reporter(repository)

        reporter.report(ref, ProcessingStatus.EXTRACTING, 10, "Starting extraction")
        record = reporter.report(ref, ProcessingStatus.ANALYZING, 150, "Analyzing")

        assert record["processing_status"] == ProcessingStatus.ANALYZING
        assert record["processing_progress"] == 100
        assert record["last_processed"] == FIXED_NOW
        assert record["processing_logs"].splitlines() == [
            "[2026-03-01T09:30:00+00:00] extracting 10% - Starting extraction",
            "[2026-03-01T09:30:00+00:00] analyzing 100% - Analyzing",
        ]

    def test_monotonic_report_keeps_later_status(self, repository):
        ref = create_document(repository, processing_status=ProcessingStatus.COMPLETED,
                              processing_progress=100)
        record = _reporter(repository).report(
            ref, ProcessingStatus.ANALYZING, 100, "Linguistic analysis done",
            monotonic=True,
        )
        assert record["processing_status"] == ProcessingStatus.COMPLETED
        assert "Linguistic analysis done" in record["processing_logs"]

    def test_extra_fields_are_written(self, repository):
        ref = create_document(repository)
        record = _reporter(repository).report(
            ref, ProcessingStatus.COMPLETED, 100, "Done",
            extra_fields={"processing_completed": True},
        )
        assert record["processing_completed"] is True

    def test_log_is_capped(self, repository):
        ref = create_document(repository)
        reporter = _reporter(repository, max_log_chars=120)
        for i in range(10):
            record = reporter.report(ref, ProcessingStatus.EXTRACTING, i, f"step {i}")
        assert len(record["processing_logs"]) == 120
        assert record["processing_logs"].startswith(
            "[2026-03-01T09:30:00+00:00] extracting 0% - step 0\n"
        )
        assert "step 9" not in record["processing_logs"]
        assert record["processing_progress"] == 9


class TestFailureReporting:
    def test_mark_failed_message(self, repository):
        ref = create_document(repository)
        _reporter(repository).mark_failed(ref, Stage.EXTRACTION, RuntimeError("corrupt file"))

        record = repository.find_by_id(ref.kind, ref.id)
        assert record["processing_status"] == ProcessingStatus.FAILED
        assert record["processing_progress"] == 0
        assert record["processing_logs"].endswith("failed 0% - Extraction failed: corrupt file")

    def test_mark_failed_never_raises(self, caplog):
        repository = MagicMock()
        repository.find_by_id.side_effect = ConnectionError("database down")
        ref = MagicMock()

        StatusReporter(repository).mark_failed(ref, Stage.VALIDATION, ValueError("boom"))

        assert "Could not record validation failure" in caplog.text

    def test_mark_retrying(self, repository):
        ref = create_document(repository)
        _reporter(repository).mark_retrying(ref, Stage.AI_ENRICHMENT, 1, 2, 5.0)

        record = repository.find_by_id(ref.kind, ref.id)
        assert record["processing_status"] == ProcessingStatus.RETRYING
        assert record["processing_logs"].endswith(
            "AI enrichment attempt 1/2 failed, retrying in 5s"
        )

    def test_monotonic_retry_does_not_regress(self, repository):
        ref = create_document(repository, processing_status=ProcessingStatus.VALIDATING)
        _reporter(repository).mark_retrying(
            ref, Stage.LINGUISTIC_ANALYSIS, 1, 3, 5.0, monotonic=True,
        )
        record = repository.find_by_id(ref.kind, ref.id)
        assert record["processing_status"] == ProcessingStatus.VALIDATING
