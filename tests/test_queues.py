# =============================================================================
# Unit Tests — Queue Publishing & Administration
# =============================================================================
#
# The Celery app is a MagicMock: we assert on the send_task call instead of
# talking to a broker. The registry runs on FakeRedis.
# =============================================================================

from unittest.mock import MagicMock

import pytest
from kombu.exceptions import OperationalError
from redis.exceptions import ConnectionError as RedisConnectionError

from docpipe.db.models import OwnerKind
from docpipe.errors import QueueError
from docpipe.models.jobs import (
    DocumentRef,
    FileType,
    JobOptions,
    JobPriority,
    Stage,
    ValidationJob,
)
from docpipe.workers.queues import (
    CeleryJobPublisher,
    enqueue_extraction,
    get_queue_stats,
    purge_all_queues,
)
from docpipe.workers.registry import JobRegistry

REF = DocumentRef(kind=OwnerKind.KNOWLEDGE_BASE, id="doc-42")


@pytest.fixture
def registry(fake_redis, clock) -> JobRegistry:
    return JobRegistry(fake_redis, clock=clock)


@pytest.fixture
def app() -> MagicMock:
    return MagicMock()


@pytest.fixture
def publisher(registry, app, settings) -> CeleryJobPublisher:
    return CeleryJobPublisher(registry, app=app, settings=settings)


class TestCeleryJobPublisher:
    def test_send_task_arguments(self, publisher, app, registry):
        job_id = enqueue_extraction(
            REF, FileType.PDF, "/data/uploads/doc-42.pdf",
            priority=JobPriority.HIGH, user_id="alice", publisher=publisher,
        )

        app.send_task.assert_called_once()
        name = app.send_task.call_args.args[0]
        kwargs = app.send_task.call_args.kwargs
        assert name == "docpipe.extract_document"
        assert kwargs["task_id"] == job_id
        assert kwargs["queue"] == "docpipe.extraction"
        assert kwargs["priority"] == 3
        assert kwargs["countdown"] is None
        assert kwargs["soft_time_limit"] == 1800
        assert kwargs["time_limit"] == 1830

        payload = kwargs["args"][0]
        assert payload["document_id"] == "doc-42"
        assert payload["owner_kind"] == "knowledge_base"
        assert payload["priority"] == "high"
        assert payload["file_type"] == "pdf"

        assert registry.waiting(Stage.EXTRACTION) == [job_id]
        assert registry.get(job_id)["user_id"] == "alice"

    def test_priority_mapping(self, publisher, app):
        for priority, expected in [
            (JobPriority.CRITICAL, 0),
            (JobPriority.NORMAL, 6),
            (JobPriority.LOW, 9),
        ]:
            enqueue_extraction(REF, FileType.TXT, "/x.txt", priority=priority,
                               publisher=publisher)
            assert app.send_task.call_args.kwargs["priority"] == expected

    def test_per_job_options_override_stage_policy(self, publisher, app, registry):
        options = JobOptions(timeout_seconds=60, delay_seconds=15)
        job_id = publisher.enqueue(
            Stage.VALIDATION, ValidationJob(document_id="doc-42"), options,
        )

        kwargs = app.send_task.call_args.kwargs
        assert kwargs["soft_time_limit"] == 60
        assert kwargs["time_limit"] == 90
        assert kwargs["countdown"] == 15
        assert kwargs["args"][0]["options"]["delay_seconds"] == 15
        assert registry.counts(Stage.VALIDATION)["delayed"] == 1
        assert registry.get(job_id)["state"] == "delayed"

    def test_broker_error_becomes_queue_error(self, publisher, app, registry, fake_redis):
        app.send_task.side_effect = OperationalError("connection refused")
        with pytest.raises(QueueError, match="connection refused"):
            enqueue_extraction(REF, FileType.PDF, "/x.pdf", publisher=publisher)

        # The rejected job leaves nothing behind in the registry
        assert registry.counts(Stage.EXTRACTION)["waiting"] == 0
        assert fake_redis.hashes == {}

    def test_rejected_delayed_job_is_discarded(self, publisher, app, registry, fake_redis):
        app.send_task.side_effect = OperationalError("connection refused")
        with pytest.raises(QueueError):
            publisher.enqueue(
                Stage.VALIDATION,
                ValidationJob(document_id="doc-42"),
                JobOptions(delay_seconds=30),
            )

        assert registry.counts(Stage.VALIDATION)["delayed"] == 0
        assert fake_redis.hashes == {}

    def test_redis_outage_still_raises_queue_error(self, app, settings):
        registry = MagicMock()
        registry.mark_waiting.side_effect = RedisConnectionError("redis down")
        registry.discard.side_effect = RedisConnectionError("redis down")
        publisher = CeleryJobPublisher(registry, app=app, settings=settings)

        with pytest.raises(QueueError, match="redis down"):
            enqueue_extraction(REF, FileType.PDF, "/x.pdf", publisher=publisher)

        app.send_task.assert_not_called()
        registry.discard.assert_called_once()


class TestAdministration:
    def test_stats_totals(self, publisher, registry):
        enqueue_extraction(REF, FileType.PDF, "/a.pdf", publisher=publisher)
        enqueue_extraction(REF, FileType.PDF, "/b.pdf", publisher=publisher)
        publisher.enqueue(Stage.VALIDATION, ValidationJob(document_id="doc-42"))

        stats = get_queue_stats(registry)

        assert stats["stages"]["extraction"]["waiting"] == 2
        assert stats["stages"]["validation"]["waiting"] == 1
        assert stats["totals"] == {
            "waiting": 3, "active": 0, "delayed": 0, "completed": 0, "failed": 0,
        }

    def test_purge(self, publisher, registry):
        enqueue_extraction(REF, FileType.PDF, "/a.pdf", publisher=publisher)
        app = MagicMock()
        app.control.purge.return_value = 4

        result = purge_all_queues(registry, app=app)

        assert result["messages_purged"] == 4
        assert result["registry_keys_removed"] > 0
        assert get_queue_stats(registry)["totals"]["waiting"] == 0

    def test_purge_broker_error(self, registry):
        app = MagicMock()
        app.control.purge.side_effect = OperationalError("down")
        with pytest.raises(QueueError):
            purge_all_queues(registry, app=app)
