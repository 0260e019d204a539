# =============================================================================
# Unit Tests — Pipeline Stage Functions
# =============================================================================
#
# Each run_<stage>(job, ctx) is called directly with an in-memory repository
# and a RecordingPublisher, so we can see exactly what a stage writes and
# which downstream jobs it enqueues.
# =============================================================================

import pytest

from docpipe.db.models import OwnerKind, ProcessingStatus
from docpipe.errors import (
    AIEnrichmentError,
    ExtractionError,
    LinguisticAnalysisError,
    ValidationStageError,
)
from docpipe.models.jobs import (
    AIEnrichmentJob,
    AITask,
    ExtractionJob,
    FileType,
    JobPriority,
    Language,
    LinguisticAnalysisJob,
    NlpFeature,
    Stage,
    ValidationJob,
)
from docpipe.models.results import ExtractionResult
from docpipe.pipeline.analysis import run_linguistic_analysis
from docpipe.pipeline.enrichment import run_ai_enrichment
from docpipe.pipeline.extraction import run_extraction
from docpipe.pipeline.validation import run_validation
from tests.helpers import (
    FakeLLMProvider,
    RecordingPublisher,
    StaticExtractor,
    create_document,
    french_course,
    make_context,
)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


def _extraction_job(ref, file_type=FileType.PDF, priority=JobPriority.HIGH) -> ExtractionJob:
    return ExtractionJob(
        document_id=ref.id,
        owner_kind=ref.kind,
        priority=priority,
        user_id="alice",
        file_type=file_type,
        source_file_url=f"/data/uploads/{ref.id}.{file_type.value}",
    )


def _last_log_line(repository, ref) -> str:
    return repository.find_by_id(ref.kind, ref.id)["processing_logs"].splitlines()[-1]


class TestExtractionStage:
    def test_persists_text_and_fans_out(self, settings, repository, publisher):
        ref = create_document(repository)
        ctx = make_context(settings, repository, publisher)

        summary = run_extraction(_extraction_job(ref), ctx)

        record = repository.find_by_id(ref.kind, ref.id)
        assert record["processing_status"] == ProcessingStatus.EXTRACTING
        assert record["processing_progress"] == 100
        assert record["extracted_content"] == french_course()
        assert record["language"] == "fr"
        assert record["word_count"] >= 500
        assert len(record["chapters"]) == 15
        assert record["document_type"] == "pdf"

        assert publisher.stages == [Stage.LINGUISTIC_ANALYSIS, Stage.AI_ENRICHMENT]
        analysis_job = publisher.jobs[0][1]
        enrichment_job = publisher.jobs[1][1]
        assert analysis_job.extracted_text == french_course()
        assert analysis_job.language == Language.FR
        assert {analysis_job.priority, enrichment_job.priority} == {JobPriority.HIGH}
        assert enrichment_job.user_id == "alice"
        assert summary["enqueued"] == ["job-1", "job-2"]

    def test_extractor_failure(self, settings, repository, publisher):
        ref = create_document(repository)
        extractor = StaticExtractor(ExtractionResult.failure("corrupt xref table"))
        ctx = make_context(settings, repository, publisher, extractor=extractor)

        with pytest.raises(ExtractionError):
            run_extraction(_extraction_job(ref), ctx)

        record = repository.find_by_id(ref.kind, ref.id)
        assert record["processing_status"] == ProcessingStatus.FAILED
        assert _last_log_line(repository, ref).endswith(
            "Extraction failed: corrupt xref table"
        )
        assert publisher.jobs == []

    def test_whitespace_text_is_an_error(self, settings, repository, publisher):
        ref = create_document(repository)
        extractor = StaticExtractor(ExtractionResult(success=True, extracted_text="  \n "))
        ctx = make_context(settings, repository, publisher, extractor=extractor)

        with pytest.raises(ExtractionError, match="empty"):
            run_extraction(_extraction_job(ref), ctx)
        assert publisher.jobs == []

    def test_unsupported_file_type(self, settings, repository, publisher):
        ref = create_document(repository, file_type=FileType.EPUB)
        ctx = make_context(settings, repository, publisher)

        with pytest.raises(ExtractionError, match="epub"):
            run_extraction(_extraction_job(ref, FileType.EPUB), ctx)
        assert _last_log_line(repository, ref).endswith(
            "Extraction failed: Unsupported file type: epub"
        )

    def test_media_record_receives_text_only(self, settings, repository, publisher):
        ref = create_document(repository, kind=OwnerKind.MEDIA)
        ctx = make_context(settings, repository, publisher)

        run_extraction(_extraction_job(ref), ctx)

        record = repository.find_by_id(ref.kind, ref.id)
        assert record["extracted_content"] == french_course()
        assert "chapters" not in record
        assert "word_count" not in record
        assert len(publisher.jobs) == 2


class TestLinguisticAnalysisStage:
    def _job(self, ref, text, features=(NlpFeature.KEYWORDS,)) -> LinguisticAnalysisJob:
        return LinguisticAnalysisJob(
            document_id=ref.id, owner_kind=ref.kind,
            extracted_text=text, language=Language.FR, features=list(features),
        )

    def test_writes_only_requested_features(self, settings, repository, publisher):
        ref = create_document(repository, processing_status=ProcessingStatus.EXTRACTING)
        ctx = make_context(settings, repository, publisher)

        run_linguistic_analysis(self._job(ref, french_course()), ctx)

        record = repository.find_by_id(ref.kind, ref.id)
        assert record["keywords"]
        assert "auto_summary" not in record
        assert record["processing_status"] == ProcessingStatus.ANALYZING
        assert publisher.jobs == []

    def test_rerun_with_fewer_features_keeps_earlier_output(
        self, settings, repository, publisher,
    ):
        ref = create_document(repository)
        ctx = make_context(settings, repository, publisher)

        run_linguistic_analysis(
            self._job(ref, french_course(), [NlpFeature.KEYWORDS, NlpFeature.SUMMARY]), ctx,
        )
        run_linguistic_analysis(self._job(ref, french_course(), [NlpFeature.KEYWORDS]), ctx)

        assert repository.find_by_id(ref.kind, ref.id)["auto_summary"]

    def test_does_not_regress_status(self, settings, repository, publisher):
        ref = create_document(repository, processing_status=ProcessingStatus.VALIDATING)
        ctx = make_context(settings, repository, publisher)

        run_linguistic_analysis(self._job(ref, french_course()), ctx)

        record = repository.find_by_id(ref.kind, ref.id)
        assert record["processing_status"] == ProcessingStatus.VALIDATING
        assert "Linguistic analysis completed" in record["processing_logs"]
        assert record["keywords"]

    def test_failure_never_overrides_completed(self, settings, repository, publisher):
        ref = create_document(repository, processing_status=ProcessingStatus.COMPLETED)
        ctx = make_context(settings, repository, publisher)

        with pytest.raises(LinguisticAnalysisError):
            run_linguistic_analysis(self._job(ref, "   "), ctx)

        record = repository.find_by_id(ref.kind, ref.id)
        assert record["processing_status"] == ProcessingStatus.COMPLETED
        assert _last_log_line(repository, ref).endswith(
            "Linguistic analysis failed: No extracted text to analyse"
        )

    def test_failure_while_in_progress(self, settings, repository, publisher):
        ref = create_document(repository, processing_status=ProcessingStatus.EXTRACTING)
        ctx = make_context(settings, repository, publisher)

        with pytest.raises(LinguisticAnalysisError):
            run_linguistic_analysis(self._job(ref, ""), ctx)

        record = repository.find_by_id(ref.kind, ref.id)
        assert record["processing_status"] == ProcessingStatus.FAILED


class TestAIEnrichmentStage:
    def _job(self, ref, priority=JobPriority.NORMAL) -> AIEnrichmentJob:
        return AIEnrichmentJob(
            document_id=ref.id, owner_kind=ref.kind, priority=priority,
            tasks=[AITask.SUMMARY, AITask.CONCEPT_EXTRACTION, AITask.DIFFICULTY_ASSESSMENT],
        )

    def test_enriches_and_enqueues_one_validation(self, settings, repository, publisher):
        ref = create_document(repository, extracted_content=french_course())
        ctx = make_context(settings, repository, publisher)

        run_ai_enrichment(self._job(ref, JobPriority.CRITICAL), ctx)

        record = repository.find_by_id(ref.kind, ref.id)
        assert record["ai_enriched"] is True
        assert record["ai_summary"].startswith("Résumé")
        assert record["ai_usage"]["calls"] == 1
        assert 0 <= record["difficulty_score"] <= 1
        assert record["processing_status"] == ProcessingStatus.ENRICHING

        assert publisher.stages == [Stage.VALIDATION]
        validation_job = publisher.jobs[0][1]
        assert validation_job.priority == JobPriority.CRITICAL
        assert [r.id for r in validation_job.rules] == [
            "medical_accuracy", "content_length", "structure_quality",
        ]

    def test_reads_text_from_record_not_payload(self, settings, repository, publisher):
        ref = create_document(repository, extracted_content=None)
        ctx = make_context(settings, repository, publisher)

        with pytest.raises(AIEnrichmentError, match="No extracted text"):
            run_ai_enrichment(self._job(ref), ctx)
        assert publisher.jobs == []

    def test_llm_failure_keeps_extraction_output(self, settings, repository, publisher):
        ref = create_document(
            repository, extracted_content=french_course(), word_count=765, language="fr",
        )
        provider = FakeLLMProvider(error=ConnectionError("rate limited"))
        ctx = make_context(settings, repository, publisher, provider=provider)

        with pytest.raises(AIEnrichmentError):
            run_ai_enrichment(self._job(ref), ctx)

        record = repository.find_by_id(ref.kind, ref.id)
        assert record["processing_status"] == ProcessingStatus.FAILED
        assert record["extracted_content"] == french_course()
        assert record["word_count"] == 765
        assert _last_log_line(repository, ref).endswith(
            "AI enrichment failed: Summary generation failed: rate limited"
        )
        assert publisher.jobs == []


class TestValidationStage:
    def test_completes_document(self, settings, repository, publisher):
        ref = create_document(repository, extracted_content=french_course())
        ctx = make_context(settings, repository, publisher)

        summary = run_validation(ValidationJob(document_id=ref.id), ctx)

        record = repository.find_by_id(ref.kind, ref.id)
        assert record["processing_status"] == ProcessingStatus.COMPLETED
        assert record["processing_progress"] == 100
        assert record["processing_completed"] is True
        assert record["processing_completed_at"] is not None
        assert record["validation_score"] == summary["score"] == 100
        assert record["validation_passed"] is True
        assert publisher.jobs == []

    def test_low_score_is_not_an_error(self, settings, repository, publisher):
        ref = create_document(repository, extracted_content="Ce traitement guérit toujours.")
        ctx = make_context(settings, repository, publisher)

        run_validation(ValidationJob(document_id=ref.id), ctx)

        record = repository.find_by_id(ref.kind, ref.id)
        # medical_accuracy (error) + content_length + structure_quality (warnings)
        assert record["validation_score"] == 60
        assert record["validation_passed"] is False
        assert record["processing_status"] == ProcessingStatus.COMPLETED

    def test_missing_text(self, settings, repository, publisher):
        ref = create_document(repository)
        ctx = make_context(settings, repository, publisher)

        with pytest.raises(ValidationStageError):
            run_validation(ValidationJob(document_id=ref.id), ctx)

        record = repository.find_by_id(ref.kind, ref.id)
        assert record["processing_status"] == ProcessingStatus.FAILED
        assert record["processing_completed"] is False
