# =============================================================================
# Test Helpers — Fakes and Builders Shared by the Test Modules
# =============================================================================
#
# Nothing here needs Redis, Postgres, Docling or an LLM API key:
#   FakeRedis          — the subset of redis-py the registry + limiter use
#   FakeClock          — deterministic time for backoff and rate windows
#   FakeLLMProvider    — canned completions, optional failure
#   StaticExtractor    — returns a fixed ExtractionResult
#   RecordingPublisher — JobPublisher that only records
# =============================================================================

from __future__ import annotations

import fnmatch
import uuid

from docpipe.config import Settings
from docpipe.db.models import OwnerKind
from docpipe.models.jobs import DocumentRef, FileType
from docpipe.models.results import ExtractionMetadata, ExtractionResult
from docpipe.pipeline.context import build_context
from docpipe.pipeline.dispatch import LocalDispatcher
from docpipe.services.enrichment import AIEnricher
from docpipe.services.llm import LLMResponse
from docpipe.services.repository import InMemoryDocumentRepository
from docpipe.services.text import count_words, detect_language, extract_chapters, extract_title

# ---------------------------------------------------------------------------
# Sample content
# ---------------------------------------------------------------------------

FRENCH_PARAGRAPH = (
    "La maladie cardiaque est une pathologie fréquente chez le patient âgé. "
    "Le diagnostic repose sur la clinique et sur des examens complémentaires. "
    "Le traitement associe des mesures hygiéno-diététiques et des médicaments "
    "adaptés. Les symptômes sont la dyspnée, la fatigue et les oedèmes des "
    "membres inférieurs."
)


def french_course(sections: int = 15) -> str:
    """Numbered French medical sections, about 45 words each."""
    return "\n\n".join(
        f"{i}. Section {i} du cours de cardiologie\n\n{FRENCH_PARAGRAPH}"
        for i in range(1, sections + 1)
    )


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


def _slice(items: list, start: int, end: int) -> list:
    return items[start:] if end == -1 else items[start:end + 1]


class FakePipeline:
    """Queues calls and runs them against the FakeRedis on execute()."""

    def __init__(self, redis: FakeRedis) -> None:
        self._redis = redis
        self._calls: list = []

    def __getattr__(self, name):
        method = getattr(self._redis, name)

        def queue(*args, **kwargs):
            self._calls.append((method, args, kwargs))
            return self

        return queue

    def execute(self) -> list:
        results = [method(*args, **kwargs) for method, args, kwargs in self._calls]
        self._calls = []
        return results


class FakeRedis:
    """In-memory stand-in for redis.Redis(decode_responses=True)."""

    def __init__(self) -> None:
        self.zsets: dict[str, dict[str, float]] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.lists: dict[str, list[str]] = {}
        self.counters: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)

    # --- strings ---
    def incr(self, key: str) -> int:
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    def expire(self, key: str, seconds: int) -> bool:
        self.ttls[key] = seconds
        return True

    # --- hashes ---
    def hset(self, key: str, mapping: dict) -> int:
        self.hashes.setdefault(key, {}).update({k: str(v) for k, v in mapping.items()})
        return len(mapping)

    def hgetall(self, key: str) -> dict[str, str]:
        return dict(self.hashes.get(key, {}))

    # --- sorted sets ---
    def zadd(self, key: str, mapping: dict[str, float]) -> int:
        zset = self.zsets.setdefault(key, {})
        added = sum(1 for m in mapping if m not in zset)
        zset.update({m: float(s) for m, s in mapping.items()})
        return added

    def zrem(self, key: str, *members: str) -> int:
        zset = self.zsets.get(key, {})
        return sum(1 for m in members if zset.pop(m, None) is not None)

    def zcard(self, key: str) -> int:
        return len(self.zsets.get(key, {}))

    def zcount(self, key: str, low, high) -> int:
        low, high = float(low), float(high)
        return sum(1 for s in self.zsets.get(key, {}).values() if low <= s <= high)

    def zremrangebyscore(self, key: str, low, high) -> int:
        low, high = float(low), float(high)
        zset = self.zsets.get(key, {})
        doomed = [m for m, s in zset.items() if low <= s <= high]
        for member in doomed:
            del zset[member]
        return len(doomed)

    def zrange(self, key: str, start: int, end: int, withscores: bool = False) -> list:
        ordered = sorted(self.zsets.get(key, {}).items(), key=lambda kv: (kv[1], kv[0]))
        ordered = _slice(ordered, start, end)
        return ordered if withscores else [m for m, _ in ordered]

    # --- lists ---
    def lpush(self, key: str, *values: str) -> int:
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    def lrem(self, key: str, count: int, value: str) -> int:
        # count=0 only: remove every occurrence
        if key not in self.lists:
            return 0
        items = self.lists[key]
        self.lists[key] = [item for item in items if item != value]
        return len(items) - len(self.lists[key])

    def lrange(self, key: str, start: int, end: int) -> list[str]:
        return _slice(self.lists.get(key, []), start, end)

    def ltrim(self, key: str, start: int, end: int) -> bool:
        self.lists[key] = _slice(self.lists.get(key, []), start, end)
        return True

    def llen(self, key: str) -> int:
        return len(self.lists.get(key, []))

    # --- keys ---
    def _stores(self):
        return (self.zsets, self.hashes, self.lists, self.counters)

    def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            for store in self._stores():
                if store.pop(key, None) is not None:
                    removed += 1
        return removed

    def scan_iter(self, match: str = "*"):
        keys = {k for store in self._stores() for k in store}
        return iter(sorted(k for k in keys if fnmatch.fnmatchcase(k, match)))


class FakeClock:
    """Callable clock whose sleep() advances time instantly."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeLLMProvider:
    """Returns canned completions; raises `error` on every call if set."""

    provider_type = "anthropic"

    def __init__(
        self,
        responses: list[str] | None = None,
        error: Exception | None = None,
        model: str = "claude-sonnet-4-6",
    ) -> None:
        self.responses = list(responses or [])
        self.error = error
        self.model = model
        self.calls: list[dict] = []

    async def complete(self, messages, system=None, temperature=None, max_tokens=None):
        self.calls.append({"messages": messages, "system": system})
        if self.error is not None:
            raise self.error
        content = (
            self.responses.pop(0) if self.responses
            else "Résumé : l'insuffisance cardiaque est un syndrome clinique fréquent."
        )
        return LLMResponse(content=content, model=self.model, input_tokens=1000, output_tokens=200)


class StaticExtractor:
    """Extractor double returning one fixed result (or raising)."""

    def __init__(
        self,
        result: ExtractionResult | None = None,
        error: Exception | None = None,
    ) -> None:
        self.result = result
        self.error = error
        self.calls: list[str] = []

    @classmethod
    def from_text(cls, text: str, page_count: int | None = None) -> StaticExtractor:
        return cls(ExtractionResult(
            success=True,
            extracted_text=text,
            metadata=ExtractionMetadata(
                word_count=count_words(text),
                language=detect_language(text),
                title=extract_title(text),
                page_count=page_count,
            ),
            chapters=extract_chapters(text),
        ))

    def extract(self, file_ref: str) -> ExtractionResult:
        self.calls.append(file_ref)
        if self.error is not None:
            raise self.error
        return self.result


class RecordingPublisher:
    """JobPublisher that records (stage, job, options) and runs nothing."""

    def __init__(self) -> None:
        self.jobs: list = []

    def enqueue(self, stage, job, options=None) -> str:
        self.jobs.append((stage, job, options))
        return f"job-{len(self.jobs)}"

    @property
    def stages(self) -> list:
        return [stage for stage, _, _ in self.jobs]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_settings(**overrides) -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(_env_file=None, **overrides)


def create_document(
    repository: InMemoryDocumentRepository,
    kind: OwnerKind = OwnerKind.KNOWLEDGE_BASE,
    file_type: FileType = FileType.PDF,
    **fields,
) -> DocumentRef:
    document_id = str(uuid.uuid4())
    repository.create(
        kind, document_id,
        filename=f"{document_id}.{file_type.value}",
        file_type=file_type.value,
        source_file_url=f"/data/uploads/{document_id}.{file_type.value}",
        **fields,
    )
    return DocumentRef(kind=kind, id=document_id)


def make_context(
    settings: Settings,
    repository,
    publisher,
    extractor=None,
    provider: FakeLLMProvider | None = None,
):
    """PipelineContext with the same fake extractor for every file type."""
    extractor = extractor or StaticExtractor.from_text(french_course())
    provider = provider or FakeLLMProvider()
    return build_context(
        settings,
        repository,
        publisher,
        extractors={ft: extractor for ft in (FileType.PDF, FileType.DOCX, FileType.TXT)},
        enricher=AIEnricher(lambda: provider),
    )


def make_dispatcher(settings, repository, clock, extractor=None, provider=None):
    dispatcher = LocalDispatcher(settings, clock=clock, sleep=clock.sleep)
    dispatcher.bind(make_context(settings, repository, dispatcher, extractor, provider))
    return dispatcher
