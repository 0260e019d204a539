# =============================================================================
# Stage Results — Collaborator Output Types
# =============================================================================
#
# Plain dataclasses returned by extractors, the NLP analyzer, the AI enricher
# and the content validator. Each result knows how to turn itself into the
# partial field update the repository expects.
#
# DESIGN DECISION: `to_fields()` omits every field the stage did not produce.
# A re-run that asks for fewer features therefore never clears output that a
# previous run wrote (additive, not destructive, updates).
# =============================================================================

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


@dataclass
class Chapter:
    """A titled section detected in the extracted text."""

    title: str
    content: str
    page_number: int | None = None


@dataclass
class ExtractionMetadata:
    word_count: int = 0
    language: str = "en"
    title: str | None = None
    page_count: int | None = None


@dataclass
class ExtractionResult:
    """What a format extractor hands back to the extraction stage."""

    success: bool
    extracted_text: str = ""
    metadata: ExtractionMetadata = field(default_factory=ExtractionMetadata)
    chapters: list[Chapter] = field(default_factory=list)
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> ExtractionResult:
        return cls(success=False, error=error)


# ---------------------------------------------------------------------------
# Linguistic Analysis
# ---------------------------------------------------------------------------


@dataclass
class Keyword:
    term: str
    relevance: float
    category: str | None = None


@dataclass
class Sentiment:
    score: float   # [-1, 1]
    label: str     # "positive" | "negative" | "neutral"


@dataclass
class Entity:
    text: str
    type: str      # medical_term | anatomy | disease | drug | person | location
    confidence: float


@dataclass
class LinguisticResult:
    """Only requested features are populated; the rest stay None."""

    language: str
    keywords: list[Keyword] | None = None
    summary: str | None = None
    sentiment: Sentiment | None = None
    entities: list[Entity] | None = None

    def to_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {}
        if self.keywords is not None:
            fields["keywords"] = [asdict(k) for k in self.keywords]
        if self.summary is not None:
            fields["auto_summary"] = self.summary
        if self.sentiment is not None:
            fields["sentiment"] = asdict(self.sentiment)
        if self.entities is not None:
            fields["extracted_entities"] = [asdict(e) for e in self.entities]
        return fields


# ---------------------------------------------------------------------------
# AI Enrichment
# ---------------------------------------------------------------------------


@dataclass
class Concept:
    concept: str
    definition: str
    importance: float


@dataclass
class QuizQuestion:
    question: str
    type: str = "open"                 # qcm | open | case_study
    difficulty: str = "intermediate"   # beginner | intermediate | advanced
    answers: list[str] | None = None
    correct_answer: str | None = None


@dataclass
class AIUsage:
    """Token and cost accounting across every LLM call of one enrichment."""

    model: str = ""
    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    estimated_cost_usd: float | None = 0.0

    def add(self, model: str, input_tokens: int, output_tokens: int,
            cost: float | None) -> None:
        self.model = model
        self.calls += 1
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens
        if cost is None or self.estimated_cost_usd is None:
            self.estimated_cost_usd = None
        else:
            self.estimated_cost_usd = round(self.estimated_cost_usd + cost, 6)


@dataclass
class AIResult:
    summary: str | None = None
    concepts: list[Concept] | None = None
    questions: list[QuizQuestion] | None = None
    difficulty_score: float | None = None
    usage: AIUsage = field(default_factory=AIUsage)

    def to_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {"ai_enriched": True}
        if self.summary is not None:
            fields["ai_summary"] = self.summary
        if self.concepts is not None:
            fields["extracted_concepts"] = [asdict(c) for c in self.concepts]
        if self.questions is not None:
            fields["suggested_questions"] = [asdict(q) for q in self.questions]
        if self.difficulty_score is not None:
            fields["difficulty_score"] = self.difficulty_score
        if self.usage.calls:
            fields["ai_usage"] = asdict(self.usage)
        return fields


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class RuleOutcome:
    """Result of one named check against the text."""

    passed: bool
    message: str
    suggestions: list[str] = field(default_factory=list)


@dataclass
class ValidationIssue:
    rule_id: str
    severity: str
    message: str
    suggestions: list[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    score: int
    passed: bool
    issues: list[ValidationIssue] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    def to_fields(self) -> dict[str, Any]:
        return {
            "validation_score": self.score,
            "validation_passed": self.passed,
            "validation_issues": [asdict(i) for i in self.issues],
            "validation_recommendations": list(self.recommendations),
        }
