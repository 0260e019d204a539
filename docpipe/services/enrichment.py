# =============================================================================
# AI Enricher — Summary, Concepts, Quiz Questions, Difficulty
# =============================================================================
#
# Runs the requested AI tasks in order over one document's text:
#
#   summary               LLM: pedagogical summary (≤ 200 words)
#   concept-extraction    glossary concepts present in the text
#   quiz-generation       LLM: JSON list of questions, open-question fallback
#   difficulty-assessment heuristic score in [0, 1]
#
# DESIGN DECISION: LLM failures during the SUMMARY propagate as
# AIEnrichmentError so the queue's retry/backoff covers transient provider
# outages. Quiz generation is best-effort: an unparseable or failed answer
# degrades to a single open question instead of failing the whole stage.
#
# DESIGN DECISION: The provider is resolved lazily through a factory, so a
# run that only asks for heuristic tasks never needs an API key.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Callable, Iterable
from typing import Any

from docpipe.errors import AIEnrichmentError
from docpipe.models.jobs import AITask, ContentType
from docpipe.models.results import AIResult, Concept, QuizQuestion
from docpipe.services.llm import LLMProvider, LLMResponse
from docpipe.services.pricing import estimate_cost

logger = logging.getLogger(__name__)

MAX_CONCEPTS = 5

_GLOSSARY: tuple[Concept, ...] = (
    Concept(
        "Diagnostic",
        "Identification of a disease from clinical signs and investigations",
        0.9,
    ),
    Concept(
        "Traitement",
        "Therapeutic methods used to cure or manage a medical condition",
        0.8,
    ),
    Concept(
        "Prévention",
        "Measures that avoid the onset or progression of a disease",
        0.7,
    ),
    Concept(
        "Pronostic",
        "Expected course of a disease and chances of recovery",
        0.6,
    ),
)

_TECHNICAL_TERMS = (
    "pathologie", "physiopathologie", "étiologie", "clinique",
    "diagnostic", "thérapeutique",
)

SUMMARY_SYSTEM_PROMPT = (
    "You are a medical educator. Summarise course material for students "
    "in the language of the source text, concisely and pedagogically."
)

QUIZ_SYSTEM_PROMPT = (
    "You write multiple-choice questions for medical students. Answer ONLY "
    "with a JSON array; each item has the keys question, answers (list of "
    "strings) and correct_answer."
)

FALLBACK_QUESTION = QuizQuestion(
    question="What is the main information presented in this document?",
    type="open",
    difficulty="beginner",
)


class AIEnricher:
    """Executes AI tasks for one document and accounts for LLM usage."""

    def __init__(
        self,
        provider_factory: Callable[[], LLMProvider],
        summary_input_chars: int = 2000,
        quiz_input_chars: int = 1000,
        quiz_question_count: int = 2,
    ) -> None:
        self._provider_factory = provider_factory
        self._provider: LLMProvider | None = None
        self.summary_input_chars = summary_input_chars
        self.quiz_input_chars = quiz_input_chars
        self.quiz_question_count = quiz_question_count

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = self._provider_factory()
        return self._provider

    def enrich(
        self,
        text: str,
        content_type: ContentType,
        tasks: Iterable[AITask],
        context: dict[str, Any] | None = None,
    ) -> AIResult:
        context = context or {}
        result = AIResult()

        for task in tasks:
            if task == AITask.SUMMARY:
                result.summary = self.summarize(text, content_type, context, result)
            elif task == AITask.CONCEPT_EXTRACTION:
                result.concepts = self.extract_concepts(text)
            elif task == AITask.QUIZ_GENERATION:
                result.questions = self.generate_questions(text, result)
            elif task == AITask.DIFFICULTY_ASSESSMENT:
                result.difficulty_score = self.assess_difficulty(text)

        return result

    # -------------------------------------------------------------------------
    # LLM-backed tasks
    # -------------------------------------------------------------------------

    def _complete(self, prompt: str, system: str, result: AIResult) -> LLMResponse:
        provider = self.provider
        response = asyncio.run(
            provider.complete(
                messages=[{"role": "user", "content": prompt}],
                system=system,
            )
        )
        result.usage.add(
            response.model,
            response.input_tokens,
            response.output_tokens,
            estimate_cost(
                provider.provider_type,
                response.model,
                response.input_tokens,
                response.output_tokens,
            ),
        )
        return response

    def summarize(
        self,
        text: str,
        content_type: ContentType,
        context: dict[str, Any],
        result: AIResult,
    ) -> str:
        prompt = (
            f"Summarise this {content_type.value} text in at most 200 words.\n"
            f"Domain: {context.get('medical_domain', 'general')}\n"
            f"Audience: {context.get('target_audience', 'medical_students')}\n\n"
            f"Text:\n{text[: self.summary_input_chars]}"
        )
        try:
            response = self._complete(prompt, SUMMARY_SYSTEM_PROMPT, result)
        except Exception as exc:
            raise AIEnrichmentError(f"Summary generation failed: {exc}") from exc

        summary = response.content.strip()
        if not summary:
            raise AIEnrichmentError("Summary generation returned no content")
        return summary

    def generate_questions(self, text: str, result: AIResult) -> list[QuizQuestion]:
        prompt = (
            f"Write {self.quiz_question_count} multiple-choice questions about "
            f"the following text.\n\n{text[: self.quiz_input_chars]}"
        )
        try:
            response = self._complete(prompt, QUIZ_SYSTEM_PROMPT, result)
            questions = parse_questions(response.content)
        except Exception as exc:
            logger.warning("Quiz generation failed, using fallback question: %s", exc)
            return [FALLBACK_QUESTION]
        return questions or [FALLBACK_QUESTION]

    # -------------------------------------------------------------------------
    # Heuristic tasks
    # -------------------------------------------------------------------------

    @staticmethod
    def extract_concepts(text: str) -> list[Concept]:
        lower = text.lower()
        found = [c for c in _GLOSSARY if c.concept.lower() in lower]
        return found[:MAX_CONCEPTS]

    @staticmethod
    def assess_difficulty(text: str) -> float:
        lower = text.lower()
        score = 0.5 + 0.05 * sum(1 for term in _TECHNICAL_TERMS if term in lower)
        if len(text) > 5000:
            score += 0.2
        elif len(text) > 2000:
            score += 0.1
        if "syndrome" in lower or "classification" in lower:
            score += 0.1
        return round(max(0.0, min(1.0, score)), 4)


def parse_questions(content: str) -> list[QuizQuestion]:
    """
    Parse the quiz JSON array out of an LLM answer.

    Tolerates Markdown code fences around the array. Raises ValueError when
    no JSON array is present.
    """
    match = re.search(r"\[.*\]", content, re.DOTALL)
    if match is None:
        raise ValueError("No JSON array in quiz answer")

    questions: list[QuizQuestion] = []
    for item in json.loads(match.group(0)):
        if not isinstance(item, dict) or not item.get("question"):
            continue
        answers = [str(a) for a in item.get("answers") or []]
        questions.append(
            QuizQuestion(
                question=str(item["question"]),
                type="qcm" if answers else "open",
                difficulty="intermediate",
                answers=answers or None,
                correct_answer=item.get("correct_answer"),
            )
        )
    return questions
