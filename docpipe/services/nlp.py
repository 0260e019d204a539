# =============================================================================
# Linguistic Analyzer — Keywords, Extractive Summary, Sentiment, Entities
# =============================================================================
#
# Lexicon-based analysis of medical course text. Each feature is computed
# only when requested so the stage can write exactly the fields it was asked
# for.
#
#   keywords   medical terms present, relevance = min(count × 0.1, 1), top 20
#   summary    first three sentences longer than 20 chars (≤ 300 chars)
#   sentiment  positive/negative lexicon hits × 0.1, clamped to [-1, 1]
#   entities   regex families (disease, anatomy, drug, specialist), max 15
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from docpipe.models.jobs import Language, NlpFeature
from docpipe.models.results import Entity, Keyword, LinguisticResult, Sentiment

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 20
MAX_ENTITIES = 15

_MEDICAL_TERMS: dict[Language, tuple[str, ...]] = {
    Language.FR: (
        "diagnostic", "traitement", "symptôme", "maladie", "pathologie",
        "anatomie", "physiologie", "pharmacologie", "chirurgie", "radiologie",
        "cardiologie", "neurologie", "pneumologie", "gastro-entérologie",
    ),
    Language.EN: (
        "diagnosis", "treatment", "symptom", "disease", "pathology",
        "anatomy", "physiology", "pharmacology", "surgery", "radiology",
        "cardiology", "neurology", "pulmonology", "gastroenterology",
    ),
}

_POSITIVE_WORDS = (
    "efficace", "amélioration", "guérison", "succès",
    "effective", "improvement", "cure", "success",
)
_NEGATIVE_WORDS = (
    "risque", "complication", "échec", "danger",
    "risk", "failure",
)

_ENTITY_PATTERNS: tuple[tuple[re.Pattern[str], str, float], ...] = (
    (
        re.compile(
            r"\b(cancer|diabète|hypertension|asthme|dépression|anémie"
            r"|insuffisance|syndrome|maladie)",
            re.IGNORECASE,
        ),
        "disease",
        0.8,
    ),
    (
        re.compile(
            r"\b(cœur|cerveau|poumon|foie|rein|estomac|intestin|peau|os|muscle)",
            re.IGNORECASE,
        ),
        "anatomy",
        0.9,
    ),
    (
        re.compile(
            r"\b(paracétamol|ibuprofène|aspirine|antibiotique|corticoïde"
            r"|insuline|antidépresseur)",
            re.IGNORECASE,
        ),
        "drug",
        0.7,
    ),
    (
        re.compile(
            r"\b(cardiologue|neurologue|pédiatre|chirurgien|radiologue"
            r"|ophtalmologiste)",
            re.IGNORECASE,
        ),
        "medical_term",
        0.9,
    ),
)


class LinguisticAnalyzer:
    """Computes the requested NLP features over one text."""

    def analyze(
        self,
        text: str,
        language: Language,
        features: Iterable[NlpFeature],
    ) -> LinguisticResult:
        requested = set(features)
        result = LinguisticResult(language=language.value)

        if NlpFeature.KEYWORDS in requested:
            result.keywords = self.extract_keywords(text, language)
        if NlpFeature.SUMMARY in requested:
            result.summary = self.summarize(text)
        if NlpFeature.SENTIMENT in requested:
            result.sentiment = self.sentiment(text)
        if NlpFeature.ENTITIES in requested:
            result.entities = self.extract_entities(text)

        logger.debug(
            "Analyzed %d chars (%s): features=%s",
            len(text), language.value, sorted(f.value for f in requested),
        )
        return result

    # -------------------------------------------------------------------------

    def extract_keywords(self, text: str, language: Language) -> list[Keyword]:
        lower = text.lower()
        keywords = [
            Keyword(
                term=term,
                relevance=min(lower.count(term) * 0.1, 1.0),
                category="medical",
            )
            for term in _MEDICAL_TERMS[language]
            if term in lower
        ]
        keywords.sort(key=lambda k: k.relevance, reverse=True)
        return keywords[:MAX_KEYWORDS]

    def summarize(self, text: str) -> str:
        sentences = [
            s.strip() for s in re.split(r"[.!?]+", text) if len(s.strip()) > 20
        ]
        if len(sentences) <= 3:
            return text[:500] + ("..." if len(text) > 500 else "")
        summary = ". ".join(sentences[:3])
        return summary[:300] + "..." if len(summary) > 300 else summary + "."

    def sentiment(self, text: str) -> Sentiment:
        lower = text.lower()
        score = 0.1 * (
            sum(lower.count(w) for w in _POSITIVE_WORDS)
            - sum(lower.count(w) for w in _NEGATIVE_WORDS)
        )
        score = round(max(-1.0, min(1.0, score)), 4)
        if score > 0.1:
            label = "positive"
        elif score < -0.1:
            label = "negative"
        else:
            label = "neutral"
        return Sentiment(score=score, label=label)

    def extract_entities(self, text: str) -> list[Entity]:
        entities: list[Entity] = []
        seen: set[str] = set()
        for pattern, entity_type, confidence in _ENTITY_PATTERNS:
            for match in pattern.finditer(text):
                key = match.group(0).lower()
                if key in seen:
                    continue
                seen.add(key)
                entities.append(
                    Entity(text=match.group(0), type=entity_type, confidence=confidence)
                )
        return entities[:MAX_ENTITIES]
