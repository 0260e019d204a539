# =============================================================================
# Content Validator — Rule-Based Quality Gate
# =============================================================================
#
# Scores a document against an ordered list of named rules:
#
#   score = 100
#   for rule in rules:
#       if check(rule.id) fails: issue += 1; score -= 20 (error) | 10 (warning)
#   score = clamp(score, 0, 100)
#
# A failing rule is NOT an exception: it becomes a scored issue. Unknown rule
# ids pass with a "not recognised" message so a newer job envelope never
# breaks an older worker.
#
# REGISTERED CHECKS:
#   medical_terms_presence  ≥ 3 core medical terms
#   content_length          ≥ 100 words
#   plagiarism_check        no boilerplate / placeholder text
#   medical_accuracy        no absolute medical claims
#   structure_quality       ≥ 2 of: headings, paragraphs, lists
#   language_consistency    not a significant FR/EN mix
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence

from docpipe.models.jobs import RuleSeverity, ValidationRule, ValidationType
from docpipe.models.results import RuleOutcome, ValidationIssue, ValidationResult

logger = logging.getLogger(__name__)

SEVERITY_PENALTIES = {
    RuleSeverity.ERROR: 20,
    RuleSeverity.WARNING: 10,
}

MIN_WORDS = 100
MIN_MEDICAL_TERMS = 3

_CORE_MEDICAL_TERMS = (
    "diagnostic", "traitement", "symptôme", "maladie", "pathologie",
    "anatomie", "physiologie", "clinique", "thérapeutique",
)
_BOILERPLATE_PATTERNS = (
    re.compile(r"lorem ipsum", re.IGNORECASE),
    re.compile(r"texte d'exemple", re.IGNORECASE),
    re.compile(r"contenu temporaire", re.IGNORECASE),
)
_ABSOLUTE_CLAIM_PATTERNS = (
    re.compile(r"\bde façon définitive\b", re.IGNORECASE),
    re.compile(r"\btoujours\b", re.IGNORECASE),
    re.compile(r"\bjamais\b", re.IGNORECASE),
)
_FRENCH_FUNCTION_WORDS = re.compile(
    r"\b(le|la|les|et|ou|mais|donc|car|pour|avec|sans)\b", re.IGNORECASE,
)
_ENGLISH_FUNCTION_WORDS = re.compile(
    r"\b(the|and|or|but|so|because|for|with|without)\b", re.IGNORECASE,
)

# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def check_medical_terms(text: str) -> RuleOutcome:
    lower = text.lower()
    found = [term for term in _CORE_MEDICAL_TERMS if term in lower]
    if len(found) >= MIN_MEDICAL_TERMS:
        return RuleOutcome(True, f"{len(found)} medical terms found")
    return RuleOutcome(
        False,
        f"Only {len(found)} medical terms found (minimum {MIN_MEDICAL_TERMS})",
        [
            "Add domain-specific medical terminology",
            "Check that the content covers a medical topic",
        ],
    )


def check_content_length(text: str) -> RuleOutcome:
    word_count = len(text.split())
    if word_count >= MIN_WORDS:
        return RuleOutcome(True, f"{word_count} words, length is sufficient")
    return RuleOutcome(
        False,
        f"Content too short: {word_count} words (minimum {MIN_WORDS})",
        ["Develop the content further", "Add detailed explanations"],
    )


def check_plagiarism(text: str) -> RuleOutcome:
    if not any(p.search(text) for p in _BOILERPLATE_PATTERNS):
        return RuleOutcome(True, "No placeholder or copied boilerplate detected")
    return RuleOutcome(
        False,
        "Placeholder or generic copied content detected",
        ["Replace placeholder text with original content", "Verify the sources"],
    )


def check_medical_accuracy(text: str) -> RuleOutcome:
    hits = sum(1 for p in _ABSOLUTE_CLAIM_PATTERNS if p.search(text))
    if hits == 0:
        return RuleOutcome(True, "No problematic absolute medical claims")
    return RuleOutcome(
        False,
        f"{hits} absolute claim pattern(s) detected",
        [
            "Qualify absolute medical statements",
            "Cite reliable medical sources",
            "Have a medical expert review the content",
        ],
    )


def check_structure_quality(text: str) -> RuleOutcome:
    has_titles = bool(re.search(r"#{1,6}\s+\w+|^\s*\d+\.\s+\w+", text, re.MULTILINE))
    has_paragraphs = len(text.split("\n\n")) >= 3
    has_lists = bool(re.search(r"^\s*[-*+•]\s|\d+\.\s", text, re.MULTILINE))
    score = sum((has_titles, has_paragraphs, has_lists))
    if score >= 2:
        return RuleOutcome(True, f"Good structure (score: {score}/3)")
    return RuleOutcome(
        False,
        f"Insufficient structure (score: {score}/3)",
        [
            "Add headings to organise the content",
            "Separate ideas into paragraphs",
            "Use lists for key points",
        ],
    )


def check_language_consistency(text: str) -> RuleOutcome:
    total = max(len(text.split()), 1)
    french_ratio = len(_FRENCH_FUNCTION_WORDS.findall(text)) / total
    english_ratio = len(_ENGLISH_FUNCTION_WORDS.findall(text)) / total
    if french_ratio > 0.1 and english_ratio > 0.1:
        return RuleOutcome(
            False,
            "Mixed French and English content detected",
            ["Pick one main language", "Translate the content fully"],
        )
    dominant = "french" if french_ratio > english_ratio else "english"
    return RuleOutcome(True, f"Consistent language ({dominant})")


RuleCheck = Callable[[str], RuleOutcome]

RULE_CHECKS: dict[str, RuleCheck] = {
    "medical_terms_presence": check_medical_terms,
    "content_length": check_content_length,
    "plagiarism_check": check_plagiarism,
    "medical_accuracy": check_medical_accuracy,
    "structure_quality": check_structure_quality,
    "language_consistency": check_language_consistency,
}


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------


class ContentValidator:
    """Applies rules in order and folds them into a 0–100 score."""

    def __init__(
        self,
        pass_threshold: int = 70,
        checks: dict[str, RuleCheck] | None = None,
    ) -> None:
        self.pass_threshold = pass_threshold
        self.checks = dict(RULE_CHECKS if checks is None else checks)

    def validate(
        self,
        text: str,
        validation_type: ValidationType,
        rules: Sequence[ValidationRule],
    ) -> ValidationResult:
        score = 100
        issues: list[ValidationIssue] = []

        for rule in rules:
            outcome = self.apply_rule(text, rule)
            if outcome.passed:
                continue
            issues.append(
                ValidationIssue(
                    rule_id=rule.id,
                    severity=rule.severity.value,
                    message=outcome.message,
                    suggestions=list(outcome.suggestions),
                )
            )
            score -= SEVERITY_PENALTIES[rule.severity]

        score = max(0, min(100, score))
        logger.info(
            "Validated %d chars (%s, %d rules): score=%d, issues=%d",
            len(text), validation_type.value, len(rules), score, len(issues),
        )
        return ValidationResult(
            score=score,
            passed=score >= self.pass_threshold,
            issues=issues,
            recommendations=self.recommendations(issues),
        )

    def apply_rule(self, text: str, rule: ValidationRule) -> RuleOutcome:
        check = self.checks.get(rule.id)
        if check is None:
            return RuleOutcome(True, f"Rule {rule.id} not recognised")
        return check(text)

    @staticmethod
    def recommendations(issues: Sequence[ValidationIssue]) -> list[str]:
        if not issues:
            return ["Content validated, no action required"]

        errors = sum(1 for i in issues if i.severity == RuleSeverity.ERROR.value)
        warnings = sum(1 for i in issues if i.severity == RuleSeverity.WARNING.value)
        recommendations: list[str] = []
        if errors:
            recommendations.append(f"{errors} critical error(s) to fix before publishing")
        if warnings:
            recommendations.append(f"{warnings} warning(s) to review to improve quality")
        recommendations.append("Have a medical expert review the content if possible")
        recommendations.append("Check the cited references and sources")
        return recommendations
