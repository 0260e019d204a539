# =============================================================================
# Unit Tests — Content Validator
# =============================================================================
#
# Individual checks, score folding (-20 per error, -10 per warning, clamped
# to [0, 100]) and recommendations.
# =============================================================================

from docpipe.models.jobs import (
    DEFAULT_VALIDATION_RULES,
    RuleSeverity,
    ValidationRule,
    ValidationType,
)
from docpipe.models.results import RuleOutcome
from docpipe.services.validation import (
    ContentValidator,
    check_content_length,
    check_language_consistency,
    check_medical_accuracy,
    check_medical_terms,
    check_plagiarism,
    check_structure_quality,
)
from tests.helpers import FRENCH_PARAGRAPH, french_course


def _rule(rule_id: str, severity: RuleSeverity = RuleSeverity.WARNING) -> ValidationRule:
    return ValidationRule(id=rule_id, severity=severity)


def _failing(text: str) -> RuleOutcome:
    return RuleOutcome(False, "always fails", ["fix it"])


class TestChecks:
    def test_medical_terms(self):
        assert check_medical_terms(FRENCH_PARAGRAPH).passed
        outcome = check_medical_terms("Le cours porte sur la maladie.")
        assert not outcome.passed
        assert "minimum 3" in outcome.message

    def test_content_length(self):
        assert check_content_length(french_course()).passed
        assert not check_content_length(FRENCH_PARAGRAPH).passed

    def test_plagiarism(self):
        assert check_plagiarism(FRENCH_PARAGRAPH).passed
        assert not check_plagiarism("Lorem ipsum dolor sit amet").passed

    def test_medical_accuracy(self):
        assert check_medical_accuracy(FRENCH_PARAGRAPH).passed
        outcome = check_medical_accuracy("Ce traitement guérit toujours, sans jamais échouer.")
        assert not outcome.passed
        assert outcome.message.startswith("2 absolute claim")

    def test_structure_quality(self):
        assert check_structure_quality(french_course(sections=3)).passed
        assert not check_structure_quality(FRENCH_PARAGRAPH).passed

    def test_language_consistency(self):
        assert check_language_consistency(FRENCH_PARAGRAPH).passed
        mixed = "le patient and la maladie with les symptômes for the traitement"
        assert not check_language_consistency(mixed).passed


class TestContentValidator:
    def test_clean_course_scores_100(self):
        result = ContentValidator().validate(
            french_course(), ValidationType.QUALITY, DEFAULT_VALIDATION_RULES,
        )
        assert result.score == 100
        assert result.passed
        assert result.issues == []
        assert result.recommendations == ["Content validated, no action required"]

    def test_penalties_per_severity(self):
        validator = ContentValidator(checks={"a": _failing, "b": _failing})
        result = validator.validate(
            "texte",
            ValidationType.MEDICAL,
            [_rule("a", RuleSeverity.ERROR), _rule("b", RuleSeverity.WARNING)],
        )
        assert result.score == 70
        assert result.passed
        assert [(i.rule_id, i.severity) for i in result.issues] == [
            ("a", "error"),
            ("b", "warning"),
        ]
        assert result.issues[0].suggestions == ["fix it"]
        assert result.recommendations[:2] == [
            "1 critical error(s) to fix before publishing",
            "1 warning(s) to review to improve quality",
        ]

    def test_score_is_clamped_at_zero(self):
        validator = ContentValidator(checks={"a": _failing})
        rules = [_rule("a", RuleSeverity.ERROR)] * 6
        result = validator.validate("texte", ValidationType.QUALITY, rules)
        assert result.score == 0
        assert not result.passed
        assert len(result.issues) == 6

    def test_pass_threshold(self):
        validator = ContentValidator(pass_threshold=90, checks={"a": _failing})
        result = validator.validate("texte", ValidationType.QUALITY, [_rule("a")])
        assert result.score == 90
        assert result.passed

        validator = ContentValidator(pass_threshold=95, checks={"a": _failing})
        result = validator.validate("texte", ValidationType.QUALITY, [_rule("a")])
        assert not result.passed

    def test_unknown_rule_passes(self):
        result = ContentValidator().validate(
            "texte", ValidationType.QUALITY, [_rule("spelling_check", RuleSeverity.ERROR)],
        )
        assert result.score == 100
        assert result.issues == []

    def test_short_text_with_default_rules(self):
        result = ContentValidator().validate(
            "Trop court.", ValidationType.QUALITY, DEFAULT_VALIDATION_RULES,
        )
        # content_length and structure_quality are warnings
        assert result.score == 80
        assert {i.rule_id for i in result.issues} == {"content_length", "structure_quality"}

    def test_to_fields(self):
        result = ContentValidator().validate(
            "Trop court.", ValidationType.QUALITY, DEFAULT_VALIDATION_RULES,
        )
        fields = result.to_fields()
        assert fields["validation_score"] == 80
        assert fields["validation_passed"] is True
        assert fields["validation_issues"][0]["rule_id"] == "content_length"
