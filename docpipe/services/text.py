# =============================================================================
# Text Utilities — Cleaning, Language, Title and Chapter Detection
# =============================================================================
#
# Shared by every format extractor so PDF, DOCX and TXT produce the same
# metadata shape. The corpus is French medical course material, with some
# English documents, so detection only distinguishes "fr" and "en".
#
# DESIGN DECISION: Heuristics, not a language-ID model. Scores come from
# counting common function words and domain terms in the first 500 words,
# which is enough to pick between two languages and costs nothing.
# =============================================================================

from __future__ import annotations

import re

from docpipe.models.results import Chapter

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

# ---------------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------------


def clean_text(text: str) -> str:
    """Normalise line endings, collapse blank runs and strip control chars."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = re.sub(r"[ \t]{2,}", " ", text)
    text = _CONTROL_CHARS.sub("", text)
    return text.strip()


def clean_pdf_text(text: str) -> str:
    """Clean PDF text, re-joining words hyphenated or wrapped across lines."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"([a-zà-ÿ])-\n([a-zà-ÿ])", r"\1\2", text)
    text = re.sub(r"([a-zà-ÿ])\n([a-zà-ÿ])", r"\1 \2", text)
    return clean_text(text)


def clean_docx_text(text: str) -> str:
    """Clean DOCX text and trim each line."""
    text = clean_text(text)
    return "\n".join(line.strip() for line in text.split("\n")).strip()


# ---------------------------------------------------------------------------
# Language Detection
# ---------------------------------------------------------------------------

_FRENCH_WORDS = (
    "le", "la", "les", "de", "du", "des", "et", "est", "dans", "pour",
    "avec", "sur", "par", "une", "que", "ce",
    "patient", "maladie", "traitement", "diagnostic", "symptôme", "médecin",
    "hôpital", "anatomie", "physiologie", "pathologie", "chirurgie",
    "hématologie", "endocrinologie",
)

_ENGLISH_WORDS = (
    "the", "and", "is", "in", "to", "of", "a", "that", "it", "with", "for",
    "as", "was", "are", "be",
    "patient", "disease", "treatment", "diagnosis", "symptom", "doctor",
    "hospital", "anatomy", "physiology", "pathology", "surgery",
    "hematology", "endocrinology",
)

_WORD = re.compile(r"[^\W\d_]+(?:['’-][^\W\d_]+)*", re.UNICODE)


def detect_language(text: str) -> str:
    """
    Return "fr" or "en" from function-word frequency over the first 500 words.

    Ties resolve to "en".
    """
    words = [w.lower() for w in _WORD.findall(text)[:500]]
    french = set(_FRENCH_WORDS)
    english = set(_ENGLISH_WORDS)
    french_score = sum(1 for w in words if w in french)
    english_score = sum(1 for w in words if w in english)
    return "fr" if french_score > english_score else "en"


def count_words(text: str) -> int:
    """Count whitespace-separated tokens longer than one character."""
    return sum(1 for token in text.split() if len(token) > 1)


# ---------------------------------------------------------------------------
# Title & Chapters
# ---------------------------------------------------------------------------


def extract_title(text: str) -> str | None:
    """
    First plausible title among the first ten non-empty lines.

    A title is 9–149 chars, at least two words, not a bare number, and not an
    e-mail address or URL.
    """
    lines = [line.strip() for line in text.split("\n") if line.strip()][:10]
    for line in lines:
        if (
            8 < len(line) < 150
            and not line.isdigit()
            and "@" not in line
            and "http" not in line
            and len(line.split(" ")) >= 2
        ):
            return line
    return None


_CHAPTER_PATTERNS = (
    re.compile(r"^(?:CHAPITRE|CHAPTER)\s+\d+[^\n]*$", re.MULTILINE | re.IGNORECASE),
    re.compile(r"^\d+\.\s+[A-Z][^\n]{10,100}$", re.MULTILINE),
    re.compile(r"^\d+\.\d+\s+[A-Z][^\n]{10,80}$", re.MULTILINE),
    re.compile(r"^[A-ZÀ-ÖØ-Þ][A-ZÀ-ÖØ-Þ ]{11,79}$", re.MULTILINE),
    re.compile(
        r"^(?:INTRODUCTION|DÉFINITION|ÉTIOLOGIE|PHYSIOPATHOLOGIE|CLINIQUE"
        r"|DIAGNOSTIC|TRAITEMENT|CONCLUSION)[^\n]*$",
        re.MULTILINE | re.IGNORECASE,
    ),
    re.compile(
        r"^(?:ANATOMY|PHYSIOLOGY|PATHOLOGY|DIAGNOSIS|TREATMENT|PROGNOSIS)[^\n]*$",
        re.MULTILINE | re.IGNORECASE,
    ),
    re.compile(r"^[IVX]+\.\s+[A-Z][^\n]{10,}$", re.MULTILINE),
)

CHAPTER_MIN_CHARS = 80
CHAPTER_MAX_CHARS = 50_000


def extract_chapters(text: str) -> list[Chapter]:
    """
    Split text into chapters at heading-like lines.

    Headings found by several patterns within 20 characters of each other
    count once. Chapters whose body is outside 81–49 999 chars are dropped.
    """
    starts: list[tuple[int, str]] = []
    for pattern in _CHAPTER_PATTERNS:
        for match in pattern.finditer(text):
            if any(abs(match.start() - s) < 20 for s, _ in starts):
                continue
            starts.append((match.start(), match.group(0).strip()))
    starts.sort()

    chapters: list[Chapter] = []
    for i, (start, title) in enumerate(starts):
        end = starts[i + 1][0] if i + 1 < len(starts) else len(text)
        body = text[start:end].replace(title, "", 1).strip()
        if CHAPTER_MIN_CHARS < len(body) < CHAPTER_MAX_CHARS:
            chapters.append(Chapter(title=title, content=body))
    return chapters
