# =============================================================================
# Format Extractors — File Reference → Plain Text + Structure
# =============================================================================
#
# One extractor per supported file type, selected by the FileType enum:
#
#   Extractor (Protocol)
#   ├── PdfExtractor   — Docling: reading-order items, headings → chapters
#   ├── DocxExtractor  — python-docx: paragraphs, "Heading" styles → chapters
#   └── TxtExtractor   — UTF-8 text, heading-like lines → chapters
#
# EPUB is a valid FileType with no registered extractor; asking for it is an
# ExtractionError, not a silent skip.
#
# DESIGN DECISION: Extractors REPORT failure (success=False + error) for
# unreadable content rather than raising. The extraction stage owns the
# decision to turn that into an ExtractionError, so every format fails the
# same way in the processing log.
#
# DESIGN DECISION: Our own result dataclasses (ExtractionResult, Chapter)
# rather than library types. Downstream stages never import Docling or
# python-docx.
# =============================================================================

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import unquote, urlparse

from docpipe.errors import ExtractionError
from docpipe.models.jobs import FileType
from docpipe.models.results import (
    Chapter,
    ExtractionMetadata,
    ExtractionResult,
)
from docpipe.services.text import (
    CHAPTER_MAX_CHARS,
    CHAPTER_MIN_CHARS,
    clean_docx_text,
    clean_pdf_text,
    clean_text,
    count_words,
    detect_language,
    extract_chapters,
    extract_title,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol & Helpers
# ---------------------------------------------------------------------------


class Extractor(Protocol):
    """Turns a file reference into text and structural metadata."""

    def extract(self, file_ref: str) -> ExtractionResult:
        ...


def resolve_file_ref(file_ref: str) -> Path:
    """
    Map a source file reference to a local path.

    Accepts plain paths and file:// URLs. Uploads are stored on a volume
    shared by the API and the workers, so nothing is downloaded here.
    """
    parsed = urlparse(file_ref)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    if parsed.scheme == "":
        return Path(file_ref)
    raise ExtractionError(
        f"Unsupported file reference scheme: {parsed.scheme}",
        file_type="source",
    )


def _build_result(
    text: str,
    chapters: list[Chapter],
    page_count: int | None = None,
    title: str | None = None,
) -> ExtractionResult:
    if not text.strip():
        return ExtractionResult.failure("No text content found")
    return ExtractionResult(
        success=True,
        extracted_text=text,
        metadata=ExtractionMetadata(
            word_count=count_words(text),
            language=detect_language(text),
            title=title or extract_title(text),
            page_count=page_count,
        ),
        chapters=chapters,
    )


def _keep_chapter(chapter: Chapter) -> bool:
    return CHAPTER_MIN_CHARS < len(chapter.content) < CHAPTER_MAX_CHARS


# ---------------------------------------------------------------------------
# TXT
# ---------------------------------------------------------------------------


class TxtExtractor:
    """Plain-text files, decoded as UTF-8 with a Latin-1 fallback."""

    def extract(self, file_ref: str) -> ExtractionResult:
        path = resolve_file_ref(file_ref)
        if not path.exists():
            return ExtractionResult.failure(f"File not found: {path}")

        raw = path.read_bytes()
        try:
            decoded = raw.decode("utf-8")
        except UnicodeDecodeError:
            decoded = raw.decode("latin-1")

        text = clean_text(decoded)
        return _build_result(text, extract_chapters(text))


# ---------------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------------


class DocxExtractor:
    """
    Word documents via python-docx.

    Paragraphs styled "Title" or "Heading N" open a new chapter; everything
    until the next heading is its content.
    """

    def extract(self, file_ref: str) -> ExtractionResult:
        import docx
        from docx.opc.exceptions import PackageNotFoundError

        path = resolve_file_ref(file_ref)
        if not path.exists():
            return ExtractionResult.failure(f"File not found: {path}")

        try:
            document = docx.Document(str(path))
        except (PackageNotFoundError, ValueError, KeyError) as exc:
            return ExtractionResult.failure(f"Unreadable DOCX: {exc}")

        lines: list[str] = []
        chapters: list[Chapter] = []
        title: str | None = None
        current: Chapter | None = None

        for paragraph in document.paragraphs:
            content = paragraph.text.strip()
            if not content:
                continue
            lines.append(content)
            style = (paragraph.style.name if paragraph.style is not None else "") or ""

            if style == "Title" and title is None:
                title = content
            elif style.startswith("Heading"):
                if current is not None:
                    chapters.append(current)
                current = Chapter(title=content, content="")
            elif current is not None:
                current.content = f"{current.content}\n{content}".strip()

        if current is not None:
            chapters.append(current)

        text = clean_docx_text("\n\n".join(lines))
        chapters = [c for c in chapters if _keep_chapter(c)] or extract_chapters(text)
        return _build_result(text, chapters, title=title)


# ---------------------------------------------------------------------------
# PDF — Docling
# ---------------------------------------------------------------------------
# DESIGN DECISION: Reuse a single DocumentConverter instance. Initialization
# loads layout models (~2-5 seconds); the converter is then reused by every
# job the worker process handles.
# ---------------------------------------------------------------------------

_converter = None


def _get_converter():
    """Lazily initialize and cache the Docling DocumentConverter."""
    global _converter
    if _converter is None:
        from docling.datamodel.base_models import InputFormat
        from docling.datamodel.pipeline_options import PdfPipelineOptions
        from docling.document_converter import DocumentConverter, PdfFormatOption

        logger.info(
            "Initializing Docling DocumentConverter "
            "(first use, may take a few seconds)..."
        )
        pipeline_options = PdfPipelineOptions()
        pipeline_options.do_ocr = True
        # Tables are flattened to text; structure recognition is not needed.
        pipeline_options.do_table_structure = False

        _converter = DocumentConverter(
            format_options={
                InputFormat.PDF: PdfFormatOption(pipeline_options=pipeline_options),
            }
        )
        logger.info("Docling DocumentConverter initialized")
    return _converter


class PdfExtractor:
    """
    PDFs via Docling, iterating items in reading order.

    Section headers become chapter titles; body text, list items and captions
    are appended to the current chapter. Page count comes from provenance.
    """

    def extract(self, file_ref: str) -> ExtractionResult:
        from docling_core.types.doc.labels import DocItemLabel

        path = resolve_file_ref(file_ref)
        if not path.exists():
            return ExtractionResult.failure(f"File not found: {path}")

        try:
            conversion = _get_converter().convert(str(path))
        except Exception as exc:
            logger.warning("Docling failed to parse '%s': %s", path.name, exc)
            return ExtractionResult.failure(f"Docling failed to parse '{path.name}': {exc}")

        body_labels = {
            DocItemLabel.TEXT,
            DocItemLabel.LIST_ITEM,
            DocItemLabel.CAPTION,
            DocItemLabel.FOOTNOTE,
        }
        blocks: list[str] = []
        chapters: list[Chapter] = []
        current: Chapter | None = None
        title: str | None = None
        pages: set[int] = set()

        for item, _level in conversion.document.iterate_items():
            page_no = item.prov[0].page_no if getattr(item, "prov", None) else 0
            if page_no:
                pages.add(page_no)
            label = getattr(item, "label", None)
            content = (getattr(item, "text", "") or "").strip()
            if not content:
                continue

            if label == DocItemLabel.TITLE:
                title = title or content
                blocks.append(content)
            elif label == DocItemLabel.SECTION_HEADER:
                if current is not None:
                    chapters.append(current)
                current = Chapter(title=content, content="", page_number=page_no or None)
                blocks.append(content)
            elif label in body_labels:
                blocks.append(content)
                if current is not None:
                    current.content = f"{current.content}\n{content}".strip()

        if current is not None:
            chapters.append(current)

        text = clean_pdf_text("\n\n".join(blocks))
        chapters = [c for c in chapters if _keep_chapter(c)] or extract_chapters(text)
        page_count = max(pages) if pages else None

        logger.info(
            "Parsed '%s': %d blocks, %d chapters, %s pages",
            path.name, len(blocks), len(chapters), page_count,
        )
        return _build_result(text, chapters, page_count=page_count, title=title)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def default_extractors() -> dict[FileType, Extractor]:
    """The in-process extractors. EPUB is deliberately absent."""
    return {
        FileType.PDF: PdfExtractor(),
        FileType.DOCX: DocxExtractor(),
        FileType.TXT: TxtExtractor(),
    }


def get_extractor(
    extractors: dict[FileType, Extractor],
    file_type: FileType,
) -> Extractor:
    """Select the extractor for a file type or raise ExtractionError."""
    try:
        return extractors[file_type]
    except KeyError:
        raise ExtractionError(
            f"Unsupported file type: {file_type.value}",
            file_type=file_type.value,
        ) from None
