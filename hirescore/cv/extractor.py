"""Tiered text extraction for uploaded candidate documents.

Each document kind maps to an ordered list of extraction tiers. Tiers run in
order until one produces enough text; the longest text wins. When nothing
usable comes out, the result is the failure sentinel, which downstream
stages recognise with ``is_failure_sentinel``.
"""

import asyncio
import codecs
import io
import logging
import mimetypes
import re
import zipfile
import zlib
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

import fitz  # PyMuPDF
from bs4 import BeautifulSoup

from hirescore.config import (
    EMPTY_TEXT_THRESHOLD,
    MIN_CONVERSION_TEXT_LENGTH,
    MIN_DIRECT_TEXT_LENGTH,
    MIN_MARKUP_TEXT_LENGTH,
    PDF_LINE_TOLERANCE,
)
from hirescore.cv.services import (
    ConversionServiceClient,
    DocumentServiceError,
    OpticalExtractionClient,
    default_conversion_client,
    default_optical_client,
)
from hirescore.schemas.document import (
    CandidateDocument,
    DocumentKind,
    ExtractionMethod,
    ExtractionResult,
)

logger = logging.getLogger(__name__)

EXTENSION_KINDS = {
    ".pdf": DocumentKind.PDF,
    ".txt": DocumentKind.TEXT,
    ".md": DocumentKind.TEXT,
    ".html": DocumentKind.MARKUP,
    ".htm": DocumentKind.MARKUP,
    ".xml": DocumentKind.MARKUP,
    ".doc": DocumentKind.OFFICE,
    ".docx": DocumentKind.OFFICE,
    ".odt": DocumentKind.OFFICE,
    ".rtf": DocumentKind.OFFICE,
}

MEDIA_TYPE_KINDS = {
    "application/pdf": DocumentKind.PDF,
    "text/plain": DocumentKind.TEXT,
    "text/markdown": DocumentKind.TEXT,
    "text/html": DocumentKind.MARKUP,
    "application/xhtml+xml": DocumentKind.MARKUP,
    "application/xml": DocumentKind.MARKUP,
    "text/xml": DocumentKind.MARKUP,
    "application/msword": DocumentKind.OFFICE,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentKind.OFFICE,
    "application/vnd.oasis.opendocument.text": DocumentKind.OFFICE,
    "application/rtf": DocumentKind.OFFICE,
    "text/rtf": DocumentKind.OFFICE,
}

# Body parts of zipped office formats (docx, odt)
OFFICE_XML_PARTS = ("word/document.xml", "content.xml")

EXTRACTION_FAILED_MARKER = "[EXTRACTION FAILED]"

# Placeholder texts produced by older upload clients instead of CV content
_LEGACY_FAILURE_RE = re.compile(
    r"please (?:copy and )?paste the cv (?:content|text) manually"
    r"|unable to extract text automatically"
    r"|appears to be image-based or scanned",
    re.IGNORECASE,
)

HIDDEN_TAGS = frozenset({"script", "style", "noscript", "template", "head"})
_BLOCK_TAGS = frozenset({
    "p", "div", "br", "li", "ul", "ol", "tr", "table", "section", "article",
    "header", "footer", "h1", "h2", "h3", "h4", "h5", "h6", "title", "dt", "dd",
})
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


class UnsupportedDocumentError(ValueError):
    """Raised for document types the pipeline does not accept."""

    pass


class ExtractionStrategyError(Exception):
    """Raised by a strategy when a known failure mode stops it."""

    pass


class StrategyOutcome(NamedTuple):
    text: str
    quality: int
    method: ExtractionMethod
    page_count: int | None = None


ExtractionStrategy = Callable[[CandidateDocument], Awaitable[StrategyOutcome]]


@dataclass(frozen=True)
class ExtractionTier:
    strategy: ExtractionStrategy
    sufficient_length: int


@dataclass(frozen=True)
class ExtractionPlan:
    tiers: list[ExtractionTier]
    floor: int
    failure_reason: str


def html_to_text(markup: str, drop: Iterable[str] = HIDDEN_TAGS) -> str:
    """Strip tags, decode entities and collapse whitespace.

    Args:
        markup: HTML or XML markup.
        drop: Elements removed together with everything inside them.
    """
    if not markup:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    for element in soup.find_all(list(drop)):
        if not element.decomposed:
            element.decompose()
    for element in soup.find_all(list(_BLOCK_TAGS)):
        element.insert_before("\n")
        element.insert_after("\n")
    return clean_whitespace(soup.get_text())


def clean_whitespace(text: str) -> str:
    """Normalize whitespace in extracted text."""
    text = re.sub(r"\r\n?", "\n", text)
    text = _CONTROL_CHARS_RE.sub("", text)
    text = re.sub(r"[ \t\xa0]+", " ", text)
    text = re.sub(r" ?\n ?", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    text = text.strip()
    return text


def text_quality(text: str) -> int:
    """Quality score of an extraction candidate: its stripped length."""
    return len(text.strip())


def detect_document_kind(filename: str, media_type: str | None = None) -> DocumentKind:
    """Classify a document by extension, or by media type when it has none.

    Raises:
        UnsupportedDocumentError: If the extension or media type is not accepted.
    """
    suffix = Path(filename).suffix.lower()
    if suffix:
        kind = EXTENSION_KINDS.get(suffix)
        if kind is None:
            raise UnsupportedDocumentError(
                f"Unsupported file type '{suffix}' for {filename}. "
                f"Supported: {', '.join(sorted(EXTENSION_KINDS))}"
            )
        return kind

    if media_type:
        kind = MEDIA_TYPE_KINDS.get(media_type.split(";")[0].strip().lower())
        if kind is not None:
            return kind

    raise UnsupportedDocumentError(f"Cannot determine document type of {filename}")


def load_document(file_path: Path) -> CandidateDocument:
    """Read a file from disk into a CandidateDocument.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        UnsupportedDocumentError: If the file type is not accepted.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"CV file not found: {path}")

    media_type, _ = mimetypes.guess_type(path.name)
    detect_document_kind(path.name, media_type)
    return CandidateDocument(content=path.read_bytes(), filename=path.name, media_type=media_type)


def build_failure_sentinel(filename: str, reason: str) -> str:
    return (
        f"{EXTRACTION_FAILED_MARKER} {filename}: {reason}. "
        "Please paste the CV content manually for accurate screening."
    )


def is_failure_sentinel(text: str) -> bool:
    """Whether text is an extraction failure marker rather than CV content."""
    stripped = text.lstrip()
    if stripped.startswith(EXTRACTION_FAILED_MARKER):
        return True
    return len(stripped) < 600 and bool(_LEGACY_FAILURE_RE.search(stripped))


def select_best(outcomes: list[StrategyOutcome | None]) -> StrategyOutcome | None:
    """Pick the highest-quality outcome; earlier tiers win ties."""
    best = None
    for outcome in outcomes:
        if outcome is not None and (best is None or outcome.quality > best.quality):
            best = outcome
    return best


def _words_to_text(words: list[tuple], tolerance: float = PDF_LINE_TOLERANCE) -> str:
    """Rebuild lines from PyMuPDF word tuples.

    A new line starts whenever the vertical position jumps by more than
    ``tolerance`` points.
    """
    lines = []
    current: list[str] = []
    line_y = None

    for word in words:
        y1, text = word[3], word[4]
        if current and abs(y1 - line_y) > tolerance:
            lines.append(" ".join(current))
            current = []
        if not current:
            line_y = y1
        current.append(text)

    if current:
        lines.append(" ".join(current))
    return "\n".join(lines)


def extract_pdf_text(content: bytes) -> tuple[str, int]:
    """Extract the text layer of a PDF.

    Returns:
        Tuple of (cleaned text, page count).

    Raises:
        ExtractionStrategyError: If the PDF is corrupt, empty or encrypted.
    """
    try:
        doc = fitz.open(stream=content, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise ExtractionStrategyError(f"Unreadable PDF: {e}") from e

    with doc:
        if doc.needs_pass:
            raise ExtractionStrategyError("PDF is password protected")
        try:
            pages = [_words_to_text(page.get_text("words", sort=True)) for page in doc]
        except (RuntimeError, ValueError) as e:
            raise ExtractionStrategyError(f"Failed to read PDF pages: {e}") from e
        page_count = doc.page_count

    return clean_whitespace("\n\n".join(pages)), page_count


def decode_text(content: bytes) -> str:
    """Decode plain-text bytes, honouring BOMs and falling back to Latin-1."""
    if content.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return content.decode("utf-16", errors="replace")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def _strip_rtf(rtf: str) -> str:
    text = re.sub(r"\\par[d]?\b ?", "\n", rtf)
    text = re.sub(r"\\'[0-9a-fA-F]{2}", "", text)
    text = re.sub(r"\\[a-zA-Z]+-?\d* ?", "", text)
    return text.replace("{", "").replace("}", "")


def crude_office_text(content: bytes) -> str:
    """Last-resort text from an office document by stripping its markup."""
    buffer = io.BytesIO(content)
    if zipfile.is_zipfile(buffer):
        try:
            with zipfile.ZipFile(buffer) as archive:
                names = set(archive.namelist())
                part = next((name for name in OFFICE_XML_PARTS if name in names), None)
                if part is None:
                    raise ExtractionStrategyError("No document body found in office archive")
                markup = archive.read(part).decode("utf-8", errors="ignore")
        except (zipfile.BadZipFile, zlib.error, EOFError, RuntimeError, NotImplementedError) as e:
            raise ExtractionStrategyError(f"Corrupt office archive: {e}") from e
    else:
        markup = decode_text(content)
        if markup.lstrip().startswith("{\\rtf"):
            markup = _strip_rtf(markup)

    markup = re.sub(r"</(?:w:p|text:p|text:h)>", "\n", markup)
    markup = re.sub(r"<(?:w:tab|text:tab)\s*/>", " ", markup)
    return html_to_text(markup)


class DocumentExtractor:
    """Converts candidate documents to text, never raising for known failures.

    Args:
        optical_client: Optical extraction service; scanned PDFs fail without it.
        conversion_client: Office conversion service; crude stripping is used without it.
    """

    def __init__(
        self,
        optical_client: OpticalExtractionClient | None = None,
        conversion_client: ConversionServiceClient | None = None,
    ):
        self.optical_client = optical_client
        self.conversion_client = conversion_client

    @classmethod
    def from_config(cls) -> "DocumentExtractor":
        return cls(
            optical_client=default_optical_client(),
            conversion_client=default_conversion_client(),
        )

    def plan_for(self, kind: DocumentKind) -> ExtractionPlan:
        if kind == DocumentKind.PDF:
            tiers = [ExtractionTier(self._direct_pdf, MIN_DIRECT_TEXT_LENGTH)]
            if self.optical_client is not None:
                tiers.append(ExtractionTier(self._optical, MIN_DIRECT_TEXT_LENGTH))
            return ExtractionPlan(
                tiers=tiers,
                floor=EMPTY_TEXT_THRESHOLD,
                failure_reason="the PDF appears to be image-based or scanned and no text could be read",
            )

        if kind == DocumentKind.OFFICE:
            tiers = []
            if self.conversion_client is not None:
                tiers.append(ExtractionTier(self._conversion, MIN_CONVERSION_TEXT_LENGTH))
            tiers.append(ExtractionTier(self._crude_office, MIN_MARKUP_TEXT_LENGTH))
            return ExtractionPlan(
                tiers=tiers,
                floor=MIN_MARKUP_TEXT_LENGTH,
                failure_reason="the document content could not be extracted",
            )

        strategy = self._markup if kind == DocumentKind.MARKUP else self._plain_text
        return ExtractionPlan(
            tiers=[ExtractionTier(strategy, 1)],
            floor=1,
            failure_reason="the file contains no readable text",
        )

    async def extract(self, document: CandidateDocument) -> ExtractionResult:
        """Extract best-effort text from a document.

        Args:
            document: Uploaded candidate document.

        Returns:
            ExtractionResult; ``failed`` is set and the text is the failure
            sentinel when no usable text could be obtained.

        Raises:
            UnsupportedDocumentError: If the document type is not accepted.
        """
        kind = detect_document_kind(document.filename, document.media_type)
        plan = self.plan_for(kind)

        outcomes: list[StrategyOutcome | None] = []
        satisfied = False
        for tier in plan.tiers:
            outcome = await self._run(tier.strategy, document)
            outcomes.append(outcome)
            if outcome is not None and outcome.quality >= tier.sufficient_length:
                satisfied = True
                break
            logger.info(
                f"{document.filename}: {tier.strategy.__name__} yielded "
                f"{outcome.quality if outcome else 0} chars, trying next tier"
            )

        page_count = next((o.page_count for o in outcomes if o and o.page_count), None)
        best = select_best(outcomes)

        if best is None or not (satisfied or best.quality >= plan.floor):
            logger.warning(f"Text extraction failed for {document.filename}")
            return ExtractionResult(
                text=build_failure_sentinel(document.filename, plan.failure_reason),
                method=ExtractionMethod.FALLBACK,
                failed=True,
                page_count=page_count,
            )

        logger.info(
            f"Extracted {best.quality} chars from {document.filename} via {best.method}"
        )
        return ExtractionResult(text=best.text, method=best.method, page_count=page_count)

    async def _run(
        self, strategy: ExtractionStrategy, document: CandidateDocument
    ) -> StrategyOutcome | None:
        try:
            return await strategy(document)
        except ExtractionStrategyError as e:
            logger.warning(f"{document.filename}: {strategy.__name__} failed: {e}")
            return None

    async def _direct_pdf(self, document: CandidateDocument) -> StrategyOutcome:
        text, page_count = await asyncio.to_thread(extract_pdf_text, document.content)
        return StrategyOutcome(text, text_quality(text), ExtractionMethod.DIRECT, page_count)

    async def _optical(self, document: CandidateDocument) -> StrategyOutcome:
        try:
            result = await asyncio.to_thread(self.optical_client.extract, document.content)
        except DocumentServiceError as e:
            raise ExtractionStrategyError(f"Optical extraction failed: {e}") from e
        text = clean_whitespace(result.text)
        return StrategyOutcome(text, text_quality(text), ExtractionMethod.OPTICAL, result.pages)

    async def _conversion(self, document: CandidateDocument) -> StrategyOutcome:
        try:
            result = await asyncio.to_thread(self.conversion_client.convert, document.content)
        except DocumentServiceError as e:
            raise ExtractionStrategyError(f"Document conversion failed: {e}") from e
        if not result.success:
            raise ExtractionStrategyError("Conversion service reported failure")
        text = clean_whitespace(result.text)
        return StrategyOutcome(text, text_quality(text), ExtractionMethod.CONVERSION)

    async def _crude_office(self, document: CandidateDocument) -> StrategyOutcome:
        text = crude_office_text(document.content)
        return StrategyOutcome(text, text_quality(text), ExtractionMethod.FALLBACK)

    async def _markup(self, document: CandidateDocument) -> StrategyOutcome:
        text = html_to_text(decode_text(document.content))
        return StrategyOutcome(text, text_quality(text), ExtractionMethod.DIRECT)

    async def _plain_text(self, document: CandidateDocument) -> StrategyOutcome:
        text = clean_whitespace(decode_text(document.content))
        return StrategyOutcome(text, text_quality(text), ExtractionMethod.DIRECT)
