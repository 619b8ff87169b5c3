from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class DocumentKind(StrEnum):
    """Families of accepted documents, each with its own extraction plan."""

    PDF = "pdf"
    TEXT = "text"
    MARKUP = "markup"
    OFFICE = "office"


class ExtractionMethod(StrEnum):
    """How the final text of a document was obtained."""

    DIRECT = "direct"
    OPTICAL = "optical"
    CONVERSION = "conversion"
    FALLBACK = "fallback"


class CandidateDocument(BaseModel):
    """An uploaded candidate document, untouched until extraction."""

    model_config = ConfigDict(frozen=True)

    content: bytes = Field(description="Raw document bytes")
    filename: str = Field(description="Filename declared at upload")
    media_type: str | None = Field(
        default=None,
        description="Declared MIME type, if the uploader supplied one"
    )


class ExtractionResult(BaseModel):
    """Best-effort text extracted from a CandidateDocument."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Extracted text, or the failure sentinel")
    method: ExtractionMethod = Field(description="Strategy that produced the text")
    failed: bool = Field(
        default=False,
        description="True when text is the extraction failure sentinel"
    )
    page_count: int | None = Field(
        default=None,
        description="Number of pages, for page-oriented documents"
    )


class ValidationVerdict(BaseModel):
    """Outcome of the content-quality gate."""

    model_config = ConfigDict(frozen=True)

    valid: bool
    reason: str | None = Field(
        default=None,
        description="Why the content was rejected (only when invalid)"
    )
    warning: str | None = Field(
        default=None,
        description="Concern about valid but weak content"
    )
