"""HTTP clients for the remote document services used as extraction fallbacks.

- Optical extraction: a vision-capable service that reads scanned documents.
- Structured conversion: a service that converts office documents to text.

Both take the document as base64 in a JSON body.
"""

import base64
import logging

import requests
from pydantic import BaseModel

from hirescore.config import (
    CONVERSION_SERVICE_URL,
    DOCUMENT_SERVICE_TIMEOUT,
    OCR_SERVICE_URL,
)

logger = logging.getLogger(__name__)

OCR_INSTRUCTION = (
    "Extract all text from this CV/resume exactly as written. "
    "Return clean CV text only, with no commentary, markdown or summaries."
)


class DocumentServiceError(Exception):
    """Raised when a document service request fails or returns garbage."""

    pass


class OpticalExtraction(BaseModel):
    text: str = ""
    method: str = "ocr"
    pages: int | None = None


class ConversionOutput(BaseModel):
    success: bool = False
    text: str = ""


class DocumentServiceClient:
    """Base client posting base64-encoded documents to a JSON endpoint."""

    def __init__(
        self,
        url: str,
        timeout: int = DOCUMENT_SERVICE_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, payload: dict) -> dict:
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise DocumentServiceError(f"Request to {self.url} failed: {e}") from e
        except ValueError as e:
            raise DocumentServiceError(f"Invalid JSON from {self.url}: {e}") from e

        if not isinstance(data, dict):
            raise DocumentServiceError(f"Unexpected response shape from {self.url}")
        return data


class OpticalExtractionClient(DocumentServiceClient):
    """Client for the vision-based optical extraction service."""

    def extract(self, content: bytes, mode: str = "ocr") -> OpticalExtraction:
        """Read text from a scanned or image-based document.

        Args:
            content: Original document bytes.
            mode: Extraction mode flag understood by the service.

        Returns:
            OpticalExtraction with the text, method and page count.

        Raises:
            DocumentServiceError: If the service is unreachable or replies badly.
        """
        data = self._post({
            "base64": base64.b64encode(content).decode("ascii"),
            "mode": mode,
            "instruction": OCR_INSTRUCTION,
        })
        result = OpticalExtraction(
            text=str(data.get("text") or ""),
            method=str(data.get("method") or mode),
            pages=data.get("pages") if isinstance(data.get("pages"), int) else None,
        )
        logger.info(
            f"Optical extraction returned {len(result.text)} chars "
            f"(method: {result.method}, pages: {result.pages})"
        )
        return result


class ConversionServiceClient(DocumentServiceClient):
    """Client for the structured office-document conversion service."""

    def convert(self, content: bytes) -> ConversionOutput:
        data = self._post({"base64": base64.b64encode(content).decode("ascii")})
        return ConversionOutput(
            success=bool(data.get("success")),
            text=str(data.get("text") or ""),
        )


def default_optical_client() -> OpticalExtractionClient | None:
    """Optical client from OCR_SERVICE_URL, or None when not configured."""
    if not OCR_SERVICE_URL:
        return None
    return OpticalExtractionClient(OCR_SERVICE_URL)


def default_conversion_client() -> ConversionServiceClient | None:
    """Conversion client from CONVERSION_SERVICE_URL, or None when not configured."""
    if not CONVERSION_SERVICE_URL:
        return None
    return ConversionServiceClient(CONVERSION_SERVICE_URL)
