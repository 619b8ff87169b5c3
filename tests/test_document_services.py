"""Tests for the optical and conversion service clients."""

import base64
from unittest.mock import MagicMock, patch

import pytest
import requests

from hirescore.cv.services import (
    OCR_INSTRUCTION,
    ConversionServiceClient,
    DocumentServiceError,
    OpticalExtractionClient,
    default_conversion_client,
    default_optical_client,
)


def make_session(json_data=None, error: Exception | None = None) -> MagicMock:
    session = MagicMock()
    if error is not None:
        session.post.side_effect = error
    else:
        session.post.return_value.json.return_value = json_data
    return session


class TestOpticalExtractionClient:
    def test_posts_base64_document(self):
        session = make_session({"text": "Jane Doe", "method": "vision", "pages": 2})
        client = OpticalExtractionClient("https://ocr.example.com/extract", timeout=5, session=session)

        result = client.extract(b"%PDF-1.7 scanned")

        assert result.text == "Jane Doe"
        assert result.method == "vision"
        assert result.pages == 2
        session.post.assert_called_once_with(
            "https://ocr.example.com/extract",
            json={
                "base64": base64.b64encode(b"%PDF-1.7 scanned").decode("ascii"),
                "mode": "ocr",
                "instruction": OCR_INSTRUCTION,
            },
            timeout=5,
        )

    def test_missing_fields_default(self):
        session = make_session({})
        result = OpticalExtractionClient("https://ocr.example.com", session=session).extract(b"x")

        assert result.text == ""
        assert result.method == "ocr"
        assert result.pages is None

    def test_request_failure(self):
        session = make_session(error=requests.exceptions.ConnectionError("refused"))
        client = OpticalExtractionClient("https://ocr.example.com", session=session)

        with pytest.raises(DocumentServiceError, match="failed"):
            client.extract(b"x")

    def test_http_error_status(self):
        session = make_session({})
        session.post.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError("502")
        client = OpticalExtractionClient("https://ocr.example.com", session=session)

        with pytest.raises(DocumentServiceError):
            client.extract(b"x")

    def test_invalid_json(self):
        session = MagicMock()
        session.post.return_value.json.side_effect = ValueError("Expecting value")
        client = OpticalExtractionClient("https://ocr.example.com", session=session)

        with pytest.raises(DocumentServiceError, match="Invalid JSON"):
            client.extract(b"x")

    def test_non_object_reply(self):
        client = OpticalExtractionClient("https://ocr.example.com", session=make_session(["text"]))

        with pytest.raises(DocumentServiceError, match="Unexpected response"):
            client.extract(b"x")


class TestConversionServiceClient:
    def test_converts(self):
        session = make_session({"success": True, "text": "Converted CV"})
        result = ConversionServiceClient("https://convert.example.com", session=session).convert(b"PK")

        assert result.success
        assert result.text == "Converted CV"
        payload = session.post.call_args.kwargs["json"]
        assert payload == {"base64": base64.b64encode(b"PK").decode("ascii")}

    def test_reported_failure(self):
        session = make_session({"success": False, "error": "bad file"})
        result = ConversionServiceClient("https://convert.example.com", session=session).convert(b"PK")

        assert not result.success
        assert result.text == ""


class TestDefaultClients:
    def test_not_configured(self):
        with (
            patch("hirescore.cv.services.OCR_SERVICE_URL", None),
            patch("hirescore.cv.services.CONVERSION_SERVICE_URL", ""),
        ):
            assert default_optical_client() is None
            assert default_conversion_client() is None

    def test_configured(self):
        with (
            patch("hirescore.cv.services.OCR_SERVICE_URL", "https://ocr.example.com"),
            patch("hirescore.cv.services.CONVERSION_SERVICE_URL", "https://convert.example.com"),
        ):
            assert default_optical_client().url == "https://ocr.example.com"
            assert default_conversion_client().url == "https://convert.example.com"
