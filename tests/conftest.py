"""Shared pytest fixtures for all tests."""

from unittest.mock import patch

import pytest

from tests.test_utils import SAMPLE_JD, make_cv_text, make_pdf


@pytest.fixture
def sample_jd():
    return SAMPLE_JD


@pytest.fixture
def sample_cv_text():
    return make_cv_text()


@pytest.fixture
def text_pdf():
    """PDF with a real text layer."""
    return make_pdf(make_cv_text())


@pytest.fixture
def scanned_pdf():
    """PDF page with no text layer, as produced by a scanner."""
    return make_pdf()


@pytest.fixture
def no_document_services():
    """Make sure no optical or conversion service is configured."""
    with (
        patch("hirescore.cv.services.OCR_SERVICE_URL", None),
        patch("hirescore.cv.services.CONVERSION_SERVICE_URL", None),
    ):
        yield
