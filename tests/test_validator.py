"""Tests for the CV content-quality gate."""

from hirescore.cv.extractor import build_failure_sentinel
from hirescore.cv.validator import find_categories, validate_cv_content
from tests.test_utils import make_cv_text


class TestFindCategories:
    def test_full_cv_has_all_categories(self):
        assert find_categories(make_cv_text()) == ["experience", "skills", "education", "contact"]

    def test_contact_by_email(self):
        assert "contact" in find_categories("reach me at jane@example.com")

    def test_no_categories(self):
        assert find_categories("lorem ipsum dolor sit amet") == []


class TestValidateCvContent:
    def test_valid_cv(self):
        verdict = validate_cv_content(make_cv_text(), "cv.pdf")
        assert verdict.valid
        assert verdict.reason is None
        assert verdict.warning is None

    def test_failure_sentinel_is_rejected(self):
        sentinel = build_failure_sentinel("scan.pdf", "no text layer")
        verdict = validate_cv_content(sentinel, "scan.pdf")

        assert not verdict.valid
        assert "extraction failed" in verdict.reason.lower()
        assert "manually" in verdict.reason

    def test_sentinel_checked_before_length(self):
        verdict = validate_cv_content("Please paste the CV content manually", "cv.pdf")
        assert "extraction failed" in verdict.reason.lower()

    def test_short_content_is_rejected(self):
        verdict = validate_cv_content("Jane Doe, Python developer", "short.txt")

        assert not verdict.valid
        assert "Insufficient content" in verdict.reason
        assert "short.txt" in verdict.reason
        assert "minimum 200" in verdict.reason

    def test_length_counts_stripped_text(self):
        padded = "   " + "x" * 150 + "   " * 50
        assert not validate_cv_content(padded, "cv.txt").valid

    def test_few_categories_is_a_warning(self):
        text = "Lorem ipsum dolor sit amet. " * 10 + "Python and Go skills."
        verdict = validate_cv_content(text, "essay.txt")

        assert verdict.valid
        assert verdict.reason is None
        assert "may not be a complete CV" in verdict.warning
        assert "skills" in verdict.warning

    def test_deterministic(self):
        text = make_cv_text()
        assert validate_cv_content(text, "cv.pdf") == validate_cv_content(text, "cv.pdf")
