"""Heuristic content-quality gate for extracted CV text."""

import logging
import re

from hirescore.config import MIN_CV_CATEGORIES, MIN_CV_LENGTH
from hirescore.cv.extractor import is_failure_sentinel
from hirescore.schemas.document import ValidationVerdict

logger = logging.getLogger(__name__)

CATEGORY_PATTERNS = {
    "experience": re.compile(
        r"\b(?:experience|employment|work history|career|worked|position|role|"
        r"responsibilit(?:y|ies)|engineer|developer|manager|analyst|consultant|intern(?:ship)?)\b",
        re.IGNORECASE,
    ),
    "skills": re.compile(
        r"\b(?:skills?|proficien(?:t|cy)|competenc(?:e|ies)|technologies|tools|"
        r"languages|frameworks|expertise|certifications?)\b",
        re.IGNORECASE,
    ),
    "education": re.compile(
        r"\b(?:education|university|college|school|academy|degree|bachelor'?s?|"
        r"master'?s?|ph\.?d|diploma|b\.?sc|m\.?sc|mba|graduated?)\b",
        re.IGNORECASE,
    ),
    "contact": re.compile(
        r"[\w.+-]+@[\w-]+\.[\w.-]+"
        r"|\+?\d[\d\s().-]{7,}\d"
        r"|\b(?:linkedin|github|phone|mobile|e-?mail|contact|address)\b",
        re.IGNORECASE,
    ),
}


def find_categories(text: str) -> list[str]:
    """Return the CV content categories with at least one indicator in text."""
    return [name for name, pattern in CATEGORY_PATTERNS.items() if pattern.search(text)]


def validate_cv_content(text: str, filename: str) -> ValidationVerdict:
    """Judge whether extracted text is usable CV content.

    Args:
        text: Extracted text (possibly the extraction failure sentinel).
        filename: Source filename, used in messages.

    Returns:
        ValidationVerdict. Invalid verdicts must not be sent for scoring.
    """
    if is_failure_sentinel(text):
        return ValidationVerdict(
            valid=False,
            reason=(
                f"Text extraction failed for {filename}. The document may be scanned, "
                "image-based or corrupt. Please paste the CV content manually."
            ),
        )

    length = len(text.strip())
    if length < MIN_CV_LENGTH:
        return ValidationVerdict(
            valid=False,
            reason=(
                f"Insufficient content in {filename}: {length} characters extracted "
                f"(minimum {MIN_CV_LENGTH})."
            ),
        )

    categories = find_categories(text)
    if len(categories) < MIN_CV_CATEGORIES:
        logger.info(f"{filename}: only {len(categories)} CV categories found {categories}")
        return ValidationVerdict(
            valid=True,
            warning=(
                f"{filename} may not be a complete CV "
                f"(found: {', '.join(categories) or 'no recognisable sections'})."
            ),
        )

    return ValidationVerdict(valid=True)
