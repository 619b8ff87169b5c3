"""Single-candidate screening pipeline: extract, validate, then score.

Every function here turns expected failures into CandidateOutcome data so
that callers (the CLI and the batch orchestrator) never see per-candidate
exceptions.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import NamedTuple

from hirescore.config import GROQ_MODEL, RETRY_BASE_DELAY, RETRY_JITTER, SCORING_MAX_ATTEMPTS
from hirescore.cv.extractor import (
    DocumentExtractor,
    UnsupportedDocumentError,
    clean_whitespace,
    is_failure_sentinel,
)
from hirescore.cv.validator import validate_cv_content
from hirescore.schemas.batch import BatchCandidate, CandidateOutcome, CandidateStatus
from hirescore.schemas.document import ExtractionMethod, ExtractionResult, ValidationVerdict
from hirescore.schemas.scoring import Recommendation, ScoringRequest, ScoringResult
from hirescore.scoring.client import ScoringClient, ScoringError
from hirescore.utils import RetryExhaustedError, retry_async

logger = logging.getLogger(__name__)


class PreparedCandidate(NamedTuple):
    candidate: BatchCandidate
    extraction: ExtractionResult
    verdict: ValidationVerdict
    started: float


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


def rejected_result(reason: str) -> ScoringResult:
    """Zero-score result for content that never reached the provider."""
    return ScoringResult(
        score=0,
        recommendation=Recommendation.PASS,
        summary=reason,
        concerns=[reason],
        raw_score=0,
    )


def failure_result(message: str) -> ScoringResult:
    """Zero-score result for a candidate whose screening failed."""
    return ScoringResult(
        score=0,
        recommendation=Recommendation.PASS,
        summary=f"Screening failed: {message}",
        concerns=[message],
        raw_score=0,
    )


def failed_outcome(
    candidate: BatchCandidate,
    message: str,
    started: float,
    attempts: int = 0,
    extraction_method: ExtractionMethod | None = None,
    result: ScoringResult | None = None,
) -> CandidateOutcome:
    return CandidateOutcome(
        candidate_id=candidate.candidate_id,
        name=candidate.name,
        status=CandidateStatus.FAILED,
        result=result or failure_result(message),
        error=message,
        attempts=attempts,
        latency_ms=_elapsed_ms(started),
        extraction_method=extraction_method,
    )


def success_outcome(
    prepared: PreparedCandidate,
    result: ScoringResult,
    attempts: int,
) -> CandidateOutcome:
    if prepared.verdict.warning:
        result = result.model_copy(update={"validation_warning": prepared.verdict.warning})
    return CandidateOutcome(
        candidate_id=prepared.candidate.candidate_id,
        name=prepared.candidate.name,
        status=CandidateStatus.SUCCESS,
        result=result,
        attempts=attempts,
        latency_ms=_elapsed_ms(prepared.started),
        extraction_method=prepared.extraction.method,
    )


async def prepare_candidate(
    candidate: BatchCandidate,
    extractor: DocumentExtractor,
) -> PreparedCandidate | CandidateOutcome:
    """Extract and validate one candidate.

    Returns:
        PreparedCandidate ready for scoring, or a failed CandidateOutcome when
        the content is unusable (no provider call must be made for it).
    """
    started = time.perf_counter()

    if candidate.text is not None:
        text = clean_whitespace(candidate.text)
        extraction = ExtractionResult(
            text=text,
            method=ExtractionMethod.DIRECT,
            failed=is_failure_sentinel(text),
        )
    else:
        try:
            extraction = await extractor.extract(candidate.document)
        except UnsupportedDocumentError as e:
            return failed_outcome(candidate, str(e), started)

    verdict = validate_cv_content(extraction.text, candidate.name)
    if not verdict.valid:
        logger.info(f"Skipping scoring for {candidate.name}: {verdict.reason}")
        return failed_outcome(
            candidate,
            verdict.reason,
            started,
            extraction_method=extraction.method,
            result=rejected_result(verdict.reason),
        )

    return PreparedCandidate(candidate, extraction, verdict, started)


async def score_prepared(
    prepared: PreparedCandidate,
    job_description: str,
    client: ScoringClient,
    model: str = GROQ_MODEL,
    max_attempts: int = SCORING_MAX_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY,
    jitter: float = RETRY_JITTER,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> CandidateOutcome:
    """Score a prepared candidate with retry and backoff.

    Exhausted retries yield a failed outcome for this candidate only.
    """
    request = ScoringRequest(
        job_description=job_description,
        candidate_text=prepared.extraction.text,
        model=model,
    )

    try:
        result, attempts = await retry_async(
            lambda: client.score(request),
            max_attempts=max_attempts,
            base_delay=base_delay,
            jitter=jitter,
            retry_on=(ScoringError,),
            sleep=sleep,
        )
    except RetryExhaustedError as e:
        logger.error(f"Scoring failed for {prepared.candidate.name} after {e.attempts} attempts")
        return failed_outcome(
            prepared.candidate,
            str(e.last_error),
            prepared.started,
            attempts=e.attempts,
            extraction_method=prepared.extraction.method,
        )
    except Exception as e:
        logger.exception(f"Unexpected error scoring {prepared.candidate.name}")
        return failed_outcome(
            prepared.candidate,
            f"Unexpected error: {e}",
            prepared.started,
            attempts=1,
            extraction_method=prepared.extraction.method,
        )

    return success_outcome(prepared, result, attempts)


async def screen_candidate(
    candidate: BatchCandidate,
    job_description: str,
    client: ScoringClient,
    extractor: DocumentExtractor,
    model: str = GROQ_MODEL,
    max_attempts: int = SCORING_MAX_ATTEMPTS,
) -> CandidateOutcome:
    """Run the full pipeline for one candidate."""
    prepared = await prepare_candidate(candidate, extractor)
    if isinstance(prepared, CandidateOutcome):
        return prepared
    return await score_prepared(
        prepared, job_description, client, model=model, max_attempts=max_attempts
    )
