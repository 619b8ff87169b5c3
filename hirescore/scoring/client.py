"""Scoring client: sends CV / job description pairs to the LLM provider."""

import logging
from collections.abc import Callable

import groq
from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

from hirescore.config import GROQ_MODEL
from hirescore.scoring.parser import (
    PayloadParseError,
    parse_batch_response,
    parse_scoring_response,
)
from hirescore.scoring.prompts import (
    BATCH_SCREENING_PROMPT,
    SCREENING_PROMPT,
    SYSTEM_PROMPT,
    format_candidates,
)
from hirescore.schemas.scoring import ScoringRequest, ScoringResult
from hirescore.utils import get_llm

logger = logging.getLogger(__name__)


class ScoringError(Exception):
    """Base class for scoring failures the caller may retry or fall back from."""

    pass


class ScoringTransportError(ScoringError):
    """Raised when the provider request fails or returns no content."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ScoringPayloadError(ScoringError):
    """Raised when an aggregated reply cannot be decoded."""

    pass


class ScoringClient:
    """Scores candidates with a chat model.

    Retrying is left to the caller; a single call either returns a result
    or raises a ScoringError.

    Args:
        llm_factory: Returns a chat model for a model identifier.
    """

    def __init__(self, llm_factory: Callable[[str], BaseChatModel] = get_llm):
        self.llm_factory = llm_factory

    async def score(self, request: ScoringRequest) -> ScoringResult:
        """Score one candidate against a job description.

        Malformed replies produce a degraded result instead of an error.

        Raises:
            ScoringTransportError: If the provider request fails.
        """
        content = await self._complete(
            SCREENING_PROMPT,
            {"job_description": request.job_description, "cv_text": request.candidate_text},
            request.model,
        )
        logger.info(f"Provider response length: {len(content)}")
        return parse_scoring_response(content)

    async def score_many(
        self,
        job_description: str,
        candidates: list[tuple[str, str]],
        model: str = GROQ_MODEL,
    ) -> dict[str, ScoringResult]:
        """Score several candidates with one aggregated request.

        Args:
            job_description: Job description text.
            candidates: (candidate_id, cv_text) pairs.
            model: Provider model identifier.

        Returns:
            Results keyed by candidate id; candidates the provider skipped
            are absent.

        Raises:
            ScoringTransportError: If the provider request fails.
            ScoringPayloadError: If the reply cannot be decoded.
        """
        content = await self._complete(
            BATCH_SCREENING_PROMPT,
            {"job_description": job_description, "candidates": format_candidates(candidates)},
            model,
        )
        try:
            results = parse_batch_response(content, [candidate_id for candidate_id, _ in candidates])
        except PayloadParseError as e:
            raise ScoringPayloadError(f"Aggregated response could not be parsed: {e}") from e
        logger.info(f"Aggregated request scored {len(results)}/{len(candidates)} candidates")
        return results

    async def _complete(self, template: str, variables: dict[str, str], model: str) -> str:
        prompt = ChatPromptTemplate.from_messages([
            ("system", SYSTEM_PROMPT),
            ("human", template),
        ])
        chain = prompt | self.llm_factory(model) | StrOutputParser()

        try:
            content = await chain.ainvoke(variables)
        except groq.APIError as e:
            status_code = getattr(e, "status_code", None)
            logger.error(f"Provider error ({status_code}): {e.message}")
            raise ScoringTransportError(e.message, status_code=status_code) from e

        if not content or not content.strip():
            raise ScoringTransportError("No content in provider response")
        return content
