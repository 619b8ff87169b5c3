"""Shared utilities for hirescore."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from langchain_groq import ChatGroq

from hirescore.config import GROQ_API_KEY, GROQ_MODEL, LLM_MAX_TOKENS, LLM_TEMPERATURE

logger = logging.getLogger(__name__)

T = TypeVar("T")

_llm_instances: dict[str, ChatGroq] = {}


class LLMConfigurationError(Exception):
    """Raised when LLM is not properly configured."""

    pass


class RetryExhaustedError(Exception):
    """Raised when an operation still fails after the last allowed attempt."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def check_llm_configured() -> None:
    """Check if Groq API key is configured.

    Raises:
        LLMConfigurationError: If GROQ_API_KEY is not set.
    """
    if not GROQ_API_KEY:
        raise LLMConfigurationError(
            "GROQ_API_KEY environment variable is not set. "
            "Please create a .env file with your Groq API key. "
            "Get your free API key at https://console.groq.com"
        )


def get_llm(model: str | None = None) -> ChatGroq:
    """Get a cached Groq LLM instance for the given model."""
    model = model or GROQ_MODEL
    if model not in _llm_instances:
        _llm_instances[model] = ChatGroq(
            model=model,
            temperature=LLM_TEMPERATURE,
            max_tokens=LLM_MAX_TOKENS,
            api_key=GROQ_API_KEY,
            # retry_async owns retries and backoff
            max_retries=0,
        )
    return _llm_instances[model]


def backoff_delay(attempt: int, base_delay: float, jitter: float = 0.0) -> float:
    """Delay before retrying after the given (1-based) failed attempt.

    The delay doubles with each attempt: base, 2*base, 4*base, ...
    Jitter adds up to ``jitter * delay`` of random extra wait.
    """
    delay = base_delay * (2 ** (attempt - 1))
    if jitter:
        delay += random.uniform(0, jitter * delay)
    return delay


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 0.5,
    jitter: float = 0.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> tuple[T, int]:
    """Run an async operation with exponential backoff.

    Args:
        operation: Zero-argument callable returning a fresh awaitable per attempt.
        max_attempts: Total number of attempts, including the first one.
        base_delay: Delay in seconds after the first failure.
        jitter: Fraction of random extra delay added to each wait.
        retry_on: Exception types that trigger a retry. Anything else propagates.
        sleep: Awaitable sleep function (injectable for tests).

    Returns:
        Tuple of (result, attempts used).

    Raises:
        RetryExhaustedError: If every attempt failed with a retryable error.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            result = await operation()
            return result, attempt
        except retry_on as e:
            if attempt == max_attempts:
                raise RetryExhaustedError(attempt, e) from e
            delay = backoff_delay(attempt, base_delay, jitter)
            logger.info(
                f"Attempt {attempt}/{max_attempts} failed ({e}), retrying in {delay:.2f}s"
            )
            await sleep(delay)

    raise AssertionError("unreachable")
