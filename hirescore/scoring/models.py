"""Provider model catalog with an explicit time-to-live cache."""

import logging
import time
from collections.abc import Callable

import requests

from hirescore.config import (
    GROQ_API_BASE,
    GROQ_API_KEY,
    GROQ_MODEL,
    MODEL_CACHE_TTL,
    MODELS_REQUEST_TIMEOUT,
)
from hirescore.schemas.model import ModelInfo

logger = logging.getLogger(__name__)

RECOMMENDED_MODELS = (
    "llama-3.3-70b-versatile",
    "openai/gpt-oss-120b",
    "moonshotai/kimi-k2-instruct",
    "llama-3.1-8b-instant",
)

FALLBACK_MODELS = [
    ModelInfo(
        id="llama-3.3-70b-versatile",
        name="Llama 3.3 70B Versatile",
        owned_by="Meta",
        context_length=131072,
        recommended=True,
    ),
    ModelInfo(
        id="openai/gpt-oss-120b",
        name="GPT-OSS 120B",
        owned_by="OpenAI",
        context_length=131072,
        recommended=True,
    ),
    ModelInfo(
        id="llama-3.1-8b-instant",
        name="Llama 3.1 8B Instant",
        owned_by="Meta",
        context_length=131072,
        recommended=True,
    ),
]

# Models that cannot produce screening text
_NON_TEXT_MARKERS = ("whisper", "tts", "guard", "prompt-guard", "playai")


def _is_text_model(model_id: str) -> bool:
    lowered = model_id.lower()
    return not any(marker in lowered for marker in _NON_TEXT_MARKERS)


def fetch_models() -> list[ModelInfo]:
    """Fetch available chat models from the provider.

    Returns:
        Text-capable models, recommended ones first.

    Raises:
        requests.exceptions.RequestException: If the request fails.
        ValueError: If the response is not the expected JSON.
    """
    response = requests.get(
        f"{GROQ_API_BASE}/models",
        headers={"Authorization": f"Bearer {GROQ_API_KEY}"},
        timeout=MODELS_REQUEST_TIMEOUT,
    )
    response.raise_for_status()
    payload = response.json()
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list):
        raise ValueError("Model list response has no data array")

    models = [
        ModelInfo(
            id=entry["id"],
            name=entry.get("name") or entry["id"],
            owned_by=entry.get("owned_by"),
            context_length=entry.get("context_window") or entry.get("context_length"),
            recommended=entry["id"] in RECOMMENDED_MODELS,
        )
        for entry in data
        if isinstance(entry, dict) and entry.get("id") and _is_text_model(entry["id"])
        and entry.get("active", True)
    ]
    models.sort(key=lambda m: (not m.recommended, m.name.lower()))
    return models


class ModelCatalog:
    """Cached provider model list.

    The cache carries its own timestamp and TTL; callers decide when to
    query or refresh it.

    Args:
        ttl_seconds: How long a fetched list stays fresh.
        fetcher: Callable returning the live model list.
        clock: Monotonic time source in seconds.
    """

    def __init__(
        self,
        ttl_seconds: float = MODEL_CACHE_TTL,
        fetcher: Callable[[], list[ModelInfo]] = fetch_models,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.fetcher = fetcher
        self.clock = clock
        self.models: list[ModelInfo] = []
        self.fetched_at: float | None = None
        self.source = "empty"

    def is_fresh(self) -> bool:
        return (
            bool(self.models)
            and self.fetched_at is not None
            and self.clock() - self.fetched_at < self.ttl_seconds
        )

    def get_models(self, force_refresh: bool = False) -> tuple[list[ModelInfo], bool]:
        """Return the model list, fetching it when stale.

        Returns:
            Tuple of (models, was_cached).
        """
        if not force_refresh and self.is_fresh():
            return self.models, True
        self.refresh()
        return self.models, False

    def refresh(self) -> None:
        """Fetch the live list; fall back to the static list on failure."""
        if not GROQ_API_KEY:
            logger.info("No GROQ_API_KEY set, using fallback models")
            self._store(FALLBACK_MODELS, "fallback")
            return

        try:
            models = self.fetcher()
        except (requests.exceptions.RequestException, ValueError, KeyError) as e:
            logger.error(f"Error fetching models: {e}")
            self._store(FALLBACK_MODELS, "fallback-error")
            return

        if not models:
            logger.warning("Provider returned no text models, using fallback models")
            self._store(FALLBACK_MODELS, "fallback-empty")
            return

        self._store(models, "live")

    def default_model(self) -> str:
        models, _ = self.get_models()
        recommended = [m for m in models if m.recommended]
        if recommended:
            return recommended[0].id
        return models[0].id if models else GROQ_MODEL

    def _store(self, models: list[ModelInfo], source: str) -> None:
        self.models = list(models)
        self.fetched_at = self.clock()
        self.source = source
