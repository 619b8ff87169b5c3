"""Tests for LLM configuration and instance caching."""

from unittest.mock import patch

import pytest

from hirescore.utils import LLMConfigurationError, check_llm_configured, get_llm


@pytest.fixture
def fresh_llm_cache():
    with (
        patch("hirescore.utils.GROQ_API_KEY", "test-key"),
        patch.dict("hirescore.utils._llm_instances", clear=True),
    ):
        yield


class TestGetLlm:
    def test_sdk_retries_are_disabled(self, fresh_llm_cache):
        assert get_llm("llama-3.1-8b-instant").max_retries == 0

    def test_instances_are_cached_per_model(self, fresh_llm_cache):
        first = get_llm("llama-3.1-8b-instant")

        assert get_llm("llama-3.1-8b-instant") is first
        assert get_llm("llama-3.3-70b-versatile") is not first
        assert first.model_name == "llama-3.1-8b-instant"


class TestCheckLlmConfigured:
    def test_missing_key(self):
        with patch("hirescore.utils.GROQ_API_KEY", None):
            with pytest.raises(LLMConfigurationError, match="GROQ_API_KEY"):
                check_llm_configured()

    def test_key_present(self):
        with patch("hirescore.utils.GROQ_API_KEY", "test-key"):
            check_llm_configured()
