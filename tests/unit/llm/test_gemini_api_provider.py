"""Tests for the Gemini REST API provider."""

from typing import Any
from unittest.mock import Mock, patch

import pytest
import requests

from package_builder.llm.config import RateLimitConfig
from package_builder.llm.exceptions import (
    LLMAPIError,
    LLMAuthenticationError,
    LLMBadRequestError,
    LLMConfigurationError,
    LLMRateLimitError,
    LLMTimeoutError,
)
from package_builder.llm.providers.base import LLMProvider
from package_builder.llm.providers.gemini_api import GeminiAPIProvider


def _response(status_code: int = 200, payload: Any = None, text: str = "") -> Mock:  # noqa: ANN401
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.json.return_value = payload
    response.text = text
    return response


def _ok(text: str = "hello", usage: dict[str, int] | None = None) -> Mock:
    payload: dict[str, Any] = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    if usage is not None:
        payload["usageMetadata"] = usage
    return _response(payload=payload)


@pytest.fixture
def provider() -> GeminiAPIProvider:
    return GeminiAPIProvider(api_key="AIza-test", model="gemini-2.5-flash", timeout=30)


@pytest.fixture
def no_sleep() -> Any:  # noqa: ANN401
    """Skip tenacity backoff waits."""
    with patch("tenacity.nap.time.sleep") as mock_sleep:
        yield mock_sleep


class TestGeminiProviderInitialization:
    """Test GeminiAPIProvider construction."""

    def test_provider_implements_protocol(self, provider: GeminiAPIProvider) -> None:
        assert isinstance(provider, LLMProvider)

    def test_missing_key_raises(self) -> None:
        with pytest.raises(LLMConfigurationError, match="GEMINI_API_KEY"):
            GeminiAPIProvider(api_key="")

    def test_endpoint(self, provider: GeminiAPIProvider) -> None:
        assert provider.endpoint == (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            "gemini-2.5-flash:generateContent"
        )

    def test_default_rate_limit_config(self, provider: GeminiAPIProvider) -> None:
        assert provider.rate_limit == RateLimitConfig()

    def test_context_manager_closes_session(self) -> None:
        gemini = GeminiAPIProvider(api_key="AIza-test")
        with patch.object(gemini.session, "close") as mock_close:
            with gemini:
                pass
        mock_close.assert_called_once()


class TestGeminiProviderGenerate:
    """Test generate with a mocked HTTP session."""

    def test_generate_success(self, provider: GeminiAPIProvider) -> None:
        usage = {"promptTokenCount": 12, "candidatesTokenCount": 4}
        with patch.object(provider.session, "post", return_value=_ok("done", usage)) as post:
            assert provider.generate("prompt", max_tokens=256) == "done"

        kwargs = post.call_args.kwargs
        assert kwargs["headers"] == {"x-goog-api-key": "AIza-test"}
        assert kwargs["timeout"] == 30
        assert kwargs["json"] == {
            "contents": [{"role": "user", "parts": [{"text": "prompt"}]}],
            "generationConfig": {"maxOutputTokens": 256},
        }
        assert provider.total_input_tokens == 12
        assert provider.total_output_tokens == 4

    def test_temperature_is_sent_when_set(self) -> None:
        gemini = GeminiAPIProvider(api_key="AIza-test", temperature=0.2)
        with patch.object(gemini.session, "post", return_value=_ok()) as post:
            gemini.generate("prompt")
        assert post.call_args.kwargs["json"]["generationConfig"]["temperature"] == 0.2

    def test_parts_are_concatenated(self, provider: GeminiAPIProvider) -> None:
        payload = {"candidates": [{"content": {"parts": [{"text": "a"}, {"text": "b"}]}}]}
        with patch.object(provider.session, "post", return_value=_response(payload=payload)):
            assert provider.generate("prompt") == "ab"

    def test_empty_candidates_raise(self, provider: GeminiAPIProvider) -> None:
        with patch.object(provider.session, "post", return_value=_response(payload={})):
            with pytest.raises(LLMAPIError, match="empty response"):
                provider.generate("prompt")

    def test_empty_prompt_raises(self, provider: GeminiAPIProvider) -> None:
        with pytest.raises(ValueError, match="Prompt cannot be empty"):
            provider.generate("")

    def test_rate_limit_carries_retry_delay(self, provider: GeminiAPIProvider) -> None:
        body = '{"error": {"status": "RESOURCE_EXHAUSTED", "details": [{"retryDelay": "20s"}]}}'
        with patch.object(
            provider.session, "post", return_value=_response(429, text=body)
        ) as post:
            with pytest.raises(LLMRateLimitError) as exc_info:
                provider.generate("prompt")

        assert exc_info.value.retry_after_seconds == 25
        assert str(exc_info.value).startswith("Gemini API rate limited (429). Will retry in 25s.")
        assert post.call_count == 1

    def test_rate_limit_without_hint_uses_default(self, provider: GeminiAPIProvider) -> None:
        with patch.object(provider.session, "post", return_value=_response(429, text="quota")):
            with pytest.raises(LLMRateLimitError) as exc_info:
                provider.generate("prompt")
        assert exc_info.value.retry_after_seconds == 40

    @pytest.mark.parametrize(
        ("status", "expected"),
        [
            (401, LLMAuthenticationError),
            (403, LLMAuthenticationError),
            (400, LLMBadRequestError),
            (500, LLMAPIError),
        ],
    )
    def test_status_errors(
        self, provider: GeminiAPIProvider, status: int, expected: type
    ) -> None:
        with patch.object(provider.session, "post", return_value=_response(status, text="nope")):
            with pytest.raises(expected) as exc_info:
                provider.generate("prompt")
        assert exc_info.value.details["status_code"] == status

    def test_connection_error_is_retried(
        self, provider: GeminiAPIProvider, no_sleep: Mock
    ) -> None:
        side_effect = [requests.exceptions.ConnectionError("reset"), _ok("recovered")]
        with patch.object(provider.session, "post", side_effect=side_effect) as post:
            assert provider.generate("prompt") == "recovered"
        assert post.call_count == 2

    def test_repeated_timeouts_raise_timeout_error(
        self, provider: GeminiAPIProvider, no_sleep: Mock
    ) -> None:
        with patch.object(
            provider.session, "post", side_effect=requests.exceptions.Timeout("slow")
        ) as post:
            with pytest.raises(LLMTimeoutError, match="timed out after 30s"):
                provider.generate("prompt")
        assert post.call_count == 3

    def test_repeated_connection_errors_raise_api_error(
        self, provider: GeminiAPIProvider, no_sleep: Mock
    ) -> None:
        with patch.object(
            provider.session, "post", side_effect=requests.exceptions.ConnectionError("down")
        ):
            with pytest.raises(LLMAPIError, match="failed after 3 retry attempts"):
                provider.generate("prompt")

    def test_other_request_errors_are_not_retried(self, provider: GeminiAPIProvider) -> None:
        with patch.object(
            provider.session, "post", side_effect=requests.exceptions.InvalidURL("bad")
        ) as post:
            with pytest.raises(LLMAPIError, match="Gemini API error: bad"):
                provider.generate("prompt")
        assert post.call_count == 1
