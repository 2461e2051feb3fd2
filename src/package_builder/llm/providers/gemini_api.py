"""Gemini API provider implementation.

Calls the Gemini ``generateContent`` REST endpoint with ``requests``. The
response is requested as free-form text because agent replies use the hybrid
protocol rather than pure JSON.

Quota overruns (HTTP 429 / RESOURCE_EXHAUSTED) raise ``LLMRateLimitError``
carrying the delay computed from the response's ``retryDelay`` hint.
"""

import logging
from typing import Any, ClassVar

import requests
from requests.adapters import HTTPAdapter
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from package_builder.llm.config import RateLimitConfig
from package_builder.llm.constants import DEFAULT_API_TIMEOUT_SECONDS, DEFAULT_GEMINI_MODEL
from package_builder.llm.exceptions import (
    LLMAPIError,
    LLMAuthenticationError,
    LLMBadRequestError,
    LLMConfigurationError,
    LLMRateLimitError,
    LLMTimeoutError,
)
from package_builder.llm.rate_limit import compute_retry_delay, is_rate_limit_error

logger = logging.getLogger(__name__)


class GeminiAPIProvider:
    """Gemini API provider for LLM text generation.

    Examples:
        >>> provider = GeminiAPIProvider(api_key="AIza...")
        >>> text = provider.generate("Return the next command", max_tokens=8192)

    Attributes:
        session: HTTP session with connection pooling
        model: Gemini model identifier
        timeout: Request timeout in seconds
        rate_limit: Retry-delay settings applied to 429 responses
    """

    name: ClassVar[str] = "gemini"
    BASE_URL: ClassVar[str] = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_GEMINI_MODEL,
        timeout: int = DEFAULT_API_TIMEOUT_SECONDS,
        rate_limit: RateLimitConfig | None = None,
        temperature: float | None = None,
    ) -> None:
        """Initialize the Gemini API provider.

        Raises:
            LLMConfigurationError: If api_key is empty
        """
        if not api_key:
            raise LLMConfigurationError(
                "GEMINI_API_KEY environment variable is required. "
                "Please set it before running Gemini-based generation.",
                details={"provider": self.name},
            )

        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.rate_limit = rate_limit or RateLimitConfig()
        self.temperature = temperature

        self.session = requests.Session()
        adapter = HTTPAdapter(pool_connections=4, pool_maxsize=4, max_retries=0)
        self.session.mount("https://", adapter)

        self.total_input_tokens = 0
        self.total_output_tokens = 0

        logger.info(f"Initialized Gemini API provider: model={model}, timeout={timeout}s")

    @property
    def endpoint(self) -> str:
        return f"{self.BASE_URL}/models/{self.model}:generateContent"

    def generate(self, prompt: str, max_tokens: int = 2000) -> str:
        """Generate text with retries for connection failures and timeouts.

        Raises:
            LLMRateLimitError: HTTP 429, with ``retry_after_seconds`` set
            LLMAuthenticationError: HTTP 401/403
            LLMBadRequestError: HTTP 400
            LLMTimeoutError: If every attempt timed out
            LLMAPIError: Any other failure, including empty responses
        """
        retryer = Retrying(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(
                (requests.exceptions.Timeout, requests.exceptions.ConnectionError)
            ),
        )
        try:
            return retryer(self._generate_once, prompt, max_tokens)
        except RetryError as e:
            underlying = e.last_attempt.exception()
            if isinstance(underlying, requests.exceptions.Timeout):
                raise LLMTimeoutError(
                    f"Gemini request timed out after {self.timeout}s",
                    details={"provider": self.name, "model": self.model},
                ) from underlying
            raise LLMAPIError(
                f"Gemini API call failed after 3 retry attempts: {underlying or e}",
                details={"provider": self.name, "model": self.model},
            ) from e

    def _build_payload(self, prompt: str, max_tokens: int) -> dict[str, Any]:
        generation_config: dict[str, Any] = {"maxOutputTokens": max_tokens}
        if self.temperature is not None:
            generation_config["temperature"] = self.temperature
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

    def _generate_once(self, prompt: str, max_tokens: int = 2000) -> str:
        if not prompt:
            raise ValueError("Prompt cannot be empty")
        if max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {max_tokens}")

        details: dict[str, Any] = {"provider": self.name, "model": self.model}
        logger.debug(f"Sending request to Gemini: model={self.model}, max_tokens={max_tokens}")

        try:
            response = self.session.post(
                self.endpoint,
                json=self._build_payload(prompt, max_tokens),
                headers={"x-goog-api-key": self.api_key},
                timeout=self.timeout,
            )
        except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
            logger.warning(f"Gemini transient error (will retry): {type(e).__name__}: {e}")
            raise
        except requests.exceptions.RequestException as e:
            logger.error(f"Gemini API error: {e}")
            raise LLMAPIError(f"Gemini API error: {e}", details=details) from e

        if response.status_code != 200:
            self._raise_for_status(response, details)

        data = response.json()
        text = self._extract_text(data)
        if not text:
            raise LLMAPIError("Gemini returned empty response", details=details)

        usage = data.get("usageMetadata") or {}
        self.total_input_tokens += int(usage.get("promptTokenCount") or 0)
        self.total_output_tokens += int(usage.get("candidatesTokenCount") or 0)
        return text

    def _raise_for_status(self, response: requests.Response, details: dict[str, Any]) -> None:
        body = response.text
        status = response.status_code
        details = {**details, "status_code": status}

        if status == 429 or is_rate_limit_error(body):
            delay = compute_retry_delay(body, self.rate_limit)
            logger.warning(f"Gemini API rate limited, retry in {delay}s")
            raise LLMRateLimitError(
                f"Gemini API rate limited (429). Will retry in {delay}s. Original: {body}",
                retry_after_seconds=delay,
                details=details,
            )
        if status in (401, 403):
            raise LLMAuthenticationError(
                "Gemini API authentication failed - check GEMINI_API_KEY", details=details
            )
        if status == 400:
            raise LLMBadRequestError(f"Gemini bad request: {body}", details=details)
        raise LLMAPIError(f"Gemini API returned status {status}: {body}", details=details)

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(str(part.get("text", "")) for part in parts if isinstance(part, dict))

    def count_tokens(self, text: str) -> int:
        """Estimate tokens in text (chars / 4, rounded up)."""
        if text is None:
            raise ValueError("Text cannot be None")
        return -(-len(text) // 4)

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()
        logger.debug("Closed Gemini HTTP session")

    def __enter__(self) -> "GeminiAPIProvider":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,  # noqa: ANN401
    ) -> None:
        self.close()
