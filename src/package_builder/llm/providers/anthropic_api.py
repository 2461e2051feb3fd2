"""Anthropic API provider implementation.

This module provides text generation through the Anthropic Messages API using
the official SDK. It includes:
- Retry logic with exponential backoff for connection failures and timeouts
- Mapping of HTTP failures onto the package's exception hierarchy
- Token usage tracking per request

Rate-limit responses are not retried here. They surface as
``LLMRateLimitError`` so the calling orchestrator can wait and retry durably.
"""

import logging

from anthropic import (
    Anthropic,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError,
    BadRequestError,
    RateLimitError,
)
from anthropic.types import TextBlock
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from package_builder.llm.constants import DEFAULT_ANTHROPIC_MODEL, DEFAULT_API_TIMEOUT_SECONDS
from package_builder.llm.exceptions import (
    LLMAPIError,
    LLMAuthenticationError,
    LLMBadRequestError,
    LLMConfigurationError,
    LLMRateLimitError,
    LLMTimeoutError,
)

logger = logging.getLogger(__name__)


class AnthropicAPIProvider:
    """Anthropic API provider for LLM text generation.

    Examples:
        >>> provider = AnthropicAPIProvider(api_key="sk-ant-...")
        >>> response = provider.generate("Return the next command as JSON", max_tokens=4000)

    Attributes:
        client: Anthropic client instance
        model: Model identifier (e.g., "claude-sonnet-4-5")
        timeout: Request timeout in seconds
        temperature: Sampling temperature
        total_input_tokens: Cumulative input tokens across all requests
        total_output_tokens: Cumulative output tokens across all requests
    """

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_ANTHROPIC_MODEL,
        timeout: int = DEFAULT_API_TIMEOUT_SECONDS,
        temperature: float = 0.0,
    ) -> None:
        """Initialize Anthropic API provider.

        Args:
            api_key: Anthropic API key (starts with sk-ant-)
            model: Model identifier
            timeout: Request timeout in seconds
            temperature: Sampling temperature (default 0 for deterministic output)

        Raises:
            LLMConfigurationError: If api_key is empty
        """
        if not api_key:
            raise LLMConfigurationError(
                "ANTHROPIC_API_KEY environment variable is required",
                details={"provider": self.name},
            )

        # max_retries=0: retries are handled by tenacity below
        self.client = Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model
        self.timeout = timeout
        self.temperature = temperature

        self.total_input_tokens = 0
        self.total_output_tokens = 0

        logger.info(f"Initialized Anthropic provider: model={model}, timeout={timeout}s")

    def generate(self, prompt: str, max_tokens: int = 2000) -> str:
        """Generate text completion from prompt with retry logic.

        Args:
            prompt: Input prompt for generation
            max_tokens: Maximum tokens to generate in response

        Returns:
            Generated text; multiple text blocks are joined with newlines.

        Raises:
            LLMAuthenticationError: HTTP 401
            LLMRateLimitError: HTTP 429
            LLMBadRequestError: HTTP 400, with the API's message passed through
            LLMTimeoutError: If every attempt timed out
            LLMAPIError: Any other API failure, including the status code
            ValueError: If prompt is empty or max_tokens is invalid

        Note:
            - Retries 3 times with exponential backoff (2s, 4s, 8s)
            - Retries on: APIConnectionError, APITimeoutError
        """
        retryer = Retrying(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type((APIConnectionError, APITimeoutError)),
            reraise=False,
        )
        try:
            return retryer(self._generate_once, prompt, max_tokens)
        except RetryError as e:
            underlying = e.last_attempt.exception()
            if isinstance(underlying, APITimeoutError):
                raise LLMTimeoutError(
                    f"Anthropic request timed out after {self.timeout}s",
                    details={"provider": self.name, "model": self.model},
                ) from underlying
            raise LLMAPIError(
                f"Anthropic API call failed after 3 retry attempts: {underlying or e}",
                details={"provider": self.name, "model": self.model},
            ) from e

    def _generate_once(self, prompt: str, max_tokens: int = 2000) -> str:
        """Single generation attempt (called by retry logic).

        Raises:
            APIConnectionError, APITimeoutError: Transient errors (will be retried)
            LLMAPIError: If generation fails
            ValueError: If prompt is empty or max_tokens is invalid
        """
        if not prompt:
            raise ValueError("Prompt cannot be empty")
        if max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {max_tokens}")

        details = {"provider": self.name, "model": self.model}
        try:
            logger.debug(
                f"Sending request to Anthropic: model={self.model}, max_tokens={max_tokens}"
            )
            response = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                messages=[{"role": "user", "content": prompt}],
            )

        except (APIConnectionError, APITimeoutError) as e:
            logger.warning(f"Anthropic transient error (will retry): {type(e).__name__}: {e}")
            raise

        except AuthenticationError as e:
            logger.error(f"Anthropic authentication error: {e}")
            raise LLMAuthenticationError(
                "Anthropic API authentication failed - check API key", details=details
            ) from e

        except RateLimitError as e:
            logger.warning(f"Anthropic rate limit: {e}")
            raise LLMRateLimitError(
                f"Anthropic API rate limited (429): {e}", details=details
            ) from e

        except BadRequestError as e:
            logger.error(f"Anthropic bad request: {e}")
            raise LLMBadRequestError(f"Anthropic bad request: {e.message}", details=details) from e

        except APIStatusError as e:
            logger.error(f"Anthropic API error {e.status_code}: {e}")
            raise LLMAPIError(
                f"Anthropic API error (status {e.status_code}): {e.message}",
                details={**details, "status_code": e.status_code},
            ) from e

        usage = response.usage
        if usage:
            self.total_input_tokens += usage.input_tokens
            self.total_output_tokens += usage.output_tokens
            logger.debug(
                f"Anthropic API call: {usage.input_tokens} input + "
                f"{usage.output_tokens} output tokens, stop_reason={response.stop_reason}"
            )

        text_parts = [block.text for block in response.content if isinstance(block, TextBlock)]
        generated_text = "\n".join(text_parts)

        if not generated_text:
            raise LLMAPIError("Anthropic returned empty response", details=details)

        return generated_text

    def count_tokens(self, text: str) -> int:
        """Estimate tokens in text (chars / 4, rounded up)."""
        if text is None:
            raise ValueError("Text cannot be None")
        return -(-len(text) // 4)

    def reset_usage_tracking(self) -> None:
        """Reset token usage counters to zero."""
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        logger.debug("Reset token usage tracking")
