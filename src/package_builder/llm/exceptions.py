"""Exception hierarchy for LLM provider and response handling.

All exceptions carry an optional ``details`` dictionary with structured context
(provider name, model, status code, response snippet) so callers can decide
between retrying, re-prompting and aborting without parsing message strings.

Hierarchy:
    LLMError
    ├── LLMConfigurationError      fatal, never retried
    ├── LLMAPIError
    │   ├── LLMAuthenticationError
    │   ├── LLMRateLimitError      retryable after ``retry_after_seconds``
    │   ├── LLMBadRequestError
    │   ├── LLMTimeoutError
    │   └── ProviderExhaustedError
    └── LLMParsingError            the caller may re-prompt when ``retryable``
        └── UnrecognizedCommandError
"""

from typing import Any


class LLMError(Exception):
    """Base exception for all LLM-related errors.

    Args:
        message: Human readable error message.
        details: Optional structured context about the failure.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details or {}

    def __str__(self) -> str:
        return self.message


class LLMConfigurationError(LLMError):
    """Raised when a provider is misconfigured (missing API key, CLI not installed)."""


class LLMAPIError(LLMError):
    """Raised when a provider call fails."""


class LLMAuthenticationError(LLMAPIError):
    """Raised when a provider rejects the supplied credentials."""


class LLMRateLimitError(LLMAPIError):
    """Raised when a provider rate-limits the caller.

    Args:
        message: Human readable error message.
        retry_after_seconds: Delay the caller should wait before retrying.
        details: Optional structured context about the failure.
    """

    def __init__(
        self,
        message: str,
        retry_after_seconds: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.retry_after_seconds = retry_after_seconds


class LLMBadRequestError(LLMAPIError):
    """Raised when a provider rejects the request payload (HTTP 400)."""


class LLMTimeoutError(LLMAPIError):
    """Raised when a provider call exceeds its timeout."""


class ProviderExhaustedError(LLMAPIError):
    """Raised when every provider in a fallback chain has failed.

    Args:
        message: Human readable error message.
        failures: Mapping of provider name to the error it reported.
        details: Optional structured context about the failure.
    """

    def __init__(
        self,
        message: str,
        failures: dict[str, str],
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = {"failures": dict(failures)}
        merged.update(details or {})
        super().__init__(message, details=merged)
        self.failures = dict(failures)


class LLMParsingError(LLMError):
    """Raised when an LLM response cannot be turned into a valid command.

    Args:
        message: Human readable error message.
        retryable: True when re-prompting the model may produce a valid response.
        details: Optional structured context, usually including a ``snippet``.
    """

    def __init__(
        self,
        message: str,
        retryable: bool = True,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.retryable = retryable


class UnrecognizedCommandError(LLMParsingError):
    """Raised when the ``command`` field names no known agent command."""

    def __init__(self, command: str, details: dict[str, Any] | None = None) -> None:
        merged = {"command": command}
        merged.update(details or {})
        super().__init__(f"Unrecognized agent command: {command!r}", details=merged)
        self.command = command
