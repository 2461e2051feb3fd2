"""LLM integration.

API providers return text for the hybrid protocol parser; CLI agent providers
run coding sessions and are combined through ``ProviderRegistry`` for fallback.
Provider construction lives in :mod:`package_builder.llm.factory`.
"""

from package_builder.llm.config import RateLimitConfig
from package_builder.llm.constants import VALID_API_PROVIDERS, VALID_CLI_PROVIDERS
from package_builder.llm.exceptions import (
    LLMAPIError,
    LLMConfigurationError,
    LLMError,
    LLMParsingError,
    LLMRateLimitError,
    ProviderExhaustedError,
)
from package_builder.llm.fallback import ProviderRegistry, is_recoverable_error

__all__: list[str] = [
    "VALID_API_PROVIDERS",
    "VALID_CLI_PROVIDERS",
    "LLMAPIError",
    "LLMConfigurationError",
    "LLMError",
    "LLMParsingError",
    "LLMRateLimitError",
    "ProviderExhaustedError",
    "ProviderRegistry",
    "RateLimitConfig",
    "is_recoverable_error",
]
