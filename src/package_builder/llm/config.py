"""Rate-limit configuration for the Gemini provider.

Gemini answers quota overruns with HTTP 429 and, usually, a ``retryDelay`` hint.
These settings control how that hint is turned into the delay the caller (or
the external orchestrator) waits before the next attempt.
"""

import os
from dataclasses import dataclass

from package_builder.config.exceptions import ConfigError


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    """Retry-delay settings applied to rate-limited provider calls.

    Args:
        default_retry_delay_sec: Delay used when the provider gives no ``retryDelay``.
        retry_delay_buffer_sec: Seconds added on top of the suggested delay.
        max_retry_delay_sec: Upper bound on the effective delay.

    Example:
        >>> config = RateLimitConfig()
        >>> config.default_retry_delay_sec + config.retry_delay_buffer_sec
        40
    """

    default_retry_delay_sec: int = 35
    retry_delay_buffer_sec: int = 5
    max_retry_delay_sec: int = 120

    def __post_init__(self) -> None:
        """Validate delay settings.

        Raises:
            ConfigError: If any value is negative or the maximum is zero.
        """
        if self.default_retry_delay_sec < 0:
            raise ConfigError(
                f"default_retry_delay_sec must be >= 0, got {self.default_retry_delay_sec}"
            )
        if self.retry_delay_buffer_sec < 0:
            raise ConfigError(
                f"retry_delay_buffer_sec must be >= 0, got {self.retry_delay_buffer_sec}"
            )
        if self.max_retry_delay_sec < 1:
            raise ConfigError(f"max_retry_delay_sec must be >= 1, got {self.max_retry_delay_sec}")

    @classmethod
    def from_env(cls) -> "RateLimitConfig":
        """Create a RateLimitConfig from environment variables.

        Reads:
        - GEMINI_DEFAULT_RETRY_DELAY_SEC (default: 35)
        - GEMINI_RETRY_DELAY_BUFFER_SEC (default: 5)
        - GEMINI_MAX_RETRY_DELAY_SEC (default: 120)

        Returns:
            RateLimitConfig populated from the environment.

        Raises:
            ConfigError: If a variable is not a valid integer.
        """
        defaults = cls()

        def parse_int(env_var: str, default: int) -> int:
            value_str = os.getenv(env_var)
            if value_str is None or not value_str.strip():
                return default
            try:
                return int(value_str)
            except ValueError as e:
                raise ConfigError(f"{env_var} must be a valid integer, got '{value_str}'") from e

        return cls(
            default_retry_delay_sec=parse_int(
                "GEMINI_DEFAULT_RETRY_DELAY_SEC", defaults.default_retry_delay_sec
            ),
            retry_delay_buffer_sec=parse_int(
                "GEMINI_RETRY_DELAY_BUFFER_SEC", defaults.retry_delay_buffer_sec
            ),
            max_retry_delay_sec=parse_int(
                "GEMINI_MAX_RETRY_DELAY_SEC", defaults.max_retry_delay_sec
            ),
        )
