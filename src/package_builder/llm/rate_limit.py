"""Rate-limit detection and retry-delay computation.

These are heuristics over provider error text. Gemini reports quota overruns as
HTTP 429 with a JSON body that usually contains ``"retryDelay": "31s"``. The
patterns below match the documented formats only and may need updating if the
provider changes its error payloads.
"""

import logging
import re

from package_builder.llm.config import RateLimitConfig
from package_builder.llm.constants import RATE_LIMIT_MARKERS

logger = logging.getLogger(__name__)

_SECONDS_PATTERN = re.compile(r'"retryDelay"\s*:\s*"(\d+)(?:\.\d+)?s?"')
_MINUTES_PATTERN = re.compile(r'"retryDelay"\s*:\s*"(\d+)m(\d+)?s?"')


def is_rate_limit_error(message: str) -> bool:
    """Return True if an error message describes a rate-limit response.

    Args:
        message: Error text from a provider call.

    Returns:
        True when the text mentions 429, rate limits, quota or RESOURCE_EXHAUSTED.
    """
    lowered = message.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def parse_retry_delay(message: str) -> int | None:
    """Extract the provider-suggested retry delay in seconds.

    Args:
        message: Error text, typically containing the provider's JSON body.

    Returns:
        Delay in seconds, or None when no ``retryDelay`` is present.

    Example:
        >>> parse_retry_delay('{"retryDelay":"31s"}')
        31
        >>> parse_retry_delay('{"retryDelay":"1m30s"}')
        90
    """
    match = _SECONDS_PATTERN.search(message)
    if match:
        return int(match.group(1))

    match = _MINUTES_PATTERN.search(message)
    if match:
        minutes = int(match.group(1))
        seconds = int(match.group(2)) if match.group(2) else 0
        return minutes * 60 + seconds

    return None


def compute_retry_delay(message: str, config: RateLimitConfig | None = None) -> int:
    """Compute the effective delay before retrying a rate-limited call.

    The suggested delay (or the configured default) is padded with a buffer and
    capped at the configured maximum.

    Args:
        message: Error text from the rate-limited call.
        config: Delay settings. Defaults to ``RateLimitConfig()``.

    Returns:
        Effective delay in seconds.

    Example:
        >>> compute_retry_delay('429 {"retryDelay":"31s"}')
        36
        >>> compute_retry_delay("429 Too Many Requests")
        40
    """
    config = config or RateLimitConfig()
    suggested = parse_retry_delay(message)
    base = suggested if suggested is not None else config.default_retry_delay_sec
    effective = min(base + config.retry_delay_buffer_sec, config.max_retry_delay_sec)
    logger.debug(
        f"Retry delay computed: suggested={suggested}, base={base}s, effective={effective}s"
    )
    return effective
