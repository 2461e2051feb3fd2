"""Constants for LLM integration.

This module defines shared constants used across the LLM integration components.
"""

# API providers (text in, text out)
VALID_API_PROVIDERS: frozenset[str] = frozenset(
    {
        "anthropic",  # Anthropic Messages API (requires ANTHROPIC_API_KEY)
        "gemini",  # Gemini generateContent REST API (requires GEMINI_API_KEY)
    }
)

# CLI agent providers (run inside a working directory, may edit files themselves)
VALID_CLI_PROVIDERS: frozenset[str] = frozenset({"gemini", "claude"})

DEFAULT_ANTHROPIC_MODEL: str = "claude-sonnet-4-5"
DEFAULT_GEMINI_MODEL: str = "gemini-2.5-flash"
DEFAULT_CLAUDE_CLI_MODEL: str = "sonnet"

# CLI agents run whole coding sessions, so their timeout is minutes-scale
DEFAULT_CLI_TIMEOUT_SECONDS: int = 600
DEFAULT_API_TIMEOUT_SECONDS: int = 60

DEFAULT_ALLOWED_TOOLS: tuple[str, ...] = ("Read", "Write", "Edit", "Bash")
DEFAULT_PERMISSION_MODE: str = "acceptEdits"

# A provider may be tried at most this many times across one fallback chain
MAX_FALLBACK_ATTEMPTS: int = 2

# Phrases that mark an interrupted run. These are never retried on another provider
# and take precedence over FALLBACK_TRIGGERS.
INTERRUPTION_TRIGGERS: tuple[str, ...] = (
    "interrupted",
    "incomplete",
    "timed out",
    "timeout",
    "killed",
    "cancelled",
    "canceled",
    "unexpected end of json",
    "end of data",
)

# Phrases that mark a provider-side limit; switching provider may succeed
FALLBACK_TRIGGERS: tuple[str, ...] = (
    "rate limit",
    "rate limited",
    "quota exceeded",
    "exhausted your capacity",
    "quota will reset",
    "credits",
    "authentication",
    "unauthorized",
    "capacity",
)

# Phrases that identify a rate-limit response from the Gemini API
RATE_LIMIT_MARKERS: tuple[str, ...] = (
    "429",
    "rate limit",
    "quota exceeded",
    "resource_exhausted",
)

# Maximum characters of a raw response kept in error details and logs
RESPONSE_SNIPPET_LENGTH: int = 500
MAX_LOGGED_RESPONSE_LENGTH: int = 15000
