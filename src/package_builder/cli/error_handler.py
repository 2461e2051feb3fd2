"""LLM error handling utilities for CLI commands.

This module provides shared error handling for LLM operations across CLI commands.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import click
from rich.console import Console

from package_builder.llm.exceptions import (
    LLMAPIError,
    LLMAuthenticationError,
    LLMConfigurationError,
    LLMError,
    LLMParsingError,
    LLMRateLimitError,
    LLMTimeoutError,
    ProviderExhaustedError,
)

if TYPE_CHECKING:
    from package_builder.config.runtime_config import RuntimeConfig

logger = logging.getLogger(__name__)
console = Console()

_AUTH_HINTS = {
    "anthropic": "Set ANTHROPIC_API_KEY (https://console.anthropic.com/settings/keys)",
    "claude": "Run `claude` once interactively to log in, or set ANTHROPIC_API_KEY",
    "gemini": "Set GEMINI_API_KEY (https://aistudio.google.com/app/apikey)",
}


def _provider_of(error: LLMError, runtime_config: "RuntimeConfig | None") -> str:
    provider = error.details.get("provider") if error.details else None
    if not provider and runtime_config is not None:
        provider = runtime_config.primary_provider
    return str(provider or "unknown")


@contextmanager
def handle_llm_errors(runtime_config: "RuntimeConfig | None" = None) -> Generator[None, None, None]:
    """Context manager for handling LLM errors in CLI commands.

    Every LLM error is reported on the console and turned into ``click.Abort``
    (exit code 1).

    Args:
        runtime_config: Runtime configuration, used to name the provider when
            the error does not carry one.

    Raises:
        click.Abort: For every LLM error.

    Example:
        with handle_llm_errors(runtime_config):
            result = determine_next_action(action_input, provider)
    """
    try:
        yield

    except LLMAuthenticationError as e:
        provider = _provider_of(e, runtime_config)
        console.print(f"\n[red]Authentication failed for {provider}: {e}[/red]")
        if provider in _AUTH_HINTS:
            console.print(f"[dim]{_AUTH_HINTS[provider]}[/dim]")
        logger.error(f"LLM authentication failed: {e}")
        raise click.Abort() from e

    except LLMRateLimitError as e:
        provider = _provider_of(e, runtime_config)
        console.print(f"\n[yellow]{provider} is rate limited: {e}[/yellow]")
        if e.retry_after_seconds is not None:
            console.print(f"[dim]Retry in {e.retry_after_seconds}s[/dim]")
        logger.warning(f"LLM rate limit exceeded: {e}")
        raise click.Abort() from e

    except LLMTimeoutError as e:
        provider = _provider_of(e, runtime_config)
        console.print(f"\n[yellow]{provider} timed out: {e}[/yellow]")
        console.print("[dim]Increase PB_CLI_TIMEOUT / PB_API_TIMEOUT or retry later[/dim]")
        logger.warning(f"LLM request timed out: {e}")
        raise click.Abort() from e

    except ProviderExhaustedError as e:
        console.print("\n[red]All providers failed:[/red]")
        for name, message in e.failures.items():
            console.print(f"  [red]{name}[/red]: {message}")
        logger.error(f"Provider fallback exhausted: {e}")
        raise click.Abort() from e

    except LLMConfigurationError as e:
        console.print(f"\n[red]Configuration error: {e}[/red]")
        logger.error(f"LLM configuration error: {e}")
        raise click.Abort() from e

    except LLMParsingError as e:
        retry_note = "retryable" if e.retryable else "not retryable"
        console.print(f"\n[red]Could not parse LLM response ({retry_note}): {e}[/red]")
        snippet = e.details.get("snippet") if e.details else None
        if snippet:
            console.print(f"[dim]{snippet}[/dim]")
        logger.error(f"LLM parsing error: {e}")
        raise click.Abort() from e

    except LLMAPIError as e:
        provider = _provider_of(e, runtime_config)
        console.print(f"\n[red]{provider} API error: {e}[/red]")
        logger.error(f"LLM API error: {e}")
        raise click.Abort() from e

    except LLMError as e:
        console.print(f"\n[red]LLM error: {e}[/red]")
        logger.error(f"LLM error: {e}")
        raise click.Abort() from e
