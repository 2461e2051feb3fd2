"""LLM Provider Factory.

Two kinds of provider are built here:

    - API providers (``anthropic``, ``gemini``) implementing ``LLMProvider``,
      used by the next-action activity to obtain a single hybrid response.
    - CLI agent providers (``gemini``, ``claude``) wrapped in a
      ``ProviderRegistry`` that handles fallback between them.

Usage Examples:
    Create an API provider:
        >>> provider = create_provider("anthropic", api_key="sk-ant-...")
        >>> response = provider.generate("Hello")

    Create from configuration:
        >>> config = RuntimeConfig.from_env()
        >>> provider = create_api_provider_from_config(config)
        >>> registry = create_cli_registry(config)
"""

import logging
from typing import Any

from package_builder.config.runtime_config import RuntimeConfig
from package_builder.llm.constants import VALID_API_PROVIDERS
from package_builder.llm.exceptions import LLMConfigurationError
from package_builder.llm.fallback import ProviderRegistry
from package_builder.llm.providers.anthropic_api import AnthropicAPIProvider
from package_builder.llm.providers.claude_cli import ClaudeCLIProvider
from package_builder.llm.providers.gemini_api import GeminiAPIProvider
from package_builder.llm.providers.gemini_cli import GeminiCLIProvider

logger = logging.getLogger(__name__)

# Provider registry mapping provider names to classes
PROVIDER_REGISTRY: dict[str, type[Any]] = {
    "anthropic": AnthropicAPIProvider,
    "gemini": GeminiAPIProvider,
}

CLI_PROVIDER_REGISTRY: dict[str, type[Any]] = {
    "gemini": GeminiCLIProvider,
    "claude": ClaudeCLIProvider,
}


def create_provider(
    provider: str,
    model: str | None = None,
    api_key: str | None = None,
    timeout: int | None = None,
    **kwargs: Any,  # noqa: ANN401
) -> Any:  # noqa: ANN401
    """Create an API provider instance with validation.

    Args:
        provider: Provider name. Must be one of ``VALID_API_PROVIDERS``.
        model: Model identifier (optional, uses provider defaults if not specified).
        api_key: API key. Both API providers require one.
        timeout: Request timeout in seconds (optional).
        **kwargs: Provider-specific parameters passed through to the constructor,
            e.g. ``rate_limit`` for Gemini.

    Returns:
        Configured provider implementing the ``LLMProvider`` protocol.

    Raises:
        LLMConfigurationError: If the provider name is unknown or the API key is missing.
        ValueError: If timeout is not positive.
    """
    if provider not in VALID_API_PROVIDERS:
        raise LLMConfigurationError(
            f"Invalid provider '{provider}'. "
            f"Valid providers: {', '.join(sorted(VALID_API_PROVIDERS))}",
            details={"provider": provider},
        )

    if timeout is not None and timeout <= 0:
        raise ValueError(f"timeout must be positive, got {timeout}")

    provider_class = PROVIDER_REGISTRY[provider]
    provider_kwargs: dict[str, Any] = {"api_key": api_key, **kwargs}
    if model:
        provider_kwargs["model"] = model
    if timeout is not None:
        provider_kwargs["timeout"] = timeout

    logger.info(f"Creating {provider} provider (model={model or 'default'})")
    return provider_class(**provider_kwargs)


def create_api_provider_from_config(
    config: RuntimeConfig, provider: str | None = None
) -> Any:  # noqa: ANN401
    """Create the API provider described by a runtime configuration.

    Args:
        config: Runtime configuration.
        provider: Override for ``config.primary_provider``. The CLI name
            ``claude`` maps to the ``anthropic`` API provider.

    Returns:
        Configured API provider.

    Raises:
        LLMConfigurationError: If the provider's API key is not configured.
    """
    name = provider or config.primary_provider
    if name == "claude":
        name = "anthropic"

    if name == "anthropic":
        return create_provider(
            "anthropic",
            model=config.anthropic_model,
            api_key=config.anthropic_api_key,
            timeout=config.api_timeout,
        )
    return create_provider(
        name,
        model=config.gemini_model,
        api_key=config.gemini_api_key,
        timeout=config.api_timeout,
        rate_limit=config.rate_limit,
    )


def create_cli_registry(config: RuntimeConfig) -> ProviderRegistry:
    """Build the CLI agent registry with the configured primary provider first."""
    providers = {name: cls() for name, cls in CLI_PROVIDER_REGISTRY.items()}
    registry = ProviderRegistry(
        providers,
        primary=config.primary_provider,
        fallback_enabled=config.fallback_enabled,
    )
    logger.debug(f"CLI provider order: {', '.join(registry.order)}")
    return registry
