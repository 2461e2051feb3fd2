"""Provider selection and fallback between CLI agents.

State machine for one call::

    select -> execute -> success
                      -> recoverable failure     -> switch provider -> execute
                      -> non-recoverable failure -> raise

A provider is tried at most once per call (two attempts in total). The
registry is built once at start-up and passed to whoever needs it.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass

from package_builder.llm.constants import (
    FALLBACK_TRIGGERS,
    INTERRUPTION_TRIGGERS,
    MAX_FALLBACK_ATTEMPTS,
)
from package_builder.llm.exceptions import (
    LLMAPIError,
    LLMConfigurationError,
    LLMError,
    LLMTimeoutError,
    ProviderExhaustedError,
)
from package_builder.llm.providers.base import CLIAgentParams, CLIAgentProvider, CLIAgentResult

logger = logging.getLogger(__name__)

NO_PROVIDERS_MESSAGE = "No CLI providers available. Check credits and rate limits."


def is_recoverable_error(message: str | None) -> bool:
    """Return True if switching to another provider may get past this error.

    Interruption phrases (timeouts, killed or truncated runs) are checked first
    and always win, so a real failure is never retried as if it were a quota
    problem.

    Args:
        message: Error text reported by a provider.

    Returns:
        True for rate-limit, quota, capacity and authentication failures.

    Example:
        >>> is_recoverable_error("You have exhausted your capacity on this model")
        True
        >>> is_recoverable_error("Request timed out while waiting for capacity")
        False
    """
    if not message:
        return False
    lowered = message.lower()
    if any(trigger in lowered for trigger in INTERRUPTION_TRIGGERS):
        return False
    return any(trigger in lowered for trigger in FALLBACK_TRIGGERS)


@dataclass(frozen=True, slots=True)
class CreditStatus:
    """Availability of one provider as seen before a call.

    Rate limiting is only discovered during execution, so ``rate_limited`` is
    False unless a caller records otherwise.
    """

    available: bool
    rate_limited: bool = False
    reason: str | None = None


class ProviderRegistry:
    """Ordered set of CLI agent providers with fallback.

    Example:
        >>> registry = ProviderRegistry(
        ...     {"gemini": GeminiCLIProvider(), "claude": ClaudeCLIProvider()},
        ...     primary="gemini",
        ... )
        >>> result = registry.execute_with_fallback(params)
    """

    def __init__(
        self,
        providers: Mapping[str, CLIAgentProvider],
        primary: str,
        fallback_enabled: bool = True,
    ) -> None:
        """Initialize the registry.

        Args:
            providers: Providers keyed by name.
            primary: Name of the provider tried first.
            fallback_enabled: Allow switching provider on recoverable failures.

        Raises:
            ValueError: If no providers are given or ``primary`` is not one of them.
        """
        if not providers:
            raise ValueError("ProviderRegistry requires at least one provider")
        if primary not in providers:
            raise ValueError(
                f"Primary provider '{primary}' is not registered. "
                f"Available: {', '.join(providers)}"
            )
        self.providers = dict(providers)
        self.primary = primary
        self.fallback_enabled = fallback_enabled

    @property
    def order(self) -> list[str]:
        """Provider names with the primary first."""
        return [self.primary] + [name for name in self.providers if name != self.primary]

    def get(self, name: str) -> CLIAgentProvider:
        """Return a provider by name.

        Raises:
            LLMConfigurationError: If the name is not registered.
        """
        try:
            return self.providers[name]
        except KeyError as e:
            raise LLMConfigurationError(
                f"Unknown CLI provider: '{name}'. Available: {', '.join(self.providers)}",
                details={"provider": name},
            ) from e

    def check_credits(self) -> dict[str, CreditStatus]:
        """Probe every provider's availability."""
        status: dict[str, CreditStatus] = {}
        for name in self.order:
            availability = self.providers[name].check_availability()
            status[name] = CreditStatus(
                available=availability.available, reason=availability.reason
            )
        return status

    def select_provider(
        self,
        preferred: str | None = None,
        credits: Mapping[str, CreditStatus] | None = None,
    ) -> CLIAgentProvider:
        """Choose the provider for the next call.

        The preferred provider wins when it is available. Otherwise providers are
        tried in registry order, skipping unavailable or rate-limited ones.

        Raises:
            LLMConfigurationError: If no provider is available.
        """
        credits = credits if credits is not None else self.check_credits()

        if preferred:
            preferred_status = credits.get(preferred)
            if preferred_status and preferred_status.available:
                return self.get(preferred)
            logger.info(f"Preferred provider '{preferred}' unavailable, selecting another")

        for name in self.order:
            status = credits.get(name)
            if status and status.available and not status.rate_limited:
                return self.providers[name]

        reasons = {name: s.reason for name, s in credits.items() if s.reason}
        raise LLMConfigurationError(NO_PROVIDERS_MESSAGE, details={"reasons": reasons})

    def _fallback_for(self, name: str) -> CLIAgentProvider | None:
        for candidate in self.order:
            if candidate != name:
                return self.providers[candidate]
        return None

    def execute_with_fallback(
        self,
        params: CLIAgentParams,
        preferred: str | None = None,
        pinned: str | None = None,
    ) -> CLIAgentResult:
        """Run a CLI agent, switching provider once on a recoverable failure.

        Args:
            params: Run parameters.
            preferred: Provider to try first if available.
            pinned: Use only this provider. Fallback is disabled and any failure
                propagates with the provider name attached.

        Returns:
            CLIAgentResult: The first successful result.

        Raises:
            LLMConfigurationError: If no provider (or the pinned one) is available.
            LLMTimeoutError: If a run timed out. Timeouts never fall back.
            LLMAPIError: On a non-recoverable failure, as ``Provider: <name>, Error: ...``.
            ProviderExhaustedError: If both attempts failed recoverably.
        """
        if pinned:
            return self._execute_pinned(params, pinned)

        provider = self.select_provider(preferred)
        failures: dict[str, str] = {}

        for attempt in range(1, MAX_FALLBACK_ATTEMPTS + 1):
            logger.info(f"Executing CLI agent with provider '{provider.name}' (attempt {attempt})")
            outcome = self._run(provider, params)
            if isinstance(outcome, CLIAgentResult):
                return outcome
            error = outcome

            failures[provider.name] = error
            recoverable = is_recoverable_error(error)

            if not recoverable or not self.fallback_enabled:
                raise LLMAPIError(
                    f"Provider: {provider.name}, Error: {error}",
                    details={"provider": provider.name, "failures": dict(failures)},
                )

            fallback = self._fallback_for(provider.name)
            if attempt >= MAX_FALLBACK_ATTEMPTS or fallback is None:
                break

            availability = fallback.check_availability()
            if not availability.available:
                failures[fallback.name] = availability.reason or "unavailable"
                break

            logger.warning(
                f"Provider '{provider.name}' failed with a recoverable error, "
                f"falling back to '{fallback.name}': {error}"
            )
            provider = fallback

        summary = "; ".join(f"{name}: {msg}" for name, msg in failures.items())
        raise ProviderExhaustedError(f"All providers exhausted. {summary}", failures=failures)

    def _execute_pinned(self, params: CLIAgentParams, name: str) -> CLIAgentResult:
        provider = self.get(name)
        availability = provider.check_availability()
        if not availability.available:
            raise LLMConfigurationError(
                f"Provider: {name}, Error: {availability.reason or 'unavailable'}",
                details={"provider": name},
            )

        outcome = self._run(provider, params)
        if isinstance(outcome, CLIAgentResult):
            return outcome
        raise LLMAPIError(f"Provider: {name}, Error: {outcome}", details={"provider": name})

    @staticmethod
    def _run(provider: CLIAgentProvider, params: CLIAgentParams) -> CLIAgentResult | str:
        """Execute once; return the successful result or the error message.

        Raises:
            LLMTimeoutError: With the provider name attached.
        """
        try:
            result = provider.execute_agent(params)
        except LLMTimeoutError as e:
            logger.error(f"Provider '{provider.name}' timed out: {e}")
            raise LLMTimeoutError(
                f"Provider: {provider.name}, Error: {e}",
                details={**e.details, "provider": provider.name},
            ) from e
        except LLMError as e:
            logger.error(f"Provider '{provider.name}' raised {type(e).__name__}: {e}")
            return str(e)

        if result.success:
            return result
        return result.error or "CLI execution failed"
