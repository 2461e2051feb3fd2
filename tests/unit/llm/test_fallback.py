"""Tests for CLI provider selection and fallback."""

from pathlib import Path
from unittest.mock import Mock

import pytest

from package_builder.llm.exceptions import (
    LLMAPIError,
    LLMConfigurationError,
    LLMTimeoutError,
    ProviderExhaustedError,
)
from package_builder.llm.fallback import (
    NO_PROVIDERS_MESSAGE,
    CreditStatus,
    ProviderRegistry,
    is_recoverable_error,
)
from package_builder.llm.providers.base import (
    CLIAgentParams,
    CLIAgentResult,
    ProviderAvailability,
)


def _provider(
    name: str,
    results: list[CLIAgentResult | Exception] | None = None,
    available: bool = True,
    reason: str | None = None,
) -> Mock:
    provider = Mock()
    provider.name = name
    provider.check_availability.return_value = ProviderAvailability(available, reason)
    provider.execute_agent.side_effect = results or [CLIAgentResult(True, name, result="ok")]
    return provider


def _failure(name: str, error: str) -> CLIAgentResult:
    return CLIAgentResult(success=False, provider=name, error=error)


@pytest.fixture
def params(tmp_path: Path) -> CLIAgentParams:
    return CLIAgentParams(instruction="Implement src/index.ts", working_dir=tmp_path)


class TestIsRecoverableError:
    """Test error classification for fallback."""

    @pytest.mark.parametrize(
        "message",
        [
            "Rate limit exceeded",
            "You have exhausted your capacity on this model",
            "Your quota will reset at midnight",
            "Insufficient credits",
            "401 Unauthorized",
        ],
    )
    def test_recoverable(self, message: str) -> None:
        assert is_recoverable_error(message) is True

    @pytest.mark.parametrize(
        "message",
        [
            None,
            "",
            "SyntaxError in src/index.ts",
            "Request timed out while waiting for capacity",
            "Process was killed after rate limit",
            "Unexpected end of JSON input",
        ],
    )
    def test_not_recoverable(self, message: str | None) -> None:
        assert is_recoverable_error(message) is False


class TestProviderRegistryConstruction:
    """Test registry construction and lookups."""

    def test_empty_registry_rejected(self) -> None:
        with pytest.raises(ValueError, match="at least one provider"):
            ProviderRegistry({}, primary="gemini")

    def test_unknown_primary_rejected(self) -> None:
        with pytest.raises(ValueError, match="Primary provider 'codex' is not registered"):
            ProviderRegistry({"gemini": _provider("gemini")}, primary="codex")

    def test_order_puts_primary_first(self) -> None:
        registry = ProviderRegistry(
            {"gemini": _provider("gemini"), "claude": _provider("claude")}, primary="claude"
        )
        assert registry.order == ["claude", "gemini"]

    def test_get_unknown_raises(self) -> None:
        registry = ProviderRegistry({"gemini": _provider("gemini")}, primary="gemini")
        with pytest.raises(LLMConfigurationError, match="Unknown CLI provider"):
            registry.get("codex")

    def test_check_credits(self) -> None:
        registry = ProviderRegistry(
            {
                "gemini": _provider("gemini"),
                "claude": _provider("claude", available=False, reason="claude CLI not found"),
            },
            primary="gemini",
        )
        assert registry.check_credits() == {
            "gemini": CreditStatus(available=True),
            "claude": CreditStatus(available=False, reason="claude CLI not found"),
        }


class TestSelectProvider:
    """Test select_provider."""

    def test_preferred_wins_when_available(self) -> None:
        claude = _provider("claude")
        registry = ProviderRegistry({"gemini": _provider("gemini"), "claude": claude}, "gemini")
        assert registry.select_provider(preferred="claude") is claude

    def test_unavailable_preferred_falls_to_order(self) -> None:
        gemini = _provider("gemini")
        registry = ProviderRegistry(
            {"gemini": gemini, "claude": _provider("claude", available=False)}, "gemini"
        )
        assert registry.select_provider(preferred="claude") is gemini

    def test_rate_limited_provider_skipped(self) -> None:
        claude = _provider("claude")
        registry = ProviderRegistry({"gemini": _provider("gemini"), "claude": claude}, "gemini")
        credits = {
            "gemini": CreditStatus(available=True, rate_limited=True),
            "claude": CreditStatus(available=True),
        }
        assert registry.select_provider(credits=credits) is claude

    def test_nothing_available(self) -> None:
        registry = ProviderRegistry(
            {"gemini": _provider("gemini", available=False, reason="not installed")}, "gemini"
        )
        with pytest.raises(LLMConfigurationError, match=NO_PROVIDERS_MESSAGE) as exc_info:
            registry.select_provider()
        assert exc_info.value.details["reasons"] == {"gemini": "not installed"}


class TestExecuteWithFallback:
    """Test execute_with_fallback."""

    def test_primary_success(self, params: CLIAgentParams) -> None:
        gemini = _provider("gemini")
        claude = _provider("claude")
        registry = ProviderRegistry({"gemini": gemini, "claude": claude}, "gemini")

        result = registry.execute_with_fallback(params)

        assert result.provider == "gemini"
        gemini.execute_agent.assert_called_once_with(params)
        claude.execute_agent.assert_not_called()

    def test_recoverable_failure_falls_back(self, params: CLIAgentParams) -> None:
        gemini = _provider("gemini", [_failure("gemini", "Quota exceeded for model")])
        claude = _provider("claude")
        registry = ProviderRegistry({"gemini": gemini, "claude": claude}, "gemini")

        result = registry.execute_with_fallback(params)

        assert result.provider == "claude"
        claude.execute_agent.assert_called_once_with(params)

    def test_non_recoverable_failure_raises(self, params: CLIAgentParams) -> None:
        gemini = _provider("gemini", [_failure("gemini", "Cannot find module 'zod'")])
        claude = _provider("claude")
        registry = ProviderRegistry({"gemini": gemini, "claude": claude}, "gemini")

        with pytest.raises(LLMAPIError) as exc_info:
            registry.execute_with_fallback(params)

        assert str(exc_info.value) == "Provider: gemini, Error: Cannot find module 'zod'"
        assert not isinstance(exc_info.value, ProviderExhaustedError)
        claude.execute_agent.assert_not_called()

    def test_fallback_disabled(self, params: CLIAgentParams) -> None:
        gemini = _provider("gemini", [_failure("gemini", "rate limit")])
        claude = _provider("claude")
        registry = ProviderRegistry(
            {"gemini": gemini, "claude": claude}, "gemini", fallback_enabled=False
        )

        with pytest.raises(LLMAPIError, match="Provider: gemini, Error: rate limit"):
            registry.execute_with_fallback(params)
        claude.execute_agent.assert_not_called()

    def test_both_exhausted(self, params: CLIAgentParams) -> None:
        gemini = _provider("gemini", [_failure("gemini", "quota exceeded")])
        claude = _provider("claude", [_failure("claude", "Credit balance too low: credits")])
        registry = ProviderRegistry({"gemini": gemini, "claude": claude}, "gemini")

        with pytest.raises(ProviderExhaustedError) as exc_info:
            registry.execute_with_fallback(params)

        assert str(exc_info.value).startswith("All providers exhausted.")
        assert exc_info.value.failures == {
            "gemini": "quota exceeded",
            "claude": "Credit balance too low: credits",
        }
        assert gemini.execute_agent.call_count == 1

    def test_unavailable_fallback_is_recorded(self, params: CLIAgentParams) -> None:
        gemini = _provider("gemini", [_failure("gemini", "rate limited")])
        claude = _provider("claude")
        claude.check_availability.side_effect = [
            ProviderAvailability(True),
            ProviderAvailability(False, "claude CLI not found"),
        ]
        registry = ProviderRegistry({"gemini": gemini, "claude": claude}, "gemini")

        with pytest.raises(ProviderExhaustedError) as exc_info:
            registry.execute_with_fallback(params)

        assert exc_info.value.failures["claude"] == "claude CLI not found"
        claude.execute_agent.assert_not_called()

    def test_timeout_never_falls_back(self, params: CLIAgentParams) -> None:
        gemini = _provider("gemini", [LLMTimeoutError("CLI timed out after 600s")])
        claude = _provider("claude")
        registry = ProviderRegistry({"gemini": gemini, "claude": claude}, "gemini")

        with pytest.raises(LLMTimeoutError) as exc_info:
            registry.execute_with_fallback(params)

        assert str(exc_info.value) == "Provider: gemini, Error: CLI timed out after 600s"
        assert exc_info.value.details["provider"] == "gemini"
        claude.execute_agent.assert_not_called()

    def test_raised_llm_error_is_classified(self, params: CLIAgentParams) -> None:
        gemini = _provider("gemini", [LLMAPIError("429 rate limit hit")])
        claude = _provider("claude")
        registry = ProviderRegistry({"gemini": gemini, "claude": claude}, "gemini")

        assert registry.execute_with_fallback(params).provider == "claude"

    def test_preferred_provider_runs_first(self, params: CLIAgentParams) -> None:
        gemini = _provider("gemini")
        claude = _provider("claude")
        registry = ProviderRegistry({"gemini": gemini, "claude": claude}, "gemini")

        assert registry.execute_with_fallback(params, preferred="claude").provider == "claude"
        gemini.execute_agent.assert_not_called()

    def test_single_provider_exhausts(self, params: CLIAgentParams) -> None:
        gemini = _provider("gemini", [_failure("gemini", "capacity reached")])
        registry = ProviderRegistry({"gemini": gemini}, "gemini")

        with pytest.raises(ProviderExhaustedError):
            registry.execute_with_fallback(params)


class TestPinnedProvider:
    """Test pinned execution."""

    def test_pinned_runs_only_that_provider(self, params: CLIAgentParams) -> None:
        gemini = _provider("gemini")
        claude = _provider("claude")
        registry = ProviderRegistry({"gemini": gemini, "claude": claude}, "gemini")

        assert registry.execute_with_fallback(params, pinned="claude").provider == "claude"
        gemini.execute_agent.assert_not_called()
        gemini.check_availability.assert_not_called()

    def test_pinned_failure_does_not_fall_back(self, params: CLIAgentParams) -> None:
        claude = _provider("claude", [_failure("claude", "rate limit")])
        gemini = _provider("gemini")
        registry = ProviderRegistry({"gemini": gemini, "claude": claude}, "gemini")

        with pytest.raises(LLMAPIError, match="Provider: claude, Error: rate limit"):
            registry.execute_with_fallback(params, pinned="claude")
        gemini.execute_agent.assert_not_called()

    def test_pinned_unavailable(self, params: CLIAgentParams) -> None:
        claude = _provider("claude", available=False, reason="claude CLI not found")
        registry = ProviderRegistry({"gemini": _provider("gemini"), "claude": claude}, "gemini")

        with pytest.raises(LLMConfigurationError, match="claude CLI not found"):
            registry.execute_with_fallback(params, pinned="claude")
