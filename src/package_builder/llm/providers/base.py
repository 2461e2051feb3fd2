"""Provider protocols and the data passed to and from CLI agents.

Two kinds of provider exist:

- :class:`LLMProvider` wraps a text-in/text-out HTTP API.
- :class:`CLIAgentProvider` drives a coding-agent CLI inside a working
  directory. The agent may read and edit files itself and reports a result,
  a cost estimate and a session id that can be resumed.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from package_builder.llm.constants import DEFAULT_ALLOWED_TOOLS, DEFAULT_CLI_TIMEOUT_SECONDS


@runtime_checkable
class LLMProvider(Protocol):
    """Text generation over an HTTP API."""

    def generate(self, prompt: str, max_tokens: int = 2000) -> str:
        """Return the model's text completion for ``prompt``."""
        ...

    def count_tokens(self, text: str) -> int:
        """Return an estimate of the number of tokens in ``text``."""
        ...


@dataclass(frozen=True, slots=True)
class ProviderAvailability:
    """Result of probing whether a provider can be used right now."""

    available: bool
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class CLIAgentParams:
    """Inputs for one CLI agent run.

    Attributes:
        instruction: Prompt sent to the agent.
        working_dir: Directory the agent runs in.
        context_content: Extra context. Gemini reads it from ``GEMINI.md``; Claude
            receives it as an appended system prompt.
        session_id: Session to resume for conversational continuation.
        model: Model override; each provider has its own default.
        allowed_tools: Tools the agent may use without asking.
        permission_mode: Claude permission mode.
        timeout: Seconds before the run is killed.
        continue_recent: Continue the most recent session instead of resuming by id.
        system_prompt_append: Extra text appended to the agent's system prompt.
    """

    instruction: str
    working_dir: Path
    context_content: str | None = None
    session_id: str | None = None
    model: str | None = None
    allowed_tools: tuple[str, ...] = DEFAULT_ALLOWED_TOOLS
    permission_mode: str | None = None
    timeout: int = DEFAULT_CLI_TIMEOUT_SECONDS
    continue_recent: bool = False
    system_prompt_append: str | None = None

    def __post_init__(self) -> None:
        """Validate parameters.

        Raises:
            ValueError: If the instruction is empty or the timeout is not positive.
        """
        if not self.instruction or not self.instruction.strip():
            raise ValueError("instruction cannot be empty")
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")


@dataclass(slots=True)
class CLIAgentResult:
    """Outcome of one CLI agent run."""

    success: bool
    provider: str
    result: str = ""
    cost_usd: float = 0.0
    duration_ms: int = 0
    session_id: str | None = None
    error: str | None = None
    raw_output: str = ""
    num_turns: int | None = None
    extra: dict[str, object] = field(default_factory=dict)


@runtime_checkable
class CLIAgentProvider(Protocol):
    """A coding-agent CLI that can be selected by the provider registry."""

    name: str

    def check_availability(self) -> ProviderAvailability:
        """Probe whether the CLI is installed and usable."""
        ...

    def execute_agent(self, params: CLIAgentParams) -> CLIAgentResult:
        """Run the agent once and report the outcome.

        Failures reported by the CLI itself come back as ``success=False``.
        A timeout raises :class:`~package_builder.llm.exceptions.LLMTimeoutError`.
        """
        ...
