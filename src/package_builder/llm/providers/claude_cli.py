"""Claude CLI agent provider.

Runs the ``claude`` coding-agent CLI in headless mode inside a package
directory. Conversation continuity comes from ``--resume <session_id>``; the
session id reported by each run is returned so the caller can pass it to the
next one.
"""

import json
import logging
import re
import shutil
import subprocess  # nosec B404  # Required for CLI execution with validated inputs
import time
from typing import ClassVar

from package_builder.llm.constants import (
    DEFAULT_CLAUDE_CLI_MODEL,
    DEFAULT_PERMISSION_MODE,
    RESPONSE_SNIPPET_LENGTH,
)
from package_builder.llm.exceptions import LLMTimeoutError
from package_builder.llm.providers.base import CLIAgentParams, CLIAgentResult, ProviderAvailability

logger = logging.getLogger(__name__)

_SESSION_ID_PATTERN = re.compile(r'"session_id"\s*:\s*"([^"]+)"')


class ClaudeCLIProvider:
    """Claude Code CLI provider.

    The CLI must be installed and logged in; no API key is handled here.

    Examples:
        >>> provider = ClaudeCLIProvider()
        >>> provider.check_availability().available
        True
        >>> result = provider.execute_agent(
        ...     CLIAgentParams(instruction="Add a README", working_dir=Path("pkg"))
        ... )
        >>> result.session_id
        'abc-123'

    Attributes:
        name: Provider name used by the registry.
    """

    name: ClassVar[str] = "claude"
    CLI_COMMAND: ClassVar[str] = "claude"
    INSTALL_HINT: ClassVar[str] = (
        "Claude CLI not found or not in PATH. "
        "Install with: npm install -g @anthropic-ai/claude-code"
    )

    def check_availability(self) -> ProviderAvailability:
        """Check that the ``claude`` binary is on PATH."""
        if shutil.which(self.CLI_COMMAND):
            return ProviderAvailability(available=True)
        return ProviderAvailability(available=False, reason=self.INSTALL_HINT)

    def build_command(self, params: CLIAgentParams) -> list[str]:
        """Build the CLI argument list. The prompt is always the last argument."""
        args = [self.CLI_COMMAND]

        if params.session_id:
            args.extend(["--resume", params.session_id])
        elif params.continue_recent:
            args.append("--continue")

        args.append("--print")
        args.extend(["--output-format", "json"])
        args.extend(["--permission-mode", params.permission_mode or DEFAULT_PERMISSION_MODE])
        args.extend(["--allowedTools", ",".join(params.allowed_tools)])
        args.extend(["--model", params.model or DEFAULT_CLAUDE_CLI_MODEL])

        system_prompt = params.system_prompt_append or params.context_content
        if system_prompt:
            args.extend(["--append-system-prompt", system_prompt])

        args.append(params.instruction)
        return args

    def execute_agent(self, params: CLIAgentParams) -> CLIAgentResult:
        """Run the Claude CLI once.

        Args:
            params: Run parameters.

        Returns:
            CLIAgentResult: ``success=False`` with an ``error`` when the CLI exits
            non-zero, cannot be started, or prints output that is not JSON.

        Raises:
            LLMTimeoutError: If the run exceeds ``params.timeout`` seconds.
        """
        args = self.build_command(params)
        logger.info(
            f"Executing Claude CLI in {params.working_dir} "
            f"(model={params.model or DEFAULT_CLAUDE_CLI_MODEL}, "
            f"resume={bool(params.session_id)})"
        )
        logger.debug(f"Instruction: {params.instruction[:100]}")

        start = time.monotonic()
        try:
            completed = subprocess.run(  # nosec B603, B607  # noqa: S603  # Claude CLI command with validated args
                args,
                cwd=params.working_dir,
                capture_output=True,
                text=True,
                timeout=params.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"Claude CLI timed out after {params.timeout}s")
            raise LLMTimeoutError(
                f"Claude CLI timed out after {params.timeout}s",
                details={"provider": self.name, "timeout": params.timeout},
            ) from e
        except OSError as e:
            logger.error(f"Claude CLI process error: {e}")
            return CLIAgentResult(
                success=False,
                provider=self.name,
                duration_ms=_elapsed_ms(start),
                error=f"Process error: {e}",
            )

        duration_ms = _elapsed_ms(start)
        stdout = completed.stdout or ""
        stderr = completed.stderr or ""

        if completed.returncode != 0:
            logger.error(f"Claude CLI exited with code {completed.returncode}")
            logger.debug(f"stderr: {stderr[:RESPONSE_SNIPPET_LENGTH]}")
            return CLIAgentResult(
                success=False,
                provider=self.name,
                duration_ms=duration_ms,
                error=f"CLI exited with code {completed.returncode}: {stderr}",
                raw_output=stdout,
            )

        try:
            parsed = json.loads(stdout)
            if not isinstance(parsed, dict):
                raise ValueError(f"expected JSON object, got {type(parsed).__name__}")
        except ValueError as e:
            logger.warning(f"Failed to parse Claude CLI JSON output: {e}")
            logger.debug(f"Raw output: {stdout[:RESPONSE_SNIPPET_LENGTH]}")
            session_match = _SESSION_ID_PATTERN.search(stdout)
            return CLIAgentResult(
                success=False,
                provider=self.name,
                duration_ms=duration_ms,
                session_id=session_match.group(1) if session_match else None,
                error=f"Failed to parse JSON output: {e}",
                raw_output=stdout,
            )

        cost = float(parsed.get("cost_usd") or parsed.get("total_cost_usd") or 0.0)
        result = CLIAgentResult(
            success=True,
            provider=self.name,
            result=str(parsed.get("result") or ""),
            cost_usd=cost,
            duration_ms=int(parsed.get("duration_ms") or duration_ms),
            session_id=parsed.get("session_id") or None,
            raw_output=stdout,
            num_turns=parsed.get("num_turns"),
        )
        logger.info(f"Claude CLI succeeded: cost=${cost:.4f}, duration={result.duration_ms}ms")
        return result


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
