"""Gemini CLI agent provider.

The Gemini CLI has no resumable sessions. Continuity comes from ``GEMINI.md``
in the working directory, which is rewritten with ``context_content`` before
each run and which the instruction asks the agent to read first.
"""

import json
import logging
import shutil
import subprocess  # nosec B404  # Required for CLI execution with validated inputs
import time
from pathlib import Path
from typing import ClassVar

from package_builder.llm.constants import RESPONSE_SNIPPET_LENGTH
from package_builder.llm.exceptions import LLMTimeoutError
from package_builder.llm.providers.base import CLIAgentParams, CLIAgentResult, ProviderAvailability
from package_builder.security.secure_file_handler import SecureFileHandler

logger = logging.getLogger(__name__)

CONTEXT_FILE_NAME = "GEMINI.md"
CONTEXT_PREAMBLE = (
    "First, read the GEMINI.md file in the current directory for project requirements "
    "and context. Then: "
)


class GeminiCLIProvider:
    """Gemini CLI provider.

    Attributes:
        name: Provider name used by the registry.
    """

    name: ClassVar[str] = "gemini"
    CLI_COMMAND: ClassVar[str] = "gemini"
    INSTALL_HINT: ClassVar[str] = (
        "Gemini CLI not found or not in PATH. "
        "Install with: npm install -g @google/generative-ai-cli"
    )

    def check_availability(self) -> ProviderAvailability:
        """Check that the ``gemini`` binary is on PATH."""
        if shutil.which(self.CLI_COMMAND):
            return ProviderAvailability(available=True)
        return ProviderAvailability(available=False, reason=self.INSTALL_HINT)

    def build_command(self, params: CLIAgentParams) -> list[str]:
        """Build the CLI argument list."""
        prompt = params.instruction
        if params.context_content:
            prompt = CONTEXT_PREAMBLE + prompt

        args = [self.CLI_COMMAND, "--output-format", "json", "--yolo"]
        if params.model:
            args.extend(["-m", params.model])
        args.extend(["-p", prompt])
        return args

    def execute_agent(self, params: CLIAgentParams) -> CLIAgentResult:
        """Run the Gemini CLI once.

        Output that is not JSON is still a success; the raw text becomes the result.

        Raises:
            LLMTimeoutError: If the run exceeds ``params.timeout`` seconds.
        """
        if params.context_content:
            context_path = Path(params.working_dir) / CONTEXT_FILE_NAME
            try:
                SecureFileHandler.atomic_write(context_path, params.context_content, backup=False)
            except OSError as e:
                return CLIAgentResult(
                    success=False,
                    provider=self.name,
                    error=f"Failed to write {CONTEXT_FILE_NAME}: {e}",
                )
            logger.debug(f"Wrote {len(params.context_content)} chars to {context_path}")

        args = self.build_command(params)
        logger.info(f"Executing Gemini CLI in {params.working_dir}")

        start = time.monotonic()
        try:
            completed = subprocess.run(  # nosec B603, B607  # noqa: S603  # Gemini CLI command with validated args
                args,
                cwd=params.working_dir,
                capture_output=True,
                text=True,
                timeout=params.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            logger.error(f"Gemini CLI timed out after {params.timeout}s")
            raise LLMTimeoutError(
                f"Gemini CLI timed out after {params.timeout}s",
                details={"provider": self.name, "timeout": params.timeout},
            ) from e
        except OSError as e:
            logger.error(f"Gemini CLI process error: {e}")
            return CLIAgentResult(
                success=False,
                provider=self.name,
                duration_ms=int((time.monotonic() - start) * 1000),
                error=f"Process error: {e}",
            )

        duration_ms = int((time.monotonic() - start) * 1000)
        stdout = completed.stdout or ""
        stderr = completed.stderr or ""

        if completed.returncode != 0:
            logger.error(f"Gemini CLI exited with code {completed.returncode}")
            return CLIAgentResult(
                success=False,
                provider=self.name,
                duration_ms=duration_ms,
                error=f"CLI exited with code {completed.returncode}: {stderr or stdout}",
                raw_output=stdout,
            )

        try:
            parsed = json.loads(stdout)
        except json.JSONDecodeError:
            logger.warning("Gemini CLI output is not JSON; using raw output as result")
            logger.debug(f"Raw output: {stdout[:RESPONSE_SNIPPET_LENGTH]}")
            return CLIAgentResult(
                success=True,
                provider=self.name,
                result=stdout.strip(),
                duration_ms=duration_ms,
                raw_output=stdout,
            )

        if isinstance(parsed, dict) and parsed.get("error"):
            error = parsed["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            return CLIAgentResult(
                success=False,
                provider=self.name,
                duration_ms=duration_ms,
                error=str(message),
                raw_output=stdout,
            )

        text = parsed.get("response", "") if isinstance(parsed, dict) else ""
        return CLIAgentResult(
            success=True,
            provider=self.name,
            result=str(text or ""),
            duration_ms=duration_ms,
            raw_output=stdout,
        )
