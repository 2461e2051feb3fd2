"""Agent activities invoked by the build orchestrator.

Each function is one unit of work: it takes plain inputs, touches the LLM, the
filesystem or the npm registry, and either returns a result or raises an
exception whose type tells the orchestrator whether a retry can help:

    LLMRateLimitError      retry after ``retry_after_seconds``
    LLMParsingError        retry when ``retryable`` is True
    LLMConfigurationError  never retry
    FileOperationsError    never retry; feed the errors back to the agent
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import requests

from package_builder.core.applier import FileApplier, FileOperationsError
from package_builder.core.commands import (
    AgentCommand,
    ApplyCodeChanges,
    command_to_dict,
    parse_agent_command,
)
from package_builder.core.models import (
    ContentBlocks,
    FileOperation,
    SimpleApplyResult,
    SimpleFileOperation,
)
from package_builder.llm.config import RateLimitConfig
from package_builder.llm.constants import MAX_LOGGED_RESPONSE_LENGTH, RESPONSE_SNIPPET_LENGTH
from package_builder.llm.exceptions import (
    LLMAPIError,
    LLMAuthenticationError,
    LLMParsingError,
    LLMRateLimitError,
)
from package_builder.llm.providers.base import LLMProvider
from package_builder.llm.rate_limit import compute_retry_delay, is_rate_limit_error
from package_builder.prompts.builder import build_next_action_prompt, validate_prompt
from package_builder.protocol.hybrid import parse_hybrid_response
from package_builder.protocol.sanitize import (
    normalize_content,
    normalize_file_path,
    resolve_package_path,
    sanitize_file_content,
)
from package_builder.security.path_safety import validate_path_safety
from package_builder.validation.publish_status import fetch_registry_metadata

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 8192


class PackageNotAvailableError(Exception):
    """A dependency is not on the npm registry yet; the orchestrator should wait and retry."""

    def __init__(self, package_name: str) -> None:
        super().__init__(f"Package {package_name} not found in npm registry. Waiting...")
        self.package_name = package_name


@dataclass(frozen=True, slots=True)
class DetermineNextActionInput:
    full_plan: str
    agent_instructions: str
    action_history: list[str] = field(default_factory=list)
    current_codebase_context: str = ""


@dataclass(frozen=True, slots=True)
class NextActionResult:
    """The command chosen by the LLM plus the content blocks that came with it."""

    command: AgentCommand
    content_blocks: ContentBlocks = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        # JSON object keys are strings; the orchestrator converts them back.
        return {
            "command": command_to_dict(self.command),
            "contentBlocks": {str(k): v for k, v in self.content_blocks.items()},
        }


@dataclass(frozen=True, slots=True)
class ApplyCodeChangesInput:
    workspace_root: str | Path
    package_path: str
    files: list[FileOperation]
    content_blocks: ContentBlocks
    normalize: bool = False


@dataclass(frozen=True, slots=True)
class ApplyCodeChangesOutput:
    files_modified: list[str]
    content_warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"filesModified": self.files_modified, "contentWarnings": self.content_warnings}


def _truncate_for_log(text: str) -> str:
    if len(text) <= MAX_LOGGED_RESPONSE_LENGTH:
        return text
    return f"{text[:MAX_LOGGED_RESPONSE_LENGTH]}...[truncated, total {len(text)} chars]"


def determine_next_action(
    action_input: DetermineNextActionInput,
    provider: LLMProvider,
    max_tokens: int = DEFAULT_MAX_TOKENS,
    rate_limit: RateLimitConfig | None = None,
) -> NextActionResult:
    """Ask the LLM for the single next command.

    Args:
        action_input: Plan, instructions, history and codebase context.
        provider: API provider used for the call.
        max_tokens: Response token budget.
        rate_limit: Retry-delay settings for rate-limit failures.

    Returns:
        NextActionResult: Parsed command and content blocks.

    Raises:
        LLMConfigurationError: Missing API key or similar; not retryable.
        LLMAuthenticationError: Invalid credentials; not retryable.
        LLMRateLimitError: Quota exceeded, with ``retry_after_seconds`` set.
        LLMParsingError: Empty or malformed response. Empty responses are not
            retryable, format problems are.
    """
    prompt = build_next_action_prompt(
        full_plan=action_input.full_plan,
        agent_instructions=action_input.agent_instructions,
        action_history=action_input.action_history,
        codebase_context=action_input.current_codebase_context,
    )
    check = validate_prompt(prompt)
    for warning in check.warnings:
        logger.warning(f"Prompt check: {warning}")

    provider_name = getattr(provider, "name", type(provider).__name__)
    logger.info(f"Determining next action with {provider_name} (hybrid protocol)")

    try:
        response_text = provider.generate(prompt, max_tokens=max_tokens)
    except LLMRateLimitError as e:
        if e.retry_after_seconds is not None:
            raise
        delay = compute_retry_delay(str(e), rate_limit)
        raise LLMRateLimitError(
            f"{e} (retry in {delay}s)", retry_after_seconds=delay, details=e.details
        ) from e
    except LLMAuthenticationError:
        raise
    except LLMAPIError as e:
        if not is_rate_limit_error(str(e)):
            raise
        delay = compute_retry_delay(str(e), rate_limit)
        logger.warning(f"{provider_name} rate limited, retry in {delay}s")
        raise LLMRateLimitError(
            f"{provider_name} API rate limited (429). Will retry in {delay}s. Original: {e}",
            retry_after_seconds=delay,
            details=e.details,
        ) from e

    if not response_text or not response_text.strip():
        raise LLMParsingError(
            f"{provider_name} failed to provide a command.",
            retryable=False,
            details={"provider": provider_name},
        )

    logger.info(f"Raw response (hybrid protocol):\n{_truncate_for_log(response_text)}")

    try:
        parsed = parse_hybrid_response(response_text, attempt_repair=True)
        command = parse_agent_command(parsed.json)
    except LLMParsingError as e:
        logger.error(
            f"Hybrid protocol parsing failed: {e} "
            f"(length={len(response_text)}, "
            f"start={response_text[:RESPONSE_SNIPPET_LENGTH]!r}, "
            f"end={response_text[-RESPONSE_SNIPPET_LENGTH:]!r})"
        )
        raise

    if parsed.warnings:
        logger.warning(f"Hybrid protocol parsing warnings: {', '.join(parsed.warnings)}")

    logger.info(f"Agent chose command: {command.command.value}")
    if isinstance(command, ApplyCodeChanges):
        logger.info(
            f"File operations: {len(command.files)} files, "
            f"content blocks: {len(parsed.content_blocks)}"
        )

    return NextActionResult(
        command=command, content_blocks=parsed.content_blocks, warnings=parsed.warnings
    )


def apply_code_changes(changes: ApplyCodeChangesInput) -> ApplyCodeChangesOutput:
    """Apply a hybrid-protocol batch to a package directory.

    File paths are normalised against the package path and JSON bodies are
    cleaned of Markdown fences before anything is written.

    Returns:
        ApplyCodeChangesOutput: Modified and deleted paths plus warnings.

    Raises:
        FileOperationsError: If any operation failed. Successful operations
            in the same batch are still applied.
    """
    package_root = resolve_package_path(changes.workspace_root, changes.package_path)
    logger.info(f"Applying {len(changes.files)} file operations to {package_root}")

    files: list[FileOperation] = []
    for op in changes.files:
        normalized_path = normalize_file_path(op.path, changes.package_path)
        if normalized_path != op.path:
            logger.info(f"Normalized file path: {op.path!r} -> {normalized_path!r}")
            op = FileOperation(
                path=normalized_path,
                action=op.action,
                index=op.index,
                line=op.line,
                start_line=op.start_line,
                end_line=op.end_line,
            )
        files.append(op)

    path_by_index = {op.index: op.path for op in files if op.index is not None}
    blocks: ContentBlocks = {}
    for index, content in changes.content_blocks.items():
        target_path = path_by_index.get(index)
        if target_path is not None:
            content = sanitize_file_content(content, target_path)
        if changes.normalize:
            content = normalize_content(content)
        blocks[index] = content

    result = FileApplier(package_root, create_directories=True).apply_operations(files, blocks)

    logger.info(
        f"File operations complete: {len(result.files_modified)} modified, "
        f"{len(result.files_deleted)} deleted"
    )
    for warning in result.warnings:
        logger.warning(f"File operation warning: {warning}")

    if result.errors:
        for error in result.errors:
            logger.error(f"File operation error: {error}")
        raise FileOperationsError(
            f"File operations had errors: {'; '.join(result.errors)}",
            errors=result.errors,
            warnings=result.warnings,
        )

    return ApplyCodeChangesOutput(
        files_modified=[*result.files_modified, *result.files_deleted],
        content_warnings=list(result.warnings),
    )


def apply_file_changes(
    workspace_root: str | Path, package_path: str, operations: list[SimpleFileOperation]
) -> SimpleApplyResult:
    """Apply create/update/delete operations with inline content."""
    package_root = resolve_package_path(workspace_root, package_path)
    logger.info(f"Applying {len(operations)} file operations to {package_root}")
    return FileApplier(package_root).apply_file_changes(operations)


def get_file_content(workspace_root: str | Path, package_path: str, file_path: str) -> str:
    """Return a file's content, or a ``// File not found`` placeholder.

    Raises:
        UnsafePathError: If ``file_path`` escapes the package.
    """
    package_root = resolve_package_path(workspace_root, package_path)
    target = validate_path_safety(file_path, package_root)
    logger.info(f"Fetching content for: {file_path}")
    try:
        return target.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Could not read file {file_path}: {e}")
        return f"// File not found: {file_path}"


def gather_dependency_context(package_name: str, session: requests.Session | None = None) -> str:
    """Summarise a published dependency for inclusion in a prompt.

    Registry failures are reported in the returned text rather than raised, so
    the agent can decide to wait for the dependency instead.
    """
    logger.info(f"Gathering context for dependency: {package_name}")
    try:
        data = fetch_registry_metadata(package_name, session, version="latest")
    except requests.RequestException as e:
        logger.warning(f"Registry lookup failed for {package_name}: {e}")
        return f"Could not gather context for {package_name}: {e}"

    if data is None:
        return f"Could not gather context for {package_name}: not found in npm registry"

    return "\n".join(
        [
            f"Package: {data.get('name', package_name)}",
            f"Version: {data.get('version', 'unknown')}",
            f"Description: {data.get('description') or 'No description'}",
            f"Main: {data.get('main') or 'No main file'}",
            f"Types: {data.get('types') or 'No types'}",
        ]
    )


def check_for_npm_package(package_name: str, session: requests.Session | None = None) -> None:
    """Succeed only once the package has a published ``latest`` version.

    Raises:
        PackageNotAvailableError: If the registry does not have it yet or
            cannot be reached.
    """
    logger.info(f"Checking if {package_name} is available on npm...")
    try:
        data = fetch_registry_metadata(package_name, session, version="latest")
    except requests.RequestException as e:
        logger.warning(f"Registry lookup failed for {package_name}: {e}")
        raise PackageNotAvailableError(package_name) from e

    if data is None or not data.get("version"):
        raise PackageNotAvailableError(package_name)
    logger.info(f"Package {package_name} is available at {data['version']}")
