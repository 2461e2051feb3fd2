"""Agent commands returned by the LLM on each turn.

The LLM chooses exactly one command per call. Commands form a closed set keyed
by the ``command`` string; :func:`parse_agent_command` turns the parsed JSON
header of a hybrid response into one of the dataclasses below and refuses
anything it does not recognise.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, TypeAlias

from package_builder.core.models import FileOperation
from package_builder.llm.exceptions import LLMParsingError, UnrecognizedCommandError

logger = logging.getLogger(__name__)


class CommandType(Enum):
    """Names of the commands the agent may issue."""

    APPLY_CODE_CHANGES = "APPLY_CODE_CHANGES"
    AWAIT_DEPENDENCY = "AWAIT_DEPENDENCY"
    GATHER_CONTEXT_FOR_DEPENDENCY = "GATHER_CONTEXT_FOR_DEPENDENCY"
    VALIDATE_PACKAGE_JSON = "VALIDATE_PACKAGE_JSON"
    CHECK_LICENSE_HEADERS = "CHECK_LICENSE_HEADERS"
    RUN_LINT_CHECK = "RUN_LINT_CHECK"
    RUN_UNIT_TESTS = "RUN_UNIT_TESTS"
    PUBLISH_PACKAGE = "PUBLISH_PACKAGE"


@dataclass(frozen=True, slots=True)
class ApplyCodeChanges:
    """Write, edit or delete files. Bodies live in the response's content blocks."""

    command: ClassVar[CommandType] = CommandType.APPLY_CODE_CHANGES
    files: list[FileOperation] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class AwaitDependency:
    """Pause until another package in the suite has been published."""

    command: ClassVar[CommandType] = CommandType.AWAIT_DEPENDENCY
    package_name: str


@dataclass(frozen=True, slots=True)
class GatherContextForDependency:
    """Fetch registry metadata for a dependency before using it."""

    command: ClassVar[CommandType] = CommandType.GATHER_CONTEXT_FOR_DEPENDENCY
    package_name: str


@dataclass(frozen=True, slots=True)
class ValidatePackageJson:
    command: ClassVar[CommandType] = CommandType.VALIDATE_PACKAGE_JSON


@dataclass(frozen=True, slots=True)
class CheckLicenseHeaders:
    command: ClassVar[CommandType] = CommandType.CHECK_LICENSE_HEADERS


@dataclass(frozen=True, slots=True)
class RunLintCheck:
    command: ClassVar[CommandType] = CommandType.RUN_LINT_CHECK


@dataclass(frozen=True, slots=True)
class RunUnitTests:
    command: ClassVar[CommandType] = CommandType.RUN_UNIT_TESTS


@dataclass(frozen=True, slots=True)
class PublishPackage:
    command: ClassVar[CommandType] = CommandType.PUBLISH_PACKAGE


AgentCommand: TypeAlias = (
    ApplyCodeChanges
    | AwaitDependency
    | GatherContextForDependency
    | ValidatePackageJson
    | CheckLicenseHeaders
    | RunLintCheck
    | RunUnitTests
    | PublishPackage
)

# Commands that carry no payload
_BARE_COMMANDS: dict[CommandType, type[AgentCommand]] = {
    CommandType.VALIDATE_PACKAGE_JSON: ValidatePackageJson,
    CommandType.CHECK_LICENSE_HEADERS: CheckLicenseHeaders,
    CommandType.RUN_LINT_CHECK: RunLintCheck,
    CommandType.RUN_UNIT_TESTS: RunUnitTests,
    CommandType.PUBLISH_PACKAGE: PublishPackage,
}


def parse_agent_command(data: Mapping[str, Any]) -> AgentCommand:
    """Convert a parsed JSON header into a typed agent command.

    Args:
        data: JSON object with a string ``command`` field.

    Returns:
        AgentCommand: The matching command dataclass.

    Raises:
        UnrecognizedCommandError: If ``command`` is not one of :class:`CommandType`.
        LLMParsingError: If a known command is missing its required fields. The
            error is retryable so the caller can re-prompt.
    """
    raw_command = data.get("command")
    try:
        command_type = CommandType(raw_command)
    except ValueError as e:
        raise UnrecognizedCommandError(str(raw_command)) from e

    if command_type is CommandType.APPLY_CODE_CHANGES:
        raw_files = data.get("files", [])
        if not isinstance(raw_files, list):
            raise LLMParsingError(
                "APPLY_CODE_CHANGES 'files' must be an array",
                details={"command": command_type.value},
            )
        files: list[FileOperation] = []
        for position, raw_file in enumerate(raw_files):
            if not isinstance(raw_file, Mapping):
                raise LLMParsingError(
                    f"File operation at position {position} must be an object",
                    details={"command": command_type.value},
                )
            try:
                files.append(FileOperation.from_dict(raw_file))
            except ValueError as e:
                raise LLMParsingError(str(e), details={"command": command_type.value}) from e
        return ApplyCodeChanges(files=files)

    if command_type in (CommandType.AWAIT_DEPENDENCY, CommandType.GATHER_CONTEXT_FOR_DEPENDENCY):
        package_name = data.get("packageName")
        if not isinstance(package_name, str) or not package_name.strip():
            raise LLMParsingError(
                f"{command_type.value} requires a non-empty 'packageName'",
                details={"command": command_type.value},
            )
        if command_type is CommandType.AWAIT_DEPENDENCY:
            return AwaitDependency(package_name=package_name)
        return GatherContextForDependency(package_name=package_name)

    return _BARE_COMMANDS[command_type]()


def command_to_dict(command: AgentCommand) -> dict[str, Any]:
    """Serialize a command back to its wire representation."""
    result: dict[str, Any] = {"command": command.command.value}
    match command:
        case ApplyCodeChanges(files=files):
            result["files"] = [op.to_dict() for op in files]
        case AwaitDependency(package_name=name) | GatherContextForDependency(package_name=name):
            result["packageName"] = name
    return result
