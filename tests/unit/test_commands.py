"""Unit tests for agent command parsing in package_builder.core.commands."""

import pytest

from package_builder.core.commands import (
    ApplyCodeChanges,
    AwaitDependency,
    CommandType,
    GatherContextForDependency,
    PublishPackage,
    RunLintCheck,
    ValidatePackageJson,
    command_to_dict,
    parse_agent_command,
)
from package_builder.core.models import FileAction
from package_builder.llm.exceptions import LLMParsingError, UnrecognizedCommandError


class TestParseAgentCommand:
    """Test parse_agent_command."""

    def test_apply_code_changes(self) -> None:
        command = parse_agent_command(
            {
                "command": "APPLY_CODE_CHANGES",
                "files": [
                    {"index": 0, "path": "src/index.ts", "action": "CREATE_OR_OVERWRITE"},
                    {"index": 1, "path": "old.ts", "action": "DELETE"},
                ],
            }
        )
        assert isinstance(command, ApplyCodeChanges)
        assert [op.action for op in command.files] == [
            FileAction.CREATE_OR_OVERWRITE,
            FileAction.DELETE,
        ]

    def test_apply_code_changes_without_files_is_empty(self) -> None:
        command = parse_agent_command({"command": "APPLY_CODE_CHANGES"})
        assert isinstance(command, ApplyCodeChanges)
        assert command.files == []

    def test_apply_code_changes_rejects_non_list_files(self) -> None:
        with pytest.raises(LLMParsingError, match="must be an array"):
            parse_agent_command({"command": "APPLY_CODE_CHANGES", "files": {"path": "a"}})

    def test_apply_code_changes_rejects_bad_action(self) -> None:
        with pytest.raises(LLMParsingError, match="Invalid action") as exc_info:
            parse_agent_command(
                {"command": "APPLY_CODE_CHANGES", "files": [{"path": "a.ts", "action": "MOVE"}]}
            )
        assert exc_info.value.retryable is True

    @pytest.mark.parametrize(
        ("name", "cls"),
        [
            ("AWAIT_DEPENDENCY", AwaitDependency),
            ("GATHER_CONTEXT_FOR_DEPENDENCY", GatherContextForDependency),
        ],
    )
    def test_dependency_commands_carry_package_name(self, name: str, cls: type) -> None:
        command = parse_agent_command({"command": name, "packageName": "@bernier/core"})
        assert isinstance(command, cls)
        assert command.package_name == "@bernier/core"

    def test_dependency_command_requires_package_name(self) -> None:
        with pytest.raises(LLMParsingError, match="requires a non-empty 'packageName'"):
            parse_agent_command({"command": "AWAIT_DEPENDENCY", "packageName": "  "})

    @pytest.mark.parametrize(
        ("name", "cls"),
        [
            ("VALIDATE_PACKAGE_JSON", ValidatePackageJson),
            ("RUN_LINT_CHECK", RunLintCheck),
            ("PUBLISH_PACKAGE", PublishPackage),
        ],
    )
    def test_bare_commands(self, name: str, cls: type) -> None:
        assert isinstance(parse_agent_command({"command": name}), cls)

    def test_unknown_command_is_rejected(self) -> None:
        with pytest.raises(UnrecognizedCommandError) as exc_info:
            parse_agent_command({"command": "DEPLOY_TO_PROD"})
        assert exc_info.value.command == "DEPLOY_TO_PROD"
        assert isinstance(exc_info.value, LLMParsingError)

    def test_every_command_type_is_parseable(self) -> None:
        for command_type in CommandType:
            data: dict[str, object] = {"command": command_type.value, "packageName": "x"}
            assert parse_agent_command(data).command is command_type


class TestCommandToDict:
    """Test command_to_dict serialization."""

    def test_bare_command(self) -> None:
        assert command_to_dict(RunLintCheck()) == {"command": "RUN_LINT_CHECK"}

    def test_dependency_command(self) -> None:
        assert command_to_dict(AwaitDependency(package_name="@bernier/core")) == {
            "command": "AWAIT_DEPENDENCY",
            "packageName": "@bernier/core",
        }

    def test_apply_code_changes(self) -> None:
        data = {
            "command": "APPLY_CODE_CHANGES",
            "files": [{"index": 0, "path": "src/a.ts", "action": "INSERT_AT", "line": 2}],
        }
        assert command_to_dict(parse_agent_command(data)) == data
