"""Unit tests for the hybrid response protocol in package_builder.protocol.hybrid."""

from collections.abc import Callable

import pytest

from package_builder.core.models import FileAction, FileOperation
from package_builder.llm.exceptions import LLMParsingError
from package_builder.protocol.hybrid import (
    REPAIR_WARNING,
    clean_json_string,
    create_content_break,
    extract_content_blocks,
    generate_protocol_instructions,
    has_content_requiring_actions,
    parse_hybrid_response,
    validate_operations_have_content,
)

APPLY_HEADER = """{
  "command": "APPLY_CODE_CHANGES",
  "files": [
    {"index": 0, "path": "src/index.ts", "action": "CREATE_OR_OVERWRITE"},
    {"index": 1, "path": "package.json", "action": "CREATE_OR_OVERWRITE"},
    {"index": 2, "path": "old.ts", "action": "DELETE"}
  ]
}"""


class TestParseHybridResponse:
    """Test parse_hybrid_response."""

    def test_json_only_response(self) -> None:
        parsed = parse_hybrid_response('{"command": "RUN_LINT_CHECK"}')
        assert parsed.json == {"command": "RUN_LINT_CHECK"}
        assert parsed.content_blocks == {}
        assert parsed.warnings == []

    def test_header_and_blocks(self, hybrid_response: Callable[..., str]) -> None:
        text = hybrid_response(
            APPLY_HEADER,
            {
                0: 'export const hello = "world";\n',
                1: '{\n  "name": "@bernier/utils"\n}',
            },
        )
        parsed = parse_hybrid_response(text)

        assert parsed.json["command"] == "APPLY_CODE_CHANGES"
        assert len(parsed.json["files"]) == 3
        assert parsed.content_blocks == {
            0: 'export const hello = "world";',
            1: '{\n  "name": "@bernier/utils"\n}',
        }

    def test_content_is_not_json_escaped(self, hybrid_response: Callable[..., str]) -> None:
        body = 'const s = "quote" + `template ${x}` + "\\n";'
        parsed = parse_hybrid_response(hybrid_response(APPLY_HEADER, {0: body}))
        assert parsed.content_blocks[0] == body

    def test_header_in_code_fence(self) -> None:
        parsed = parse_hybrid_response('```json\n{"command": "RUN_UNIT_TESTS"}\n```')
        assert parsed.json == {"command": "RUN_UNIT_TESTS"}

    def test_malformed_header_is_repaired(self) -> None:
        parsed = parse_hybrid_response('{"command": "RUN_LINT_CHECK",}')
        assert parsed.json["command"] == "RUN_LINT_CHECK"
        assert REPAIR_WARNING in parsed.warnings

    def test_malformed_header_without_repair_raises(self) -> None:
        with pytest.raises(LLMParsingError, match="Failed to parse JSON payload") as exc_info:
            parse_hybrid_response('{"command": "RUN_LINT_CHECK",}', attempt_repair=False)
        assert exc_info.value.retryable is True
        assert "snippet" in exc_info.value.details

    def test_non_object_header_raises(self) -> None:
        with pytest.raises(LLMParsingError, match="expected object, got list"):
            parse_hybrid_response('["RUN_LINT_CHECK"]')

    def test_missing_command_raises(self) -> None:
        with pytest.raises(LLMParsingError, match="missing a string 'command'"):
            parse_hybrid_response('{"files": []}')

    def test_duplicate_block_index_last_wins(self) -> None:
        text = (
            '{"command": "APPLY_CODE_CHANGES", "files": []}\n'
            f"{create_content_break(0)}\nfirst\n"
            f"{create_content_break(0)}\nsecond\n"
        )
        parsed = parse_hybrid_response(text)
        assert parsed.content_blocks == {0: "second"}
        assert any("Duplicate content block index 0" in w for w in parsed.warnings)


class TestContentBlocks:
    """Test content block helpers."""

    def test_create_content_break(self) -> None:
        assert create_content_break(7) == "##---Content-Break-7---##"

    def test_extract_empty(self) -> None:
        assert extract_content_blocks("   \n") == {}

    def test_extract_blocks_are_trimmed(self) -> None:
        text = f"{create_content_break(3)}\n\n  body  \n\n{create_content_break(4)}\nnext"
        assert extract_content_blocks(text) == {3: "body", 4: "next"}

    def test_clean_json_string_strips_fences(self) -> None:
        assert clean_json_string('  ```\n{"a": 1}\n```  ') == '{"a": 1}'

    def test_validate_operations_have_content(self) -> None:
        operations = [
            FileOperation(path="a.ts", action=FileAction.CREATE_OR_OVERWRITE, index=0),
            FileOperation(path="b.ts", action=FileAction.APPEND, index=1),
            FileOperation(path="c.ts", action=FileAction.DELETE, index=2),
        ]
        errors = validate_operations_have_content(operations, {0: "x"})
        assert errors == ["Operation at index 1 (b.ts, APPEND) has no content block"]

    def test_has_content_requiring_actions(self) -> None:
        delete_only = [FileOperation(path="c.ts", action=FileAction.DELETE)]
        assert has_content_requiring_actions(delete_only) is False
        assert has_content_requiring_actions(
            [*delete_only, FileOperation(path="a.ts", action=FileAction.APPEND, index=0)]
        )


class TestProtocolInstructions:
    """Test generate_protocol_instructions."""

    def test_documents_every_action_and_marker(self) -> None:
        text = generate_protocol_instructions()
        assert text.startswith("## File Operation Response Format")
        for action in FileAction:
            assert f"`{action.value}`" in text
        assert "##---Content-Break-0---##" in text
        assert "### Example Response" in text

    def test_without_examples_and_with_subset(self) -> None:
        text = generate_protocol_instructions(
            include_examples=False, actions=[FileAction.CREATE_OR_OVERWRITE]
        )
        assert "### Example Response" not in text
        assert "`CREATE_OR_OVERWRITE`" in text
        assert "`REPLACE_LINES`" not in text
