"""Unit tests for path and content clean-up in package_builder.protocol.sanitize."""

from pathlib import Path

import pytest

from package_builder.protocol.sanitize import (
    normalize_content,
    normalize_file_path,
    resolve_package_path,
    sanitize_file_content,
)


class TestNormalizeFilePath:
    """Test normalize_file_path prefix stripping."""

    @pytest.mark.parametrize(
        ("file_path", "expected"),
        [
            ("packages/core/utils/src/index.ts", "src/index.ts"),
            ("utils/src/index.ts", "src/index.ts"),
            ("/src/index.ts", "src/index.ts"),
            ("src/index.ts", "src/index.ts"),
            ("packages\\core\\utils\\src\\index.ts", "src/index.ts"),
        ],
    )
    def test_relative_package_path(self, file_path: str, expected: str) -> None:
        assert normalize_file_path(file_path, "packages/core/utils") == expected

    def test_absolute_package_path_uses_packages_portion(self) -> None:
        result = normalize_file_path(
            "packages/core/utils/package.json", "/home/ci/ws/packages/core/utils"
        )
        assert result == "package.json"

    def test_unrelated_prefix_is_kept(self) -> None:
        assert normalize_file_path("other/src/index.ts", "packages/core/utils") == (
            "other/src/index.ts"
        )


class TestSanitizeFileContent:
    """Test sanitize_file_content for JSON bodies."""

    def test_non_json_file_is_untouched(self) -> None:
        content = "```ts\nconst x = 1;\n```"
        assert sanitize_file_content(content, "src/index.ts") == content

    def test_strips_json_fence(self) -> None:
        content = '```json\n{"name": "x"}\n```'
        assert sanitize_file_content(content, "package.json") == '{"name": "x"}'

    def test_strips_plain_fence(self) -> None:
        content = '```\n{"strict": true}\n```\n'
        assert sanitize_file_content(content, "tsconfig.json") == '{"strict": true}'

    def test_strips_single_backticks(self) -> None:
        assert sanitize_file_content('`{"a": 1}`', "a.json") == '{"a": 1}'

    def test_invalid_json_returns_original(self) -> None:
        content = '```json\n{"name": \n```'
        assert sanitize_file_content(content, "package.json") == content

    def test_valid_json_is_returned_stripped(self) -> None:
        assert sanitize_file_content('  {"a": 1}\n', "a.json") == '{"a": 1}'


class TestNormalizeContent:
    """Test normalize_content."""

    def test_crlf_and_trailing_newlines(self) -> None:
        assert normalize_content("a\r\nb\n\n\n") == "a\nb\n"

    def test_adds_missing_newline(self) -> None:
        assert normalize_content("a") == "a\n"

    def test_empty_stays_empty(self) -> None:
        assert normalize_content("") == ""

    @pytest.mark.parametrize("content", ["x\r\n\r\n", "a\nb", "\n\n", "line\n", "a\r", "x\ry\r"])
    def test_idempotent(self, content: str) -> None:
        once = normalize_content(content)
        assert normalize_content(once) == once

    def test_lone_carriage_returns(self) -> None:
        assert normalize_content("x\ry\r") == "x\ny\n"


class TestResolvePackagePath:
    """Test resolve_package_path."""

    def test_relative(self, tmp_path: Path) -> None:
        assert resolve_package_path(tmp_path, "packages/a") == tmp_path / "packages" / "a"

    def test_absolute(self, tmp_path: Path) -> None:
        absolute = tmp_path / "elsewhere"
        assert resolve_package_path("/ws", absolute) == absolute
