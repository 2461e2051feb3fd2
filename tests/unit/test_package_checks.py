"""Unit tests for static package checks in package_builder.validation.package_checks."""

import json
from pathlib import Path

import pytest

from package_builder.validation.package_checks import (
    LICENSE_HEADER,
    REQUIRED_PACKAGE_JSON_FIELDS,
    ValidationResult,
    check_license_headers,
    validate_package_json,
)

PACKAGE_PATH = "packages/core/utils"


def _complete_package_json() -> dict[str, object]:
    return {
        "name": "@bernier/utils",
        "version": "1.0.0",
        "description": "Utilities",
        "main": "dist/index.js",
        "types": "dist/index.d.ts",
        "author": "Bernier LLC",
        "license": "UNLICENSED",
        "files": ["dist"],
        "publishConfig": {"access": "restricted"},
    }


class TestValidatePackageJson:
    """Test validate_package_json."""

    def test_complete(self, temp_workspace: Path, package_dir: Path) -> None:
        (package_dir / "package.json").write_text(json.dumps(_complete_package_json()))
        result = validate_package_json(temp_workspace, PACKAGE_PATH)
        assert result == ValidationResult(True, "package.json meets all requirements.")

    def test_missing_and_empty_fields(self, temp_workspace: Path, package_dir: Path) -> None:
        data = _complete_package_json()
        del data["types"]
        data["files"] = []
        (package_dir / "package.json").write_text(json.dumps(data))

        result = validate_package_json(temp_workspace, PACKAGE_PATH)

        assert result.success is False
        assert result.details == "Missing required fields: types, files"

    def test_missing_file(self, temp_workspace: Path, package_dir: Path) -> None:
        result = validate_package_json(temp_workspace, PACKAGE_PATH)
        assert result.success is False
        assert result.details.startswith("Failed to validate package.json:")

    def test_invalid_json(self, temp_workspace: Path, package_dir: Path) -> None:
        (package_dir / "package.json").write_text("```json\n{}\n```")
        assert validate_package_json(temp_workspace, PACKAGE_PATH).success is False

    def test_required_fields(self) -> None:
        assert "publishConfig" in REQUIRED_PACKAGE_JSON_FIELDS
        assert len(REQUIRED_PACKAGE_JSON_FIELDS) == 9


class TestCheckLicenseHeaders:
    """Test check_license_headers."""

    def test_no_src_directory_is_skipped(self, temp_workspace: Path, package_dir: Path) -> None:
        result = check_license_headers(temp_workspace, PACKAGE_PATH)
        assert result == ValidationResult(
            True, "License header check skipped (src directory not found)"
        )

    def test_all_files_have_header(self, temp_workspace: Path, package_dir: Path) -> None:
        src = package_dir / "src"
        src.mkdir()
        (src / "index.ts").write_text(f"{LICENSE_HEADER}\n\nexport {{}};\n")
        (src / "types.ts").write_text(f"{LICENSE_HEADER}\n".replace("\n", "\r\n"))

        result = check_license_headers(temp_workspace, PACKAGE_PATH)

        assert result.success is True
        assert result.details == "All source files have the correct license header."

    def test_reports_missing_headers_sorted(
        self, temp_workspace: Path, package_dir: Path
    ) -> None:
        src = package_dir / "src"
        src.mkdir()
        (src / "z.ts").write_text("export {};\n")
        (src / "a.ts").write_text("// MIT\nexport {};\n")
        (src / "ok.ts").write_text(LICENSE_HEADER)

        result = check_license_headers(temp_workspace, PACKAGE_PATH)

        assert result.success is False
        assert result.details == "Files missing license header: a.ts, z.ts"

    @pytest.mark.parametrize("name", ["nested/deep.ts", "README.md"])
    def test_only_top_level_ts_files_are_checked(
        self, temp_workspace: Path, package_dir: Path, name: str
    ) -> None:
        target = package_dir / "src" / name
        target.parent.mkdir(parents=True)
        target.write_text("no header")

        assert check_license_headers(temp_workspace, PACKAGE_PATH).success is True

    def test_to_dict(self) -> None:
        assert ValidationResult(False, "x").to_dict() == {"success": False, "details": "x"}
