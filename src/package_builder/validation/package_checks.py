"""Static checks run against a generated package directory."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from package_builder.protocol.sanitize import resolve_package_path

logger = logging.getLogger(__name__)

LICENSE_HEADER = (
    "/*\n"
    "Copyright (c) 2025 Bernier LLC\n"
    "\n"
    "This file is licensed to the client under a limited-use license.\n"
    "The client may use and modify this code *only within the scope of the project "
    "it was delivered for*.\n"
    "Redistribution or use in other products or commercial offerings is not permitted "
    "without written consent from Bernier LLC.\n"
    "*/"
)
LICENSE_HEADER_PREFIX = "/*\nCopyright (c) 2025 Bernier LLC"

REQUIRED_PACKAGE_JSON_FIELDS: tuple[str, ...] = (
    "name",
    "version",
    "description",
    "main",
    "types",
    "author",
    "license",
    "files",
    "publishConfig",
)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of a validation check, reported back to the agent as feedback."""

    success: bool
    details: str

    def to_dict(self) -> dict[str, object]:
        return {"success": self.success, "details": self.details}


def validate_package_json(workspace_root: str | Path, package_path: str | Path) -> ValidationResult:
    """Check that ``package.json`` has every field required for publishing.

    A field counts as missing when it is absent or falsy (empty string, empty
    list). Unreadable or malformed files fail the check.
    """
    package_json_path = resolve_package_path(workspace_root, package_path) / "package.json"
    logger.info(f"Validating {package_json_path}")

    try:
        data = json.loads(package_json_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Could not read package.json: {e}")
        return ValidationResult(False, f"Failed to validate package.json: {e}")

    if not isinstance(data, dict):
        return ValidationResult(False, "Failed to validate package.json: expected a JSON object")

    missing = [name for name in REQUIRED_PACKAGE_JSON_FIELDS if not data.get(name)]
    if missing:
        return ValidationResult(False, f"Missing required fields: {', '.join(missing)}")
    return ValidationResult(True, "package.json meets all requirements.")


def check_license_headers(workspace_root: str | Path, package_path: str | Path) -> ValidationResult:
    """Check that every top-level ``src/*.ts`` file starts with the license header.

    Nested directories are not scanned. A package without ``src`` passes with a
    "skipped" message since there is nothing to check yet.
    """
    src_dir = resolve_package_path(workspace_root, package_path) / "src"
    if not src_dir.is_dir():
        logger.warning(f"License header check skipped, no directory at {src_dir}")
        return ValidationResult(True, "License header check skipped (src directory not found)")

    missing: list[str] = []
    for ts_file in sorted(src_dir.glob("*.ts")):
        if not ts_file.is_file():
            continue
        content = ts_file.read_text(encoding="utf-8")
        if not content.replace("\r\n", "\n").startswith(LICENSE_HEADER_PREFIX):
            missing.append(ts_file.name)

    if missing:
        return ValidationResult(False, f"Files missing license header: {', '.join(missing)}")
    return ValidationResult(True, "All source files have the correct license header.")
