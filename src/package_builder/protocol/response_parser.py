"""Parser for the JSON-only agent response format.

Older prompts ask the LLM for a single JSON object carrying file bodies inline::

    {"files": [{"path": "src/index.ts", "operation": "create", "content": "..."}],
     "summary": "Created entry point",
     "qualityChecklist": {"strictModeEnabled": true}}

Unknown top-level fields are preserved in :attr:`AgentResponse.extra`.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from package_builder.core.models import SimpleFileOperation, SimpleOperation
from package_builder.llm.exceptions import LLMParsingError
from package_builder.security.path_safety import has_traversal_segment, is_absolute_path

logger = logging.getLogger(__name__)

REQUIRED_QUALITY_CHECKS: tuple[str, ...] = (
    "strictModeEnabled",
    "noAnyTypes",
    "testCoverageAbove80",
    "allPublicFunctionsDocumented",
    "errorHandlingComplete",
)


@dataclass(slots=True)
class AgentResponse:
    """A parsed JSON-only agent response."""

    files: list[SimpleFileOperation]
    summary: str
    quality_checklist: dict[str, Any] | None = None
    questions: list[Any] | None = None
    suggestions: list[Any] | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class QualityCheckResult:
    passed: bool
    warnings: list[str]


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    block_end = stripped.find("```", 3)
    if block_end == -1:
        return stripped
    block = stripped[3:block_end].strip()
    if block.startswith(("json", "JSON")):
        block = block[4:].strip()
    return block


def parse_agent_response(response_text: str) -> AgentResponse:
    """Parse and validate a JSON-only agent response.

    Args:
        response_text: Raw LLM output, optionally wrapped in a ```json fence.

    Returns:
        AgentResponse: Validated response.

    Raises:
        LLMParsingError: If the JSON is invalid, required fields are missing,
            an operation is unknown, content is missing for create/update, or a
            path is absolute or contains a ``..`` segment.
    """
    json_text = _strip_code_fence(response_text)

    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError as e:
        raise LLMParsingError(f"Invalid JSON response from agent: {e}") from e

    if not isinstance(parsed, dict):
        raise LLMParsingError("Response must be a JSON object")

    raw_files = parsed.get("files")
    if not isinstance(raw_files, list):
        raise LLMParsingError('Response missing required "files" array')

    summary = parsed.get("summary")
    if not isinstance(summary, str):
        raise LLMParsingError('Response missing required "summary" string')

    files: list[SimpleFileOperation] = []
    for raw_file in raw_files:
        if not isinstance(raw_file, dict):
            raise LLMParsingError("Invalid file operation: must be an object")

        path = raw_file.get("path")
        if not isinstance(path, str):
            raise LLMParsingError('File operation missing "path" string')

        operation_value = raw_file.get("operation")
        try:
            operation = SimpleOperation(operation_value)
        except ValueError as e:
            raise LLMParsingError(
                f"Invalid operation: {operation_value}. Must be create, update, or delete"
            ) from e

        content = raw_file.get("content")
        if operation is not SimpleOperation.DELETE and not isinstance(content, str):
            raise LLMParsingError(f'File operation "{path}" missing content')

        if has_traversal_segment(path) or is_absolute_path(path):
            raise LLMParsingError(
                f"Invalid file path: {path}. Paths must be relative and not contain '..'",
                retryable=False,
            )

        files.append(
            SimpleFileOperation(
                path=path,
                operation=operation,
                content=content if isinstance(content, str) else None,
            )
        )

    known = {"files", "summary", "qualityChecklist", "questions", "suggestions"}
    checklist = parsed.get("qualityChecklist")
    response = AgentResponse(
        files=files,
        summary=summary,
        quality_checklist=checklist if isinstance(checklist, dict) else None,
        questions=parsed.get("questions") if isinstance(parsed.get("questions"), list) else None,
        suggestions=(
            parsed.get("suggestions") if isinstance(parsed.get("suggestions"), list) else None
        ),
        extra={k: v for k, v in parsed.items() if k not in known},
    )

    logger.info(f"Parsed {len(files)} file operations")
    logger.debug(f"Summary: {summary[:60]}")
    if response.quality_checklist is not None:
        passed = sum(1 for v in response.quality_checklist.values() if v is True)
        logger.info(
            f"Quality checklist: {passed}/{len(response.quality_checklist)} items passed"
        )
    return response


def validate_quality_checklist(response: AgentResponse) -> QualityCheckResult:
    """Check that every required quality item is reported as ``true``."""
    if response.quality_checklist is None:
        return QualityCheckResult(passed=False, warnings=["No quality checklist provided"])

    warnings = [
        f"Quality check failed: {check}"
        for check in REQUIRED_QUALITY_CHECKS
        if response.quality_checklist.get(check) is not True
    ]
    return QualityCheckResult(passed=not warnings, warnings=warnings)


def extract_file_paths(response: AgentResponse) -> dict[str, list[str]]:
    """Group the response's file paths by operation.

    Returns:
        dict: ``{"created": [...], "updated": [...], "deleted": [...]}``.
    """
    grouped: dict[str, list[str]] = {"created": [], "updated": [], "deleted": []}
    keys = {
        SimpleOperation.CREATE: "created",
        SimpleOperation.UPDATE: "updated",
        SimpleOperation.DELETE: "deleted",
    }
    for file_op in response.files:
        grouped[keys[file_op.operation]].append(file_op.path)
    return grouped
