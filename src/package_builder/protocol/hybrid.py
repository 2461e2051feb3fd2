"""Hybrid response protocol.

LLM responses combine a JSON command header with raw file bodies separated by
indexed delimiters, so file content never has to be escaped inside JSON::

    {"command": "APPLY_CODE_CHANGES",
     "files": [{"index": 0, "path": "src/index.ts", "action": "CREATE_OR_OVERWRITE"}]}

    ##---Content-Break-0---##
    export const hello = "world";

The JSON header comes first. Each non-DELETE file operation names the index of
the content block that holds its body.
"""

import json
import logging
import re
from collections.abc import Iterable, Sequence

from json_repair import repair_json

from package_builder.core.models import (
    ContentBlocks,
    FileAction,
    FileOperation,
    ParsedHybridResponse,
)
from package_builder.llm.constants import RESPONSE_SNIPPET_LENGTH
from package_builder.llm.exceptions import LLMParsingError

logger = logging.getLogger(__name__)

CONTENT_BREAK_PREFIX = "##---Content-Break-"
CONTENT_BREAK_SUFFIX = "---##"
CONTENT_BREAK_PATTERN = re.compile(r"##---Content-Break-(\d+)---##")

REPAIR_WARNING = "JSON was malformed and required repair"

_ACTION_DESCRIPTIONS: dict[FileAction, str] = {
    FileAction.CREATE_OR_OVERWRITE: "Replace entire file with content",
    FileAction.INSERT_AT: "Insert content before line N (0-indexed). Requires `line` param.",
    FileAction.REPLACE_LINES: (
        "Replace lines [startLine, endLine] (inclusive, 0-indexed). "
        "Requires `startLine` and `endLine` params."
    ),
    FileAction.APPEND: "Add content to end of file",
    FileAction.DELETE: "Delete the file (no content block needed)",
}

_EXAMPLE_RESPONSE = """### Example Response

```
{
  "command": "APPLY_CODE_CHANGES",
  "files": [
    { "index": 0, "path": "src/index.ts", "action": "CREATE_OR_OVERWRITE" },
    { "index": 1, "path": "src/utils.ts", "action": "INSERT_AT", "line": 5 },
    { "index": 2, "path": "old-file.ts", "action": "DELETE" }
  ]
}

##---Content-Break-0---##
// Full content for src/index.ts
export const hello = "world";

export function greet(name: string) {
  return `Hello, ${name}!`;
}

##---Content-Break-1---##
// This content will be inserted at line 5 of src/utils.ts
function newUtility() {
  return true;
}
```

Note: File at index 2 (DELETE) has no content block."""


def parse_hybrid_response(text: str, attempt_repair: bool = True) -> ParsedHybridResponse:
    """Split an LLM response into its JSON command header and content blocks.

    Args:
        text: Raw response text from the LLM.
        attempt_repair: Try ``json_repair`` when the header is not valid JSON.

    Returns:
        ParsedHybridResponse: Parsed header, content blocks keyed by index and
        any non-fatal warnings.

    Raises:
        LLMParsingError: If the header cannot be parsed (even after repair), or
            is not an object with a string ``command`` field. The error is
            retryable; the caller may re-prompt with corrective instructions.

    Example:
        >>> parsed = parse_hybrid_response(
        ...     '{"command": "RUN_LINT_CHECK"}'
        ... )
        >>> parsed.json["command"], parsed.content_blocks
        ('RUN_LINT_CHECK', {})
    """
    warnings: list[str] = []

    first_break = CONTENT_BREAK_PATTERN.search(text)
    if first_break:
        json_part = text[: first_break.start()]
        content_part = text[first_break.start() :]
    else:
        json_part = text
        content_part = ""

    json_part = clean_json_string(json_part)
    snippet = json_part[:RESPONSE_SNIPPET_LENGTH]

    try:
        payload = json.loads(json_part)
    except json.JSONDecodeError as parse_error:
        if not attempt_repair:
            raise LLMParsingError(
                f"Failed to parse JSON payload: {parse_error}",
                details={"snippet": snippet},
            ) from parse_error

        logger.warning(f"Hybrid response JSON is malformed, attempting repair: {parse_error}")
        try:
            payload = json.loads(repair_json(json_part))
        except (json.JSONDecodeError, ValueError) as repair_error:
            raise LLMParsingError(
                f"Failed to parse JSON even after repair: {parse_error}",
                details={"snippet": snippet},
            ) from repair_error
        warnings.append(REPAIR_WARNING)

    if not isinstance(payload, dict):
        raise LLMParsingError(
            f"Response JSON has invalid format: expected object, got {type(payload).__name__}",
            details={"snippet": snippet},
        )

    if not isinstance(payload.get("command"), str):
        raise LLMParsingError(
            "Response JSON is missing a string 'command' field",
            details={"snippet": snippet},
        )

    content_blocks = extract_content_blocks(content_part, warnings)
    logger.debug(
        f"Parsed hybrid response: command={payload['command']}, "
        f"blocks={sorted(content_blocks)}, warnings={len(warnings)}"
    )
    return ParsedHybridResponse(json=payload, content_blocks=content_blocks, warnings=warnings)


def extract_content_blocks(content_part: str, warnings: list[str] | None = None) -> ContentBlocks:
    """Extract indexed content blocks from the text following the JSON header.

    Each block runs from the end of its marker to the start of the next marker
    (or the end of the text) and is trimmed.

    Args:
        content_part: Text starting at the first content-break marker.
        warnings: Optional list that receives a message for each duplicate index.

    Returns:
        ContentBlocks: Mapping of block index to content. For a duplicated index
        the last occurrence wins.
    """
    blocks: ContentBlocks = {}
    if not content_part.strip():
        return blocks

    markers = list(CONTENT_BREAK_PATTERN.finditer(content_part))
    for position, marker in enumerate(markers):
        index = int(marker.group(1))
        end = markers[position + 1].start() if position + 1 < len(markers) else len(content_part)
        content = content_part[marker.end() : end].strip()

        if index in blocks:
            message = f"Duplicate content block index {index}; using the last occurrence"
            logger.warning(message)
            if warnings is not None:
                warnings.append(message)
        blocks[index] = content

    return blocks


def clean_json_string(json_text: str) -> str:
    """Strip surrounding whitespace and Markdown code fences from a JSON header."""
    cleaned = json_text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[len("```json") :]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def create_content_break(index: int) -> str:
    """Return the delimiter line for a content block index.

    Example:
        >>> create_content_break(2)
        '##---Content-Break-2---##'
    """
    return f"{CONTENT_BREAK_PREFIX}{index}{CONTENT_BREAK_SUFFIX}"


def validate_operations_have_content(
    operations: Iterable[FileOperation], blocks: ContentBlocks
) -> list[str]:
    """Return one error per non-DELETE operation whose content block is missing."""
    errors: list[str] = []
    for op in operations:
        if not op.action.requires_content:
            continue
        if op.index is None or op.index not in blocks:
            errors.append(
                f"Operation at index {op.index} ({op.path}, {op.action.value}) has no content block"
            )
    return errors


def has_content_requiring_actions(operations: Iterable[FileOperation]) -> bool:
    """Return True if any operation needs a content block."""
    return any(op.action.requires_content for op in operations)


def generate_protocol_instructions(
    include_examples: bool = True, actions: Sequence[FileAction] | None = None
) -> str:
    """Build prompt text that teaches the LLM the hybrid response format.

    Args:
        include_examples: Append a worked example response.
        actions: Actions to document. Defaults to all of :class:`FileAction`.

    Returns:
        str: Markdown instructions starting with ``## File Operation Response Format``.
    """
    selected = list(actions) if actions is not None else list(FileAction)

    lines = [
        "## File Operation Response Format",
        "",
        "When applying code changes, use this hybrid format that separates JSON metadata "
        "from file content:",
        "",
        "1. **JSON Payload** - Contains the command and file operation metadata",
        "2. **Content Breaks** - Delimiters that separate file contents, indexed to match JSON",
        "",
        "### Available Actions",
        "",
    ]
    for action in FileAction:
        if action in selected:
            lines.append(f"- `{action.value}` - {_ACTION_DESCRIPTIONS[action]}")

    lines.extend(
        [
            "",
            "### Format Rules",
            "",
            "1. JSON must come first, before any content breaks",
            "2. Each file operation with content needs an `index` that maps to a content break",
            f"3. Content break format: `{CONTENT_BREAK_PREFIX}{{index}}{CONTENT_BREAK_SUFFIX}`",
            "4. DELETE operations don't need content blocks",
            "5. Write file content naturally - no escaping or encoding needed",
        ]
    )

    if include_examples:
        lines.extend(["", _EXAMPLE_RESPONSE])

    return "\n".join(lines)
