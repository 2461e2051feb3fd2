"""Path and content clean-up applied to LLM output before it is written.

All functions here are pure and total: they always return a string and never
raise for odd input.
"""

import json
import logging
import re
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)

_JSON_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*\n?([\s\S]*?)\n?```\s*$")


def resolve_package_path(workspace_root: str | Path, package_path: str | Path) -> Path:
    """Return the package directory, joining relative paths onto the workspace root.

    Example:
        >>> resolve_package_path("/ws", "packages/core/utils")
        PosixPath('/ws/packages/core/utils')
        >>> resolve_package_path("/ws", "/abs/pkg")
        PosixPath('/abs/pkg')
    """
    package = Path(package_path)
    if package.is_absolute():
        return package
    return Path(workspace_root) / package


def normalize_file_path(file_path: str, package_path: str) -> str:
    """Strip package-path prefixes the LLM sometimes adds to file paths.

    Prefixes are tried in order: the ``packages/...`` portion of the package
    path, the full package path, the package directory name, and finally a
    single leading ``/``.

    Args:
        file_path: Path as written by the LLM.
        package_path: Package directory, relative or absolute.

    Returns:
        str: Path relative to the package root, with ``/`` separators.

    Example:
        >>> normalize_file_path("packages/core/utils/src/index.ts", "packages/core/utils")
        'src/index.ts'
        >>> normalize_file_path("utils/src/index.ts", "packages/core/utils")
        'src/index.ts'
    """
    normalized_file = file_path.replace("\\", "/")
    normalized_package = package_path.replace("\\", "/").strip("/")

    packages_index = normalized_package.find("packages/")
    if packages_index != -1:
        relative_package = normalized_package[packages_index:]
        if normalized_file.startswith(relative_package + "/"):
            return normalized_file[len(relative_package) + 1 :]

    if normalized_package and normalized_file.startswith(normalized_package + "/"):
        return normalized_file[len(normalized_package) + 1 :]

    package_name = PurePosixPath(normalized_package).name
    if package_name and normalized_file.startswith(package_name + "/"):
        return normalized_file[len(package_name) + 1 :]

    if normalized_file.startswith("/"):
        return normalized_file[1:]

    return normalized_file


def sanitize_file_content(content: str, file_path: str) -> str:
    """Remove Markdown fences and stray backticks from JSON file bodies.

    Only ``.json`` paths are touched. If the cleaned text is still not valid
    JSON the original content is returned unchanged.
    """
    if not file_path.endswith(".json"):
        return content

    sanitized = content.strip()

    match = _JSON_FENCE_PATTERN.match(sanitized)
    if match:
        logger.warning(f"Stripped markdown fences from JSON file: {file_path}")
        sanitized = match.group(1).strip()

    if sanitized.startswith("`") and sanitized.endswith("`") and not sanitized.startswith("```"):
        sanitized = sanitized[1:-1].strip()
        logger.warning(f"Stripped backticks from JSON file: {file_path}")

    try:
        json.loads(sanitized)
    except json.JSONDecodeError:
        logger.warning(f"JSON still invalid after sanitization for {file_path}, returning original")
        return content
    return sanitized


def normalize_content(content: str) -> str:
    """Convert CRLF and lone CR to LF and end non-empty content with one newline.

    Idempotent: ``normalize_content(normalize_content(x)) == normalize_content(x)``.

    Example:
        >>> normalize_content("a\\r\\nb\\n\\n\\n")
        'a\\nb\\n'
        >>> normalize_content("")
        ''
    """
    normalized = content.replace("\r\n", "\n").replace("\r", "\n")
    if normalized:
        normalized = normalized.rstrip("\n") + "\n"
    return normalized
