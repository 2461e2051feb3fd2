"""Path safety validation for LLM-supplied file paths.

Every path written, edited or deleted on behalf of the LLM must pass
:func:`check_path_safety` before any filesystem call is made. The rules run in
a fixed order and the first failing rule decides the reason:

1. empty or whitespace-only
2. contains a null byte
3. absolute (POSIX root, UNC/backslash root or a drive letter)
4. contains a ``..`` segment
5. resolves outside the package root (also catches symlink escapes)

Rules 1 to 4 only inspect the string. Rule 5 is the authoritative containment
check.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

REASON_EMPTY = "empty path"
REASON_NULL_BYTE = "unsafe path: null byte"
REASON_ABSOLUTE = "absolute paths not allowed"
REASON_TRAVERSAL = "path traversal"
REASON_ESCAPES = "escapes package directory"
REASON_PACKAGE_ROOT = "targets the package root itself"

_DRIVE_LETTER_PATTERN = re.compile(r"^[A-Za-z]:")
_SEPARATOR_PATTERN = re.compile(r"[\\/]")


class UnsafePathError(ValueError):
    """Raised when a path fails path-safety validation."""

    def __init__(self, path: str, reason: str) -> None:
        """Initialize with the rejected path and the rule that rejected it."""
        super().__init__(f"Unsafe path {path!r}: {reason}")
        self.path = path
        self.reason = reason


@dataclass(frozen=True, slots=True)
class PathCheck:
    """Outcome of a path-safety check. ``reason`` is None when the path is safe."""

    safe: bool
    reason: str | None = None


def is_absolute_path(path: str) -> bool:
    """Return True for POSIX, backslash-rooted and drive-letter paths."""
    return path.startswith(("/", "\\")) or bool(_DRIVE_LETTER_PATTERN.match(path))


def has_traversal_segment(path: str) -> bool:
    """Return True if any ``/`` or ``\\`` separated segment is exactly ``..``."""
    return ".." in _SEPARATOR_PATTERN.split(path)


def check_path_safety(path: str, package_root: str | Path) -> PathCheck:
    """Check whether a relative path is safe to touch inside ``package_root``.

    Args:
        path: Candidate path relative to the package root.
        package_root: Directory all operations must stay inside. It need not exist.

    Returns:
        PathCheck: ``safe=True`` or the first rule that rejected the path.

    Example:
        >>> check_path_safety("src/index.ts", "/tmp/pkg")
        PathCheck(safe=True, reason=None)
        >>> check_path_safety("../../etc/passwd", "/tmp/pkg").reason
        'path traversal'
    """
    if not path or not path.strip():
        return PathCheck(False, REASON_EMPTY)

    if "\0" in path:
        return PathCheck(False, REASON_NULL_BYTE)

    if is_absolute_path(path):
        return PathCheck(False, REASON_ABSOLUTE)

    if has_traversal_segment(path):
        return PathCheck(False, REASON_TRAVERSAL)

    try:
        root = Path(package_root).resolve()
        resolved = (root / path.replace("\\", "/")).resolve(strict=False)
    except (OSError, RuntimeError, ValueError) as e:
        logger.warning(f"Failed to resolve {path!r} against {package_root}: {e}")
        return PathCheck(False, REASON_ESCAPES)

    if not resolved.is_relative_to(root):
        return PathCheck(False, REASON_ESCAPES)

    return PathCheck(True)


def validate_path_safety(path: str, package_root: str | Path) -> Path:
    """Validate a path and return its absolute location inside ``package_root``.

    Raises:
        UnsafePathError: If any safety rule rejects the path.
    """
    result = check_path_safety(path, package_root)
    if not result.safe:
        logger.warning(f"Rejected unsafe path {path!r}: {result.reason}")
        raise UnsafePathError(path, result.reason or REASON_ESCAPES)
    return Path(package_root).resolve() / path.replace("\\", "/")
