"""Data models for the package builder.

This module contains the data classes used to describe file operations requested
by the LLM, the raw content blocks that accompany them, and the aggregated
results of applying a batch of operations to a package directory.

Wire format of a hybrid file operation:
    >>> op = FileOperation.from_dict(
    ...     {"index": 0, "path": "src/index.ts", "action": "CREATE_OR_OVERWRITE"}
    ... )
    >>> op.action
    <FileAction.CREATE_OR_OVERWRITE: 'CREATE_OR_OVERWRITE'>
    >>> op.to_dict()
    {'index': 0, 'path': 'src/index.ts', 'action': 'CREATE_OR_OVERWRITE'}
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias

# Index of a content block mapped to its raw text
ContentBlocks: TypeAlias = dict[int, str]


class FileAction(Enum):
    """Action requested for a single file in the hybrid protocol."""

    CREATE_OR_OVERWRITE = "CREATE_OR_OVERWRITE"
    INSERT_AT = "INSERT_AT"
    REPLACE_LINES = "REPLACE_LINES"
    APPEND = "APPEND"
    DELETE = "DELETE"

    @property
    def requires_content(self) -> bool:
        """Whether the action draws its body from a content block."""
        return self is not FileAction.DELETE


class SimpleOperation(Enum):
    """Operation kinds accepted by the simple (content-inline) file API."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class FileOperation:
    """One file mutation requested by the LLM.

    ``path`` is relative to the package root and is never trusted until it has
    passed path-safety validation. Line numbers are 0-indexed; ``end_line`` is
    inclusive.
    """

    path: str
    action: FileAction
    index: int | None = None
    line: int | None = None
    start_line: int | None = None
    end_line: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FileOperation":
        """Build an operation from its wire representation.

        Args:
            data: Mapping with ``path``, ``action`` and the optional ``index``,
                ``line``, ``startLine`` and ``endLine`` keys.

        Returns:
            FileOperation: The parsed operation.

        Raises:
            ValueError: If ``path`` is missing or ``action`` is not a known action.
        """
        path = data.get("path")
        if not isinstance(path, str):
            raise ValueError(f"File operation requires a string 'path', got {path!r}")

        action_value = data.get("action")
        try:
            action = FileAction(action_value)
        except ValueError as e:
            valid = ", ".join(a.value for a in FileAction)
            raise ValueError(
                f"Invalid action {action_value!r} for {path}. Must be one of: {valid}"
            ) from e

        return cls(
            path=path,
            action=action,
            index=_optional_int(data.get("index"), "index"),
            line=_optional_int(data.get("line"), "line"),
            start_line=_optional_int(data.get("startLine"), "startLine"),
            end_line=_optional_int(data.get("endLine"), "endLine"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire representation, omitting unset fields."""
        result: dict[str, Any] = {}
        if self.index is not None:
            result["index"] = self.index
        result["path"] = self.path
        result["action"] = self.action.value
        if self.line is not None:
            result["line"] = self.line
        if self.start_line is not None:
            result["startLine"] = self.start_line
        if self.end_line is not None:
            result["endLine"] = self.end_line
        return result


@dataclass(frozen=True, slots=True)
class SimpleFileOperation:
    """A file operation carrying its content inline."""

    path: str
    operation: SimpleOperation
    content: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SimpleFileOperation":
        """Build an operation from ``{"path", "operation", "content"}``.

        Raises:
            ValueError: If ``operation`` is not create, update or delete.
        """
        operation_value = data.get("operation")
        try:
            operation = SimpleOperation(operation_value)
        except ValueError as e:
            raise ValueError(
                f"Invalid operation {operation_value!r}. Must be create, update, or delete"
            ) from e
        content = data.get("content")
        return cls(
            path=str(data.get("path", "")),
            operation=operation,
            content=content if isinstance(content, str) else None,
        )


@dataclass(slots=True)
class ParsedHybridResponse:
    """Result of splitting an LLM response into a JSON header and content blocks."""

    json: dict[str, Any]
    content_blocks: ContentBlocks = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ApplyResult:
    """Aggregated outcome of applying hybrid file operations.

    Attributes:
        files_modified: Paths created, overwritten or edited.
        files_deleted: Paths removed from disk.
        warnings: Non-fatal anomalies (clamped ranges, already-absent files).
        errors: One entry per operation that could not be applied.
    """

    files_modified: list[str] = field(default_factory=list)
    files_deleted: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True when no operation recorded an error."""
        return not self.errors

    def to_dict(self) -> dict[str, list[str]]:
        """Return the camelCase dictionary used in activity payloads."""
        return {
            "filesModified": list(self.files_modified),
            "filesDeleted": list(self.files_deleted),
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


@dataclass(frozen=True, slots=True)
class FailedOperation:
    """A simple file operation that could not be applied."""

    path: str
    operation: str
    error: str


@dataclass(slots=True)
class SimpleApplyResult:
    """Outcome of applying simple file operations."""

    modified_files: list[str] = field(default_factory=list)
    failed_operations: list[FailedOperation] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """True when every operation was applied."""
        return not self.failed_operations

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase dictionary used in activity payloads."""
        return {
            "modifiedFiles": list(self.modified_files),
            "failedOperations": [
                {"path": f.path, "operation": f.operation, "error": f.error}
                for f in self.failed_operations
            ],
        }


@dataclass(frozen=True, slots=True)
class PackagePublishStatus:
    """Publish state of a package derived from local and registry versions.

    Recomputed on every validation pass; never persisted.
    """

    package_name: str
    local_version: str
    npm_version: str | None
    is_published: bool
    is_new: bool
    is_update: bool
    needs_publish: bool
    needs_version_bump: bool
    reason: str

    @property
    def classification(self) -> str:
        """Return ``new``, ``update`` or ``unchanged``."""
        if self.is_new:
            return "new"
        if self.is_update:
            return "update"
        return "unchanged"

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase dictionary used in activity payloads."""
        return {
            "packageName": self.package_name,
            "localVersion": self.local_version,
            "npmVersion": self.npm_version,
            "isPublished": self.is_published,
            "isNewPackage": self.is_new,
            "isUpdate": self.is_update,
            "shouldPublish": self.needs_publish,
            "needsVersionBump": self.needs_version_bump,
            "reason": self.reason,
            "classification": self.classification,
        }


def _optional_int(value: object, key: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{key}' must be an integer, got {value!r}")
    return value
