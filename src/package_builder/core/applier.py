"""Apply LLM-requested file operations to a package directory.

Two entry points share the same guarantees:

- every path passes path-safety validation before any filesystem call, and a
  path naming the package root itself is rejected;
- operations run in list order and each one succeeds or fails on its own, so a
  bad file never aborts the rest of the batch.
"""

import logging
from collections.abc import Iterable
from pathlib import Path

from package_builder.core.models import (
    ApplyResult,
    ContentBlocks,
    FailedOperation,
    FileAction,
    FileOperation,
    SimpleApplyResult,
    SimpleFileOperation,
    SimpleOperation,
)
from package_builder.security.path_safety import (
    REASON_PACKAGE_ROOT,
    UnsafePathError,
    validate_path_safety,
)
from package_builder.security.secure_file_handler import SecureFileHandler

logger = logging.getLogger(__name__)


class FileOperationsError(Exception):
    """Raised when a batch of file operations reports one or more errors.

    Attributes:
        errors: One message per failed operation.
        warnings: Non-fatal messages collected while applying the batch.
    """

    def __init__(self, message: str, errors: list[str], warnings: list[str] | None = None) -> None:
        """Initialize with the summary message and the per-operation errors."""
        super().__init__(message)
        self.errors = errors
        self.warnings = warnings or []


class FileApplier:
    """Apply file operations inside a single package root.

    Example:
        >>> applier = FileApplier(Path("/ws/packages/core/utils"))
        >>> result = applier.apply_operations(
        ...     [FileOperation(path="src/index.ts", action=FileAction.CREATE_OR_OVERWRITE, index=0)],
        ...     {0: "export const x = 1;"},
        ... )
        >>> result.files_modified
        ['src/index.ts']
    """

    def __init__(self, package_root: str | Path, create_directories: bool = True) -> None:
        """Initialize the applier.

        Args:
            package_root: Directory every operation must stay inside.
            create_directories: Create missing parent directories before writes.
        """
        self.package_root = Path(package_root)
        self.create_directories = create_directories

    def _ensure_root_usable(self) -> None:
        if self.package_root.exists() and not self.package_root.is_dir():
            raise FileOperationsError(
                f"Package root is not a directory: {self.package_root}",
                errors=[f"Package root is not a directory: {self.package_root}"],
            )

    def _resolve_target(self, path: str) -> Path:
        """Validate ``path`` and return a target strictly below the package root."""
        target = validate_path_safety(path, self.package_root)
        if target.resolve() == self.package_root.resolve():
            raise UnsafePathError(path, REASON_PACKAGE_ROOT)
        return target

    def _write(self, target: Path, content: str) -> None:
        if self.create_directories:
            target.parent.mkdir(parents=True, exist_ok=True)
        SecureFileHandler.atomic_write(target, content)

    def apply_file_changes(self, operations: Iterable[SimpleFileOperation]) -> SimpleApplyResult:
        """Apply create/update/delete operations that carry their content inline.

        Args:
            operations: Operations to apply, in order.

        Returns:
            SimpleApplyResult: Modified paths and one failure entry per bad operation.
                Deleting an absent file is a success and is never a failure.

        Raises:
            FileOperationsError: If the package root exists but is not a directory.
        """
        self._ensure_root_usable()
        result = SimpleApplyResult()

        for op in operations:
            try:
                target = self._resolve_target(op.path)

                if op.operation in (SimpleOperation.CREATE, SimpleOperation.UPDATE):
                    if not op.content:
                        raise ValueError("Content required for create/update operations")
                    self._write(target, op.content)
                    result.modified_files.append(op.path)
                    logger.info(f"{op.operation.value.upper()}: {op.path}")

                elif op.operation is SimpleOperation.DELETE:
                    if SecureFileHandler.safe_delete(target):
                        result.modified_files.append(op.path)
                        logger.info(f"DELETE: {op.path}")
                    else:
                        logger.info(f"DELETE (already absent): {op.path}")

            except (OSError, ValueError) as e:
                result.failed_operations.append(
                    FailedOperation(path=op.path, operation=op.operation.value, error=str(e))
                )
                logger.error(f"FAILED {op.operation.value.upper()}: {op.path} - {e}")

        logger.info(
            f"Completed: {len(result.modified_files)} succeeded, "
            f"{len(result.failed_operations)} failed"
        )
        return result

    def apply_operations(
        self, operations: Iterable[FileOperation], blocks: ContentBlocks
    ) -> ApplyResult:
        """Apply hybrid-protocol operations using bodies from content blocks.

        Args:
            operations: Operations to apply, in order.
            blocks: Content blocks keyed by index.

        Returns:
            ApplyResult: Modified and deleted paths plus warnings and errors.

        Raises:
            FileOperationsError: If the package root exists but is not a directory.
        """
        self._ensure_root_usable()
        result = ApplyResult()

        for op in operations:
            try:
                target = self._resolve_target(op.path)

                if op.action is FileAction.DELETE:
                    if SecureFileHandler.safe_delete(target):
                        result.files_deleted.append(op.path)
                        logger.info(f"DELETE: {op.path}")
                    else:
                        result.warnings.append(
                            f"File already deleted or doesn't exist: {op.path}"
                        )
                    continue

                content = blocks.get(op.index) if op.index is not None else None
                if content is None:
                    result.errors.append(
                        f"Missing content block for index {op.index} ({op.path})"
                    )
                    continue

                new_content = self._render(op, content, target, result)
                self._write(target, new_content)
                result.files_modified.append(op.path)
                logger.info(f"{op.action.value}: {op.path}")

            except (OSError, ValueError) as e:
                result.errors.append(f"Failed to apply {op.action.value} on {op.path}: {e}")
                logger.error(f"{op.action.value} failed for {op.path}: {e}")

        return result

    @staticmethod
    def _render(op: FileOperation, content: str, target: Path, result: ApplyResult) -> str:
        """Compute the new file body for a content-bearing operation."""
        if op.action is FileAction.CREATE_OR_OVERWRITE:
            return content

        existing = SecureFileHandler.read_text_or_empty(target)

        if op.action is FileAction.APPEND:
            return f"{existing}\n{content}" if existing else content

        lines = existing.split("\n")

        if op.action is FileAction.INSERT_AT:
            insert_at = max(0, min(op.line or 0, len(lines)))
            lines.insert(insert_at, content)
            return "\n".join(lines)

        # REPLACE_LINES
        requested_start = op.start_line or 0
        requested_end = op.end_line if op.end_line is not None else requested_start
        start = max(0, requested_start)
        end = min(len(lines) - 1, requested_end)
        if start > end:
            result.warnings.append(
                f"Invalid line range [{requested_start}, {requested_end}] for {op.path}"
            )
            lines.insert(start, content)
        else:
            lines[start : end + 1] = [content]
        return "\n".join(lines)
