"""Secure file handling utilities for atomic writes inside a package directory."""

import logging
import os
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


class SecureFileHandler:
    """File operations used by the file applier.

    - Atomic writes through a sibling temporary file, with backup and rollback
    - Idempotent deletion of files (never directories)
    - Tolerant reads that treat a missing file as empty
    """

    @staticmethod
    def atomic_write(file_path: Path, content: str, backup: bool = True) -> None:
        """Write ``content`` to ``file_path`` atomically.

        The content goes to ``<name>.tmp`` first and is then moved over the
        target. An existing target is copied to ``<name>.bak`` and restored if
        the write fails.

        Args:
            file_path: Path to the file to write. Its parent must exist.
            content: UTF-8 text, written verbatim.
            backup: Whether to back up an existing file (default: True).

        Raises:
            OSError: If the file operation fails.
        """
        backup_path: Path | None = None
        temp_file = file_path.with_name(file_path.name + ".tmp")

        try:
            if backup and file_path.exists():
                backup_path = file_path.with_name(file_path.name + ".bak")
                shutil.copy2(file_path, backup_path)

            with open(temp_file, "w", encoding="utf-8", newline="") as f:
                f.write(content)

            temp_file.replace(file_path)

            if backup_path and backup_path.exists():
                backup_path.unlink()

        except OSError as e:
            if temp_file.exists():
                try:
                    temp_file.unlink()
                except OSError as cleanup_error:
                    logger.warning(f"Failed to remove temporary file {temp_file}: {cleanup_error}")

            if backup_path and backup_path.exists():
                try:
                    backup_path.replace(file_path)
                    logger.info(f"Restored backup from {backup_path}")
                except OSError as restore_error:
                    logger.error(f"Failed to restore backup: {restore_error}")

            raise OSError(f"Atomic write failed for {file_path}: {e}") from e

    @staticmethod
    def safe_delete(path: Path) -> bool:
        """Delete a file, treating an absent file as success.

        Directories are never removed. A symlink is unlinked without touching
        its target.

        Args:
            path: File to delete.

        Returns:
            bool: True if the file was removed, False if it did not exist.

        Raises:
            IsADirectoryError: If ``path`` is a directory.
            OSError: If the file exists but cannot be removed.
        """
        if not path.exists() and not path.is_symlink():
            return False

        if path.is_dir() and not path.is_symlink():
            raise IsADirectoryError(f"Refusing to delete directory: {path}")

        os.remove(path)
        return True

    @staticmethod
    def read_text_or_empty(path: Path) -> str:
        """Return a file's UTF-8 text, or an empty string if it does not exist."""
        try:
            with open(path, encoding="utf-8", newline="") as f:
                return f.read()
        except FileNotFoundError:
            return ""
