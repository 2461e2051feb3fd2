"""Test configuration and fixtures."""

import logging
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from package_builder.protocol.hybrid import create_content_break


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """
    Provide a temporary workspace (monorepo root) for tests.

    Returns:
        Path: Path to the temporary directory provided for the test.
    """
    return tmp_path


@pytest.fixture
def package_dir(temp_workspace: Path) -> Path:
    """
    Provide an existing package directory at ``packages/core/utils`` inside the workspace.

    Returns:
        Path: Absolute path to the package directory.
    """
    path = temp_workspace / "packages" / "core" / "utils"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def hybrid_response() -> Callable[..., str]:
    """
    Build hybrid-protocol response text from a JSON header and content blocks.

    Returns:
        Callable[..., str]: ``make(header, {index: content})`` returning the response text.
    """

    def make(header: str, blocks: dict[int, str] | None = None) -> str:
        parts = [header.strip()]
        for index, content in (blocks or {}).items():
            parts.append(f"{create_content_break(index)}\n{content}")
        return "\n\n".join(parts)

    return make


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """
    Restore root logger handlers and level after each test.

    The CLI calls ``logging.basicConfig(force=True)``, which replaces root
    handlers; restoring them keeps ``caplog`` working in later tests.
    """
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)
