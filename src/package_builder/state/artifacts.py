"""On-disk artifacts written alongside a package build.

Layout, relative to the package directory::

    .claude/logs/<workflowId>-task-<taskId>-<seq>.jsonl
    .claude/validation-errors/<workflowId>-task-<taskId>-errors.json
    audit_trace.jsonl
"""

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

ARTIFACT_DIR_NAME = ".claude"
AUDIT_TRACE_FILE_NAME = "audit_trace.jsonl"


def task_log_path(base_dir: str | Path, workflow_id: str, task_id: str, sequence: int) -> Path:
    """Return the JSONL log path for one attempt of a task."""
    file_name = f"{workflow_id}-task-{task_id}-{sequence}.jsonl"
    return Path(base_dir) / ARTIFACT_DIR_NAME / "logs" / file_name


def validation_errors_path(base_dir: str | Path, workflow_id: str, task_id: str) -> Path:
    return (
        Path(base_dir)
        / ARTIFACT_DIR_NAME
        / "validation-errors"
        / f"{workflow_id}-task-{task_id}-errors.json"
    )


def append_log_entry(path: Path, entry: dict[str, Any]) -> None:
    """Append one JSON object as a line, adding a ``timestamp`` if absent.

    Raises:
        OSError: If the file cannot be written.
        TypeError: If the entry is not JSON-serialisable.
    """
    record = {"timestamp": datetime.now(UTC).isoformat(), **entry}
    line = json.dumps(record, separators=(",", ":"))
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(line + "\n")


def read_log_entries(path: Path) -> list[dict[str, Any]]:
    """Read a JSONL file. Lines that are not JSON objects are skipped with a warning."""
    if not path.exists():
        return []

    entries: list[dict[str, Any]] = []
    for line_no, line in enumerate(path.read_text(encoding="utf-8").splitlines(), start=1):
        if not line.strip():
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping malformed line {line_no} in {path}: {e}")
            continue
        if isinstance(record, dict):
            entries.append(record)
    return entries


def write_validation_errors(
    path: Path, errors: list[str], details: dict[str, Any] | None = None
) -> Path:
    """Write the errors of a failed validation for the next agent turn to read."""
    payload = {
        "timestamp": datetime.now(UTC).isoformat(),
        "errorCount": len(errors),
        "errors": list(errors),
        **(details or {}),
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    logger.info(f"Wrote {len(errors)} validation errors to {path}")
    return path


def log_audit_entry(
    base_dir: str | Path,
    workflow_run_id: str,
    step_name: str,
    validation_status: str = "N/A",
    cost_usd: float = 0.0,
    **extra: Any,  # noqa: ANN401
) -> Path:
    """Append a cost/validation record to ``audit_trace.jsonl``.

    Args:
        base_dir: Package directory.
        workflow_run_id: Workflow run the step belongs to.
        step_name: Step identifier.
        validation_status: ``pass``, ``fail`` or ``N/A``.
        cost_usd: Provider-reported cost.
        **extra: Optional fields such as ``provider``, ``model``, ``session_id``
            or ``files_modified``.

    Raises:
        ValueError: If validation_status is not one of the allowed values.
    """
    if validation_status not in ("pass", "fail", "N/A"):
        raise ValueError(f"Invalid validation_status: {validation_status}")

    path = Path(base_dir) / AUDIT_TRACE_FILE_NAME
    append_log_entry(
        path,
        {
            "workflow_run_id": workflow_run_id,
            "step_name": step_name,
            "cost_usd": cost_usd,
            "validation_status": validation_status,
            **{k: v for k, v in extra.items() if v is not None},
        },
    )
    return path
