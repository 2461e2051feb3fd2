"""Resumable generation state for turn-based package builds.

A ``GenerationContext`` is persisted after every completed step so a build that
crashes or exhausts its retries can pick up where it stopped. Files live at
``<workspace>/.generation-state/<session_id>.json`` and use the camelCase keys
shared with the orchestrator.
"""

import json
import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

from package_builder.security.secure_file_handler import SecureFileHandler

logger = logging.getLogger(__name__)

STATE_DIR_NAME = ".generation-state"


class GenerationPhase(Enum):
    """Phases of a turn-based build, in execution order."""

    PLANNING = "PLANNING"
    FOUNDATION = "FOUNDATION"
    TYPES = "TYPES"
    CORE_IMPLEMENTATION = "CORE_IMPLEMENTATION"
    ENTRY_POINT = "ENTRY_POINT"
    UTILITIES = "UTILITIES"
    ERROR_HANDLING = "ERROR_HANDLING"
    TESTING = "TESTING"
    DOCUMENTATION = "DOCUMENTATION"
    EXAMPLES = "EXAMPLES"
    INTEGRATION_REVIEW = "INTEGRATION_REVIEW"
    CRITICAL_FIXES = "CRITICAL_FIXES"
    BUILD_VALIDATION = "BUILD_VALIDATION"
    FINAL_POLISH = "FINAL_POLISH"
    MERGE = "MERGE"


@dataclass(frozen=True, slots=True)
class GenerationStep:
    """One completed step of a build."""

    step_number: int
    phase: GenerationPhase
    description: str
    files: list[str] = field(default_factory=list)
    commit: str | None = None
    timestamp: int = 0
    claude_tokens_used: dict[str, int] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "stepNumber": self.step_number,
            "phase": self.phase.value,
            "description": self.description,
            "files": list(self.files),
            "timestamp": self.timestamp,
        }
        if self.commit is not None:
            data["commit"] = self.commit
        if self.claude_tokens_used is not None:
            data["claudeTokensUsed"] = dict(self.claude_tokens_used)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GenerationStep":
        return cls(
            step_number=int(data["stepNumber"]),
            phase=GenerationPhase(data["phase"]),
            description=str(data.get("description", "")),
            files=list(data.get("files") or []),
            commit=data.get("commit"),
            timestamp=int(data.get("timestamp") or 0),
            claude_tokens_used=data.get("claudeTokensUsed"),
        )


@dataclass(frozen=True, slots=True)
class FailureRecovery:
    failed_step: int
    error: str
    retry_count: int = 0


@dataclass(frozen=True, slots=True)
class GenerationContext:
    """Everything needed to resume a build.

    Attributes:
        session_id: Agent session identifier, also the state file name
        current_step_number: Number of the next step to run
        requirements: Quality targets (coverage, integrations) from the plan
        failure_recovery: Set after a failed step, cleared by the next success
    """

    session_id: str
    branch: str
    package_name: str
    package_category: str
    package_path: str
    plan_path: str
    workspace_root: str
    current_phase: GenerationPhase = GenerationPhase.PLANNING
    current_step_number: int = 1
    completed_steps: tuple[GenerationStep, ...] = ()
    requirements: dict[str, Any] = field(default_factory=dict)
    last_successful_commit: str | None = None
    failure_recovery: FailureRecovery | None = None

    def __post_init__(self) -> None:
        if not self.session_id:
            raise ValueError("session_id cannot be empty")
        if self.current_step_number < 1:
            raise ValueError(
                f"current_step_number must be >= 1, got {self.current_step_number}"
            )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sessionId": self.session_id,
            "branch": self.branch,
            "packageName": self.package_name,
            "packageCategory": self.package_category,
            "packagePath": self.package_path,
            "planPath": self.plan_path,
            "workspaceRoot": self.workspace_root,
            "currentPhase": self.current_phase.value,
            "currentStepNumber": self.current_step_number,
            "completedSteps": [step.to_dict() for step in self.completed_steps],
            "requirements": dict(self.requirements),
        }
        if self.last_successful_commit is not None:
            data["lastSuccessfulCommit"] = self.last_successful_commit
        if self.failure_recovery is not None:
            data["failureRecovery"] = {
                "failedStep": self.failure_recovery.failed_step,
                "error": self.failure_recovery.error,
                "retryCount": self.failure_recovery.retry_count,
            }
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GenerationContext":
        """Build a context from its persisted form.

        Raises:
            KeyError: If a required key is missing.
            ValueError: If a phase name or step number is invalid.
        """
        recovery = data.get("failureRecovery")
        return cls(
            session_id=data["sessionId"],
            branch=data.get("branch", ""),
            package_name=data["packageName"],
            package_category=data.get("packageCategory", ""),
            package_path=data["packagePath"],
            plan_path=data.get("planPath", ""),
            workspace_root=data["workspaceRoot"],
            current_phase=GenerationPhase(data.get("currentPhase", "PLANNING")),
            current_step_number=int(data.get("currentStepNumber", 1)),
            completed_steps=tuple(
                GenerationStep.from_dict(step) for step in data.get("completedSteps") or []
            ),
            requirements=dict(data.get("requirements") or {}),
            last_successful_commit=data.get("lastSuccessfulCommit"),
            failure_recovery=(
                FailureRecovery(
                    failed_step=int(recovery["failedStep"]),
                    error=str(recovery["error"]),
                    retry_count=int(recovery.get("retryCount", 0)),
                )
                if recovery
                else None
            ),
        )


def state_file_path(workspace_root: str | Path, session_id: str) -> Path:
    return Path(workspace_root) / STATE_DIR_NAME / f"{session_id}.json"


def save_generation_state(context: GenerationContext) -> Path:
    """Persist a context atomically and return the file path.

    Raises:
        OSError: If the state file cannot be written.
    """
    path = state_file_path(context.workspace_root, context.session_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    SecureFileHandler.atomic_write(path, json.dumps(context.to_dict(), indent=2), backup=False)
    logger.debug(
        f"Saved generation state for {context.package_name} "
        f"(step {context.current_step_number}, phase {context.current_phase.value})"
    )
    return path


def load_generation_state(workspace_root: str | Path, session_id: str) -> GenerationContext | None:
    """Load a persisted context.

    Returns:
        The context, or None if no state exists for this session.

    Raises:
        ValueError: If the state file is corrupt.
    """
    path = state_file_path(workspace_root, session_id)
    if not path.exists():
        logger.info(f"No saved generation state for session {session_id}")
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return GenerationContext.from_dict(data)
    except (json.JSONDecodeError, KeyError, TypeError) as e:
        raise ValueError(f"Corrupt generation state at {path}: {e}") from e


def record_completed_step(
    context: GenerationContext,
    phase: GenerationPhase,
    description: str,
    files: list[str],
    commit: str | None = None,
    tokens_used: dict[str, int] | None = None,
) -> GenerationContext:
    """Return a new context with one more completed step; failure state is cleared."""
    step = GenerationStep(
        step_number=context.current_step_number,
        phase=phase,
        description=description,
        files=list(files),
        commit=commit,
        timestamp=int(time.time() * 1000),
        claude_tokens_used=tokens_used,
    )
    return replace(
        context,
        current_phase=phase,
        current_step_number=context.current_step_number + 1,
        completed_steps=(*context.completed_steps, step),
        last_successful_commit=commit or context.last_successful_commit,
        failure_recovery=None,
    )


def mark_context_failed(context: GenerationContext, error: str) -> GenerationContext:
    """Record a failure of the current step, counting retries of the same step."""
    previous = context.failure_recovery
    retry_count = 0
    if previous is not None and previous.failed_step == context.current_step_number:
        retry_count = previous.retry_count + 1

    logger.warning(
        f"Step {context.current_step_number} of {context.package_name} failed "
        f"(retry {retry_count}): {error}"
    )
    return replace(
        context,
        failure_recovery=FailureRecovery(
            failed_step=context.current_step_number, error=error, retry_count=retry_count
        ),
    )
