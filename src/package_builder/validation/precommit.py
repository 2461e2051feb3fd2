"""Classification of pre-commit hook failures.

When a hook rejects a commit, the file paths mentioned in its output are
compared with the files the agent just wrote. Errors confined to the agent's
files must be fixed by the agent; errors confined to other files can be
bypassed. Mixed output is treated as the agent's problem.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Literal

logger = logging.getLogger(__name__)

Classification = Literal["generated", "external", "mixed"]

GENERATED_CODE_ERROR_TYPE = "PRE_COMMIT_ERRORS_IN_GENERATED_CODE"

_SOURCE_EXT = r"(?:ts|tsx|js|jsx|json)"

# Order matters only for readability; results are de-duplicated in first-seen order.
ERROR_PATH_PATTERNS: tuple[re.Pattern[str], ...] = (
    # src/file.ts:10:5
    re.compile(rf"([^\s]+\.{_SOURCE_EXT}):\d+"),
    # packages/foo/src/bar.ts(10,5)
    re.compile(rf"([^\s]+\.{_SOURCE_EXT})\(\d+,\d+\)"),
    # "in ./src/file.ts" or "File: file.ts"
    re.compile(rf"(?:in|File:?)\s+([^\s]+\.{_SOURCE_EXT})", re.IGNORECASE),
    # bare paths under a well-known root
    re.compile(rf"((?:src|packages|lib|dist)/[^\s:()]+\.{_SOURCE_EXT})"),
)


@dataclass(frozen=True, slots=True)
class PreCommitClassification:
    """Which reported files belong to the agent's changes."""

    classification: Classification
    errors_in_generated: list[str] = field(default_factory=list)
    errors_in_external: list[str] = field(default_factory=list)

    @property
    def agent_must_fix(self) -> bool:
        return self.classification != "external"


class PreCommitError(Exception):
    """A pre-commit hook rejected files written by the agent.

    Attributes:
        classification: ``generated`` or ``mixed``
        errors_in_generated: Agent-written files named in the hook output
        errors_in_external: Other files named in the hook output
        output: Raw hook output
    """

    def __init__(self, result: PreCommitClassification, output: str) -> None:
        self.classification = result.classification
        self.errors_in_generated = result.errors_in_generated
        self.errors_in_external = result.errors_in_external
        self.output = output

        if result.classification == "mixed":
            summary = (
                "Pre-commit hook failed with mixed errors. "
                f"Errors in our files: [{', '.join(result.errors_in_generated)}]. "
                f"Errors in external files: [{', '.join(result.errors_in_external)}]."
            )
        else:
            summary = (
                "Pre-commit hook failed. Errors found in files generated by AI: "
                f"[{', '.join(result.errors_in_generated)}]."
            )
        super().__init__(
            f"{GENERATED_CODE_ERROR_TYPE}: {summary} Full error:\n{output}\n\n"
            "Please fix the errors in the generated code and try again."
        )


def extract_error_file_paths(error_message: str) -> list[str]:
    """Extract source file paths mentioned in tool output.

    Example:
        >>> extract_error_file_paths("src/index.ts:10:5 - error TS2322")
        ['src/index.ts']
    """
    found: dict[str, None] = {}
    for pattern in ERROR_PATH_PATTERNS:
        for match in pattern.finditer(error_message):
            found.setdefault(match.group(1), None)
    return list(found)


def _strip_dot_slash(path: str) -> str:
    return path[2:] if path.startswith("./") else path


def classify_precommit_errors(
    error_message: str, modified_files: list[str]
) -> PreCommitClassification:
    """Split the files named in hook output into generated and external.

    A reported file belongs to the agent when either path contains the other,
    which tolerates package-relative versus repo-relative spellings.

    Args:
        error_message: Hook output.
        modified_files: Paths written or deleted by the agent.

    Returns:
        PreCommitClassification: ``generated`` when every reported file is the
        agent's, ``external`` when none is, ``mixed`` otherwise (including when
        no path could be extracted).
    """
    modified = [_strip_dot_slash(p) for p in modified_files]
    generated: list[str] = []
    external: list[str] = []

    reported_paths = dict.fromkeys(
        _strip_dot_slash(p) for p in extract_error_file_paths(error_message)
    )
    for reported in reported_paths:
        if any(reported in mine or mine in reported for mine in modified):
            generated.append(reported)
        else:
            external.append(reported)

    if generated and not external:
        classification: Classification = "generated"
    elif external and not generated:
        classification = "external"
    else:
        classification = "mixed"

    logger.info(
        f"Pre-commit errors classified as {classification}: "
        f"generated={generated}, external={external}"
    )
    return PreCommitClassification(classification, generated, external)


def raise_for_precommit_failure(
    error_message: str, modified_files: list[str]
) -> PreCommitClassification:
    """Classify hook output and raise if the agent must fix it.

    Returns:
        The classification when the errors are all external and can be bypassed.

    Raises:
        PreCommitError: For ``generated`` and ``mixed`` failures.
    """
    result = classify_precommit_errors(error_message, modified_files)
    if result.agent_must_fix:
        logger.error(f"Pre-commit errors in generated code: {result.errors_in_generated}")
        raise PreCommitError(result, error_message)
    logger.warning(
        f"Pre-commit errors are in external files only: {', '.join(result.errors_in_external)}"
    )
    return result
