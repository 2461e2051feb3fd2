"""Prompt construction for the next-action agent turn.

The prompt is assembled from fixed templates plus four inputs: agent
instructions, the package plan, current codebase context and the action
history. Literal braces in templates are doubled for ``str.format``.
"""

import logging
import math
import re
from dataclasses import dataclass, field

from package_builder.protocol.hybrid import generate_protocol_instructions
from package_builder.validation.package_checks import (
    LICENSE_HEADER,
    REQUIRED_PACKAGE_JSON_FIELDS,
)

logger = logging.getLogger(__name__)

MAX_PROMPT_TOKENS = 100_000
_ABSOLUTE_PATH_PATTERN = re.compile(r"/Users/|/home/|C:\\")

TYPESCRIPT_QUALITY_GUIDELINES = """## CRITICAL: TypeScript Code Quality Requirements

You MUST follow these requirements for ALL code you generate:

### 1. Strict TypeScript Compliance
- **Zero TypeScript errors**: Code MUST compile with strict mode enabled
- **No implicit any**: Every variable, parameter, and return type must be explicitly typed
- **Strict null checks**: Handle undefined/null properly with optional chaining or type guards
- **Target ES2020+**: Use modern JavaScript features

### 2. License Header (REQUIRED on every .ts file)
Every TypeScript file MUST start with this exact header:
```typescript
{license_header}
```

### 3. ESLint Compliance
- No unused variables (remove them or prefix with underscore)
- No @ts-ignore comments
- Use const/let, never var
- Proper async/await handling
- All promises must be awaited or explicitly handled

### 4. Error Handling Pattern (Required)
Use this standard result pattern:
```typescript
interface PackageResult<T = unknown> {{
  success: boolean;
  data?: T;
  error?: string;
}}
```

### 5. Common Mistakes to AVOID
- Missing or incorrect import paths (verify all imports exist)
- Forgetting to export functions/types that are used externally
- Using 'any' type instead of proper typing
- Not handling edge cases in type definitions
- Missing semicolons (required)
- Incorrect async/await usage
- Using require() instead of import statements

### 6. Package.json Requirements
Must include: {package_json_fields}"""

WORKFLOW_INSTRUCTIONS = """Based on the instructions, plan, context, and history, determine the single next command to execute.
Your available commands and the required workflow are:
1.  APPLY_CODE_CHANGES: Write or delete code. Use this for all coding tasks and for fixing errors.
2.  CHECK_LICENSE_HEADERS: After writing code, verify all .ts files have the license header.
3.  VALIDATE_PACKAGE_JSON: After creating/modifying package.json, verify its contents.
4.  RUN_LINT_CHECK: After code and validation passes, check for style issues.
5.  RUN_UNIT_TESTS: After linting passes, verify correctness and test coverage.
6.  PUBLISH_PACKAGE: Only when ALL other steps are complete and verified, run this to publish to NPM.

If the last action was a failed check (validation, lint, test), your next action MUST be 'APPLY_CODE_CHANGES' to fix the reported issues."""

NON_FILE_COMMANDS = """## Non-File Commands (JSON only, no content breaks needed)

For commands that don't write files, just return pure JSON:

```
{"command": "VALIDATE_PACKAGE_JSON"}
```

```
{"command": "CHECK_LICENSE_HEADERS"}
```

```
{"command": "RUN_LINT_CHECK"}
```

```
{"command": "RUN_UNIT_TESTS"}
```

```
{"command": "PUBLISH_PACKAGE"}
```

IMPORTANT: For APPLY_CODE_CHANGES, you MUST use the hybrid format with content breaks.
Write file content naturally after the content break markers - no JSON escaping needed!"""

JSON_FILE_RULES = """## CRITICAL: JSON FILE HANDLING

For all JSON files (package.json, tsconfig.json, *.json):

CORRECT FORMAT:
##---Content-Break-0---##
{
  "compilerOptions": {
    "strict": true
  }
}

INCORRECT FORMAT (DO NOT DO THIS):
##---Content-Break-0---##
```json
{
  "compilerOptions": {
    "strict": true
  }
}
```

RULES FOR JSON FILES:
1. NO markdown code fences (```json or ```) around JSON content
2. NO template literals or backticks anywhere in JSON content
3. Write raw, valid JSON that can be parsed directly by JSON.parse()
4. The content after ##---Content-Break-N---## must be the raw file content only"""

NEXT_ACTION_PROMPT = """{agent_instructions}

{quality_guidelines}

## Package Plan
---
{full_plan}
---

## Current Codebase Context (relevant files)
---
{codebase_context}
---

## Action History (what we've done so far)
---
{action_history}
---

{workflow}

{protocol_instructions}

{non_file_commands}

{json_rules}
"""


@dataclass(frozen=True, slots=True)
class PromptValidation:
    valid: bool
    warnings: list[str] = field(default_factory=list)


def build_quality_guidelines() -> str:
    return TYPESCRIPT_QUALITY_GUIDELINES.format(
        license_header=LICENSE_HEADER,
        package_json_fields=", ".join(REQUIRED_PACKAGE_JSON_FIELDS),
    )


def format_action_history(action_history: list[str]) -> str:
    """Render history as a bullet list; an empty history renders as a single dash."""
    return "- " + "\n- ".join(action_history)


def build_next_action_prompt(
    full_plan: str,
    agent_instructions: str,
    action_history: list[str],
    codebase_context: str,
) -> str:
    """Build the prompt asking the LLM for the single next command.

    Args:
        full_plan: Package plan markdown.
        agent_instructions: Role and behaviour instructions placed first.
        action_history: One line per previous action, oldest first.
        codebase_context: Contents of the files relevant to the next step.

    Returns:
        Prompt text containing the ``Package Plan`` and ``Response Format``
        sections checked by :func:`validate_prompt`.
    """
    prompt = NEXT_ACTION_PROMPT.format(
        agent_instructions=agent_instructions.strip(),
        quality_guidelines=build_quality_guidelines(),
        full_plan=full_plan,
        codebase_context=codebase_context,
        action_history=format_action_history(action_history),
        workflow=WORKFLOW_INSTRUCTIONS,
        protocol_instructions=generate_protocol_instructions(include_examples=True),
        non_file_commands=NON_FILE_COMMANDS,
        json_rules=JSON_FILE_RULES,
    )
    logger.debug(f"Built next-action prompt: ~{estimate_token_count(prompt)} tokens")
    return prompt


def estimate_token_count(prompt: str) -> int:
    """Rough token estimate at four characters per token, rounded up."""
    return math.ceil(len(prompt) / 4)


def validate_prompt(prompt: str) -> PromptValidation:
    """Check a prompt for problems that commonly cause failed turns.

    Example:
        >>> validate_prompt("## Package Plan\\n## Response Format").valid
        True
    """
    warnings: list[str] = []

    token_count = estimate_token_count(prompt)
    if token_count > MAX_PROMPT_TOKENS:
        warnings.append(f"Prompt is very large ({token_count} tokens) - may hit token limits")

    if "Package Plan" not in prompt:
        warnings.append("Prompt missing package plan section")

    if "Response Format" not in prompt:
        warnings.append("Prompt missing response format instructions")

    if _ABSOLUTE_PATH_PATTERN.search(prompt):
        warnings.append("Prompt contains absolute file paths - use relative paths instead")

    return PromptValidation(valid=not warnings, warnings=warnings)
