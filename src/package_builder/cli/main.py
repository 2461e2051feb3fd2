"""Command-line interface for package-builder."""

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import requests
from rich.console import Console
from rich.table import Table

from package_builder import __version__
from package_builder.activities.agent import (
    ApplyCodeChangesInput,
    DetermineNextActionInput,
    apply_code_changes,
    determine_next_action,
)
from package_builder.cli.error_handler import handle_llm_errors
from package_builder.config.exceptions import ConfigError
from package_builder.config.runtime_config import RuntimeConfig
from package_builder.core.applier import FileOperationsError
from package_builder.core.commands import ApplyCodeChanges, command_to_dict, parse_agent_command
from package_builder.llm.factory import create_api_provider_from_config, create_cli_registry
from package_builder.llm.providers.base import CLIAgentParams
from package_builder.llm.rate_limit import (
    compute_retry_delay,
    is_rate_limit_error,
    parse_retry_delay,
)
from package_builder.prompts.builder import build_next_action_prompt, validate_prompt
from package_builder.protocol.hybrid import parse_hybrid_response
from package_builder.security.path_safety import check_path_safety
from package_builder.validation.package_checks import check_license_headers, validate_package_json
from package_builder.validation.precommit import classify_precommit_errors
from package_builder.validation.publish_status import (
    validate_dependency_tree_publish_status,
    validate_package_publish_status,
)

console = Console()
logger = logging.getLogger(__name__)


def _configure_logging(runtime_config: RuntimeConfig) -> None:
    log_handler = (
        logging.FileHandler(runtime_config.log_file)
        if runtime_config.log_file
        else logging.StreamHandler()
    )
    logging.basicConfig(
        level=getattr(logging, runtime_config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[log_handler],
        force=True,
    )


def _read_input(path: str) -> str:
    """Read a file, or stdin when the path is ``-``."""
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _config(ctx: click.Context) -> RuntimeConfig:
    config: RuntimeConfig = ctx.obj["config"]
    return config


def _print_json(data: Any) -> None:  # noqa: ANN401
    console.print_json(json.dumps(data))


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML or TOML configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level (overrides PB_LOG_LEVEL)",
)
@click.option("--log-file", type=click.Path(dir_okay=False), help="Write logs to this file")
@click.pass_context
def cli(
    ctx: click.Context, config_path: Path | None, log_level: str | None, log_file: str | None
) -> None:
    """Build TypeScript packages with an LLM agent.

    Configuration precedence: command-line flags, then environment variables,
    then the --config file, then defaults.
    """
    try:
        runtime_config = RuntimeConfig.load(
            config_path,
            log_level=log_level.upper() if log_level else None,
            log_file=log_file,
        )
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise click.Abort() from e

    _configure_logging(runtime_config)
    ctx.ensure_object(dict)
    ctx.obj["config"] = runtime_config


@cli.command("parse-response")
@click.argument("response_file", type=click.Path(allow_dash=True))
@click.option("--no-repair", is_flag=True, help="Fail instead of repairing malformed JSON")
@click.pass_context
def parse_response(ctx: click.Context, response_file: str, no_repair: bool) -> None:
    """Parse a hybrid-protocol LLM response and print the command it contains.

    Use '-' to read the response from stdin.
    """
    text = _read_input(response_file)

    with handle_llm_errors(_config(ctx)):
        parsed = parse_hybrid_response(text, attempt_repair=not no_repair)
        command = parse_agent_command(parsed.json)

    _print_json(command_to_dict(command))

    if parsed.content_blocks:
        table = Table(title="Content Blocks")
        table.add_column("Index", style="cyan", justify="right")
        table.add_column("Characters", style="white", justify="right")
        table.add_column("First line", style="dim")
        for index, content in sorted(parsed.content_blocks.items()):
            first_line = content.splitlines()[0] if content else ""
            table.add_row(str(index), str(len(content)), first_line[:60])
        console.print(table)

    for warning in parsed.warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")


@cli.command()
@click.argument("response_file", type=click.Path(allow_dash=True))
@click.option(
    "--workspace",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Workspace (monorepo) root",
)
@click.option("--package-path", required=True, help="Package path relative to the workspace")
@click.option("--normalize", is_flag=True, help="Normalize line endings and trailing newline")
@click.pass_context
def apply(
    ctx: click.Context, response_file: str, workspace: Path, package_path: str, normalize: bool
) -> None:
    """Apply the file operations of an APPLY_CODE_CHANGES response to a package."""
    text = _read_input(response_file)

    with handle_llm_errors(_config(ctx)):
        parsed = parse_hybrid_response(text)
        command = parse_agent_command(parsed.json)

    if not isinstance(command, ApplyCodeChanges):
        console.print(
            f"[red]Expected APPLY_CODE_CHANGES, got {command.command.value}; nothing to apply[/red]"
        )
        raise click.Abort()

    try:
        output = apply_code_changes(
            ApplyCodeChangesInput(
                workspace_root=workspace,
                package_path=package_path,
                files=command.files,
                content_blocks=parsed.content_blocks,
                normalize=normalize,
            )
        )
    except FileOperationsError as e:
        console.print(f"[red]{len(e.errors)} file operation(s) failed:[/red]")
        for error in e.errors:
            console.print(f"  [red]-[/red] {error}")
        for warning in e.warnings:
            console.print(f"  [yellow]-[/yellow] {warning}")
        raise click.Abort() from e

    console.print(f"[green]Applied {len(output.files_modified)} file operation(s)[/green]")
    for path in output.files_modified:
        console.print(f"  {path}")
    for warning in output.content_warnings:
        console.print(f"[yellow]Warning: {warning}[/yellow]")


@cli.command("check-path")
@click.argument("path")
@click.option(
    "--root",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Package root the path must stay inside",
)
@click.pass_context
def check_path(ctx: click.Context, path: str, root: Path) -> None:
    """Check whether PATH is safe to write inside the package root. Exits 1 if not."""
    result = check_path_safety(path, root)
    if result.safe:
        console.print(f"[green]safe[/green]: {path}")
        return
    console.print(f"[red]unsafe[/red]: {path} ({result.reason})")
    ctx.exit(1)


@cli.command("retry-delay")
@click.argument("message")
@click.pass_context
def retry_delay(ctx: click.Context, message: str) -> None:
    """Show how long to wait before retrying after a rate-limit MESSAGE."""
    rate_limit = _config(ctx).rate_limit
    parsed = parse_retry_delay(message)
    delay = compute_retry_delay(message, rate_limit)

    table = Table(show_header=False)
    table.add_column(style="cyan", justify="left")
    table.add_column(style="white", justify="left")
    table.add_row("Rate limit error", "yes" if is_rate_limit_error(message) else "no")
    table.add_row("Parsed retryDelay", f"{parsed}s" if parsed is not None else "none")
    table.add_row("Buffer", f"{rate_limit.retry_delay_buffer_sec}s")
    table.add_row("Retry after", f"{delay}s")
    console.print(table)


@cli.command()
@click.pass_context
def providers(ctx: click.Context) -> None:
    """Show which CLI agent providers are available, in fallback order."""
    runtime_config = _config(ctx)
    registry = create_cli_registry(runtime_config)
    credits = registry.check_credits()

    table = Table(title="CLI Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Role", style="magenta")
    table.add_column("Available")
    table.add_column("Details", style="dim")
    for name, status in credits.items():
        role = "primary" if name == registry.primary else "fallback"
        available = "[green]yes[/green]" if status.available else "[red]no[/red]"
        table.add_row(name, role, available, status.reason or "")
    console.print(table)

    if not runtime_config.fallback_enabled:
        console.print("[dim]Fallback is disabled (PB_FALLBACK_ENABLED=false)[/dim]")


@cli.command("publish-status")
@click.option(
    "--workspace",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Workspace (monorepo) root",
)
@click.option("--package-name", help="npm package name")
@click.option("--package-path", help="Package path relative to the workspace")
@click.option("--plan-path", help="Plan file relative to the workspace")
@click.option(
    "--tree",
    "tree_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON list of {packageName, packagePath, planPath} to validate together",
)
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON")
def publish_status(
    workspace: Path,
    package_name: str | None,
    package_path: str | None,
    plan_path: str | None,
    tree_file: Path | None,
    as_json: bool,
) -> None:
    """Decide whether packages need publishing, a version bump, or nothing."""
    try:
        if tree_file:
            packages = json.loads(tree_file.read_text(encoding="utf-8"))
            validation = validate_dependency_tree_publish_status(packages, workspace)
        elif package_name and package_path and plan_path:
            status = validate_package_publish_status(
                package_name, workspace, package_path, plan_path
            )
            if as_json:
                _print_json(status.to_dict())
            else:
                console.print(f"[cyan]{status.package_name}[/cyan] ({status.classification})")
                console.print(f"  {status.reason}")
            return
        else:
            raise click.UsageError(
                "Give --tree, or all of --package-name, --package-path and --plan-path"
            )
    except (OSError, ValueError, KeyError, requests.RequestException) as e:
        console.print(f"[red]Publish status check failed: {e}[/red]")
        raise click.Abort() from e

    if as_json:
        _print_json(validation.to_dict())
    else:
        table = Table(title="Publish Plan")
        table.add_column("Package", style="cyan")
        table.add_column("Local", style="white")
        table.add_column("npm", style="white")
        table.add_column("Reason", style="dim")
        for s in validation.statuses:
            table.add_row(s.package_name, s.local_version, s.npm_version or "-", s.reason)
        console.print(table)
        for error in validation.errors:
            console.print(f"[red]{error}[/red]")

    if not validation.all_valid:
        raise click.Abort()


@cli.command("next-action")
@click.option(
    "--plan",
    "plan_file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Package plan markdown",
)
@click.option(
    "--instructions",
    "instructions_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Agent instructions (defaults to a one-line role statement)",
)
@click.option(
    "--context",
    "context_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Current codebase context",
)
@click.option("--history", multiple=True, help="Previous action, oldest first (repeatable)")
@click.option(
    "--provider",
    type=click.Choice(["gemini", "anthropic"]),
    help="API provider (defaults to the configured primary provider)",
)
@click.option("--show-prompt", is_flag=True, help="Print the prompt and its checks, then exit")
@click.pass_context
def next_action(
    ctx: click.Context,
    plan_file: Path,
    instructions_file: Path | None,
    context_file: Path | None,
    history: tuple[str, ...],
    provider: str | None,
    show_prompt: bool,
) -> None:
    """Ask the LLM for the next command of a package build."""
    runtime_config = _config(ctx)
    action_input = DetermineNextActionInput(
        full_plan=plan_file.read_text(encoding="utf-8"),
        agent_instructions=(
            instructions_file.read_text(encoding="utf-8")
            if instructions_file
            else "You are an expert TypeScript engineer building an npm package."
        ),
        action_history=list(history),
        current_codebase_context=(
            context_file.read_text(encoding="utf-8") if context_file else ""
        ),
    )

    if show_prompt:
        prompt = build_next_action_prompt(
            action_input.full_plan,
            action_input.agent_instructions,
            action_input.action_history,
            action_input.current_codebase_context,
        )
        click.echo(prompt)
        for warning in validate_prompt(prompt).warnings:
            console.print(f"[yellow]Warning: {warning}[/yellow]")
        return

    with handle_llm_errors(runtime_config):
        llm = create_api_provider_from_config(runtime_config, provider)
        result = determine_next_action(
            action_input,
            llm,
            max_tokens=runtime_config.max_tokens,
            rate_limit=runtime_config.rate_limit,
        )

    _print_json(result.to_dict())


@cli.command("run-agent")
@click.option(
    "--working-dir",
    required=True,
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory the agent runs in",
)
@click.option("--instruction", required=True, help="Task for the agent")
@click.option(
    "--context",
    "context_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Extra context (GEMINI.md for Gemini, system prompt for Claude)",
)
@click.option("--session-id", help="Claude session to resume")
@click.option("--model", help="Model override")
@click.option("--provider", "preferred", type=click.Choice(["gemini", "claude"]), help="Try first")
@click.option(
    "--pin", "pinned", type=click.Choice(["gemini", "claude"]), help="Use only this provider"
)
@click.pass_context
def run_agent(
    ctx: click.Context,
    working_dir: Path,
    instruction: str,
    context_file: Path | None,
    session_id: str | None,
    model: str | None,
    preferred: str | None,
    pinned: str | None,
) -> None:
    """Run a coding-agent CLI with provider fallback."""
    runtime_config = _config(ctx)
    registry = create_cli_registry(runtime_config)

    try:
        params = CLIAgentParams(
            instruction=instruction,
            working_dir=working_dir,
            context_content=context_file.read_text(encoding="utf-8") if context_file else None,
            session_id=session_id,
            model=model,
            timeout=runtime_config.cli_timeout,
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e

    with handle_llm_errors(runtime_config):
        result = registry.execute_with_fallback(params, preferred=preferred, pinned=pinned)

    console.print(
        f"[green]{result.provider}[/green] finished in {result.duration_ms}ms "
        f"(cost ${result.cost_usd:.4f})"
    )
    if result.session_id:
        console.print(f"[dim]session: {result.session_id}[/dim]")
    click.echo(result.result)


@cli.command()
@click.option(
    "--workspace",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Workspace (monorepo) root",
)
@click.option("--package-path", required=True, help="Package path relative to the workspace")
def validate(workspace: Path, package_path: str) -> None:
    """Run the package.json and license-header checks."""
    checks = {
        "package.json": validate_package_json(workspace, package_path),
        "license headers": check_license_headers(workspace, package_path),
    }
    for name, result in checks.items():
        mark = "[green]PASS[/green]" if result.success else "[red]FAIL[/red]"
        console.print(f"{mark} {name}: {result.details}")

    if not all(result.success for result in checks.values()):
        raise click.Abort()


@cli.command("classify-precommit")
@click.argument("output_file", type=click.Path(allow_dash=True))
@click.option("--modified", multiple=True, help="File written by the agent (repeatable)")
def classify_precommit(output_file: str, modified: tuple[str, ...]) -> None:
    """Classify pre-commit hook OUTPUT_FILE as generated, external or mixed."""
    result = classify_precommit_errors(_read_input(output_file), list(modified))
    _print_json(
        {
            "classification": result.classification,
            "errorsInGenerated": result.errors_in_generated,
            "errorsInExternal": result.errors_in_external,
        }
    )


if __name__ == "__main__":
    cli()
