"""
Pipeline Coordinator command-line interface.

Every command loads the workspace configuration, wires the git and dotnet
adapters to a shared process runner and delegates to ``FeatureService``.
"""

import json
import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import CoordinatorConfig, load_config
from .errors import ConfigurationError, CoordinatorError
from .feature import FeatureService, RepositoryStatus
from .integrations.build_status import BuildStatusClient
from .integrations.dotnet import create_dotnet_adapter
from .integrations.process import ProcessRunner
from .integrations.registry import ToolRegistry
from .integrations.vcs import create_git_adapter
from .models import WorkspaceBuildResult
from .overrides.driver import WorkspaceDriver
from .utils.json_logger import configure_console_logging, configure_json_logging

app = typer.Typer(
    name="pipeline-coordinator",
    help="Coordinate feature branches and local source overrides across repositories",
    rich_markup_mode="rich",
)
console = Console()


@dataclass
class CliState:
    config_path: Optional[Path] = None
    dry_run: bool = False


def _symbol(ok: bool) -> str:
    enc = (getattr(sys.stdout, "encoding", None) or "").lower()
    if "utf" in enc:
        return "✓" if ok else "✗"
    return "OK" if ok else "FAIL"


@contextmanager
def _reported_errors() -> Iterator[None]:
    try:
        yield
    except CoordinatorError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


def _state(ctx: typer.Context) -> CliState:
    return ctx.obj if isinstance(ctx.obj, CliState) else CliState()


def _tools(config: Optional[CoordinatorConfig]) -> ToolRegistry:
    return ToolRegistry(config.paths.model_dump() if config else None)


def _service(ctx: typer.Context) -> FeatureService:
    state = _state(ctx)
    config = load_config(state.config_path)
    tools = _tools(config)
    runner = ProcessRunner(dry_run=state.dry_run)

    workspace = config.to_workspace()
    dotnet = create_dotnet_adapter(runner, tools.dotnet)
    build_status = None
    if config.build_status is not None:
        build_status = BuildStatusClient(
            config.build_status.organization_url,
            config.build_status.project,
            config.build_status.token,
        )
    return FeatureService(
        workspace,
        create_git_adapter(runner, tools.git),
        dotnet,
        WorkspaceDriver(workspace, dotnet),
        build_status,
    )


@app.callback()
def main_callback(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Configuration file (default: ./pipeline-coordinator.yaml)"
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON lines"),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Log external commands without executing them"
    ),
) -> None:
    """Pipeline Coordinator."""
    level = getattr(logging, log_level.upper(), logging.WARNING)
    if json_logs:
        configure_json_logging(level)
    else:
        configure_console_logging(level)
    ctx.obj = CliState(config_path=config, dry_run=dry_run)
    if dry_run:
        console.print("[yellow]DRY RUN mode - no commands will be executed[/yellow]")


def _print_statuses(title: str, statuses: List[RepositoryStatus]) -> None:
    table = Table(title=title)
    table.add_column("Repository", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Details", style="dim")
    for status in statuses:
        table.add_row(status.repository.path, _symbol(status.ok), escape(status.message))
    console.print(table)


def _print_build(result: WorkspaceBuildResult) -> None:
    table = Table(title=f"Override solutions for story {result.feature.story_id}")
    table.add_column("Solution", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Overrides", style="magenta")
    table.add_column("Added", style="yellow")
    table.add_column("Removed", style="yellow")
    table.add_column("Error", style="red")
    for outcome in result.solutions:
        table.add_row(
            outcome.solution.name,
            _symbol(outcome.success),
            str(len(outcome.overrides_created)),
            str(len(outcome.projects_added)),
            str(len(outcome.projects_removed)),
            escape(outcome.error or ""),
        )
    console.print(table)
    if result.suppressed_test_projects:
        console.print(
            f"Disabled tests in {len(result.suppressed_test_projects)} projects"
        )


@app.command("start")
def start_cmd(
    ctx: typer.Context,
    story_id: str = typer.Argument(..., help="The story ID"),
) -> None:
    """Clone the repositories for a story and build its override solutions."""
    console.print(f"[bold blue]Starting feature development for story {story_id}[/bold blue]")
    with _reported_errors():
        result = _service(ctx).start(story_id)

    _print_statuses(f"Repositories for story {story_id}", result.repositories)
    if result.build is not None:
        _print_build(result.build)
    if not result.success:
        raise typer.Exit(code=1)


@app.command("build")
def build_cmd(
    ctx: typer.Context,
    story_id: str = typer.Argument(..., help="The story ID"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
) -> None:
    """Rebuild the override solutions of an existing story."""
    with _reported_errors():
        result = _service(ctx).build(story_id)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_build(result)
    if not result.success:
        raise typer.Exit(code=1)


@app.command("finish")
def finish_cmd(
    ctx: typer.Context,
    story_id: str = typer.Argument(..., help="The story ID"),
) -> None:
    """Revert the start commit of a story in every repository."""
    console.print(f"[bold blue]Finishing development for story {story_id}[/bold blue]")
    with _reported_errors():
        statuses = _service(ctx).finish(story_id)
    _print_statuses(f"Finish story {story_id}", statuses)


@app.command("push")
def push_cmd(
    ctx: typer.Context,
    path: Optional[Path] = typer.Option(
        None, "--path", help="Directory inside the repository (default: current directory)"
    ),
) -> None:
    """Push the feature branch of the current repository with upstream tracking."""
    with _reported_errors():
        status = _service(ctx).push(path or Path.cwd())
    console.print(f"{_symbol(status.ok)} {status.repository.path}: {escape(status.message)}")
    if not status.ok:
        raise typer.Exit(code=1)


@app.command("find")
def find_cmd(
    ctx: typer.Context,
    story_id: str = typer.Argument(..., help="The story ID"),
) -> None:
    """List the repositories that have the feature branch on their remote."""
    with _reported_errors():
        statuses = _service(ctx).find(story_id)
    _print_statuses(f"Remote branches for story {story_id}", statuses)


@app.command("builds")
def builds_cmd(
    ctx: typer.Context,
    story_id: str = typer.Argument(..., help="The story ID"),
    count: int = typer.Option(10, "--count", "-n", help="Number of builds to show"),
) -> None:
    """Show the latest remote builds of the feature branch."""
    with _reported_errors():
        builds = _service(ctx).builds(story_id, count)

    table = Table(title=f"Builds for story {story_id}")
    table.add_column("Id", style="cyan")
    table.add_column("Definition", style="magenta")
    table.add_column("Status", style="yellow")
    table.add_column("Result", style="green")
    table.add_column("Url", style="dim")
    for build in builds:
        table.add_row(
            str(build.build_id), build.definition, build.status, build.result or "", build.url or ""
        )
    console.print(table)


@app.command("doctor")
def doctor_cmd(ctx: typer.Context) -> None:
    """Check that git and dotnet are available."""
    try:
        config: Optional[CoordinatorConfig] = load_config(_state(ctx).config_path)
    except ConfigurationError:
        config = None
    tools = _tools(config)
    runner = ProcessRunner()

    table = Table(title="Tool Configuration")
    table.add_column("Tool", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Version", style="yellow")
    table.add_column("Path", style="dim")

    availability = tools.validate_tool_availability()
    git_path = tools.get_tool_path("git")
    if git_path:
        tools.tools["git"].version = str(create_git_adapter(runner, git_path).version())
    dotnet_path = tools.get_tool_path("dotnet")
    if dotnet_path:
        tools.tools["dotnet"].version = runner.get_tool_version(dotnet_path)

    for name, tool in tools.tools.items():
        table.add_row(name, _symbol(availability[name]), tool.version or "unknown", tool.path)
    missing = [name for name, available in availability.items() if not available]
    console.print(table)

    if missing:
        console.print(f"\n[red]Missing tools: {', '.join(missing)}[/red]")
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
