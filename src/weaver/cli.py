"""Typer-based CLI for History Weaver."""

import json
import logging
import signal
import threading
from datetime import datetime, timezone
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn
from rich.table import Table

from .catalog import ACHIEVEMENTS, TECH_STACKS, default_config_values
from .config import WeaverSettings
from .errors import RemoteAccessError, WeaverError
from .executor import weave as run_weave
from .github import GitHubClient
from .ledger import LedgerWriter, read_ledger_tail
from .llm import get_plan_generator
from .models import (
    LogEntry,
    LogLevel,
    WeaveConfig,
    is_chronological,
    load_plan,
    save_plan,
    sort_plan,
)
from .observer import RunContext
from .paths import WorkspacePaths
from .plan import compile_plan, draft_review_comment
from .remote import DryRunRepository
from .trace import write_run_trace

app = typer.Typer(
    name="weaver",
    help="History Weaver - compile and replay plausible repository histories",
    add_completion=False,
)

console = Console()

LEVEL_STYLES = {
    LogLevel.INFO: "cyan",
    LogLevel.SUCCESS: "green",
    LogLevel.WARNING: "yellow",
    LogLevel.ERROR: "red",
}


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging"),
):
    """History Weaver command line."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_settings(workspace: str | None) -> tuple[WeaverSettings, WorkspacePaths]:
    settings = WeaverSettings.from_env(cli_workspace_path=workspace)
    return settings, WorkspacePaths.from_settings(settings)


def _render_run_config(values: dict) -> str:
    achievements = ", ".join(f'"{a}"' for a in values["achievements"])
    return f"""# History Weaver run configuration
# The access token is never read from this file: use --token or GITHUB_TOKEN.
# Tech stack suggestions: {", ".join(TECH_STACKS)}

[weave]
username = "{values["username"]}"
target_repo = "{values["target_repo"]}"
start_date = {values["start_date"].isoformat()}
end_date = {values["end_date"].isoformat()}
tech_stack = "{values["tech_stack"]}"
# gitflow | github-flow | trunk
strategy = "{values["strategy"]}"
# 1-10
intensity = {values["intensity"]}
include_lfs = {str(values["include_lfs"]).lower()}
achievements = [{achievements}]
"""


@app.command()
def init(
    workspace: str = typer.Option(
        None,
        "--workspace",
        "-w",
        help="Workspace directory (default: WEAVER_WORKSPACE env or ./.weaver)",
    ),
):
    """Create the workspace, a settings file and an example run configuration.

    This command is idempotent - it will not overwrite existing files.
    """
    settings, paths = _load_settings(workspace)

    created = []
    for directory in paths.get_all_directories():
        if not directory.exists():
            directory.mkdir(parents=True, exist_ok=True)
            created.append(directory)
    if created:
        console.print(f"[green]+[/green] Created {len(created)} directories")
    else:
        console.print("[dim]All directories already exist[/dim]")

    if not paths.config_file.exists():
        paths.config_file.write_text(settings.to_toml_str(), encoding="utf-8")
        console.print(f"[green]+[/green] Created settings: {paths.config_file}")
    else:
        console.print(f"[dim]Settings already exist: {paths.config_file}[/dim]")

    example = paths.root / "weave.example.toml"
    if not example.exists():
        example.write_text(_render_run_config(default_config_values()), encoding="utf-8")
        console.print(f"[green]+[/green] Created example run config: {example}")
    else:
        console.print(f"[dim]Example run config already exists: {example}[/dim]")

    if not paths.ledger_file.exists():
        paths.ledger_file.touch()
        console.print(f"[green]+[/green] Created ledger: {paths.ledger_file}")

    console.print()
    console.print("[bold green]Workspace ready![/bold green]")
    console.print(f"[dim]Workspace location:[/dim] {paths.root}")


@app.command()
def validate(
    config_path: Path = typer.Argument(..., help="Run configuration TOML file"),
):
    """Validate a run configuration file."""
    try:
        config = WeaveConfig.from_toml(config_path)
    except WeaverError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(code=1)

    known = {a.id for a in ACHIEVEMENTS}
    unknown = [a for a in config.achievements if a not in known]
    console.print(f"[green]Configuration OK[/green] for {config.username}/{config.target_repo}")
    console.print(f"[dim]Window:[/dim] {config.start_date} to {config.end_date} ({config.strategy}, intensity {config.intensity})")
    if unknown:
        console.print(f"[yellow]Unknown achievements passed through as hints: {', '.join(unknown)}[/yellow]")


@app.command()
def verify(
    config_path: Path = typer.Argument(..., help="Run configuration TOML file"),
    token: str = typer.Option(
        None,
        "--token",
        envvar="GITHUB_TOKEN",
        help="GitHub personal access token (default: GITHUB_TOKEN env)",
    ),
    workspace: str = typer.Option(None, "--workspace", "-w", help="Workspace directory"),
):
    """Check the token can push to the target repository before weaving."""
    settings, _ = _load_settings(workspace)

    try:
        config = WeaveConfig.from_toml(config_path, token=token)
    except WeaverError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(code=1)

    if not config.github_token:
        console.print("[red]Error: No access token. Pass --token or set GITHUB_TOKEN[/red]")
        raise typer.Exit(code=1)

    client = GitHubClient(
        base_url=settings.github_api_url,
        timeout_seconds=settings.request_timeout_seconds,
    )
    try:
        client.verify_access(config.github_token, config.target_repo, config.username)
    except RemoteAccessError as e:
        console.print(f"[red]Access check failed for {config.username}/{config.target_repo}: {e}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]+[/green] Token can push to {config.username}/{config.target_repo}")


@app.command()
def achievements():
    """List the achievement catalog."""
    table = Table(title="Achievements")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="magenta")
    table.add_column("Description")
    for achievement in ACHIEVEMENTS:
        table.add_row(achievement.id, achievement.name, achievement.description)
    console.print(table)


@app.command()
def plan(
    config_path: Path = typer.Argument(..., help="Run configuration TOML file"),
    out: Path = typer.Option(
        None,
        "--out",
        "-o",
        help="Where to write the plan JSON (default: <workspace>/plans/plan_<timestamp>.json)",
    ),
    engine: str = typer.Option(
        None,
        "--engine",
        "-e",
        help="Generator engine: auto, fake, gemini or openai (default: settings)",
    ),
    workspace: str = typer.Option(None, "--workspace", "-w", help="Workspace directory"),
):
    """Compile a run configuration into a plan of history events."""
    settings, paths = _load_settings(workspace)

    try:
        config = WeaveConfig.from_toml(config_path)
        generator = get_plan_generator(
            engine or settings.llm_engine,
            model=settings.llm_model,
            timeout_seconds=settings.llm_timeout_seconds,
        )
    except (WeaverError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    ledger_writer = LedgerWriter(paths.ledger_file)
    console.print(f"[dim]Generator:[/dim] {generator.provider_model or generator.engine_name}")
    with console.status("Compiling plan..."):
        events = compile_plan(config, generator, ledger_writer=ledger_writer)

    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    plan_path = save_plan(events, out or paths.plan_file(stamp))

    table = Table(title=f"Plan: {len(events)} event(s)")
    table.add_column("Date (UTC)", style="cyan", no_wrap=True)
    table.add_column("Kind", style="magenta")
    table.add_column("Title")
    table.add_column("Branch", style="yellow")
    for event in events:
        table.add_row(event.date.strftime("%Y-%m-%d %H:%M"), event.kind.value, event.title, event.branch or "-")
    console.print(table)

    if not is_chronological(events):
        console.print("[yellow]Plan is not chronological; use 'weaver weave --sort' to replay in date order[/yellow]")
    console.print(f"[green]+[/green] Plan written: {plan_path}")


@app.command()
def weave(
    config_path: Path = typer.Argument(..., help="Run configuration TOML file"),
    plan_path: Path = typer.Option(..., "--plan", "-p", help="Plan JSON written by 'weaver plan'"),
    token: str = typer.Option(
        None,
        "--token",
        envvar="GITHUB_TOKEN",
        help="GitHub personal access token (default: GITHUB_TOKEN env)",
    ),
    delay_ms: int = typer.Option(None, "--delay-ms", help="Pacing delay between events (default: settings)"),
    max_retries: int = typer.Option(None, "--max-retries", help="Retries for rate-limited events (default: settings)"),
    sort: bool = typer.Option(False, "--sort", help="Replay events sorted by date"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Echo events without calling GitHub"),
    engine: str = typer.Option(None, "--engine", "-e", help="Generator engine for PR review comments"),
    workspace: str = typer.Option(None, "--workspace", "-w", help="Workspace directory"),
):
    """Replay a plan against the target repository.

    Events run strictly one after another. A failed event is logged and the
    run continues; a failed connection aborts the run. Ctrl+C cancels at the
    next event boundary.
    """
    settings, paths = _load_settings(workspace)

    try:
        config = WeaveConfig.from_toml(config_path, token=token)
        events = load_plan(plan_path)
    except (WeaverError, ValueError, FileNotFoundError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    if sort:
        events = sort_plan(events)

    if dry_run:
        remote = DryRunRepository()
    else:
        if not config.github_token:
            console.print("[red]Error: No access token. Pass --token or set GITHUB_TOKEN[/red]")
            raise typer.Exit(code=1)
        drafter = None
        if settings.draft_review_comments:
            try:
                generator = get_plan_generator(engine or settings.llm_engine, model=settings.llm_model)
            except ValueError as e:
                console.print(f"[red]Error: {e}[/red]")
                raise typer.Exit(code=1)

            def drafter(title: str, snippet: str) -> str:
                return draft_review_comment(generator, title, snippet)

        remote = GitHubClient(
            base_url=settings.github_api_url,
            timeout_seconds=settings.request_timeout_seconds,
            review_drafter=drafter,
        )

    context = RunContext(ledger_writer=LedgerWriter(paths.ledger_file))
    cancel = threading.Event()

    def _print_entry(entry: LogEntry) -> None:
        style = LEVEL_STYLES[entry.level]
        stamp = entry.timestamp.strftime("%H:%M:%S")
        console.print(f"[dim]{stamp}[/dim] [{style}]{entry.level.value.upper():<7}[/{style}] {entry.message}")

    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())
    try:
        with Progress(
            TextColumn("[bold]Weaving"),
            BarColumn(),
            TextColumn("{task.percentage:>5.1f}%"),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task_id = progress.add_task("weave", total=100)
            context.subscribe(
                on_log=_print_entry,
                on_progress=lambda value: progress.update(task_id, completed=value),
            )
            outcome = run_weave(
                events,
                config,
                remote,
                context=context,
                delay_seconds=(delay_ms if delay_ms is not None else settings.pacing_ms) / 1000,
                cancel=cancel,
                max_retries=max_retries if max_retries is not None else settings.max_retries,
                retry_backoff_seconds=settings.retry_backoff_seconds,
            )
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    trace_path = write_run_trace(outcome, config, paths, plan_path=plan_path)

    stats = outcome.stats
    table = Table(title="Run Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")
    table.add_row("Commits", str(stats.total_commits))
    table.add_row("Pull requests", str(stats.total_prs))
    table.add_row("Issues", str(stats.total_issues))
    table.add_row("Files changed", str(stats.files_changed))
    table.add_row("Succeeded", str(stats.events_succeeded))
    table.add_row("Failed", str(stats.events_failed))
    table.add_row("Achievements requested", ", ".join(stats.achievements_requested) or "-")
    console.print(table)
    console.print(f"[dim]Trace: {trace_path}[/dim]")

    if outcome.fatal_error or outcome.cancelled:
        raise typer.Exit(code=1)


@app.command()
def review(
    pr_title: str = typer.Argument(..., help="Pull request title"),
    snippet: str = typer.Option("", "--snippet", "-s", help="Code snippet to comment on"),
    engine: str = typer.Option(None, "--engine", "-e", help="Generator engine"),
    workspace: str = typer.Option(None, "--workspace", "-w", help="Workspace directory"),
):
    """Draft a short code review comment for a pull request title."""
    settings, _ = _load_settings(workspace)
    try:
        generator = get_plan_generator(engine or settings.llm_engine, model=settings.llm_model)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)
    console.print(draft_review_comment(generator, pr_title, snippet))


ledger_app = typer.Typer(help="Ledger commands")
app.add_typer(ledger_app, name="ledger")


@ledger_app.command("tail")
def ledger_tail(
    n: int = typer.Option(20, "--n", help="Number of recent events to display"),
    full: bool = typer.Option(False, "--full", help="Show full payloads with JSON pretty-print"),
    workspace: str = typer.Option(None, "--workspace", "-w", help="Workspace directory"),
):
    """Display the last N events from the run ledger."""
    _, paths = _load_settings(workspace)

    if not paths.root.exists():
        console.print(f"[red]Error: Workspace not initialized at {paths.root}[/red]")
        console.print("[yellow]Run 'weaver init' first[/yellow]")
        raise typer.Exit(code=1)

    events = read_ledger_tail(paths.ledger_file, n=n)
    if not events:
        console.print("[dim]No events in ledger[/dim]")
        return

    if full:
        console.print(f"[bold]Last {len(events)} Ledger Event(s)[/bold]\n")
        for i, event in enumerate(events, 1):
            console.print(f"[cyan]Event {i}/{len(events)}[/cyan]")
            console.print(f"  [dim]Event ID:[/dim]    {event.event_id}")
            console.print(f"  [dim]Run ID:[/dim]      {event.run_id}")
            console.print(f"  [dim]Timestamp:[/dim]   {event.ts.strftime('%Y-%m-%d %H:%M:%S')} UTC")
            console.print(f"  [dim]Event Type:[/dim]  [magenta]{event.event_type}[/magenta]")
            console.print(f"  [dim]Plan event:[/dim]  {event.plan_event_id or '-'}")
            console.print("  [dim]Payload:[/dim]")
            for line in json.dumps(event.payload, indent=2).split("\n"):
                console.print(f"    {line}")
            console.print()
        return

    table = Table(title=f"Last {len(events)} Ledger Event(s)")
    table.add_column("Timestamp (UTC)", style="cyan", no_wrap=True)
    table.add_column("Event Type", style="magenta")
    table.add_column("Run", style="yellow")
    table.add_column("Payload", style="dim")
    for event in events:
        payload_str = str(event.payload)
        if len(payload_str) > 60:
            payload_str = payload_str[:57] + "..."
        table.add_row(event.ts.strftime("%Y-%m-%d %H:%M:%S"), event.event_type, event.run_id[:8], payload_str)
    console.print(table)


@app.command()
def version():
    """Show History Weaver version."""
    from . import __version__
    console.print(f"History Weaver v{__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
