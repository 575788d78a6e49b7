"""gitsync CLI: entry points for the GitHub Actions workflow."""

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich import print as rprint
from rich.markup import escape
from rich.table import Table

from gitsync.actions import JobReporter, configure_logging
from gitsync.errors import SyncError
from gitsync.providers.ado import AdoClient
from gitsync.providers.github import GitHubClient
from gitsync.reconcile import Reconciler
from gitsync.settings import EnvOverrides, SyncConfig, resolve_config
from gitsync.sync import GitSync

app = typer.Typer(help="gitsync: GitHub issues <-> Azure DevOps work items", no_args_is_help=True)

EventPathOpt = Annotated[
    Path | None,
    typer.Option("--event-path", "-e", help="Webhook payload JSON (defaults to $GITHUB_EVENT_PATH)"),
]


def _load_payload(path: Path | None) -> dict[str, Any]:
    if path is None:
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        rprint(f"[red]Cannot read event payload {path}: {exc}[/red]")
        raise typer.Exit(1)
    return payload if isinstance(payload, dict) else {}


def _resolve(payload: dict[str, Any], overrides: EnvOverrides, reporter: JobReporter) -> SyncConfig:
    # Env level first so config-file notices are visible; the merged level wins afterwards.
    env_level = SyncConfig(log_level=overrides.log_level).log_level
    configure_logging(env_level)
    try:
        config = resolve_config(payload, overrides)
    except SyncError as exc:
        reporter.set_failed(exc)
        raise typer.Exit(1)
    if config.log_level != env_level:
        configure_logging(config.log_level)
    return config


def _build_sync(config: SyncConfig, reporter: JobReporter) -> GitSync:
    try:
        ado = AdoClient(config.ado)
        github = GitHubClient(config.github) if config.github.token else None
    except SyncError as exc:
        reporter.set_failed(exc)
        raise typer.Exit(1)
    reconciler = Reconciler(ado, github, reporter) if github else None
    return GitSync(ado, reporter, reconciler)


def _event_path(event_path: Path | None, overrides: EnvOverrides) -> Path | None:
    if event_path:
        return event_path
    return Path(overrides.github_event_path) if overrides.github_event_path else None


@app.command("run")
def run(event_path: EventPathOpt = None) -> None:
    """Apply one GitHub issue event to Azure DevOps."""
    overrides = EnvOverrides()
    reporter = JobReporter()
    config = _resolve(_load_payload(_event_path(event_path, overrides)), overrides, reporter)

    result = _build_sync(config, reporter).perform_work(config)
    if isinstance(result, int):
        rprint(f"[dim]Result: {result}[/dim]")
    else:
        rprint(f"[green]✓[/green] Work item [bold]#{result.id}[/bold]")

    if reporter.failed:
        raise typer.Exit(1)


@app.command("reconcile")
def reconcile(event_path: EventPathOpt = None) -> None:
    """Push recent Azure DevOps changes back to their GitHub issues."""
    overrides = EnvOverrides()
    reporter = JobReporter()
    config = _resolve(_load_payload(_event_path(event_path, overrides)), overrides, reporter)

    sync = _build_sync(config, reporter)
    if sync.reconciler is None:
        reporter.set_failed("Missing GitHub credentials. Set github_token to update issues.")
        raise typer.Exit(1)
    report = sync.reconciler.reconcile_all(config)

    table = Table(title="Reconcile")
    table.add_column("Work item", style="cyan")
    table.add_column("Result")
    for work_item_id in report.updated:
        table.add_row(str(work_item_id), "[green]updated[/green]")
    for work_item_id in report.skipped:
        table.add_row(str(work_item_id), "[dim]skipped[/dim]")
    for work_item_id, error in report.failed.items():
        table.add_row(str(work_item_id), f"[red]{escape(error)}[/red]")
    rprint(table)

    if reporter.failed:
        raise typer.Exit(1)


@app.command("config-show")
def config_show(event_path: EventPathOpt = None) -> None:
    """Show resolved configuration (masks credentials)."""
    overrides = EnvOverrides()
    reporter = JobReporter()
    config = _resolve(_load_payload(_event_path(event_path, overrides)), overrides, reporter)

    def mask(val: str | None) -> str:
        if val is None:
            return "[dim](not set)[/dim]"
        if len(val) <= 5:
            return "***"
        return f"...{val[-5:]}"

    def show(val: object) -> str:
        return "[dim](not set)[/dim]" if val in (None, "") else str(val)

    ado = config.ado
    table = Table(title="gitsync Configuration")
    table.add_column("Field", style="bold")
    table.add_column("Value")

    table.add_row("ado.organization", show(ado.organization))
    table.add_row("ado.orgUrl", ado.org_url)
    table.add_row("ado.project", show(ado.project))
    table.add_row("ado.wit", ado.wit)
    table.add_row("ado.states", ", ".join(f"{k}={v}" for k, v in ado.states.items()))
    table.add_row("ado.areaPath", show(ado.area_path))
    table.add_row("ado.iterationPath", show(ado.iteration_path))
    table.add_row("ado.bypassRules", str(ado.bypass_rules))
    table.add_row("ado.autoCreate", str(ado.auto_create))
    table.add_row("ado.validateOnly", str(ado.validate_only))
    table.add_row("ado.assignedTo", show(ado.assigned_to))
    handles = ado.mappings.handles if ado.mappings and ado.mappings.handles else {}
    table.add_row("ado.mappings.handles", str(len(handles)))
    table.add_row("ado.token", mask(ado.token.get_secret_value() if ado.token else None))
    table.add_row("github.token", mask(config.github.token.get_secret_value() if config.github.token else None))
    table.add_row("repository", show(config.repo_full_name))
    table.add_row("action", show(config.action))
    table.add_row("log_level", config.log_level)

    rprint(table)
