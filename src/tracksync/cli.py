"""CLI interface for tracksync."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from tracksync import __version__
from tracksync.config import Config
from tracksync.core.models import Space, TrackerCredentials, Workspace
from tracksync.core.state import StateStore
from tracksync.errors import SyncError
from tracksync.notifications.dispatcher import EventDispatcher, create_notifier
from tracksync.sync.handlers import OperationResponse, SyncHandlers
from tracksync.sync.orchestrator import SyncOrchestrator
from tracksync.sync.results import SyncEvent

app = typer.Typer(
    name="tracksync",
    help="Import, export and sync tasks between a local workspace and Jira.",
    no_args_is_help=True,
)
console = Console()

DomainOption = Annotated[str, typer.Option("--domain", "-d", envvar="JIRA_DOMAIN", help="Jira site, e.g. acme.atlassian.net")]
EmailOption = Annotated[str, typer.Option("--email", "-e", envvar="JIRA_EMAIL", help="Jira account email")]
TokenOption = Annotated[str, typer.Option("--token", envvar="JIRA_API_TOKEN", help="Jira API token", show_default=False)]


class AppState:
    """Per-invocation settings shared by commands."""

    config: Config = Config()


state = AppState()


@app.callback()
def main(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-c", help="Path to config file (default: .tracksync/config.yaml)"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show info-level logs"),
    ] = False,
) -> None:
    """Sync tasks, statuses and projects with Jira."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    state.config = Config.load(config_path)


def _orchestrator() -> SyncOrchestrator:
    return SyncOrchestrator(StateStore(state.config.database_path), state.config)


def _dispatcher() -> EventDispatcher:
    return EventDispatcher(create_notifier(state.config.notifications))


def _handle(call: Callable[[SyncHandlers], Awaitable[OperationResponse]]) -> OperationResponse:
    """Run one handler call, closing the notifier afterwards."""

    async def run() -> OperationResponse:
        handlers = SyncHandlers(_orchestrator(), _dispatcher())
        try:
            return await call(handlers)
        finally:
            await handlers.aclose()

    return asyncio.run(run())


async def _notify(events: list[SyncEvent]) -> None:
    dispatcher = _dispatcher()
    try:
        await dispatcher.dispatch(events)
    finally:
        await dispatcher.aclose()


def _print_response(response: OperationResponse) -> None:
    """Print an operation response and exit 1 on failure."""
    if not response.success:
        suffix = f" ({response.error_category})" if response.error_category else ""
        console.print(f"[red]Error: {response.error}{suffix}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]{response.message}[/green]")
    if response.warning:
        console.print(f"[yellow]{response.warning}[/yellow]")
    for key, value in response.data.items():
        if isinstance(value, list):
            value = json.dumps(value) if value else "-"
        console.print(f"  {key}: {value}")


def _call(fn: Callable[..., Any], *args: Any) -> Any:
    """Run an orchestrator call, awaiting it if needed; errors exit 1."""
    try:
        result = fn(*args)
        if asyncio.iscoroutine(result):
            result = asyncio.run(result)
    except SyncError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e
    return result


@app.command()
def version() -> None:
    """Show the installed version."""
    console.print(f"tracksync {__version__}")


@app.command()
def init(
    workspace_name: Annotated[str, typer.Argument(help="Workspace name")],
    space_name: Annotated[str, typer.Option("--space", "-s", help="Name of the first space")] = "General",
) -> None:
    """Create a workspace and a space in the local database."""
    store = StateStore(state.config.database_path)
    workspace = store.insert_workspace(Workspace(name=workspace_name))
    space = store.insert_space(Space(workspace_id=workspace.id, name=space_name))

    console.print(f"[green]Created workspace {workspace.name}[/green]")
    console.print(f"  workspace_id: {workspace.id}")
    console.print(f"  space_id: {space.id}")


@app.command("test-connection")
def test_connection(domain: DomainOption, email: EmailOption, token: TokenOption) -> None:
    """Check that Jira accepts the credentials."""
    credentials = TrackerCredentials(domain=domain, email=email, api_token=token)
    ok = _call(_orchestrator().test_connection, credentials)
    if not ok:
        console.print(f"[red]Could not connect to {domain}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Connected to {domain}[/green]")


@app.command("import")
def import_projects(
    space_id: Annotated[str, typer.Argument(help="Local space receiving the projects")],
    projects: Annotated[list[str], typer.Option("--project", "-p", help="Jira project key (repeatable)")],
    domain: DomainOption,
    email: EmailOption,
    token: TokenOption,
) -> None:
    """Import Jira projects with their statuses and issues."""
    payload = {
        "domain": domain,
        "email": email,
        "apiToken": token,
        "space_id": space_id,
        "selected_projects": projects,
    }
    _print_response(_handle(lambda handlers: handlers.handle_import(payload)))


@app.command()
def export(
    project_key: Annotated[str, typer.Option("--project-key", "-k", help="Destination Jira project key")],
    domain: DomainOption,
    email: EmailOption,
    token: TokenOption,
    project_id: Annotated[str | None, typer.Option("--project-id", help="Export tasks of this local project")] = None,
    space_id: Annotated[str | None, typer.Option("--space-id", help="Export tasks of this local space")] = None,
    create: Annotated[bool, typer.Option("--create", help="Create the Jira project first")] = False,
    name: Annotated[str | None, typer.Option("--name", help="Name of the Jira project to create")] = None,
    mappings: Annotated[
        list[str] | None,
        typer.Option("--map", "-m", help="Status mapping LOCAL_STATUS_ID=JIRA_STATUS_ID (repeatable)"),
    ] = None,
) -> None:
    """Export local tasks to a Jira project."""
    status_mappings = []
    for mapping in mappings or []:
        local_id, sep, jira_id = mapping.partition("=")
        if not sep or not local_id or not jira_id:
            console.print(f"[red]Invalid status mapping: {mapping!r} (expected LOCAL=JIRA)[/red]")
            raise typer.Exit(1)
        status_mappings.append({"localStatusId": local_id, "jiraStatusId": jira_id})

    payload = {
        "credentials": {"domain": domain, "email": email, "apiToken": token},
        "projectKey": project_key,
        "projectName": name,
        "createNewProject": create,
        "statusMappings": status_mappings,
        "selectedProjectId": project_id,
        "selectedSpaceId": space_id,
    }
    _print_response(_handle(lambda handlers: handlers.handle_export(payload)))


@app.command()
def sync(project_id: Annotated[str, typer.Argument(help="Tracker-linked local project")]) -> None:
    """Reconcile a project with the latest Jira state."""
    _print_response(_handle(lambda handlers: handlers.handle_sync({"projectId": project_id})))


@app.command("mark-pending")
def mark_pending(task_id: Annotated[str, typer.Argument(help="Tracker-linked local task")]) -> None:
    """Flag a linked task so the next push sends it."""
    task = _call(_orchestrator().mark_task_pending, task_id)
    console.print(f"[green]Task {task.id} marked for push[/green]")


@app.command()
def push(project_id: Annotated[str, typer.Argument(help="Tracker-linked local project")]) -> None:
    """Push locally edited tasks back to Jira."""
    result = _call(_orchestrator().push_changes, project_id)
    asyncio.run(_notify(result.events))

    style = "yellow" if result.failed else "green"
    console.print(f"[{style}]Pushed {result.pushed} task(s), {result.failed} failed[/{style}]")
    for task_id, error in result.errors.items():
        console.print(f"  [red]{task_id}[/red]: {error}")
    if result.failed:
        raise typer.Exit(1)


@app.command()
def status(project_id: Annotated[str, typer.Argument(help="Local project")]) -> None:
    """Show the sync state of a project's tasks."""
    report = _call(_orchestrator().sync_report, project_id)

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("State")
    table.add_column("Tasks", justify="right")
    table.add_row("[green]synced[/green]", str(report.synced_tasks))
    table.add_row("[yellow]pending[/yellow]", str(report.pending_tasks))
    table.add_row("[red]failed[/red]", str(report.failed_tasks))
    table.add_row("[dim]unsynced[/dim]", str(report.unsynced_tasks))
    table.add_row("[bold]total[/bold]", str(report.total_tasks))

    console.print(f"\n[bold]Project:[/bold] {report.project_id}  [bold]Jira statuses:[/bold] {report.statuses}\n")
    console.print(table)


@app.command("reset-failed")
def reset_failed(project_id: Annotated[str, typer.Argument(help="Local project")]) -> None:
    """Return failed tasks to unsynced so they are retried."""
    count = _call(_orchestrator().reset_failed, project_id)
    console.print(f"[green]Reset {count} failed task(s)[/green]")


if __name__ == "__main__":
    app()
