"""CLI: tasktrack tasks list|add|done|undo|edit|rm"""

from typing import Any, Optional

import click
from rich.console import Console
from rich.table import Table

from tasktrack.mutations import MutationResult
from tasktrack.preferences import PreferenceStore, StatusFilter, filter_tasks

console = Console()

PRIORITY_STYLE = {"high": "red", "medium": "yellow", "low": "green"}


async def _signed_in_client():
    from tasktrack.cli.main import _signed_in_client
    return await _signed_in_client()


def _run(coro):
    from tasktrack.cli.main import _run
    return _run(coro)


async def _resolve_id(client, prefix: str) -> str:
    """Accept a full task id or any unique prefix of one."""
    entry = await client.list_tasks()
    matches = [str(t.id) for t in entry.data or [] if str(t.id).startswith(prefix)]
    if len(matches) != 1:
        console.print(f"[red]{'No' if not matches else 'Ambiguous'} task matching {prefix!r}.[/red]")
        raise SystemExit(1)
    return matches[0]


def _report(result: MutationResult, done: str) -> None:
    if result.ok:
        console.print(f"[green]{done}[/green]")
        return
    console.print(f"[red]Failed: {result.error}[/red]")
    raise SystemExit(1)


@click.group()
def tasks():
    """Task commands."""


@tasks.command("list")
@click.option("--status", type=click.Choice([s.value for s in StatusFilter]), default=None,
              help="Filter by completion; remembered for next time.")
@click.option("--priority", type=click.Choice(["low", "medium", "high"]), default=None)
@click.option("--search", default="", help="Match title or description.")
@click.option("--sort", "sort_by", type=click.Choice(["date", "priority", "title"]), default="date")
@click.option("--asc", is_flag=True, help="Ascending order.")
def tasks_list(status: Optional[str], priority: Optional[str], search: str, sort_by: str, asc: bool):
    """List your tasks."""
    prefs = PreferenceStore()
    if status is not None:
        prefs.set_filter_completed(StatusFilter(status))

    async def _list():
        client = await _signed_in_client()
        try:
            with console.status("Loading tasks..."):
                entry = await client.list_tasks()
        finally:
            await client.close()
        if entry.error is not None:
            console.print(f"[yellow]Could not refresh tasks: {entry.error}[/yellow]")
        rows = filter_tasks(
            entry.data or [], prefs.prefs.filter_completed, priority, search,
            sort_by=sort_by, sort_order="asc" if asc else "desc",
        )
        if not rows:
            console.print("[dim]No tasks yet.[/dim]")
            return
        table = Table(title=f"Your tasks ({len(rows)})")
        table.add_column("ID", style="dim")
        table.add_column("")
        table.add_column("Title")
        table.add_column("Priority")
        table.add_column("Due")
        for t in rows:
            mark = "[green]✓[/green]" if t.completed else "○"
            title = f"[strike dim]{t.title}[/strike dim]" if t.completed else t.title
            style = PRIORITY_STYLE.get(t.priority, "white")
            due = t.due_date.strftime("%d %b %Y") if t.due_date else ""
            table.add_row(str(t.id)[:8], mark, title, f"[{style}]{t.priority}[/{style}]", due)
        console.print(table)

    _run(_list())


@tasks.command("add")
@click.argument("title")
@click.option("-d", "--description", default=None)
@click.option("--priority", type=click.Choice(["low", "medium", "high"]), default="medium")
@click.option("--due", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="YYYY-MM-DD")
def tasks_add(title: str, description: Optional[str], priority: str, due):
    """Add a task."""

    async def _add():
        client = await _signed_in_client()
        try:
            with console.status("Adding..."):
                result = await client.create_task({
                    "title": title, "description": description, "priority": priority, "due_date": due,
                })
        finally:
            await client.close()
        _report(result, f"Added {result.task.id if result.task else ''}")

    _run(_add())


def _set_completed(task_id: str, completed: bool) -> None:
    async def _do():
        client = await _signed_in_client()
        try:
            full_id = await _resolve_id(client, task_id)
            result = await client.set_completed(full_id, completed)
        finally:
            await client.close()
        _report(result, "Marked done." if completed else "Marked not done.")

    _run(_do())


@tasks.command("done")
@click.argument("task_id")
def tasks_done(task_id: str):
    """Mark a task completed."""
    _set_completed(task_id, True)


@tasks.command("undo")
@click.argument("task_id")
def tasks_undo(task_id: str):
    """Mark a task not completed."""
    _set_completed(task_id, False)


@tasks.command("edit")
@click.argument("task_id")
@click.option("--title", default=None)
@click.option("-d", "--description", default=None)
@click.option("--priority", type=click.Choice(["low", "medium", "high"]), default=None)
@click.option("--due", type=click.DateTime(formats=["%Y-%m-%d"]), default=None, help="YYYY-MM-DD")
def tasks_edit(task_id: str, title: Optional[str], description: Optional[str], priority: Optional[str], due):
    """Change a task's fields."""
    changes: dict[str, Any] = {
        k: v for k, v in {"title": title, "description": description, "priority": priority, "due_date": due}.items()
        if v is not None
    }
    if not changes:
        raise click.UsageError("Nothing to change.")

    async def _edit():
        client = await _signed_in_client()
        try:
            full_id = await _resolve_id(client, task_id)
            result = await client.update_task(full_id, changes)
        finally:
            await client.close()
        _report(result, "Updated.")

    _run(_edit())


@tasks.command("rm")
@click.argument("task_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
def tasks_rm(task_id: str, yes: bool):
    """Delete a task."""
    if not yes:
        click.confirm("Are you sure you want to delete this task?", abort=True)

    async def _rm():
        client = await _signed_in_client()
        try:
            full_id = await _resolve_id(client, task_id)
            result = await client.delete_task(full_id)
        finally:
            await client.close()
        _report(result, "Deleted.")

    _run(_rm())
