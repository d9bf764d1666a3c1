"""
Command-line interface for Gradient.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from gradient.config import build_manager, load_settings
from gradient.exceptions import GradientError
from gradient.media import PendingMedia
from gradient.schema import AttachmentType, Note, Project, ProjectStatus, Task, decode_documents
from gradient.sync import SearchScope, SyncManager

app = typer.Typer(
    name="gradient",
    help="Gradient - projects, tasks and notes kept in sync with a document store",
)
console = Console()

T = TypeVar("T")

# Attachment type by file extension
ATTACHMENT_TYPES = {
    ".jpg": AttachmentType.IMAGE,
    ".jpeg": AttachmentType.IMAGE,
    ".png": AttachmentType.IMAGE,
    ".mp4": AttachmentType.VIDEO,
    ".mov": AttachmentType.VIDEO,
    ".m4a": AttachmentType.AUDIO,
}


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")):
    """Configure logging for every command."""
    settings = load_settings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _run(action: Callable[[SyncManager], Awaitable[T]]) -> T:
    """Open a manager, run ``action`` against it and close the store."""

    async def _wrapped() -> T:
        manager = build_manager(load_settings())
        await manager.store.initialize()
        try:
            return await action(manager)
        finally:
            await manager.store.close()

    try:
        return asyncio.run(_wrapped())
    except GradientError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1) from e


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as e:
        raise typer.BadParameter(f"Expected an ISO date, got {value!r}") from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _fmt(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


async def _snapshot(collection) -> tuple[Any, ...]:
    try:
        return await collection.wait_for(lambda items: True)
    finally:
        await collection.close()


@app.command()
def projects(
    search: str = typer.Option("", "--search", "-s", help="Filter projects by text"),
    scope: SearchScope = typer.Option(SearchScope.ALL, "--scope", help="Fields to search"),
):
    """List projects by name."""

    async def _projects(manager: SyncManager):
        collection = await manager.watch_projects()
        collection.set_search(search, scope)
        return await _snapshot(collection)

    items = _run(_projects)
    if not items:
        console.print("[yellow]No projects found.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Workshops")
    table.add_column("Tasks", justify="right")
    table.add_column("Notes", justify="right")
    for project in items:
        table.add_row(
            project.id,
            project.name,
            project.status.value,
            ", ".join(project.workshops) or "-",
            str(len(project.tasks)),
            str(len(project.notes)),
        )
    console.print(table)


@app.command("add-project")
def add_project(
    name: str = typer.Argument(..., help="Project name"),
    description: str = typer.Option("", "--description", "-d"),
    status: ProjectStatus = typer.Option(ProjectStatus.NOT_STARTED, "--status"),
    workshop: list[str] = typer.Option([], "--workshop", "-w", help="Workshop tag (repeatable)"),
    needed: list[str] = typer.Option([], "--needs", help="Material still needed (repeatable)"),
):
    """Create a project."""

    async def _add(manager: SyncManager):
        project = Project(
            name=name,
            description=description,
            status=status,
            workshops=workshop,
            materials_needed=needed,
        )
        return await manager.create_project(project)

    project = _run(_add)
    console.print(f"[green]Created project[/green] {project.name} [dim]{project.id}[/dim]")


@app.command()
def tasks(project_id: str = typer.Argument(..., help="Project ID")):
    """List the tasks of a project."""

    async def _tasks(manager: SyncManager):
        return await _snapshot(await manager.watch_tasks(project_id))

    items = _run(_tasks)
    if not items:
        console.print("[yellow]No tasks.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Due")
    table.add_column("Reminder")
    for task in items:
        table.add_row(
            task.id,
            task.title,
            task.status.value,
            _fmt(task.due_date),
            _fmt(task.notification_date) if task.has_reminder else "-",
        )
    console.print(table)


@app.command("add-task")
def add_task(
    project_id: str = typer.Argument(..., help="Project ID"),
    title: str = typer.Argument(..., help="Task title"),
    due: str = typer.Option(None, "--due", help="Due date (ISO 8601)"),
    remind: str = typer.Option(None, "--remind", help="Reminder date (ISO 8601)"),
):
    """Add a task to a project."""
    due_date = _parse_date(due)
    reminder_date = _parse_date(remind)

    async def _add(manager: SyncManager):
        task = Task(
            title=title,
            due_date=due_date,
            notify_user=reminder_date is not None,
            notification_date=reminder_date,
            project_id=project_id,
        )
        return await manager.create_task(task)

    task = _run(_add)
    console.print(f"[green]Added task[/green] {task.title} [dim]{task.id}[/dim]")


@app.command()
def notes(project_id: str = typer.Argument(..., help="Project ID")):
    """List the notes of a project, newest first."""

    async def _notes(manager: SyncManager):
        return await _snapshot(await manager.watch_notes(project_id))

    items = _run(_notes)
    if not items:
        console.print("[yellow]No notes.[/yellow]")
        return

    for note in items:
        heading = note.title or note.content[:40]
        console.print(f"\n[bold]{heading}[/bold] [dim]{_fmt(note.created_at)}[/dim]")
        console.print(f"  {note.content}")
        for attachment in note.attachments:
            console.print(f"  [cyan]{attachment.type.value}[/cyan] {attachment.file_url}")


@app.command("add-note")
def add_note(
    project_id: str = typer.Argument(..., help="Project ID"),
    content: str = typer.Argument(..., help="Note text"),
    title: str = typer.Option(None, "--title", "-t"),
    attach: list[Path] = typer.Option([], "--attach", "-a", help="Media file to attach (repeatable)"),
):
    """Add a note, uploading any attached media first."""
    media = []
    for path in attach:
        media_type = ATTACHMENT_TYPES.get(path.suffix.lower())
        if media_type is None:
            raise typer.BadParameter(f"Unsupported attachment type: {path.name}")
        media.append(PendingMedia(data=path.read_bytes(), type=media_type))

    async def _add(manager: SyncManager):
        return await manager.create_note(Note(title=title, content=content, project_id=project_id), media)

    note = _run(_add)
    console.print(f"[green]Added note[/green] {note.id} with {len(note.attachments)} attachment(s)")


@app.command("delete-project")
def delete_project(
    project_id: str = typer.Argument(..., help="Project ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Delete a project with all of its tasks, notes and media."""
    if not yes:
        typer.confirm(f"Delete project {project_id} and everything in it?", abort=True)

    report = _run(lambda manager: manager.delete_project(project_id))
    console.print(
        f"[green]Deleted[/green] {len(report.deleted_tasks)} task(s), "
        f"{len(report.deleted_notes)} note(s), {len(report.blob_urls)} blob(s)"
    )
    if report.failed_blob_urls:
        console.print(f"[yellow]{len(report.failed_blob_urls)} blob(s) could not be removed[/yellow]")


@app.command()
def orphans(project_id: str = typer.Argument(..., help="Project ID")):
    """Report back-reference drift between a project and its children."""
    report = _run(lambda manager: manager.find_orphans(project_id))

    if report.consistent:
        console.print("[green]Project references are consistent.[/green]")
        return

    table = Table(show_header=True, header_style="bold red")
    table.add_column("Problem")
    table.add_column("IDs")
    if not report.project_exists:
        table.add_row("Project missing", project_id)
    for label, ids in (
        ("Tasks not listed on project", report.unlisted_tasks),
        ("Notes not listed on project", report.unlisted_notes),
        ("Listed tasks with no document", report.dangling_tasks),
        ("Listed notes with no document", report.dangling_notes),
    ):
        if ids:
            table.add_row(label, "\n".join(ids))
    console.print(table)
    raise typer.Exit(code=2)


@app.command()
def export(
    output: Path = typer.Option(Path("gradient_export"), "--output", "-o", help="Output directory"),
):
    """Export every readable document as JSON lines, one file per collection."""

    async def _export(manager: SyncManager):
        counts = {}
        output.mkdir(parents=True, exist_ok=True)
        for model in (Project, Task, Note):
            entities = decode_documents(model, await manager.store.query(model.collection))
            lines = [entity.to_json().decode() for entity in entities]
            (output / f"{model.collection}.jsonl").write_text("".join(f"{line}\n" for line in lines))
            counts[model.collection] = len(lines)
        return counts

    counts = _run(_export)
    for collection, count in counts.items():
        console.print(f"  {collection}: {count}")
    console.print(f"[green]Exported to {output}[/green]")


if __name__ == "__main__":
    app()
