"""CLI for ObjectVault.

Commands:
    serve                    - Run the HTTP API (with the indexing scheduler)
    ingest <path>            - Upload files/directories for an owner
    index                    - Run one OCR indexing tick now
    list                     - List an owner's objects
    search <query>           - Full-text search over OCR'd objects
    publish <id>             - Give an object a public slug
    delete <id>...           - Delete objects
    thumbnail <id>           - Write an object's thumbnail to disk
    stats                    - Show indexing state counts
    init-db / reset-db       - Manage the catalog schema
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import ExitStack
from pathlib import Path
from typing import Annotated, TypeVar
from uuid import UUID

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from object_vault.config import settings
from object_vault.errors import ObjectVaultError
from object_vault.models import IndexState, StoredObject
from object_vault.services.ingest import UploadSource
from object_vault.state import Services, build_services, prepare_backends
from object_vault.utils.content_type import probe_content_type_from_path

T = TypeVar("T")

app = typer.Typer(
    name="object-vault",
    help="ObjectVault: personal content-addressable object store with OCR search",
    no_args_is_help=True,
)
console = Console()

OwnerOption = Annotated[
    UUID,
    typer.Option("--owner", help="Owner id", envvar="OBJECT_VAULT_OWNER"),
]


def run_async(coro):
    """Run an async coroutine in sync context."""
    return asyncio.run(coro)


def run_with_services(fn: Callable[[Services], Awaitable[T]]) -> T:
    """Build production services, run ``fn`` with them and close them afterwards.

    Domain errors are reported on the console and exit with status 1.
    """

    async def _run() -> T:
        from object_vault.db import dispose_db, init_db

        await init_db()
        services = build_services()
        try:
            await prepare_backends(services)
            return await fn(services)
        finally:
            await services.close()
            await dispose_db()

    try:
        return run_async(_run())
    except ObjectVaultError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def _objects_table(title: str, objects: list[StoredObject], *, full_ids: bool = False) -> Table:
    table = Table(title=title)
    table.add_column("ID", no_wrap=full_ids)
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Size", justify="right")
    table.add_column("State")
    table.add_column("Slug")

    state_style = {
        IndexState.RAW: "dim",
        IndexState.PENDING: "yellow",
        IndexState.INDEXED: "green",
    }
    for obj in objects:
        object_id = str(obj.object_id) if full_ids else str(obj.object_id)[:8] + "..."
        name = obj.file_name if len(obj.file_name) <= 40 else obj.file_name[:40] + "..."
        style = state_style[obj.index_state]
        table.add_row(
            object_id,
            name,
            obj.content_type,
            f"{obj.content_size:,}",
            f"[{style}]{obj.index_state.value}[/{style}]",
            obj.slug or "-",
        )
    return table


@app.callback()
def configure(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
):
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )
    # Silence noisy libraries
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Bind port")] = 6601,
):
    """Run the HTTP API and the background indexing scheduler."""
    import uvicorn

    uvicorn.run("object_vault.app:app", host=host, port=port, log_config=None)


@app.command()
def ingest(
    path: Annotated[Path, typer.Argument(help="File or directory to ingest")],
    owner: OwnerOption,
    recursive: Annotated[
        bool, typer.Option("--recursive", "-r", help="Recursively ingest directories")
    ] = False,
):
    """Upload files as one batch. Files already stored for the owner are skipped."""
    files_to_process: list[Path] = []
    if path.is_file():
        files_to_process.append(path)
    elif path.is_dir():
        pattern = "**/*" if recursive else "*"
        files_to_process.extend(sorted(f for f in path.glob(pattern) if f.is_file()))
    else:
        console.print(f"[red]Error:[/red] Path does not exist: {path}")
        raise typer.Exit(1)

    if not files_to_process:
        console.print("[yellow]No files found to ingest.[/yellow]")
        raise typer.Exit(0)

    console.print(f"[blue]Ingesting {len(files_to_process)} file(s)...[/blue]\n")

    async def _ingest(services: Services) -> list[StoredObject]:
        with ExitStack() as stack:
            sources = [
                UploadSource(
                    stream=stack.enter_context(f.open("rb")),
                    content_type=probe_content_type_from_path(f),
                    file_name=f.name,
                )
                for f in files_to_process
            ]
            return await services.ingest.ingest(owner, sources)

    created = run_with_services(_ingest)

    if created:
        console.print(_objects_table("Created Objects", created))
    skipped = len(files_to_process) - len(created)
    console.print(f"\n[bold]Summary:[/bold] {len(created)} created, {skipped} skipped")


@app.command()
def index():
    """Run one indexing tick: OCR every searchable, unindexed object."""

    async def _index(services: Services):
        return await services.indexing.run_once()

    report = run_with_services(_index)
    console.print(
        Panel(
            f"[bold]Selected:[/bold] {report.selected}\n"
            f"[bold]Indexed:[/bold] {report.indexed}\n"
            f"[bold]Failed:[/bold] {report.failed}",
            title="Indexing Tick",
        )
    )
    if report.failed:
        raise typer.Exit(1)


@app.command("list")
def list_objects(
    owner: OwnerOption,
    limit: Annotated[int, typer.Option(help="Maximum objects to show")] = 20,
    skip: Annotated[int, typer.Option(help="Objects to skip")] = 0,
    full_ids: Annotated[bool, typer.Option("--full-ids", "-f", help="Show full UUIDs")] = False,
):
    """List an owner's objects, newest first."""

    async def _list(services: Services) -> list[StoredObject]:
        return await services.objects.list_objects(owner, limit=limit, skip=skip)

    objects = run_with_services(_list)
    if not objects:
        console.print("[yellow]No objects found.[/yellow]")
        return
    console.print(_objects_table("Objects", objects, full_ids=full_ids))


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query")],
    owner: OwnerOption,
    offset: Annotated[int, typer.Option(help="Results to skip")] = 0,
    full_ids: Annotated[bool, typer.Option("--full-ids", "-f", help="Show full UUIDs")] = False,
):
    """Search an owner's objects by their OCR'd text."""

    async def _search(services: Services) -> list[StoredObject]:
        return await services.objects.search(owner, query, offset=offset)

    objects = run_with_services(_search)
    if not objects:
        console.print(f"[yellow]No objects found matching '{query}'[/yellow]")
        return
    console.print(_objects_table(f"Search Results: '{query}'", objects, full_ids=full_ids))


@app.command()
def publish(
    object_id: Annotated[UUID, typer.Argument(help="Object ID")],
    owner: OwnerOption,
):
    """Publish an object under a permanent public slug."""

    async def _publish(services: Services) -> StoredObject:
        return await services.objects.publish(owner, object_id)

    obj = run_with_services(_publish)
    console.print(f"[green]Published[/green] {obj.file_name} as [cyan]{obj.slug}[/cyan]")


@app.command()
def delete(
    object_ids: Annotated[list[UUID], typer.Argument(help="Object IDs to delete")],
    owner: OwnerOption,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Skip confirmation prompt")
    ] = False,
):
    """Delete objects and their blobs."""
    if not force:
        confirm = typer.confirm(f"Delete {len(object_ids)} object(s)?", default=False)
        if not confirm:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit(0)

    async def _delete(services: Services) -> list[UUID]:
        return await services.objects.delete(owner, object_ids)

    deleted = run_with_services(_delete)
    console.print(f"[green]Deleted {len(deleted)} of {len(object_ids)} object(s).[/green]")


@app.command()
def thumbnail(
    object_id: Annotated[UUID, typer.Argument(help="Object ID")],
    owner: OwnerOption,
    output: Annotated[
        Path | None, typer.Option("--output", help="Output file (default: <id>.webp)")
    ] = None,
):
    """Fetch (rendering if needed) an object's thumbnail."""

    async def _thumbnail(services: Services) -> bytes:
        return await services.thumbnails.thumbnail_for(owner, object_id)

    data = run_with_services(_thumbnail)
    target = output or Path(f"{object_id}.webp")
    target.write_bytes(data)
    console.print(f"[green]Wrote[/green] {target} ({len(data):,} bytes)")


@app.command()
def stats(
    owner: Annotated[
        UUID | None, typer.Option("--owner", help="Restrict to one owner")
    ] = None,
):
    """Show how many objects are in each indexing state."""

    async def _stats(services: Services) -> dict[IndexState, int]:
        return await services.repository.count_by_state(owner)

    counts = run_with_services(_stats)
    table = Table(title="Objects by Indexing State")
    table.add_column("State")
    table.add_column("Count", justify="right")
    for state in IndexState:
        table.add_row(state.value, str(counts[state]))
    console.print(table)
    console.print(f"\n[dim]{sum(counts.values())} objects total[/dim]")


@app.command("init-db")
def init_db_command():
    """Initialize the database schema (creates tables if they don't exist)."""

    async def _init():
        from object_vault.db import dispose_db, init_db

        await init_db()
        await dispose_db()
        console.print("[green]Database initialized successfully.[/green]")

    run_async(_init())


@app.command("reset-db")
def reset_db_command(
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Skip confirmation prompt")
    ] = False,
):
    """Drop all tables and recreate them.

    WARNING: This destroys the catalog! Blobs in S3 are left untouched.
    """
    if not force:
        confirm = typer.confirm(
            "This will DELETE THE WHOLE CATALOG. Are you sure?",
            default=False,
        )
        if not confirm:
            console.print("[yellow]Aborted.[/yellow]")
            raise typer.Exit(0)

    async def _reset():
        from object_vault.db import dispose_db, reset_db

        await reset_db()
        await dispose_db()
        console.print("[green]Database reset successfully.[/green]")

    run_async(_reset())


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
