"""CLI commands for statevc."""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from statevc import __version__, __logo__

app = typer.Typer(
    name="statevc",
    help=f"{__logo__} statevc - Version control for game states",
    no_args_is_help=True,
)

console = Console()

_state: dict[str, Any] = {"workspace": None}


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} statevc v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
    workspace: Path = typer.Option(
        None, "--workspace", "-w", envvar="STATEVC_WORKSPACE", help="Workspace directory"
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logs"),
):
    """statevc - Version control for game states."""
    _state["workspace"] = workspace
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def _open_workspace():
    from statevc.config.loader import load_config
    from statevc.vc.archive import FileBlobStore, load_engine

    config = load_config()
    workspace = _state["workspace"] or config.workspace_path
    # One-shot commands never run the background retention task
    vc_config = config.version_control.model_copy(update={"cleanup_interval_ms": 0})
    store = FileBlobStore(Path(workspace) / "store", vc_config.compression_threshold)
    return load_engine(store, vc_config), store


def _run(action: Callable[[Any], Awaitable[Any]], save: bool = True) -> Any:
    """Load the workspace engine, run ``action`` on it and persist the result."""
    from statevc.vc.archive import save_engine

    async def run():
        engine, store = _open_workspace()
        try:
            result = await action(engine)
            if save:
                save_engine(engine, store)
            return result
        finally:
            await engine.close()

    return asyncio.run(run())


def _fail(message: str | None) -> None:
    console.print(f"[red]Error: {message}[/red]")
    raise typer.Exit(1)


def _short(value: Any, width: int = 40) -> str:
    text = json.dumps(value, ensure_ascii=False)
    return text if len(text) <= width else text[: width - 3] + "..."


# ============================================================================
# Init / Commit / Checkout
# ============================================================================


@app.command()
def init():
    """Initialize an empty version-control workspace."""

    async def action(engine):
        return engine.get_current_branch()

    branch = _run(action)
    console.print(f"[green]✓[/green] Workspace ready on branch '{branch}'")


@app.command()
def commit(
    file: Path = typer.Argument(..., help="JSON file with the game state"),
    message: str = typer.Option(..., "--message", "-m", help="Commit message"),
    author: str = typer.Option("player", "--author", "-a", help="Commit author"),
    tag: list[str] = typer.Option([], "--tag", "-t", help="Tag the new version (repeatable)"),
):
    """Commit a game state to the active branch."""
    try:
        document = json.loads(file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        _fail(f"Cannot read {file}: {e}")

    async def action(engine):
        return await engine.commit(document, message, author, tag), engine.get_current_branch()

    result, branch = _run(action)
    if not result.success:
        _fail(result.message)
    console.print(f"[green]✓[/green] Committed v{result.version} on '{branch}'")


@app.command()
def checkout(
    target: str = typer.Argument(..., help="Version number, branch or tag"),
    output: Path = typer.Option(None, "--output", "-o", help="Write the state to this file"),
):
    """Check out a version, branch or tag."""
    resolved: int | str = int(target) if target.isdigit() else target

    async def action(engine):
        return await engine.checkout(resolved)

    result = _run(action)
    if not result.success:
        _fail(result.message)

    if output:
        output.write_text(json.dumps(result.document, indent=2, ensure_ascii=False), encoding="utf-8")
        console.print(f"[green]✓[/green] Wrote v{result.version} to {output}")
    else:
        console.print_json(data=result.document)


@app.command()
def log(
    branch: str = typer.Option(None, "--branch", "-b", help="Only versions on this branch"),
    author: str = typer.Option(None, "--author", "-a", help="Only versions by this author"),
    tag: list[str] = typer.Option([], "--tag", "-t", help="Only versions carrying a tag"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum entries (0 = all)"),
):
    """Show version history, newest first."""

    async def action(engine):
        return engine.get_version_history(branch=branch, author=author, tags=tag, limit=limit)

    history = _run(action, save=False)
    if not history:
        console.print("No versions.")
        return

    table = Table(title="Version History")
    table.add_column("Version", style="cyan", justify="right")
    table.add_column("Branch")
    table.add_column("Author")
    table.add_column("Message")
    table.add_column("Tags")
    table.add_column("Time")

    for info in history:
        table.add_row(
            str(info.version),
            info.branch_name,
            info.author,
            info.message,
            ", ".join(info.tags),
            info.timestamp.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)


@app.command()
def diff(
    from_version: int = typer.Argument(..., help="Older version"),
    to_version: int = typer.Argument(..., help="Newer version"),
):
    """Show the structural diff between two versions."""

    async def action(engine):
        return engine.diff(from_version, to_version)

    result = _run(action, save=False)
    if not result.success:
        _fail(result.message)

    version_diff = result.diff
    if not version_diff.changes:
        console.print("No changes.")
        return

    table = Table(title=f"v{from_version} → v{to_version}")
    table.add_column("Type")
    table.add_column("Path", style="cyan")
    table.add_column("Old")
    table.add_column("New")

    styles = {"add": "green", "remove": "red", "modify": "yellow"}
    for change in version_diff.changes:
        style = styles[change.type]
        table.add_row(
            f"[{style}]{change.type}[/{style}]",
            change.path or "<root>",
            "" if change.type == "add" else _short(change.old_value),
            "" if change.type == "remove" else _short(change.new_value),
        )

    console.print(table)
    console.print(
        f"[dim]{version_diff.modified_count} change(s), "
        f"+{version_diff.added_size}/-{version_diff.removed_size} bytes[/dim]"
    )


@app.command()
def merge(
    source: str = typer.Argument(..., help="Branch to merge from"),
    into: str = typer.Option(None, "--into", "-i", help="Branch to merge into (default: active)"),
    prefer: str = typer.Option(
        None, "--prefer", "-p", help="Resolve conflicts with 'source' or 'target' values"
    ),
):
    """Merge a branch into another."""
    from statevc.vc.merge import prefer_source, prefer_target

    resolvers = {"source": prefer_source, "target": prefer_target, None: None}
    if prefer not in resolvers:
        _fail("--prefer must be 'source' or 'target'")

    async def action(engine):
        return await engine.merge_branch(source, into, resolvers[prefer])

    result = _run(action)

    if result.conflicts:
        table = Table(title="Conflicts")
        table.add_column("Path", style="cyan")
        table.add_column("Base")
        table.add_column("Source")
        table.add_column("Target")
        table.add_column("Resolution")
        for conflict in result.conflicts:
            table.add_row(
                conflict.path,
                _short(conflict.base_value, 20),
                _short(conflict.source_value, 20),
                _short(conflict.target_value, 20),
                conflict.resolution or "",
            )
        console.print(table)

    if not result.success:
        _fail(result.message)

    console.print(f"[green]✓[/green] Merged '{source}' as v{result.target_version}")
    if result.is_partial:
        console.print(f"[yellow]{result.message}[/yellow]")


@app.command()
def prune():
    """Run retention now."""

    async def action(engine):
        return await engine.prune()

    report = _run(action)
    console.print(
        f"[green]✓[/green] Removed {len(report.removed_versions)} version(s) "
        f"and {len(report.removed_tags)} tag(s)"
    )


# ============================================================================
# Branch Commands
# ============================================================================

branch_app = typer.Typer(help="Manage branches")
app.add_typer(branch_app, name="branch")


@branch_app.command("list")
def branch_list():
    """List branches."""

    async def action(engine):
        return engine.get_branches(), engine.get_current_branch()

    branches, current = _run(action, save=False)

    table = Table(title="Branches")
    table.add_column("", width=1)
    table.add_column("Name", style="cyan")
    table.add_column("Head", justify="right")
    table.add_column("Base", justify="right")
    table.add_column("Versions", justify="right")
    table.add_column("Description")

    for branch in branches:
        table.add_row(
            "*" if branch.name == current else "",
            branch.name + (" [dim](protected)[/dim]" if branch.is_protected else ""),
            str(branch.current_version) if branch.current_version is not None else "-",
            str(branch.base_version) if branch.base_version is not None else "-",
            str(len(branch.versions)),
            branch.description,
        )

    console.print(table)


@branch_app.command("create")
def branch_create(
    name: str = typer.Argument(..., help="Branch name"),
    base: int = typer.Option(None, "--from", "-f", help="Base version (default: active head)"),
    description: str = typer.Option("", "--description", "-d", help="Description"),
):
    """Create a branch."""

    async def action(engine):
        return await engine.create_branch(name, base, description)

    result = _run(action)
    if not result.success:
        _fail(result.message)
    console.print(f"[green]✓[/green] Created branch '{name}'")


@branch_app.command("switch")
def branch_switch(name: str = typer.Argument(..., help="Branch name")):
    """Switch the active branch."""

    async def action(engine):
        return engine.switch_branch(name)

    result = _run(action)
    if not result.success:
        _fail(result.message)
    console.print(f"[green]✓[/green] Switched to '{name}'")


@branch_app.command("delete")
def branch_delete(name: str = typer.Argument(..., help="Branch name")):
    """Delete a branch."""

    async def action(engine):
        return await engine.delete_branch(name)

    result = _run(action)
    if not result.success:
        _fail(result.message)
    console.print(f"[green]✓[/green] Deleted branch '{name}'")


# ============================================================================
# Tag Commands
# ============================================================================

tag_app = typer.Typer(help="Manage tags")
app.add_typer(tag_app, name="tag")


@tag_app.command("list")
def tag_list():
    """List tags, newest first."""

    async def action(engine):
        return engine.get_tags()

    tags = _run(action, save=False)
    if not tags:
        console.print("No tags.")
        return

    table = Table(title="Tags")
    table.add_column("Name", style="cyan")
    table.add_column("Version", justify="right")
    table.add_column("Created")
    table.add_column("Description")

    for tag in tags:
        name = tag.name + (" [dim](auto)[/dim]" if tag.is_automated else "")
        table.add_row(name, str(tag.version), tag.created.strftime("%Y-%m-%d %H:%M"), tag.description)

    console.print(table)


@tag_app.command("create")
def tag_create(
    name: str = typer.Argument(..., help="Tag name"),
    version: int = typer.Argument(..., help="Version to tag"),
    description: str = typer.Option("", "--description", "-d", help="Description"),
):
    """Tag a version."""

    async def action(engine):
        return await engine.create_tag(name, version, description)

    result = _run(action)
    if not result.success:
        _fail(result.message)
    console.print(f"[green]✓[/green] Tagged v{version} as '{name}'")


@tag_app.command("delete")
def tag_delete(name: str = typer.Argument(..., help="Tag name")):
    """Delete a tag."""

    async def action(engine):
        return await engine.delete_tag(name)

    result = _run(action)
    if not result.success:
        _fail(result.message)
    console.print(f"[green]✓[/green] Deleted tag '{name}'")


if __name__ == "__main__":
    app()
