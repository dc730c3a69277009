"""Typer-based CLI for routegen."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .cache import get_cache_manager
from .cli_watch import watch
from .config import DEFAULT_DEBOUNCE_SECONDS, DEFAULT_OUTPUT_DIR, INIT_TEMPLATE_DIR
from .config_manager import load_project_config, normalize_module_name
from .errors import CycleError, RoutegenError
from .generator import RouteGenerator
from .log import configure_logging
from .models import CacheStats
from .route_tree import import_prefix
from .templates import TemplateRenderer
from .walker import RouteTreeBuilder

console = Console()

app = typer.Typer(
    help="⚡ routegen: file-system routes to generated Python handlers, rebuilt incrementally.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("watch")(watch)


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"routegen v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logging."),
    logfile: Optional[Path] = typer.Option(None, "--logfile", help="Also write debug logs to this file."),
):
    """routegen: generate route registration code from a directory of route.py files."""
    configure_logging(verbose=verbose, log_file=logfile)


def _fail(exc: Exception) -> NoReturn:
    console.print(f"[red]✗[/red] {exc}")
    raise typer.Exit(1)


def _stats_table(stats: Dict[str, CacheStats]) -> Table:
    table = Table(title="Cache statistics")
    table.add_column("Layer", style="cyan")
    table.add_column("Entries", justify="right")
    table.add_column("Hits", justify="right")
    table.add_column("Misses", justify="right")
    table.add_column("Hit rate", justify="right")
    for layer, stat in stats.items():
        table.add_row(
            layer,
            str(stat.total_files),
            str(stat.cache_hits),
            str(stat.cache_misses),
            f"{stat.hit_rate:.1f}%",
        )
    return table


def _display_path(path: str, root: Path) -> str:
    if os.path.isabs(path):
        try:
            return Path(path).relative_to(root).as_posix()
        except ValueError:
            return path
    return path


@app.command("generate")
def generate(
    path: Path = typer.Argument(Path("."), exists=True, file_okay=False, help="Project root."),
    stats: bool = typer.Option(False, "--stats", help="Print cache statistics after the pass."),
):
    """Walk the project and regenerate stale route modules."""
    root = path.resolve()
    try:
        config = load_project_config(root)
        generator = RouteGenerator(root, config=config)
        report = generator.generate()
    except RoutegenError as exc:
        _fail(exc)

    console.print(generator.tree.to_rich_tree(config.name))
    console.print(
        f"[green]✓[/green] {report.routes} route(s): "
        f"{len(report.generated)} generated, {len(report.skipped)} unchanged "
        f"[dim]({report.duration:.2f}s)[/dim]"
    )
    for folder in report.generated:
        console.print(f"  [cyan]{folder}[/cyan] [dim]{report.reasons.get(folder, '')}[/dim]")
    if report.registry_written:
        console.print(f"[green]✓[/green] Registry written to {generator.registry_path}")
    if report.copied_dependencies:
        console.print(f"[green]✓[/green] Copied {report.copied_dependencies} local dependency module(s)")
    if report.integrity is not None and report.integrity.cycles:
        console.print(
            f"[yellow]⚠[/yellow] {len(report.integrity.cycles)} dependency cycle(s) detected; "
            "run 'routegen graph' for details"
        )

    if stats:
        console.print(_stats_table(get_cache_manager().get_stats()))


@app.command("init")
def init(
    directory: Path = typer.Argument(..., file_okay=False, help="Directory for the new project."),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite files in a non-empty directory."),
    module: str = typer.Option("", "--module", "-m", help="Import root of the generated package."),
):
    """Scaffold a new routegen project."""
    target = directory.resolve()
    if target.exists() and any(target.iterdir()) and not force:
        console.print(f"[red]✗[/red] {directory} is not empty (use --force to overwrite)")
        raise typer.Exit(1)

    module_name = normalize_module_name(module) if module else ""
    data = {
        "name": target.name,
        "module": module_name,
        "output": DEFAULT_OUTPUT_DIR,
        "output_package": import_prefix(DEFAULT_OUTPUT_DIR, module_name),
        "debounce": DEFAULT_DEBOUNCE_SECONDS,
    }
    try:
        written = TemplateRenderer().render_folder(INIT_TEMPLATE_DIR, target, data)
    except RoutegenError as exc:
        _fail(exc)

    console.print(f"[green]✓[/green] Created project [cyan]{target.name}[/cyan]")
    for file in written:
        console.print(f"  {file.relative_to(target).as_posix()}")
    console.print(f"\n[dim]Next: cd {directory} && routegen generate && python main.py[/dim]")


@app.command("graph")
def graph(
    path: Path = typer.Argument(Path("."), exists=True, file_okay=False, help="Project root."),
):
    """Show the route dependency graph in build order."""
    root = path.resolve()
    manager = get_cache_manager()
    try:
        config = load_project_config(root)
        RouteTreeBuilder(root, exclude=config.exclude_paths, manager=manager).walk()
        order = manager.get_topological_order()
    except CycleError as exc:
        console.print(f"[red]✗[/red] {exc}")
        for index, cycle in enumerate(manager.detect_cycles(), start=1):
            shown = " -> ".join(_display_path(node, root) for node in cycle + cycle[:1])
            console.print(f"  cycle {index}: {shown}")
        raise typer.Exit(1)
    except RoutegenError as exc:
        _fail(exc)

    table = Table(title=f"Dependency order ({len(order)} nodes)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Node", style="cyan")
    table.add_column("Depends on", justify="right")
    table.add_column("Dependents", justify="right")
    for index, node in enumerate(order, start=1):
        table.add_row(
            str(index),
            _display_path(node, root),
            str(len(manager.deps.get_dependencies(node))),
            str(len(manager.deps.get_dependents(node))),
        )
    console.print(table)


if __name__ == "__main__":
    app()
