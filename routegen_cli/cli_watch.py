"""Watch mode: regenerate routes whenever the project tree changes."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from .cache import get_cache_manager
from .config_manager import load_project_config
from .errors import RoutegenError, WatchError
from .generator import GenerationReport, RouteGenerator
from .watcher import FileWatchLoop

console = Console()


def _summarize(report: GenerationReport) -> str:
    parts = [f"{len(report.generated)} regenerated", f"{len(report.skipped)} unchanged"]
    if report.registry_written:
        parts.append("registry updated")
    return ", ".join(parts)


def watch(
    path: Path = typer.Argument(Path("."), help="Project root to watch."),
    interval: Optional[float] = typer.Option(
        None, "--interval", "-i", help="Debounce interval in seconds (default: from routegen.toml)."
    ),
):
    """👀 Watch mode: regenerate changed routes automatically.

    Runs one full generation pass, then watches the project and
    regenerates only what the cache reports as stale.

    Example:
      routegen watch
      routegen watch ./api --interval 1
    """
    root = path.resolve()
    if not root.is_dir():
        console.print(f"[red]✗[/red] Path not found: {path}")
        raise typer.Exit(1)

    try:
        config = load_project_config(root)
        manager = get_cache_manager()
        generator = RouteGenerator(root, config=config, manager=manager)
        report = generator.generate()
    except RoutegenError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Initial pass: {report.routes} route(s), {_summarize(report)}")

    def regenerate() -> None:
        result = generator.generate()
        if result.generated or result.registry_written:
            console.print(f"  [green]✓[/green] {_summarize(result)}")

    debounce = interval if interval is not None else config.debounce
    loop = FileWatchLoop(
        root,
        regenerate,
        manager=manager,
        exclude=config.exclude_paths,
        debounce_seconds=debounce,
    )

    console.print(f"\n[bold green]👀 Watching[/bold green] [cyan]{root}[/cyan] for changes...")
    console.print(f"[dim]  Debounce:  {debounce}s[/dim]")
    console.print(f"[dim]  Output:    {config.output_path}[/dim]")
    console.print("[dim]  Press Ctrl+C to stop[/dim]\n")

    try:
        loop.run()
    except KeyboardInterrupt:
        console.print(f"\n[yellow]Stopped watching.[/yellow] Ran {loop.passes} regeneration pass(es).")
    except WatchError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise typer.Exit(1)
    finally:
        loop.stop()
