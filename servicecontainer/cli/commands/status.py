"""``servicecontainer status`` — report on the cache without rebuilding.

Probes the cache exactly as a boot would (miss, fresh, stale or corrupt),
then shows the manifest and any legacy generations waiting to be swept.
Nothing is written.
"""

from __future__ import annotations

import time
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from servicecontainer.config import ContainerSettings
from servicecontainer.core.cache import CacheManager, CacheState
from servicecontainer.core.retirer import LegacyRetirer

console = Console()

_STATE_STYLES: dict[CacheState, str] = {
    CacheState.FRESH: "green",
    CacheState.STALE: "yellow",
    CacheState.MISS: "dim",
    CacheState.CORRUPT: "red",
}


def status_cmd(
    project_dir: Path = typer.Option(
        Path("."),
        "--project-dir",
        "-p",
        help="Project root holding config/ and var/.",
    ),
    env: str = typer.Option(
        None,
        "--env",
        "-e",
        help="Host environment type: local, development, staging or production.",
    ),
) -> None:
    """Show whether the cached container would be reused."""
    settings = ContainerSettings.for_project(project_dir, env)
    cache = CacheManager(settings.resolved_cache_dir, settings.container_class, debug=settings.debug)
    probe = cache.load_if_fresh()
    manifest = cache.read_manifest()
    markers = LegacyRetirer(settings.resolved_cache_dir).legacy_markers()

    style = _STATE_STYLES[probe.state]
    table = Table(title="Container Cache")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("State", f"[{style}]{probe.state.value}[/{style}]")
    table.add_row("Entry file", str(cache.entry_path))
    table.add_row("Generation", probe.container.generation if probe.container else "-")
    table.add_row("Environment", f"{settings.environment} (debug={settings.debug})")
    table.add_row("Tracked resources", str(len(manifest.resources)) if manifest else "-")
    table.add_row("Legacy generations", ", ".join(m.stem for m in markers) or "none")
    console.print(table)

    if probe.state is CacheState.STALE and manifest is not None:
        written = cache.entry_path.stat().st_mtime
        console.print(f"[yellow]Changed since {time.ctime(written)}:[/yellow]")
        for resource in manifest.stale_resources(written):
            console.print(f"  - {resource.key}")
