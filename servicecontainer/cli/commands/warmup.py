"""``servicecontainer warmup`` — boot the container and fill the cache.

Runs the same boot as the application would: a fresh cache is reused, a
missing, stale or corrupt one is rebuilt and the superseded generation is
tagged for retirement.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from servicecontainer.bundles.registry import BundleCatalog
from servicecontainer.config import ContainerSettings, configure_logging
from servicecontainer.hooks import HookRegistry
from servicecontainer.kernel import ContainerKernel

console = Console()


def warmup_cmd(
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
    """Boot the container, rebuilding the cache if it is not fresh."""
    settings = ContainerSettings.for_project(project_dir, env)
    configure_logging(settings)

    kernel = ContainerKernel(settings, catalog=BundleCatalog.from_entry_points(), hooks=HookRegistry())
    container = kernel.boot()
    state = kernel.cache_state.value if kernel.cache_state else "unknown"

    console.print()
    console.print(
        Panel(
            "\n".join([
                "[bold green]Container ready.[/bold green]",
                "",
                f"[bold]Generation:[/bold]   {container.generation}",
                f"[bold]Cache was:[/bold]    {state}",
                f"[bold]Environment:[/bold]  {settings.environment} (debug={settings.debug})",
                f"[bold]Bundles:[/bold]      {', '.join(kernel.bundles.names()) or 'none'}",
                f"[bold]Services:[/bold]     {len(container.service_ids())} public",
                f"[bold]Entry file:[/bold]   {kernel.cache.entry_path}",
            ]),
            title="[bold]servicecontainer warmup[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
