"""``servicecontainer services`` — list the services of the compiled container."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from servicecontainer.bundles.registry import BundleCatalog
from servicecontainer.config import ContainerSettings, configure_logging
from servicecontainer.hooks import HookRegistry
from servicecontainer.kernel import ContainerKernel

console = Console()


def services_cmd(
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
    tag: str = typer.Option(
        None,
        "--tag",
        "-t",
        help="Only list services carrying this tag.",
    ),
) -> None:
    """Boot the container and list its public services."""
    settings = ContainerSettings.for_project(project_dir, env)
    configure_logging(settings)

    kernel = ContainerKernel(settings, catalog=BundleCatalog.from_entry_points(), hooks=HookRegistry())
    container = kernel.boot()

    table = Table(title=f"Services in {container.generation}")
    table.add_column("Service", style="cyan")
    table.add_column("Constructor", style="green")
    table.add_column("Shared", justify="center")
    table.add_column("Alias of")

    rows = 0
    for service_id in container.service_ids():
        info = container.describe(service_id)
        if tag and tag not in info["tags"]:
            continue
        target = container.ALIASES.get(service_id, "")
        shared = "[green]Yes[/green]" if info["shared"] else "[yellow]No[/yellow]"
        table.add_row(service_id, str(info["constructor"]), shared, target)
        rows += 1

    if not rows:
        console.print("[dim]No public services.[/dim]")
        return
    console.print(table)
