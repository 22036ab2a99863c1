"""Main Typer application — imports and registers all CLI commands.

Entry point: ``servicecontainer`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import typer

from servicecontainer.cli.commands.services import services_cmd
from servicecontainer.cli.commands.status import status_cmd
from servicecontainer.cli.commands.warmup import warmup_cmd

app = typer.Typer(
    name="servicecontainer",
    help="Compile, cache and inspect the service container.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.command(name="warmup", help="Boot the container, rebuilding the cache if needed.")(warmup_cmd)
app.command(name="status", help="Inspect the cache without rebuilding it.")(status_cmd)
app.command(name="services", help="List the services of the compiled container.")(services_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
