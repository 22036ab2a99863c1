"""servicecontainer CLI — Typer-based command-line interface.

Provides the ``servicecontainer`` command with subcommands for warming the
cache, inspecting its state without rebuilding, and listing the services of
the compiled container.

All output uses Rich for formatted terminal display.
"""
