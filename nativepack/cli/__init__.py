"""nativepack CLI: Typer-based command-line interface.

Provides the ``nativepack`` command with subcommands for listing bundlers
and building application images and installers.

All output uses Rich for formatted terminal display.
"""
