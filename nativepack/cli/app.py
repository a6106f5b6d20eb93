"""Main Typer application: registers all CLI commands.

Entry point: ``nativepack`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import typer

from nativepack.cli.commands.bundlers import bundlers_cmd
from nativepack.cli.commands.create import create_image_cmd, create_installer_cmd

app = typer.Typer(
    name="nativepack",
    help="nativepack: build native application images and installers.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="bundlers", help="List the available bundlers.")(bundlers_cmd)
app.command(name="create-image", help="Build an application image.")(create_image_cmd)
app.command(name="create-installer", help="Build a platform installer.")(create_installer_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
