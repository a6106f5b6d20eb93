"""``nativepack bundlers``: list the registered bundlers."""

from __future__ import annotations

import typer
from rich.table import Table

from nativepack.cli.commands.common import console
from nativepack.core.driver import PipelineDriver


def bundlers_cmd(
    params: bool = typer.Option(False, "--params", help="Also list the parameter ids of each bundler."),
) -> None:
    """Show every bundler and whether it runs on this host."""
    driver = PipelineDriver()

    table = Table(title="Bundlers")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Platform")
    table.add_column("Supported", justify="center")
    if params:
        table.add_column("Parameters", overflow="fold")

    for bundler in driver.bundlers():
        supported = "[green]Yes[/green]" if bundler.supported() else "[dim]No[/dim]"
        row = [
            bundler.id,
            bundler.name,
            bundler.bundle_type.value,
            bundler.platform.value if bundler.platform else "any",
            supported,
        ]
        if params:
            row.append(", ".join(spec.id for spec in bundler.params()))
        table.add_row(*row)

    console.print(table)
