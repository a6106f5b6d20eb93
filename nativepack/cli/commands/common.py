"""Helpers shared by the build commands: logging, store assembly, reporting."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel

from nativepack.config import settings
from nativepack.core import standard_params as sp
from nativepack.core.params import ParamStore
from nativepack.models.build import BuildOutcome

console = Console()


def configure_logging(verbose: bool = False) -> None:
    """Route log records through rich at the configured level."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def parse_param(option: str) -> tuple[str, str]:
    """Split a ``KEY=VALUE`` option."""
    key, sep, value = option.partition("=")
    if not sep or not key.strip():
        raise typer.BadParameter(f"Expected KEY=VALUE, got {option!r}", param_hint="--param")
    return key.strip(), value


def build_store(
    options: Mapping[str, object],
    params: list[str] | None = None,
    secondary_launchers: list[Path] | None = None,
) -> ParamStore:
    """Turn command line options into a parameter store.

    Text values are stored raw and converted on first fetch; lists and
    booleans are stored typed.  ``--param`` entries win over named options.
    """
    store = ParamStore()
    for key, value in options.items():
        if value is None or value == []:
            continue
        if isinstance(value, bool):
            store[key] = value
        elif isinstance(value, (list, tuple)):
            store[key] = [str(item) for item in value]
        else:
            store.put_raw(key, str(value))
    if secondary_launchers:
        store[sp.SECONDARY_LAUNCHERS.id] = [
            sp.load_secondary_launcher(path) for path in secondary_launchers
        ]
    for option in params or []:
        key, value = parse_param(option)
        store.put_raw(key, value)
    return store


def report(outcome: BuildOutcome) -> None:
    """Print *outcome* and exit non-zero when the build failed."""
    if outcome.succeeded:
        console.print(
            Panel(
                f"[bold green]{outcome.bundler_id} succeeded[/bold green]\n"
                f"Artifact: [cyan]{escape(str(outcome.artifact))}[/cyan]",
                title="nativepack",
                border_style="green",
            )
        )
        return

    lines = [f"[bold red]{outcome.error_kind}:[/bold red] {escape(outcome.message)}"]
    if outcome.exit_code is not None:
        lines.append(f"Exit code: {outcome.exit_code}")
    lines.append(f"[yellow]Advice:[/yellow] {escape(outcome.advice)}")
    console.print(Panel("\n".join(lines), title=f"{outcome.bundler_id} failed", border_style="red"))
    raise typer.Exit(code=1)
