"""Subcommands of the ``nativepack`` CLI."""
