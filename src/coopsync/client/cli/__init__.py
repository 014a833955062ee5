"""Command-line interface for coopsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- list: List the records of a collection
- get: Show one record
- create: Create a record
- update: Update a record
- delete: Delete a record
- collections: List the registered collections
- config: Show or change the configuration
"""

from __future__ import annotations

import logging

import click

from coopsync.client.cli.config import config
from coopsync.client.cli.records import (
    create_record,
    delete_record,
    get_record,
    list_collections,
    list_records,
    update_record,
)


def setup_logging(verbose: bool) -> None:
    """Send coopsync logs to stderr."""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    coopsync_logger = logging.getLogger("coopsync")
    coopsync_logger.handlers.clear()
    coopsync_logger.addHandler(handler)
    coopsync_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
@click.version_option(package_name="coopsync")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logs.")
def cli(verbose: bool) -> None:
    """coopsync - Local-first records for the cooperative marketplace."""
    setup_logging(verbose)


# Record commands
cli.add_command(list_records)
cli.add_command(get_record)
cli.add_command(create_record)
cli.add_command(update_record)
cli.add_command(delete_record)
cli.add_command(list_collections)

# Config commands
cli.add_command(config)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
]
