"""Record commands for the coopsync CLI.

Commands:
- list: List the records of a collection
- get: Show one record
- create: Create a record from FIELD=VALUE pairs
- update: Update a record from FIELD=VALUE pairs
- delete: Delete a record
- collections: List the registered collections
"""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import Iterator
from typing import Any

import click

from coopsync.client.api import RemoteClient
from coopsync.client.collections import COLLECTIONS, open_collection
from coopsync.client.state import SQLiteStorage
from coopsync.client.sync.coordinator import RemoteProtocol, SyncCoordinator
from coopsync.client.sync.types import SyncFailure, log_failure
from coopsync.core.config import EngineConfig, get_config_dir, load_engine_config
from coopsync.core.types import ConfigError, RecordNotFoundError

logger = logging.getLogger(__name__)

CACHE_DB = "cache.db"

# Extra seconds granted to background reconciliations before exiting
SETTLE_GRACE = 1.0


def make_remote(config: EngineConfig) -> RemoteProtocol:
    """Create the remote client used by the commands."""
    return RemoteClient(config)


def parse_assignments(assignments: tuple[str, ...]) -> dict[str, Any]:
    """Parse FIELD=VALUE pairs; values are JSON when they parse as JSON.

    Raises:
        click.BadParameter: If an item has no '='.
    """
    fields: dict[str, Any] = {}
    for item in assignments:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected FIELD=VALUE, got {item!r}")
        try:
            fields[key] = json.loads(raw)
        except ValueError:
            fields[key] = raw
    return fields


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


@contextlib.contextmanager
def opened_collection(
    name: str,
    endpoint: str | None,
    failures: list[SyncFailure] | None = None,
) -> Iterator[SyncCoordinator[dict[str, Any]]]:
    """Open a collection, then wait for its reconciliations before closing.

    Absorbed remote failures are logged and, when failures is given,
    collected there once the reconciliations have settled.
    """

    def sink(failure: SyncFailure) -> None:
        log_failure(failure)
        if failures is not None:
            failures.append(failure)

    try:
        config = load_engine_config()
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    remote = make_remote(config)
    storage = SQLiteStorage(get_config_dir() / CACHE_DB)
    try:
        try:
            coordinator = open_collection(
                name, remote, storage, endpoint=endpoint, error_sink=sink
            )
        except KeyError as e:
            raise click.ClickException(str(e.args[0])) from e
        try:
            yield coordinator
        except RecordNotFoundError as e:
            raise click.ClickException(str(e)) from e
        finally:
            if not coordinator.wait_idle(timeout=coordinator.timeout + SETTLE_GRACE):
                logger.warning("Exiting with %d sync(s) still running", coordinator.pending)
    finally:
        storage.close()
        close = getattr(remote, "close", None)
        if close is not None:
            close()


endpoint_option = click.option(
    "--endpoint",
    "-e",
    default=None,
    help="Remote base path (required for unregistered collections).",
)


@click.command("list")
@click.argument("collection")
@endpoint_option
def list_records(collection: str, endpoint: str | None) -> None:
    """List the records of COLLECTION (local snapshot, refreshed in background)."""
    with opened_collection(collection, endpoint) as records:
        echo_json(records.get_all())


@click.command("get")
@click.argument("collection")
@click.argument("record_id")
@endpoint_option
def get_record(collection: str, record_id: str, endpoint: str | None) -> None:
    """Show record RECORD_ID of COLLECTION."""
    with opened_collection(collection, endpoint) as records:
        echo_json(records.get_by_id(record_id))


@click.command("create")
@click.argument("collection")
@click.argument("fields", nargs=-1)
@endpoint_option
def create_record(collection: str, fields: tuple[str, ...], endpoint: str | None) -> None:
    """Create a record in COLLECTION from FIELD=VALUE pairs.

    Examples:

        coopsync create producer-sales product=cocoa quantity=120
    """
    values = parse_assignments(fields)
    with opened_collection(collection, endpoint) as records:
        echo_json(records.create(values))


@click.command("update")
@click.argument("collection")
@click.argument("record_id")
@click.argument("fields", nargs=-1, required=True)
@endpoint_option
def update_record(
    collection: str,
    record_id: str,
    fields: tuple[str, ...],
    endpoint: str | None,
) -> None:
    """Update record RECORD_ID of COLLECTION with FIELD=VALUE pairs."""
    values = parse_assignments(fields)
    with opened_collection(collection, endpoint) as records:
        echo_json(records.update(record_id, values))


@click.command("delete")
@click.argument("collection")
@click.argument("record_id")
@endpoint_option
def delete_record(collection: str, record_id: str, endpoint: str | None) -> None:
    """Delete record RECORD_ID of COLLECTION.

    Fails if the server rejects the deletion; the record is then restored
    in the local cache.
    """
    failures: list[SyncFailure] = []
    with opened_collection(collection, endpoint, failures) as records:
        records.delete(record_id)
    for failure in failures:
        if failure.rolled_back:
            raise click.ClickException(
                f"Server refused to delete {record_id} ({failure.error}); record restored"
            )
    click.echo(f"Deleted {record_id}")


@click.command("collections")
def list_collections() -> None:
    """List the registered collections."""
    for spec in sorted(COLLECTIONS.values(), key=lambda s: s.name):
        click.echo(f"{spec.name:24} {spec.endpoint}")
