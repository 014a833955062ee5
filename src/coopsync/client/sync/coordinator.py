"""Sync coordinator for local-first collections.

This module provides:
- RemoteProtocol: What the coordinator needs from a remote client
- SyncCoordinator: CRUD over one collection with background reconciliation

Every verb has the same three phases:
1. Apply the change to the local snapshot and return it to the caller
2. Exchange with the remote store in a background thread
3. Fold the authoritative response (or a rollback) into the snapshot

Failure policy:
    | Verb      | Remote failure                         |
    |-----------|----------------------------------------|
    | get_all   | Local snapshot kept                    |
    | get_by_id | Local record kept (miss: NotFound)     |
    | create    | Local record kept, no rollback         |
    | update    | Local merge kept                       |
    | delete    | Rejected: record restored; else kept   |

Concurrency:
    Nothing serializes reconciliations. Two overlapping operations on the
    same id fold their responses in completion order, so the last response
    to land wins. Each fold also re-reads and rewrites the whole snapshot
    without holding a lock across load and save, so two folds interleaving
    can drop each other's write. Both races are accepted behavior.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Generic, Protocol, cast
from urllib.parse import quote

from coopsync.client.api import CancellationToken
from coopsync.client.ids import IdAllocator
from coopsync.client.state import find, index_of, normalize_record, normalize_records
from coopsync.client.sync.tasks import BackgroundTasks
from coopsync.client.sync.types import ErrorSink, Operation, SyncFailure, log_failure
from coopsync.core.config import DEFAULT_TIMEOUT
from coopsync.core.types import (
    Ok,
    Record,
    RecordNotFoundError,
    RecordT,
    Rejected,
    RemoteFailure,
    RemoteResult,
)

if TYPE_CHECKING:
    from coopsync.client.state import RecordStore

logger = logging.getLogger(__name__)

# Fields owned by the coordinator; caller values for them are ignored.
STAMPED_FIELDS = ("id", "created_at", "updated_at")


class RemoteProtocol(Protocol):
    """Protocol for remote clients.

    RemoteClient implements it; tests substitute scripted remotes.
    """

    def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        token: CancellationToken | None = None,
    ) -> RemoteResult:
        ...


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_timestamp(value: datetime) -> str:
    """Format a datetime as an ISO-8601 UTC string."""
    return value.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string, or return None."""
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class SyncCoordinator(Generic[RecordT]):
    """Local-first CRUD over one named collection.

    Callers always get an immediate answer from the local snapshot. The
    remote store is reconciled in the background and its failures go to the
    error sink instead of the caller. The only error a caller sees is
    RecordNotFoundError.

    Records handed in and out are copies; mutating them does not touch the
    cache.

    Usage:
        store = RecordStore("orders", MemoryStorage())
        orders = SyncCoordinator("orders", "/orders", remote, store)

        order = orders.create({"client": "A"})
        orders.update(order["id"], {"status": "paid"})
        orders.delete(order["id"])

        orders.wait_idle()  # let reconciliations settle before exiting
    """

    def __init__(
        self,
        name: str,
        endpoint: str,
        remote: RemoteProtocol,
        store: RecordStore,
        ids: IdAllocator | None = None,
        error_sink: ErrorSink | None = None,
        tasks: BackgroundTasks | None = None,
        clock: Callable[[], datetime] = utc_now,
        timeout: float | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            name: Collection name.
            endpoint: Base path of the collection on the remote
                (e.g., "/producer/sales").
            remote: Remote client.
            store: Local record store for this collection.
            ids: Local id allocator.
            error_sink: Receives absorbed remote failures (default: log).
            tasks: Background task tracker (may be shared between collections).
            clock: Returns the current time, used for timestamps.
            timeout: Bound of each remote exchange in seconds (defaults to
                the remote client's timeout).
        """
        self._name = name
        self._endpoint = "/" + endpoint.strip("/")
        self._remote = remote
        self._store = store
        self._ids = ids or IdAllocator()
        self._error_sink = error_sink or log_failure
        self._tasks = tasks or BackgroundTasks()
        self._clock = clock
        self._timeout = timeout or getattr(remote, "timeout", None) or DEFAULT_TIMEOUT

    @property
    def name(self) -> str:
        return self._name

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def pending(self) -> int:
        """Number of background reconciliations still running."""
        return self._tasks.pending

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Wait for background reconciliations to settle.

        Returns:
            True if all finished, False on timeout.
        """
        return self._tasks.wait_idle(timeout)

    # === CRUD operations ===

    def get_all(self) -> list[RecordT]:
        """Return the local collection and refresh it in the background.

        A successful refresh replaces the whole local collection with the
        remote list; the caller of this call still gets the pre-refresh
        snapshot.
        """
        records = self._store.load()
        self._spawn(Operation.GET_ALL, None, self._refresh_all)
        return [self._export(record) for record in records]

    def get_by_id(self, record_id: str) -> RecordT:
        """Return one record.

        A local hit is returned at once and refreshed in the background. A
        local miss waits for the remote fetch.

        Raises:
            RecordNotFoundError: If the record is neither local nor remote.
        """
        records = self._store.load()
        local = find(records, record_id)
        if local is not None:
            self._spawn(
                Operation.GET_BY_ID,
                record_id,
                lambda token: self._refresh_one(record_id, token),
            )
            return self._export(local)

        result = self._remote.request(
            self._item_path(record_id),
            "GET",
            token=CancellationToken.with_timeout(self._timeout),
        )
        fetched = self._record_from(result)
        if fetched is None:
            logger.debug("%s/%s not found locally or remotely: %s", self._name, record_id, result)
            raise RecordNotFoundError(self._name, record_id)

        records = self._store.load()
        position = index_of(records, fetched["id"])
        if position == -1:
            records.append(fetched)
        else:
            records[position] = fetched
        self._store.save(records)
        return self._export(fetched)

    def create(self, fields: Mapping[str, Any]) -> RecordT:
        """Create a record locally and submit it to the remote.

        The record gets a local id and created_at == updated_at. If the
        remote accepts it, the server version (possibly with another id)
        replaces the local one; if not, the local record stays.
        """
        body = copy.deepcopy(self._strip_stamped(fields))
        now = format_timestamp(self._clock())
        record: Record = {**copy.deepcopy(body), "id": self._ids.allocate()}
        record["created_at"] = now
        record["updated_at"] = now

        records = self._store.load()
        records.append(record)
        self._store.save(records)
        logger.debug("Created %s/%s locally", self._name, record["id"])

        local_id = record["id"]
        self._spawn(
            Operation.CREATE,
            local_id,
            lambda token: self._reconcile_create(local_id, body, token),
        )
        return self._export(record)

    def update(self, record_id: str, changes: Mapping[str, Any]) -> RecordT:
        """Merge changes into a record locally and submit the result.

        Raises:
            RecordNotFoundError: If no local record has this id.
        """
        records = self._store.load()
        position = index_of(records, record_id)
        if position == -1:
            raise RecordNotFoundError(self._name, record_id)

        current = records[position]
        merged: Record = {**current, **copy.deepcopy(self._strip_stamped(changes))}
        merged["updated_at"] = self._stamp_after(current.get("updated_at"))
        records[position] = merged
        self._store.save(records)
        logger.debug("Updated %s/%s locally", self._name, record_id)

        submitted = copy.deepcopy(merged)
        self._spawn(
            Operation.UPDATE,
            record_id,
            lambda token: self._reconcile_update(record_id, submitted, token),
        )
        return self._export(merged)

    def delete(self, record_id: str) -> bool:
        """Remove a record locally and delete it remotely.

        If the remote explicitly rejects the deletion, the record is put
        back. A timeout or an unreachable remote leaves it deleted.

        Raises:
            RecordNotFoundError: If no local record has this id.
        """
        records = self._store.load()
        position = index_of(records, record_id)
        if position == -1:
            raise RecordNotFoundError(self._name, record_id)

        removed = records.pop(position)
        self._store.save(records)
        logger.debug("Deleted %s/%s locally", self._name, record_id)

        self._spawn(
            Operation.DELETE,
            record_id,
            lambda token: self._reconcile_delete(removed, token),
        )
        return True

    # === Reconciliation ===

    def _refresh_all(self, token: CancellationToken) -> None:
        result = self._remote.request(self._endpoint, "GET", token=token)
        if not isinstance(result, Ok):
            self._report(Operation.GET_ALL, None, result)
            return
        if not isinstance(result.payload, list):
            self._report(
                Operation.GET_ALL,
                None,
                Rejected(result.status, "expected a JSON array"),
            )
            return
        records = normalize_records(result.payload, f"{self._endpoint} response")
        self._store.save(records)
        logger.debug("Refreshed %s: %d record(s)", self._name, len(records))

    def _refresh_one(self, record_id: str, token: CancellationToken) -> None:
        result = self._remote.request(self._item_path(record_id), "GET", token=token)
        if not isinstance(result, Ok):
            self._report(Operation.GET_BY_ID, record_id, result)
            return
        fetched = self._record_from(result)
        if fetched is None:
            return
        records = self._store.load()
        position = index_of(records, record_id)
        if position == -1:
            logger.debug("%s/%s gone locally, dropping refresh", self._name, record_id)
            return
        records[position] = fetched
        self._store.save(self._dedupe(records, position))

    def _reconcile_create(
        self,
        local_id: str,
        body: Record,
        token: CancellationToken,
    ) -> None:
        result = self._remote.request(self._endpoint, "POST", body=body, token=token)
        if not isinstance(result, Ok):
            self._report(Operation.CREATE, local_id, result)
            return
        created = self._record_from(result)
        if created is None:
            return
        records = self._store.load()
        position = index_of(records, local_id)
        if position == -1:
            logger.debug("%s/%s gone locally, dropping server record", self._name, local_id)
            return
        records[position] = created
        self._store.save(self._dedupe(records, position))
        if created["id"] != local_id:
            logger.info(
                "%s: local id %s replaced by server id %s",
                self._name,
                local_id,
                created["id"],
            )

    def _reconcile_update(
        self,
        record_id: str,
        submitted: Record,
        token: CancellationToken,
    ) -> None:
        result = self._remote.request(
            self._item_path(record_id), "PUT", body=submitted, token=token
        )
        if not isinstance(result, Ok):
            self._report(Operation.UPDATE, record_id, result)
            return
        updated = self._record_from(result)
        if updated is None:
            return
        records = self._store.load()
        position = index_of(records, record_id)
        if position == -1:
            logger.debug("%s/%s gone locally, dropping update", self._name, record_id)
            return
        records[position] = updated
        self._store.save(self._dedupe(records, position))

    def _reconcile_delete(self, removed: Record, token: CancellationToken) -> None:
        record_id = removed["id"]
        result = self._remote.request(self._item_path(record_id), "DELETE", token=token)
        if isinstance(result, Ok):
            logger.debug("Deleted %s/%s remotely", self._name, record_id)
            return
        if not isinstance(result, Rejected):
            # Unreachable or timed out: the deletion stands
            self._report(Operation.DELETE, record_id, result)
            return

        records = self._store.load()
        if index_of(records, record_id) != -1:
            self._report(Operation.DELETE, record_id, result)
            return
        records.append(removed)
        self._store.save(records)
        logger.info("%s/%s restored after rejected delete", self._name, record_id)
        self._report(Operation.DELETE, record_id, result, rolled_back=True)

    # === Helpers ===

    def _spawn(
        self,
        operation: Operation,
        record_id: str | None,
        work: Callable[[CancellationToken], None],
    ) -> None:
        def run() -> None:
            work(CancellationToken.with_timeout(self._timeout))

        self._tasks.spawn(
            f"sync:{self._name}:{operation.value}:{record_id or '*'}",
            run,
            on_error=lambda e: self._report(operation, record_id, e),
        )

    def _report(
        self,
        operation: Operation,
        record_id: str | None,
        error: RemoteFailure | Exception,
        rolled_back: bool = False,
    ) -> None:
        failure = SyncFailure(
            collection=self._name,
            operation=operation,
            record_id=record_id,
            error=error,
            rolled_back=rolled_back,
        )
        try:
            self._error_sink(failure)
        except Exception:
            logger.exception("Error sink failed for %s", failure)

    def _record_from(self, result: RemoteResult) -> Record | None:
        if not isinstance(result, Ok):
            return None
        record = normalize_record(result.payload)
        if record is None and result.payload is not None:
            logger.warning(
                "%s: ignoring response without a usable record id", self._name
            )
        return record

    def _item_path(self, record_id: str) -> str:
        return f"{self._endpoint}/{quote(record_id, safe='')}"

    def _stamp_after(self, previous: Any) -> str:
        """Current timestamp, strictly later than previous."""
        now = self._clock()
        before = parse_timestamp(previous)
        if before is not None and now <= before:
            now = before + timedelta(microseconds=1)
        return format_timestamp(now)

    @staticmethod
    def _strip_stamped(fields: Mapping[str, Any]) -> Record:
        return {k: v for k, v in fields.items() if k not in STAMPED_FIELDS}

    @staticmethod
    def _dedupe(records: list[Record], keep: int) -> list[Record]:
        """Drop other records sharing the id of records[keep]."""
        record_id = records[keep]["id"]
        return [
            r for i, r in enumerate(records)
            if i == keep or r.get("id") != record_id
        ]

    @staticmethod
    def _export(record: Record) -> RecordT:
        return cast(RecordT, copy.deepcopy(record))
