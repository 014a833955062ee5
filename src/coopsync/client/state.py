"""Local snapshot storage for synchronized collections.

This module provides:
- SnapshotStorage: Interface of the key/value substrate holding snapshots
- MemoryStorage: In-process storage (tests, ephemeral sessions)
- JsonFileStorage: One JSON file per key under a directory
- SQLiteStorage: Key/value table in a SQLite database
- RecordStore: Durable, synchronous-access collection of records

Architecture:
    Each collection is persisted as a single JSON array under a fixed key.
    Every mutation rewrites the whole array; there is no row-level
    persistence. A missing or corrupt snapshot reads as an empty collection.
"""

from __future__ import annotations

import json
import logging
import os
import re
import sqlite3
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

from coopsync.core.types import Record, SnapshotDecodeError

logger = logging.getLogger(__name__)

STORAGE_ERRORS: tuple[type[Exception], ...] = (OSError, sqlite3.Error)


class SnapshotStorage(Protocol):
    """Key/value substrate for collection snapshots.

    Implementations must make each individual load/save atomic; nothing
    spans a load and the following save.
    """

    def load(self, key: str) -> str | None:
        """Return the stored payload for key, or None if absent."""
        ...

    def save(self, key: str, payload: str) -> None:
        """Overwrite the payload stored under key."""
        ...


class MemoryStorage:
    """Thread-safe in-memory storage."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def load(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def save(self, key: str, payload: str) -> None:
        with self._lock:
            self._data[key] = payload

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


class JsonFileStorage:
    """Stores each key as ``<key>.json`` under a directory.

    Writes go to a temporary file in the same directory which is then
    renamed over the target, so readers never observe a partial snapshot.
    """

    def __init__(self, directory: Path) -> None:
        """Initialize file storage.

        Args:
            directory: Directory holding the snapshot files (created if needed).
        """
        self._directory = Path(directory)
        self._directory.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        """Get the file path used for a key."""
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self._directory / f"{safe}.json"

    def load(self, key: str) -> str | None:
        """Read the snapshot file for key.

        Raises:
            SnapshotDecodeError: If the file is not valid UTF-8.
        """
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_bytes().decode("utf-8")
        except UnicodeDecodeError as e:
            raise SnapshotDecodeError(key, str(e)) from e

    def save(self, key: str, payload: str) -> None:
        path = self.path_for(key)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._directory, prefix=f".{path.stem}-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, path)
        except OSError:
            # Leave no stray temporary file behind
            Path(tmp_name).unlink(missing_ok=True)
            raise


class SQLiteStorage:
    """SQLite-based key/value storage for snapshots."""

    def __init__(self, db_path: Path) -> None:
        """Initialize the snapshot database.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(self._db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS snapshots (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> SQLiteStorage:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def load(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM snapshots WHERE key = ?",
                (key,),
            ).fetchone()
        return row["value"] if row else None

    def save(self, key: str, payload: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO snapshots (key, value) VALUES (?, ?)",
                (key, payload),
            )

    def keys(self) -> list[str]:
        with self._lock:
            rows = self._conn.execute("SELECT key FROM snapshots ORDER BY key").fetchall()
        return [row["key"] for row in rows]


def normalize_record(item: Any) -> Record | None:
    """Return item as a record with a string id, or None if it has no usable id."""
    if not isinstance(item, dict):
        return None
    record_id = item.get("id")
    if record_id is None or isinstance(record_id, bool):
        return None
    record_id = str(record_id)
    if not record_id:
        return None
    record = dict(item)
    record["id"] = record_id
    return record


def normalize_records(items: list[Any], source: str) -> list[Record]:
    """Keep the records carrying a usable id, dropping duplicates.

    The last occurrence of a duplicated id wins.
    """
    by_id: dict[str, Record] = {}
    dropped = 0
    for item in items:
        record = normalize_record(item)
        if record is None:
            dropped += 1
            continue
        by_id.pop(record["id"], None)
        by_id[record["id"]] = record
    if dropped:
        logger.warning("Dropped %d record(s) without an id from %s", dropped, source)
    return list(by_id.values())


def decode_snapshot(key: str, payload: str) -> list[Record]:
    """Decode a persisted snapshot.

    Raises:
        SnapshotDecodeError: If the payload is not a JSON array.
    """
    try:
        data = json.loads(payload)
    except (ValueError, RecursionError) as e:
        raise SnapshotDecodeError(key, str(e)) from e
    if not isinstance(data, list):
        raise SnapshotDecodeError(key, f"expected a JSON array, got {type(data).__name__}")
    return normalize_records(data, f"snapshot {key!r}")


def find(records: list[Record], record_id: str) -> Record | None:
    """Find a record by id."""
    for record in records:
        if record.get("id") == record_id:
            return record
    return None


def index_of(records: list[Record], record_id: str) -> int:
    """Get the position of a record by id, or -1."""
    for i, record in enumerate(records):
        if record.get("id") == record_id:
            return i
    return -1


class RecordStore:
    """Durable storage for one named collection.

    load() and save() never raise: an unreadable snapshot reads as an empty
    collection and a failed write is logged.
    """

    def __init__(self, name: str, storage: SnapshotStorage, key: str | None = None) -> None:
        """Initialize the record store.

        Args:
            name: Logical collection name (used in log messages).
            storage: Snapshot substrate.
            key: Storage key of the snapshot (defaults to name).
        """
        self._name = name
        self._storage = storage
        self._key = key or name

    @property
    def name(self) -> str:
        return self._name

    @property
    def key(self) -> str:
        return self._key

    def load(self) -> list[Record]:
        """Load the persisted collection.

        Returns:
            The stored records, or an empty list if none are stored or the
            snapshot cannot be read.
        """
        try:
            payload = self._storage.load(self._key)
            if payload is None:
                return []
            return decode_snapshot(self._key, payload)
        except STORAGE_ERRORS as e:
            logger.error("Failed to read snapshot %s: %s", self._key, e)
            return []
        except SnapshotDecodeError as e:
            logger.warning("%s; treating %s as empty", e, self._name)
            return []

    def save(self, records: list[Record]) -> bool:
        """Overwrite the persisted collection.

        Returns:
            True if the snapshot was written.
        """
        try:
            payload = json.dumps(records, ensure_ascii=False)
        except (TypeError, ValueError, RecursionError) as e:
            logger.error("Failed to encode snapshot %s: %s", self._key, e)
            return False
        try:
            self._storage.save(self._key, payload)
        except STORAGE_ERRORS as e:
            logger.error("Failed to write snapshot %s: %s", self._key, e)
            return False
        return True
