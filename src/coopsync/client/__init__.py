"""Client module - Remote client, local snapshots and synchronized collections."""

from coopsync.client.api import (
    CancellationToken,
    RemoteClient,
    SessionProvider,
    StaticSession,
    StoredSession,
)
from coopsync.client.collections import (
    COLLECTIONS,
    CollectionSpec,
    get_collection_spec,
    open_collection,
)
from coopsync.client.ids import IdAllocator
from coopsync.client.state import (
    JsonFileStorage,
    MemoryStorage,
    RecordStore,
    SnapshotStorage,
    SQLiteStorage,
)
from coopsync.client.sync import (
    BackgroundTasks,
    ErrorSink,
    Operation,
    SyncCoordinator,
    SyncFailure,
)

__all__ = [
    # Remote
    "CancellationToken",
    "RemoteClient",
    "SessionProvider",
    "StaticSession",
    "StoredSession",
    # Storage
    "JsonFileStorage",
    "MemoryStorage",
    "RecordStore",
    "SnapshotStorage",
    "SQLiteStorage",
    # Ids
    "IdAllocator",
    # Sync
    "BackgroundTasks",
    "ErrorSink",
    "Operation",
    "SyncCoordinator",
    "SyncFailure",
    # Collections
    "COLLECTIONS",
    "CollectionSpec",
    "get_collection_spec",
    "open_collection",
]
