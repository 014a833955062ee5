"""Background synchronization of local-first collections.

Architecture:
    caller → SyncCoordinator → RecordStore (immediate)
                             ↘ BackgroundTasks → RemoteClient → RecordStore

Components:
- **SyncCoordinator**: Optimistic CRUD and reconciliation for one collection
- **BackgroundTasks**: Daemon threads running the remote legs
- **SyncFailure / ErrorSink**: Reports of absorbed remote failures
"""

from coopsync.client.sync.coordinator import (
    RemoteProtocol,
    SyncCoordinator,
    format_timestamp,
    parse_timestamp,
)
from coopsync.client.sync.tasks import BackgroundTasks
from coopsync.client.sync.types import (
    ErrorSink,
    Operation,
    SyncFailure,
    log_failure,
)

__all__ = [
    # Coordinator
    "RemoteProtocol",
    "SyncCoordinator",
    "format_timestamp",
    "parse_timestamp",
    # Tasks
    "BackgroundTasks",
    # Failure reporting
    "ErrorSink",
    "Operation",
    "SyncFailure",
    "log_failure",
]
