"""Core module - Shared configuration, records and error types."""

from coopsync.core.config import (
    DEFAULT_BASE_URL,
    DEFAULT_TIMEOUT,
    EngineConfig,
    load_engine_config,
)
from coopsync.core.types import (
    ConfigError,
    Ok,
    Record,
    RecordNotFoundError,
    RecordT,
    Rejected,
    RemoteFailure,
    RemoteResult,
    SnapshotDecodeError,
    SyncError,
    Timeout,
    Unreachable,
)

__all__ = [
    # Config
    "DEFAULT_BASE_URL",
    "DEFAULT_TIMEOUT",
    "EngineConfig",
    "load_engine_config",
    # Records
    "Record",
    "RecordT",
    # Errors
    "ConfigError",
    "RecordNotFoundError",
    "SnapshotDecodeError",
    "SyncError",
    # Remote outcomes
    "Ok",
    "Rejected",
    "RemoteFailure",
    "RemoteResult",
    "Timeout",
    "Unreachable",
]
