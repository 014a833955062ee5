"""Shared types for coopsync.

This module defines:
- Record: the opaque, schema-less entity shape handled by the engine
- SyncError and its subclasses: exceptions raised by the engine
- Ok, Timeout, Unreachable, Rejected: outcomes of one remote exchange
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, TypeVar, Union

# A record is a JSON object carrying a non-empty string "id".
Record = dict[str, Any]

RecordT = TypeVar("RecordT", bound=Mapping[str, Any])


class SyncError(Exception):
    """Base exception for coopsync errors."""


class RecordNotFoundError(SyncError):
    """No record with the requested id exists in the collection."""

    def __init__(self, collection: str, record_id: str) -> None:
        super().__init__(f"Record {record_id!r} not found in {collection!r}")
        self.collection = collection
        self.record_id = record_id


class SnapshotDecodeError(SyncError):
    """A persisted collection snapshot could not be decoded."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Unreadable snapshot {key!r}: {reason}")
        self.key = key
        self.reason = reason


class ConfigError(SyncError):
    """Invalid configuration value."""


# =============================================================================
# Remote exchange outcomes
# =============================================================================


@dataclass(frozen=True)
class Ok:
    """The remote answered with a 2xx status.

    Attributes:
        payload: Decoded JSON body (None for an empty body).
        status: HTTP status code.
    """

    payload: Any = None
    status: int = 200

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Timeout:
    """The exchange was aborted because its deadline passed."""

    seconds: float | None = None

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        if self.seconds is None:
            return "timeout"
        return f"timeout after {self.seconds:g}s"


@dataclass(frozen=True)
class Unreachable:
    """The remote could not be reached (connection, DNS, protocol error)."""

    reason: str = ""

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"unreachable: {self.reason}" if self.reason else "unreachable"


@dataclass(frozen=True)
class Rejected:
    """The remote answered with a non-2xx status (or an undecodable body)."""

    status: int
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        if self.detail:
            return f"rejected ({self.status}): {self.detail}"
        return f"rejected ({self.status})"


RemoteFailure = Union[Timeout, Unreachable, Rejected]
RemoteResult = Union[Ok, Timeout, Unreachable, Rejected]
