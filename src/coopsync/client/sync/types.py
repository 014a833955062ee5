"""Shared types for background reconciliation.

This module provides:
- Operation: The CRUD verb a reconciliation belongs to
- SyncFailure: Report of an absorbed remote-leg failure
- ErrorSink: Callback type receiving SyncFailure reports
- log_failure: Default sink, logs a warning
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from coopsync.core.types import Rejected, RemoteFailure

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """CRUD verb of a reconciliation."""

    GET_ALL = "get_all"
    GET_BY_ID = "get_by_id"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class SyncFailure:
    """A remote-leg failure absorbed by the coordinator.

    Attributes:
        collection: Collection name.
        operation: Verb whose reconciliation failed.
        record_id: Record concerned (None for get_all).
        error: Remote failure, or the exception raised by the reconciliation.
        rolled_back: Whether the local effect was undone.
        timestamp: When the failure was recorded.
    """

    collection: str
    operation: Operation
    record_id: str | None
    error: RemoteFailure | Exception
    rolled_back: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def status(self) -> int | None:
        """HTTP status of a rejected exchange."""
        if isinstance(self.error, Rejected):
            return self.error.status
        return None

    def __str__(self) -> str:
        target = self.collection
        if self.record_id is not None:
            target = f"{self.collection}/{self.record_id}"
        suffix = " (rolled back)" if self.rolled_back else ""
        return f"{self.operation.value} {target}: {self.error}{suffix}"


# Type alias for the failure callback
ErrorSink = Callable[[SyncFailure], None]


def log_failure(failure: SyncFailure) -> None:
    """Default error sink: log a warning."""
    if failure.rolled_back:
        logger.warning("Remote sync rejected, local change undone: %s", failure)
    else:
        logger.warning("Remote sync failed, keeping local data: %s", failure)
