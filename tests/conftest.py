"""Shared fixtures: a scripted remote and coordinator wiring."""

from __future__ import annotations

from collections.abc import Generator
from typing import Any

import pytest

from coopsync.client.state import MemoryStorage, RecordStore
from coopsync.client.sync.coordinator import SyncCoordinator
from coopsync.client.sync.types import SyncFailure
from tests.fakes import FakeRemote


@pytest.fixture
def remote() -> Generator[FakeRemote, None, None]:
    """Remote that is unreachable unless routed otherwise."""
    fake = FakeRemote()
    yield fake
    fake.release_all()


@pytest.fixture
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def failures() -> list[SyncFailure]:
    return []


@pytest.fixture
def orders(
    remote: FakeRemote,
    storage: MemoryStorage,
    failures: list[SyncFailure],
) -> Generator[SyncCoordinator[dict[str, Any]], None, None]:
    """Coordinator for an "orders" collection backed by the fake remote."""
    coordinator: SyncCoordinator[dict[str, Any]] = SyncCoordinator(
        "orders",
        "/orders",
        remote,
        RecordStore("orders", storage),
        error_sink=failures.append,
    )
    yield coordinator
    remote.release_all()
    coordinator.wait_idle(timeout=10.0)
