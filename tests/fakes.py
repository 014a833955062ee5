"""Test doubles: a scripted remote and a storage that can pause writes."""

from __future__ import annotations

import copy
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Union

from coopsync.client.api import CancellationToken
from coopsync.client.state import MemoryStorage
from coopsync.core.types import Ok, RemoteResult, Unreachable


@dataclass
class Call:
    """A request received by FakeRemote."""

    method: str
    path: str
    body: Any = None


class Gate:
    """Holds one request until released."""

    def __init__(self) -> None:
        self.entered = threading.Event()
        self.released = threading.Event()
        self.call: Call | None = None

    def wait_entered(self, timeout: float = 5.0) -> bool:
        return self.entered.wait(timeout)

    def release(self) -> None:
        self.released.set()


Responder = Union[RemoteResult, Callable[[Call], RemoteResult]]


def echo(call: Call) -> RemoteResult:
    """Answer with the submitted body."""
    return Ok(copy.deepcopy(call.body))


class FakeRemote:
    """Scripted in-process remote.

    Routes map (method, path) to a result or a callable building one; a
    path of None matches any path for the method. Gates queued with hold()
    block matching requests, one request per gate, in arrival order.
    """

    timeout = 5.0

    def __init__(self, default: Responder = Unreachable("offline")) -> None:
        self.default = default
        self.calls: list[Call] = []
        self._routes: dict[tuple[str, str | None], Responder] = {}
        self._gates: dict[tuple[str, str | None], deque[Gate]] = {}
        self._all_gates: list[Gate] = []
        self._lock = threading.Lock()

    def route(self, method: str, path: str | None, responder: Responder) -> None:
        self._routes[(method, path)] = responder

    def hold(self, method: str, path: str | None = None) -> Gate:
        gate = Gate()
        with self._lock:
            self._gates.setdefault((method, path), deque()).append(gate)
            self._all_gates.append(gate)
        return gate

    def release_all(self) -> None:
        for gate in self._all_gates:
            gate.release()

    def calls_for(self, method: str) -> list[Call]:
        with self._lock:
            return [c for c in self.calls if c.method == method]

    def _take_gate(self, method: str, path: str) -> Gate | None:
        for key in ((method, path), (method, None)):
            queue = self._gates.get(key)
            if queue:
                return queue.popleft()
        return None

    def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        token: CancellationToken | None = None,
    ) -> RemoteResult:
        call = Call(method, path, copy.deepcopy(body))
        with self._lock:
            self.calls.append(call)
            gate = self._take_gate(method, path)
        if gate is not None:
            gate.call = call
            gate.entered.set()
            gate.released.wait(10.0)
        responder = (
            self._routes.get((method, path))
            or self._routes.get((method, None))
            or self.default
        )
        if callable(responder):
            return responder(call)
        return responder


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll predicate until it holds or timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class PausedSaves:
    """Saves made from threads whose name contains marker, held until released."""

    def __init__(self, marker: str) -> None:
        self.marker = marker
        self.arrived = threading.Event()
        self.released = threading.Event()

    def release(self) -> None:
        self.released.set()


class GatedSaveStorage(MemoryStorage):
    """MemoryStorage whose save() can be paused for selected threads.

    Background reconciliations run in threads named after their record id,
    so a test can freeze one reconciliation between its load and its save.
    """

    def __init__(self) -> None:
        super().__init__()
        self._pauses: list[PausedSaves] = []

    def pause_saves(self, marker: str) -> PausedSaves:
        pause = PausedSaves(marker)
        self._pauses.append(pause)
        return pause

    def save(self, key: str, payload: str) -> None:
        name = threading.current_thread().name
        for pause in self._pauses:
            if pause.marker in name and not pause.arrived.is_set():
                pause.arrived.set()
                pause.released.wait(10.0)
        super().save(key, payload)
