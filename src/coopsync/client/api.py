"""HTTP client for the remote authoritative store.

This module provides:
- CancellationToken: Deadline and cancellation flag for one exchange
- SessionProvider, StaticSession, StoredSession: Ambient credential sources
- RemoteClient: One request/response exchange with outcome classification

RemoteClient never raises across its boundary: every outcome, including
transport failures, is returned as a value (Ok, Timeout, Unreachable or
Rejected).
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from coopsync.client.state import STORAGE_ERRORS
from coopsync.core.config import DEFAULT_TIMEOUT, EngineConfig
from coopsync.core.types import Ok, Rejected, RemoteResult, Timeout, Unreachable

if TYPE_CHECKING:
    from coopsync.client.state import SnapshotStorage

logger = logging.getLogger(__name__)

TOKEN_KEY = "auth_token"


class CancellationToken:
    """Cancellation flag with an optional deadline.

    A token is cancelled once cancel() is called or its deadline passes.

    Usage:
        token = CancellationToken.with_timeout(5.0)
        result = client.request("/orders", token=token)
    """

    def __init__(
        self,
        deadline: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the token.

        Args:
            deadline: Absolute deadline on the clock's timeline (None = never).
            clock: Monotonic clock used to evaluate the deadline.
        """
        self._deadline = deadline
        self._clock = clock
        self._cancelled = threading.Event()
        self._timeout: float | None = None

    @classmethod
    def with_timeout(
        cls,
        seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> CancellationToken:
        """Create a token that expires after the given number of seconds."""
        token = cls(deadline=clock() + seconds, clock=clock)
        token._timeout = seconds
        return token

    @property
    def timeout(self) -> float | None:
        """Timeout the token was created with, if any."""
        return self._timeout

    @property
    def expired(self) -> bool:
        """Check if the deadline has passed."""
        return self._deadline is not None and self._clock() >= self._deadline

    @property
    def cancelled(self) -> bool:
        """Check if the token was cancelled or has expired."""
        return self._cancelled.is_set() or self.expired

    def cancel(self) -> None:
        """Cancel the token."""
        self._cancelled.set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline (None if there is no deadline)."""
        if self._deadline is None:
            return None
        return max(self._deadline - self._clock(), 0.0)


class SessionProvider(Protocol):
    """Source of the bearer token attached to remote calls."""

    def get_token(self) -> str | None:
        ...


class StaticSession:
    """Session holding a token in memory."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token
        self._lock = threading.Lock()

    def get_token(self) -> str | None:
        with self._lock:
            return self._token

    def set_token(self, token: str | None) -> None:
        with self._lock:
            self._token = token

    def clear(self) -> None:
        self.set_token(None)


class StoredSession:
    """Session reading its token from snapshot storage on every call.

    The token lives under a fixed key next to the collection snapshots, so
    a login or logout elsewhere is picked up by the next request.
    """

    def __init__(self, storage: SnapshotStorage, key: str = TOKEN_KEY) -> None:
        self._storage = storage
        self._key = key

    def get_token(self) -> str | None:
        try:
            token = self._storage.load(self._key)
        except STORAGE_ERRORS as e:
            logger.warning("Could not read session token: %s", e)
            return None
        return token or None

    def set_token(self, token: str) -> None:
        self._storage.save(self._key, token)


def _error_detail(response: httpx.Response) -> str | None:
    """Extract an error message from a JSON error body."""
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase or None
    if isinstance(data, dict):
        for field in ("detail", "error", "message"):
            value = data.get(field)
            if value:
                return str(value)
    return response.reason_phrase or None


class RemoteClient:
    """HTTP client for the remote store."""

    def __init__(
        self,
        config: EngineConfig,
        session: SessionProvider | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the remote client.

        Args:
            config: Engine configuration (base URL, timeout, token).
            session: Credential source; defaults to the configured token.
            transport: Optional httpx transport (for tests or proxies).
        """
        self._config = config
        self._timeout = config.timeout or DEFAULT_TIMEOUT
        self._session: SessionProvider = session or StaticSession(config.token)
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=self._timeout,
            verify=config.verify_ssl,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._config.base_url

    @property
    def timeout(self) -> float:
        return self._timeout

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> RemoteClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        token: CancellationToken | None = None,
    ) -> RemoteResult:
        """Perform one exchange with the remote store.

        The remaining time of the token bounds each phase of the exchange
        (pool, connect, write, read) separately. A response that arrives
        after the deadline is still reported as Timeout.

        Args:
            path: Path relative to the base URL (e.g., "/orders/42").
            method: HTTP method.
            body: JSON-serializable request body, if any.
            token: Cancellation token; defaults to one bound by the
                configured timeout.

        Returns:
            Ok(payload) on a 2xx response, Timeout if the deadline passed or
            the token was cancelled, Unreachable on transport failure or a
            body that cannot be encoded (nothing is sent), and
            Rejected(status) on any other response.
        """
        if token is None:
            token = CancellationToken.with_timeout(self._timeout)
        if token.cancelled:
            logger.debug("%s %s: cancelled before sending", method, path)
            return Timeout(token.timeout)

        headers: dict[str, str] = {}
        credential = self._session.get_token()
        if credential:
            headers["Authorization"] = f"Bearer {credential}"

        content: bytes | None = None
        if body is not None:
            try:
                content = json.dumps(body, ensure_ascii=False).encode("utf-8")
            except (TypeError, ValueError, RecursionError) as e:
                logger.warning(
                    "%s %s: request body is not JSON-serializable: %s", method, path, e
                )
                return Unreachable(f"request body is not JSON-serializable: {e}")

        remaining = token.remaining()
        bound = remaining if remaining is not None else self._timeout
        try:
            response = self._client.request(
                method,
                path,
                content=content,
                headers=headers,
                timeout=httpx.Timeout(bound, pool=bound),
            )
        except httpx.TimeoutException:
            logger.debug("%s %s: request timed out", method, path)
            return Timeout(token.timeout if token.timeout is not None else self._timeout)
        except httpx.TransportError as e:
            logger.debug("%s %s: server unreachable (%s)", method, path, e)
            return Unreachable(str(e) or type(e).__name__)
        except httpx.InvalidURL as e:
            logger.debug("%s %s: invalid URL (%s)", method, path, e)
            return Unreachable(str(e))

        if token.cancelled:
            logger.debug("%s %s: response arrived after cancellation", method, path)
            return Timeout(token.timeout)

        if not response.is_success:
            detail = _error_detail(response)
            logger.debug("%s %s: rejected with %d", method, path, response.status_code)
            return Rejected(response.status_code, detail)

        if not response.content:
            return Ok(None, response.status_code)
        try:
            payload = response.json()
        except ValueError:
            logger.debug("%s %s: undecodable response body", method, path)
            return Rejected(response.status_code, "invalid JSON")
        logger.debug("%s %s: %d", method, path, response.status_code)
        return Ok(payload, response.status_code)
