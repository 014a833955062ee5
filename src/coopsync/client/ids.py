"""Local identifiers for records created before the server assigns one."""

from __future__ import annotations

import secrets
import time
from collections.abc import Callable

ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
SUFFIX_LENGTH = 11


def to_base36(value: int) -> str:
    """Encode a non-negative integer in base 36."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(ALPHABET[rem])
    return "".join(reversed(digits))


class IdAllocator:
    """Generate ids as a base-36 millisecond timestamp plus a random suffix.

    Ids are unique within a process with overwhelming probability. They are
    not coordinated with the remote id space: the server id returned by a
    successful create replaces the local one.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        suffix_length: int = SUFFIX_LENGTH,
    ) -> None:
        """Initialize the allocator.

        Args:
            clock: Returns the current time in seconds.
            suffix_length: Number of random base-36 characters.
        """
        if suffix_length < 1:
            raise ValueError("suffix_length must be at least 1")
        self._clock = clock
        self._suffix_length = suffix_length

    def allocate(self) -> str:
        """Return a new local id."""
        prefix = to_base36(int(self._clock() * 1000))
        suffix = "".join(secrets.choice(ALPHABET) for _ in range(self._suffix_length))
        return prefix + suffix

    __call__ = allocate
