"""Tests for local id allocation."""

import pytest

from coopsync.client.ids import ALPHABET, SUFFIX_LENGTH, IdAllocator, to_base36


class TestBase36:
    """Tests for to_base36."""

    @pytest.mark.parametrize(
        "value,expected",
        [(0, "0"), (35, "z"), (36, "10"), (1295, "zz"), (1700000000000, "loyw3v28")],
    )
    def test_encoding(self, value: int, expected: str) -> None:
        """Should encode integers with digits then lowercase letters."""
        assert to_base36(value) == expected

    def test_negative(self) -> None:
        """Should reject negative values."""
        with pytest.raises(ValueError):
            to_base36(-1)


class TestIdAllocator:
    """Tests for IdAllocator."""

    def test_shape(self) -> None:
        """Ids are a millisecond prefix plus a random suffix."""
        allocator = IdAllocator(clock=lambda: 1700000000.0)
        record_id = allocator.allocate()

        assert record_id.startswith("loyw3v28")
        assert len(record_id) == len("loyw3v28") + SUFFIX_LENGTH
        assert set(record_id) <= set(ALPHABET)

    def test_unique_within_same_millisecond(self) -> None:
        """The random suffix separates ids minted at the same instant."""
        allocator = IdAllocator(clock=lambda: 1700000000.0)
        ids = {allocator() for _ in range(1000)}
        assert len(ids) == 1000

    def test_custom_suffix_length(self) -> None:
        """Should honor the suffix length."""
        allocator = IdAllocator(clock=lambda: 0.0, suffix_length=4)
        assert len(allocator.allocate()) == 5

    def test_invalid_suffix_length(self) -> None:
        """Should require at least one random character."""
        with pytest.raises(ValueError):
            IdAllocator(suffix_length=0)
