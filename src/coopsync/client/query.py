"""Filters over collection snapshots.

Domain services build their views (sales by producer, recent audit events,
open disputes, ...) from get_all() plus these helpers. Records whose field is
missing or unparseable never match a date filter.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Hashable, Iterable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from coopsync.client.sync.coordinator import parse_timestamp

R = TypeVar("R", bound=Mapping[str, Any])


def _as_datetime(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"Invalid date: {value!r}")
    return parsed


def filter_by(records: Iterable[R], **equals: Any) -> list[R]:
    """Keep records whose fields equal all given values."""
    return [
        r for r in records
        if all(r.get(field) == value for field, value in equals.items())
    ]


def search(records: Iterable[R], field: str, text: str) -> list[R]:
    """Case-insensitive substring match on a text field."""
    needle = text.lower()
    return [
        r for r in records
        if isinstance(r.get(field), str) and needle in r[field].lower()
    ]


def in_date_range(
    records: Iterable[R],
    field: str,
    start: datetime | str | None = None,
    end: datetime | str | None = None,
) -> list[R]:
    """Keep records whose date field lies in [start, end].

    Raises:
        ValueError: If start or end is not a valid date.
    """
    lower = _as_datetime(start) if start is not None else None
    upper = _as_datetime(end) if end is not None else None
    result = []
    for r in records:
        when = parse_timestamp(r.get(field))
        if when is None:
            continue
        if lower is not None and when < lower:
            continue
        if upper is not None and when > upper:
            continue
        result.append(r)
    return result


def recent(
    records: Iterable[R],
    field: str,
    days: int = 30,
    now: datetime | None = None,
) -> list[R]:
    """Records from the last N days, newest first."""
    current = now or datetime.now(UTC)
    cutoff = _as_datetime(current) - timedelta(days=days)
    return sort_by_date(in_date_range(records, field, start=cutoff), field)


def sort_by_date(records: Iterable[R], field: str, descending: bool = True) -> list[R]:
    """Sort by a date field; records without a valid date go last."""
    dated = []
    undated = []
    for r in records:
        when = parse_timestamp(r.get(field))
        if when is None:
            undated.append(r)
        else:
            dated.append((when, r))
    dated.sort(key=lambda pair: pair[0], reverse=descending)
    return [r for _, r in dated] + undated


def count_by(records: Iterable[R], field: str) -> dict[Any, int]:
    """Count records per value of a field.

    Missing values and unhashable ones (lists, objects) are skipped.
    """
    return dict(
        Counter(
            r[field] for r in records
            if r.get(field) is not None and isinstance(r[field], Hashable)
        )
    )
