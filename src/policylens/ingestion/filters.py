"""Record selection helpers.

Predicate evaluation itself is delegated to a caller-supplied
RecordFilter; this module only narrows by time and namespace.
"""

from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from policylens.schemas.flow import RawFlowRecord

# Takes the candidate records and returns the matching subset
RecordFilter = Callable[[Sequence[RawFlowRecord]], Sequence[RawFlowRecord]]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def within_time_window(
    records: Sequence[RawFlowRecord],
    start_time: datetime | None = None,
    end_time: datetime | None = None,
) -> list[RawFlowRecord]:
    """Keep records that started at or after ``start_time`` and ended at
    or before ``end_time``. Either bound may be omitted.
    """
    start = _as_utc(start_time) if start_time else None
    end = _as_utc(end_time) if end_time else None
    return [
        r for r in records
        if (start is None or r.start_time >= start)
        and (end is None or r.end_time <= end)
    ]


def in_namespace(records: Sequence[RawFlowRecord], namespace: str) -> list[RawFlowRecord]:
    """Keep records with either endpoint in ``namespace``."""
    return [r for r in records if r.touches_namespace(namespace)]
