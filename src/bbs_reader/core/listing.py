"""Thread index helpers: creation time, posting speed and sorting."""

import math
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Literal

from bbs_reader.models.thread import ThreadSummary

SortKey = Literal["responseCount", "speed", "creationTime", "lastUpdated"]
SortOrder = Literal["asc", "desc"]

SORT_KEYS: tuple[SortKey, ...] = ("responseCount", "speed", "creationTime", "lastUpdated")

_MS_PER_DAY = 1000 * 60 * 60 * 24


def thread_created_at(thread: ThreadSummary) -> datetime:
    """Thread ids are the Unix timestamp of thread creation."""
    return datetime.fromtimestamp(thread.id, tz=UTC)


def thread_speed(thread: ThreadSummary, now_ms: int) -> float:
    """Responses per day since creation, rounded to two decimals.

    Threads younger than half a second are treated as one second old.
    """
    created_ms = thread.id * 1000
    if now_ms - created_ms < 500:
        age_days = 1 / (60 * 60 * 24)
    else:
        age_days = (now_ms - created_ms) / _MS_PER_DAY
    # Round half up.
    return math.floor(thread.response_count / age_days * 100 + 0.5) / 100


def sort_threads(
    threads: Sequence[ThreadSummary],
    key: SortKey,
    *,
    order: SortOrder = "desc",
    now_ms: int | None = None,
) -> list[ThreadSummary]:
    """Return threads sorted by key; ties keep index order.

    ``lastUpdated`` is the index order itself, since subject.txt lists the
    most recently bumped thread first.
    """
    if now_ms is None:
        now_ms = int(datetime.now(tz=UTC).timestamp() * 1000)
    current_time = now_ms

    key_funcs: dict[str, Callable[[tuple[int, ThreadSummary]], float]] = {
        "responseCount": lambda it: it[1].response_count,
        "speed": lambda it: thread_speed(it[1], current_time),
        "creationTime": lambda it: it[1].id,
        "lastUpdated": lambda it: it[0],
    }
    if key not in key_funcs:
        msg = f"Unknown sort key: {key!r}"
        raise ValueError(msg)

    ranked = sorted(enumerate(threads), key=key_funcs[key], reverse=order == "desc")
    return [thread for _idx, thread in ranked]
