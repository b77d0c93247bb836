"""Per-author post counting and name rendering helpers."""

import re
from collections import Counter
from collections.abc import Iterable
from typing import Protocol

from bbs_reader.models.thread import BodyPart

# Caps and levels are embedded in the name as "</b>(Lv1 xxxx)<b>".
_NAME_SEGMENT_RE = re.compile(r"</b>(.*?)<b>")


class _Authored(Protocol):
    @property
    def author_id(self) -> str: ...

    @property
    def deleted(self) -> bool: ...


def count_author_appearances(records: Iterable[_Authored]) -> list[int]:
    """Return, per record, how many posts its author has made so far.

    The first post by an author reads 1. Deleted records are not counted and
    always read 0.
    """
    seen: dict[str, int] = {}
    counts: list[int] = []
    for record in records:
        if record.deleted:
            counts.append(0)
            continue
        seen[record.author_id] = seen.get(record.author_id, 0) + 1
        counts.append(seen[record.author_id])
    return counts


def author_post_totals(records: Iterable[_Authored]) -> dict[str, int]:
    """Count non-deleted posts per author id."""
    return dict(Counter(r.author_id for r in records if not r.deleted))


def split_name(name: str) -> tuple[BodyPart, ...]:
    """Split a name field into plain text and embedded cap/level segments.

    Segments wrapped in ``</b>...<b>`` are returned with ``is_match`` set.
    """
    pieces = _NAME_SEGMENT_RE.split(name)
    return tuple(
        BodyPart(piece, is_match=index % 2 == 1)
        for index, piece in enumerate(pieces)
        if piece or index % 2 == 1
    )
