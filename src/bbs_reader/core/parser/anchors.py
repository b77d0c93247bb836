"""Resolve ``>>N`` back-references in post bodies."""

import re
from collections.abc import Sequence
from typing import Protocol

from bbs_reader.models.thread import BodyPart

# Bodies arrive HTML-escaped, so ">>12" is stored as "&gt;&gt;12".
ANCHOR_RE = re.compile(r"&gt;&gt;([0-9]{1,4})")


class _HasBody(Protocol):
    @property
    def body(self) -> str: ...


def split_body(body: str) -> tuple[tuple[BodyPart, ...], list[int]]:
    """Split a body into plain and anchor spans.

    Anchor spans are rendered with a raw ``>>``; plain spans are left
    untouched. Empty plain spans are skipped.

    Returns:
        Tuple of (parts, anchored response numbers in encounter order).
    """
    parts: list[BodyPart] = []
    targets: list[int] = []
    pos = 0
    for match in ANCHOR_RE.finditer(body):
        if match.start() > pos:
            parts.append(BodyPart(body[pos : match.start()]))
        parts.append(BodyPart(f">>{match.group(1)}", is_match=True))
        targets.append(int(match.group(1)))
        pos = match.end()
    if pos < len(body):
        parts.append(BodyPart(body[pos:]))
    return tuple(parts), targets


def join_body(parts: Sequence[BodyPart]) -> str:
    """Rebuild the escaped wire body from parts."""
    return "".join(
        "&gt;&gt;" + part.text.removeprefix(">>") if part.is_match else part.text
        for part in parts
    )


def resolve_anchors(
    records: Sequence[_HasBody],
) -> tuple[list[tuple[BodyPart, ...]], dict[int, list[int]]]:
    """Split every body and build the referred map.

    The referred map is ``target id -> [referencing id, ...]`` with ids
    1-based and referencing ids appended in document order. Targets with no
    matching record (0, past the end) are kept; callers drop them when
    attaching.
    """
    all_parts: list[tuple[BodyPart, ...]] = []
    referred: dict[int, list[int]] = {}
    for response_id, record in enumerate(records, start=1):
        parts, targets = split_body(record.body)
        all_parts.append(parts)
        for target in targets:
            referred.setdefault(target, []).append(response_id)
    return all_parts, referred
