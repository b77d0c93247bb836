"""Parse dat-format thread text into responses."""

import re
from dataclasses import dataclass

from loguru import logger

from bbs_reader.config import ABONE_MARKER
from bbs_reader.core.parser.anchors import resolve_anchors
from bbs_reader.core.parser.authors import author_post_totals, count_author_appearances
from bbs_reader.models.thread import ParsedThread, Response

# name<>mail<>date ID:author<>body<>title
_LINE_RE = re.compile(r"(.*)<>(.*)<>(.*) ID:(.*)<>(.*)<>(.*)")
# name<>mail<><> あぼーん<>title
_ABONE_RE = re.compile(rf"(.*)<>(.*)<><> {re.escape(ABONE_MARKER)}<>(.*)")


class DatFormatError(ValueError):
    """A dat line matched neither the normal nor the deleted-post shape."""

    def __init__(self, line_no: int, line: str) -> None:
        self.line_no = line_no
        self.line = line
        super().__init__(f"Invalid response line {line_no}: {line!r}")


@dataclass(frozen=True)
class DatRecord:
    """Raw fields of one dat line, before anchors and author counts."""

    name: str
    mail: str
    date: str
    author_id: str
    body: str
    deleted: bool = False


def _split_lines(text: str) -> list[str]:
    lines = (line.removesuffix("\r") for line in text.split("\n"))
    return [line for line in lines if line != ""]


def parse_dat_lines(text: str) -> tuple[str, list[DatRecord]]:
    """Split dat text into raw records.

    Args:
        text: Decoded thread text, one post per line.

    Returns:
        Tuple of (thread title, records in line order). The title comes
        from the first line only.

    Raises:
        DatFormatError: If any line matches neither accepted shape.
    """
    title = ""
    records: list[DatRecord] = []

    for idx, line in enumerate(_split_lines(text)):
        match = _LINE_RE.fullmatch(line)
        if match is not None:
            name, mail, date, author_id, body, line_title = match.groups()
            records.append(
                DatRecord(name=name, mail=mail, date=date, author_id=author_id, body=body)
            )
        else:
            abone = _ABONE_RE.fullmatch(line)
            if abone is None:
                raise DatFormatError(idx + 1, line)
            name, _mail, line_title = abone.groups()
            records.append(
                DatRecord(
                    name=name, mail="", date="", author_id="", body=ABONE_MARKER, deleted=True
                )
            )

        if idx == 0:
            title = line_title

    return title, records


def parse_thread(text: str) -> ParsedThread:
    """Decode a whole thread: fields, anchors, reference graph and author counts.

    Raises:
        DatFormatError: If the text contains a malformed line. No partial
            result is returned.
    """
    title, records = parse_dat_lines(text)
    body_parts, referred = resolve_anchors(records)
    appear_counts = count_author_appearances(records)

    responses = tuple(
        Response(
            id=response_id,
            name=record.name,
            mail=record.mail,
            date=record.date,
            author_id=record.author_id,
            body_parts=parts,
            author_id_appear_before_count=count,
            refs=tuple(referred[response_id]) if response_id in referred else None,
            deleted=record.deleted,
        )
        for response_id, (record, parts, count) in enumerate(
            zip(records, body_parts, appear_counts, strict=True), start=1
        )
    )

    logger.debug("Parsed thread {!r}: {} responses", title, len(responses))
    return ParsedThread(
        title=title,
        responses=responses,
        author_post_counts=author_post_totals(records),
    )
