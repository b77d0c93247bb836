"""Parse subject.txt (thread index) text into thread summaries."""

import re

from loguru import logger

from bbs_reader.models.thread import ThreadSummary

# 1700000000.dat<>title [author★] (123)
_SUBJECT_WITH_ID_RE = re.compile(r"([0-9]{9,10})\.dat<>(.*) \[(.{4,13})★\] \(([0-9]{1,5})\)")
# 1700000000.dat<>title (123)
_SUBJECT_RE = re.compile(r"([0-9]{9,10})\.dat<>(.*) \(([0-9]{1,5})\)")


def parse_subject_line(line: str) -> ThreadSummary | None:
    """Parse one index line, or return None if it matches neither shape."""
    line = line.removesuffix("\r")

    match = _SUBJECT_WITH_ID_RE.fullmatch(line)
    if match is not None:
        thread_id, title, author_id, count = match.groups()
        return ThreadSummary(
            id=int(thread_id), title=title, response_count=int(count), author_id=author_id
        )

    match = _SUBJECT_RE.fullmatch(line)
    if match is not None:
        thread_id, title, count = match.groups()
        return ThreadSummary(id=int(thread_id), title=title, response_count=int(count))

    return None


def parse_thread_index(text: str) -> list[ThreadSummary]:
    """Parse a whole subject.txt.

    Lines matching neither shape are dropped; the listing is advisory, so a
    corrupt entry never aborts the rest.
    """
    threads: list[ThreadSummary] = []
    dropped = 0
    for line in text.split("\n"):
        summary = parse_subject_line(line)
        if summary is None:
            if line.strip():
                dropped += 1
            continue
        threads.append(summary)

    if dropped:
        logger.debug("Dropped {} unparseable subject lines", dropped)
    return threads
