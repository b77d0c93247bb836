"""Domain models for decoded threads and thread indexes."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BodyPart:
    """A span of a post body; ``is_match`` marks a rendered ``>>N`` anchor."""

    text: str
    is_match: bool = False


@dataclass(frozen=True)
class Response:
    """A single post in a thread.

    ``refs`` lists the ids of posts that anchor to this one, in the order the
    anchors were encountered; None when nothing points here.
    """

    id: int
    name: str
    mail: str
    date: str
    author_id: str
    body_parts: tuple[BodyPart, ...]
    author_id_appear_before_count: int
    refs: tuple[int, ...] | None = None
    deleted: bool = False

    @property
    def body_text(self) -> str:
        """Concatenated body text, anchors included as ``>>N``."""
        return "".join(part.text for part in self.body_parts)


@dataclass(frozen=True)
class ParsedThread:
    """Result of decoding a dat file."""

    title: str
    responses: tuple[Response, ...]
    author_post_counts: dict[str, int] = field(default_factory=dict)

    def get(self, response_id: int) -> Response | None:
        """Return the response with the given 1-based id, or None."""
        if 1 <= response_id <= len(self.responses):
            return self.responses[response_id - 1]
        return None

    def author_total(self, author_id: str) -> int:
        """Number of non-deleted posts by author_id in this thread."""
        return self.author_post_counts.get(author_id, 0)


@dataclass(frozen=True)
class ThreadSummary:
    """One entry of a board's subject.txt."""

    id: int
    title: str
    response_count: int
    author_id: str | None = None
