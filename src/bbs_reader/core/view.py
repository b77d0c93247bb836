"""Filtered view models handed to presentation code."""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from bbs_reader.models.ng import FilterResult
from bbs_reader.models.thread import ParsedThread, Response, ThreadSummary


class FilterSource(Protocol):
    """Anything that can judge threads and responses (normally an NGRuleStore)."""

    def should_filter_thread(self, thread: ThreadSummary) -> bool: ...

    def should_filter_response(self, response: Response) -> FilterResult: ...


@dataclass(frozen=True)
class ResponseView:
    """A response with its NG outcome and per-author total."""

    response: Response
    filter_result: FilterResult
    author_total: int

    @property
    def collapsed(self) -> bool:
        return self.filter_result.filtered and self.filter_result.hide_mode == "collapsed"


def filter_thread_list(
    threads: Iterable[ThreadSummary], source: FilterSource
) -> list[ThreadSummary]:
    """Drop threads hit by an NG rule, keeping order."""
    return [t for t in threads if not source.should_filter_thread(t)]


def build_response_views(
    thread: ParsedThread, source: FilterSource, *, include_hidden: bool = False
) -> list[ResponseView]:
    """Evaluate every response of a thread.

    Responses whose rule asks for ``hidden`` are left out unless
    include_hidden is set; ``collapsed`` ones are kept and flagged.
    """
    views: list[ResponseView] = []
    for response in thread.responses:
        result = source.should_filter_response(response)
        if result.filtered and result.hide_mode == "hidden" and not include_hidden:
            continue
        views.append(
            ResponseView(
                response=response,
                filter_result=result,
                author_total=thread.author_total(response.author_id),
            )
        )
    return views
