"""Evaluate NG rules against threads and responses."""

import re
from collections.abc import Iterable

from loguru import logger

from bbs_reader.models.ng import (
    DEFAULT_HIDE_MODE,
    NOT_FILTERED,
    FilterResult,
    NGRule,
    NGWordsConfig,
)
from bbs_reader.models.thread import Response, ThreadSummary


class RegexCache:
    """Compiled patterns keyed by pattern string.

    Invalid patterns are cached as None so they are compiled once and then
    never match. Owners clear the cache whenever their config is replaced.
    """

    def __init__(self) -> None:
        self._patterns: dict[str, re.Pattern[str] | None] = {}

    def get(self, pattern: str) -> re.Pattern[str] | None:
        if pattern in self._patterns:
            return self._patterns[pattern]
        try:
            compiled: re.Pattern[str] | None = re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            logger.debug("Invalid NG regex {!r}: {}", pattern, e)
            compiled = None
        self._patterns[pattern] = compiled
        return compiled

    def clear(self) -> None:
        self._patterns.clear()

    def __len__(self) -> int:
        return len(self._patterns)

    def __contains__(self, pattern: object) -> bool:
        return pattern in self._patterns


def matches_rule(text: str, rule: NGRule, cache: RegexCache) -> bool:
    """Check whether a single rule matches text (case-insensitive)."""
    if not rule.enabled or not text:
        return False

    if rule.match_type == "regex":
        regex = cache.get(rule.pattern)
        if regex is None:
            return False
        return regex.search(text) is not None

    return rule.pattern.lower() in text.lower()


def _first_match(text: str, rules: Iterable[NGRule], cache: RegexCache) -> NGRule | None:
    for rule in rules:
        if matches_rule(text, rule, cache):
            return rule
    return None


def should_filter_thread(
    thread: ThreadSummary, config: NGWordsConfig, cache: RegexCache
) -> bool:
    """Author id rules first (when the thread has one), then title rules."""
    if thread.author_id and _first_match(thread.author_id, config.thread.author_ids, cache):
        return True
    return _first_match(thread.title, config.thread.titles, cache) is not None


def should_filter_response(
    response: Response, config: NGWordsConfig, cache: RegexCache
) -> FilterResult:
    """Check author id, then name, then body rules; the first hit decides.

    Body rules see the concatenated text of all body parts, anchors included.
    """
    rules = config.response
    rule = _first_match(response.author_id, rules.author_ids, cache)
    if rule is None:
        rule = _first_match(response.name, rules.names, cache)
    if rule is None and rules.bodies:
        rule = _first_match(response.body_text, rules.bodies, cache)

    if rule is None:
        return NOT_FILTERED
    return FilterResult(filtered=True, hide_mode=rule.hide_mode or DEFAULT_HIDE_MODE)
