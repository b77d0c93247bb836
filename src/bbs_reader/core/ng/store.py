"""NG rule store: owns the config, persists it and keeps it in sync."""

import asyncio
import json
import uuid
from collections.abc import Callable, Mapping
from dataclasses import replace
from types import TracebackType
from typing import Any, get_args

from loguru import logger

from bbs_reader.config import DEBOUNCE_DELAY, NG_STORAGE_KEY
from bbs_reader.core.ng.matcher import RegexCache, should_filter_response, should_filter_thread
from bbs_reader.models.ng import (
    FilterResult,
    HideMode,
    MatchType,
    NGCategory,
    NGRule,
    NGWordsConfig,
)
from bbs_reader.models.thread import Response, ThreadSummary
from bbs_reader.protocols import SchedulerProtocol, StorageProtocol, TimerHandleProtocol

ConfigListener = Callable[[NGWordsConfig], None]

_RULE_FIELDS = {"pattern", "match_type", "enabled", "hide_mode"}


def _check_rule_fields(fields: Mapping[str, Any]) -> None:
    unknown = set(fields) - _RULE_FIELDS
    if unknown:
        msg = f"Unknown NG rule fields: {sorted(unknown)!r}"
        raise TypeError(msg)
    if "pattern" in fields and not isinstance(fields["pattern"], str):
        msg = f"NG rule pattern must be a string, got {fields['pattern']!r}"
        raise ValueError(msg)
    if "match_type" in fields and fields["match_type"] not in get_args(MatchType):
        msg = f"Invalid match type: {fields['match_type']!r}"
        raise ValueError(msg)
    if "enabled" in fields and not isinstance(fields["enabled"], bool):
        msg = f"NG rule enabled flag must be a bool, got {fields['enabled']!r}"
        raise ValueError(msg)
    hide_mode = fields.get("hide_mode")
    if hide_mode is not None and hide_mode not in get_args(HideMode):
        msg = f"Invalid hide mode: {hide_mode!r}"
        raise ValueError(msg)


def default_config() -> NGWordsConfig:
    return NGWordsConfig()


def load_config(raw: str | None) -> NGWordsConfig:
    """Parse a stored config, falling back to defaults on any problem."""
    if not raw:
        return default_config()
    try:
        return NGWordsConfig.from_dict(json.loads(raw))
    except (json.JSONDecodeError, ValueError, TypeError, KeyError) as e:
        logger.warning("Failed to load NG config, resetting: {}", e)
        return default_config()


def rule_from_value(
    category: NGCategory, value: str, hide_mode: HideMode | None = None
) -> dict[str, Any]:
    """Rule fields for "add this value to NG" from a thread or post.

    Always a partial match. ``hide_mode`` is only kept for response categories.
    """
    fields: dict[str, Any] = {"pattern": value, "match_type": "partial", "enabled": True}
    if NGCategory(category).is_response_scoped and hide_mode is not None:
        fields["hide_mode"] = hide_mode
    return fields


class NGRuleStore:
    """Holds the NG config and the regex cache built from it.

    Every edit replaces the whole config. Edits are written back to storage
    after ``debounce`` seconds of quiet; changes written by another process
    are adopted immediately and never written back.

    The debounce timer runs on ``loop`` (or the running asyncio loop). With
    no loop at all, edits are kept pending until ``flush()``.
    """

    def __init__(
        self,
        storage: StorageProtocol,
        *,
        loop: SchedulerProtocol | None = None,
        debounce: float = DEBOUNCE_DELAY,
        key: str = NG_STORAGE_KEY,
    ) -> None:
        self._storage = storage
        self._loop = loop
        self._debounce = debounce
        self._key = key
        self._cache = RegexCache()
        self._listeners: list[ConfigListener] = []
        self._pending: TimerHandleProtocol | None = None
        self._dirty = False
        # One-shot guard: the next config change came from another writer.
        self._external_update = False
        self._disposed = False

        try:
            raw = storage.get_item(key)
        except (OSError, ValueError) as e:
            logger.warning("Failed to read NG config from storage: {}", e)
            raw = None
        self._config = load_config(raw)
        self._unsubscribe: Callable[[], None] | None = storage.subscribe(
            key, self._on_storage_change
        )
        logger.debug("NG rule store ready, key {!r}", key)

    def __enter__(self) -> "NGRuleStore":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is None:
            self.flush()
        self.dispose()

    @property
    def config(self) -> NGWordsConfig:
        return self._config

    @property
    def regex_cache(self) -> RegexCache:
        return self._cache

    @property
    def has_pending_write(self) -> bool:
        return self._dirty

    def subscribe(self, listener: ConfigListener) -> Callable[[], None]:
        """Call listener with each new config; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # --- Mutations ---

    def add_rule(
        self, category: NGCategory, rule: Mapping[str, Any] | None = None, **fields: Any
    ) -> None:
        """Append a new rule with a generated id.

        Fields may be given as a mapping, as keywords, or both.
        """
        data = {**(rule or {}), **fields}
        data.pop("id", None)
        _check_rule_fields(data)
        new_rule = NGRule(id=str(uuid.uuid4()), **data)
        self._update_category(category, lambda rules: (*rules, new_rule))
        logger.debug("Added NG rule {} to {}", new_rule.id, category)

    def update_rule(self, category: NGCategory, rule_id: str, **updates: Any) -> None:
        """Merge fields into the rule with rule_id; unknown ids are ignored."""
        updates.pop("id", None)
        _check_rule_fields(updates)
        self._update_category(
            category,
            lambda rules: tuple(replace(r, **updates) if r.id == rule_id else r for r in rules),
        )

    def remove_rule(self, category: NGCategory, rule_id: str) -> None:
        self._update_category(category, lambda rules: tuple(r for r in rules if r.id != rule_id))

    def toggle_rule(self, category: NGCategory, rule_id: str) -> None:
        self._update_category(
            category,
            lambda rules: tuple(
                replace(r, enabled=not r.enabled) if r.id == rule_id else r for r in rules
            ),
        )

    def clear_all_rules(self) -> None:
        """Reset to the empty default config. Irreversible."""
        self._set_config(default_config())

    # --- Evaluation ---

    def should_filter_thread(self, thread: ThreadSummary) -> bool:
        return should_filter_thread(thread, self._config, self._cache)

    def should_filter_response(self, response: Response) -> FilterResult:
        return should_filter_response(response, self._config, self._cache)

    # --- Persistence ---

    def flush(self) -> None:
        """Write a pending change now."""
        self._cancel_pending()
        if self._dirty:
            self._save()

    def dispose(self) -> None:
        """Drop any pending write and stop listening for external changes."""
        self._cancel_pending()
        self._dirty = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._disposed = True

    def _update_category(
        self,
        category: NGCategory,
        transform: Callable[[tuple[NGRule, ...]], tuple[NGRule, ...]],
    ) -> None:
        prev = self._config
        self._set_config(prev.with_rules(category, transform(prev.rules(category))))

    def _set_config(self, config: NGWordsConfig) -> None:
        self._config = config
        self._cache.clear()

        if self._external_update:
            self._external_update = False
        else:
            self._schedule_save()

        for listener in list(self._listeners):
            listener(config)

    def _schedule_save(self) -> None:
        if self._disposed:
            return
        self._cancel_pending()
        self._dirty = True

        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                logger.debug("No event loop, NG config write deferred until flush()")
                return
        self._pending = loop.call_later(self._debounce, self._on_debounce_fired)

    def _on_debounce_fired(self) -> None:
        self._pending = None
        self._save()

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _save(self) -> None:
        self._dirty = False
        try:
            payload = json.dumps(self._config.to_dict(), ensure_ascii=False)
            self._storage.set_item(self._key, payload)
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Failed to save NG config: {}", e)

    def _on_storage_change(self, new_value: str | None) -> None:
        if not new_value:
            return
        try:
            config = NGWordsConfig.from_dict(json.loads(new_value))
        except (json.JSONDecodeError, ValueError, TypeError, KeyError) as e:
            logger.warning("Ignoring invalid NG config from storage change: {}", e)
            return
        logger.debug("NG config changed by another writer")
        # Another writer's change supersedes any edit still waiting to be saved.
        self._cancel_pending()
        self._dirty = False
        self._external_update = True
        self._set_config(config)
