"""Tests for NGRuleStore: mutations, debounced persistence and external sync."""

import asyncio
import json
from pathlib import Path

import pytest

from bbs_reader.config import NG_STORAGE_KEY
from bbs_reader.core.ng.storage import JsonFileStorage
from bbs_reader.core.ng.store import NGRuleStore, load_config, rule_from_value
from bbs_reader.models.ng import FilterResult, NGCategory, NGWordsConfig
from bbs_reader.models.thread import BodyPart, Response, ThreadSummary
from tests.unit.fakes import FakeLoop, FakeStorage

BODIES = NGCategory.RESPONSE_BODIES


def _stored(storage: FakeStorage) -> dict:
    return json.loads(storage.data[NG_STORAGE_KEY])


def _response(body: str) -> Response:
    return Response(
        id=1,
        name="名無し",
        mail="",
        date="",
        author_id="abc",
        body_parts=(BodyPart(body),),
        author_id_appear_before_count=1,
    )


def test_store_starts_with_defaults_and_does_not_write(
    store: NGRuleStore, storage: FakeStorage, loop: FakeLoop
) -> None:
    assert store.config == NGWordsConfig()
    loop.advance(10)
    assert storage.writes == []


def test_store_loads_valid_stored_config(loop: FakeLoop) -> None:
    stored = NGWordsConfig().to_dict()
    stored["thread"]["titles"] = [
        {"id": "t", "pattern": "x", "matchType": "partial", "enabled": True}
    ]
    storage = FakeStorage({NG_STORAGE_KEY: json.dumps(stored)})

    store = NGRuleStore(storage, loop=loop)

    assert store.config.thread.titles[0].pattern == "x"
    loop.advance(10)
    assert storage.writes == []


@pytest.mark.parametrize("raw", ["{not json", "[]", '{"version": 1}', ""])
def test_store_replaces_invalid_stored_config_with_defaults(raw: str) -> None:
    storage = FakeStorage({NG_STORAGE_KEY: raw})

    store = NGRuleStore(storage, loop=FakeLoop())

    assert store.config == NGWordsConfig()


@pytest.mark.parametrize("corrupt", ["bytes", "directory"])
def test_store_falls_back_to_defaults_on_unreadable_file(tmp_path: Path, corrupt: str) -> None:
    path = tmp_path / "bbs-reader-ng-words-config.json"
    if corrupt == "bytes":
        path.write_bytes(b"\xff\xfe{bad")
    else:
        path.mkdir()

    store = NGRuleStore(JsonFileStorage(tmp_path), loop=FakeLoop())

    assert store.config == NGWordsConfig()


def test_store_keeps_config_when_file_is_corrupted_later(tmp_path: Path) -> None:
    storage = JsonFileStorage(tmp_path)
    store = NGRuleStore(storage)
    store.add_rule(BODIES, pattern="keep")
    store.flush()

    (tmp_path / "bbs-reader-ng-words-config.json").write_bytes(b"\xff\xfe{bad")
    storage.poll()

    assert [r.pattern for r in store.config.rules(BODIES)] == ["keep"]


def test_load_config_none_is_default() -> None:
    assert load_config(None) == NGWordsConfig()


def test_add_rule_generates_unique_ids(store: NGRuleStore) -> None:
    store.add_rule(BODIES, {"pattern": "a", "match_type": "partial", "enabled": True})
    store.add_rule(BODIES, pattern="b")

    rules = store.config.rules(BODIES)
    assert [r.pattern for r in rules] == ["a", "b"]
    assert rules[0].id and rules[1].id
    assert rules[0].id != rules[1].id


def test_add_rule_ignores_supplied_id(store: NGRuleStore) -> None:
    store.add_rule(BODIES, {"id": "mine", "pattern": "a"})

    assert store.config.rules(BODIES)[0].id != "mine"


def test_add_rule_rejects_unknown_fields(store: NGRuleStore) -> None:
    with pytest.raises(TypeError, match="Unknown NG rule fields"):
        store.add_rule(BODIES, pattern="a", colour="red")


@pytest.mark.parametrize(
    "fields",
    [
        {"hide_mode": "hide"},
        {"match_type": "Regex"},
        {"enabled": "yes"},
        {"pattern": 42},
    ],
)
def test_add_rule_rejects_invalid_values(store: NGRuleStore, fields: dict) -> None:
    with pytest.raises(ValueError):
        store.add_rule(BODIES, {"pattern": "spam", **fields})

    assert store.config.rules(BODIES) == ()


def test_update_rule_rejects_invalid_values(store: NGRuleStore) -> None:
    store.add_rule(BODIES, pattern="spam")
    rule = store.config.rules(BODIES)[0]

    with pytest.raises(ValueError, match="Invalid hide mode"):
        store.update_rule(BODIES, rule.id, hide_mode="hide")
    with pytest.raises(ValueError, match="Invalid match type"):
        store.update_rule(BODIES, rule.id, match_type="Regex")

    assert store.config.rules(BODIES) == (rule,)


def test_every_mutation_replaces_config(store: NGRuleStore) -> None:
    before = store.config
    store.add_rule(BODIES, pattern="a")

    assert store.config is not before
    assert before.rules(BODIES) == ()


def test_update_rule_merges_fields(store: NGRuleStore) -> None:
    store.add_rule(BODIES, pattern="a")
    rule_id = store.config.rules(BODIES)[0].id

    store.update_rule(BODIES, rule_id, pattern="b", hide_mode="hidden")

    rule = store.config.rules(BODIES)[0]
    assert (rule.id, rule.pattern, rule.hide_mode, rule.enabled) == (rule_id, "b", "hidden", True)


def test_update_unknown_rule_is_noop(store: NGRuleStore) -> None:
    store.add_rule(BODIES, pattern="a")
    before = store.config.rules(BODIES)

    store.update_rule(BODIES, "missing", pattern="b")

    assert store.config.rules(BODIES) == before


def test_remove_rule(store: NGRuleStore) -> None:
    store.add_rule(BODIES, pattern="a")
    store.add_rule(BODIES, pattern="b")
    first_id = store.config.rules(BODIES)[0].id

    store.remove_rule(BODIES, first_id)
    store.remove_rule(BODIES, "missing")

    assert [r.pattern for r in store.config.rules(BODIES)] == ["b"]


def test_toggle_twice_restores_rule(store: NGRuleStore) -> None:
    store.add_rule(NGCategory.THREAD_TITLES, pattern="a")
    original = store.config.rules(NGCategory.THREAD_TITLES)[0]

    store.toggle_rule(NGCategory.THREAD_TITLES, original.id)
    toggled = store.config.rules(NGCategory.THREAD_TITLES)[0]
    store.toggle_rule(NGCategory.THREAD_TITLES, original.id)

    assert toggled.enabled is False
    assert toggled.pattern == original.pattern
    assert store.config.rules(NGCategory.THREAD_TITLES)[0] == original


def test_clear_all_rules(store: NGRuleStore) -> None:
    store.add_rule(BODIES, pattern="a")
    store.add_rule(NGCategory.THREAD_TITLES, pattern="b")

    store.clear_all_rules()

    assert store.config == NGWordsConfig()


def test_rapid_edits_are_coalesced_into_one_write(
    store: NGRuleStore, storage: FakeStorage, loop: FakeLoop
) -> None:
    store.add_rule(BODIES, pattern="a")
    loop.advance(0.1)
    store.add_rule(BODIES, pattern="b")
    loop.advance(0.1)
    store.add_rule(BODIES, pattern="c")

    loop.advance(0.29)
    assert storage.writes == []

    loop.advance(0.02)
    assert len(storage.writes) == 1
    patterns = [r["pattern"] for r in _stored(storage)["response"]["bodies"]]
    assert patterns == ["a", "b", "c"]


def test_write_uses_persisted_field_names(
    store: NGRuleStore, storage: FakeStorage, loop: FakeLoop
) -> None:
    store.add_rule(BODIES, pattern="spam", hide_mode="hidden")
    loop.advance(1)

    (rule,) = _stored(storage)["response"]["bodies"]
    assert rule["matchType"] == "partial"
    assert rule["hideMode"] == "hidden"


def test_external_change_updates_without_write_back(
    store: NGRuleStore, storage: FakeStorage, loop: FakeLoop
) -> None:
    other = NGWordsConfig().to_dict()
    other["response"]["names"] = [
        {"id": "n", "pattern": "コテ", "matchType": "partial", "enabled": True}
    ]

    storage.emit_external(NG_STORAGE_KEY, json.dumps(other))
    loop.advance(10)

    assert store.config.response.names[0].pattern == "コテ"
    assert storage.writes == []


def test_external_change_guard_is_one_shot(
    store: NGRuleStore, storage: FakeStorage, loop: FakeLoop
) -> None:
    storage.emit_external(NG_STORAGE_KEY, json.dumps(NGWordsConfig().to_dict()))
    store.add_rule(BODIES, pattern="local")
    loop.advance(1)

    assert len(storage.writes) == 1


def test_external_change_cancels_pending_write(
    store: NGRuleStore, storage: FakeStorage, loop: FakeLoop
) -> None:
    store.add_rule(BODIES, pattern="local")
    storage.emit_external(NG_STORAGE_KEY, json.dumps(NGWordsConfig().to_dict()))
    loop.advance(1)

    assert storage.writes == []
    assert store.config.rules(BODIES) == ()


@pytest.mark.parametrize("value", [None, "", "{broken", '{"version": 1}'])
def test_invalid_external_change_is_ignored(
    store: NGRuleStore, storage: FakeStorage, value: str | None
) -> None:
    store.add_rule(BODIES, pattern="keep")

    storage.emit_external(NG_STORAGE_KEY, value)

    assert [r.pattern for r in store.config.rules(BODIES)] == ["keep"]


def test_regex_cache_cleared_on_config_change(store: NGRuleStore) -> None:
    store.add_rule(BODIES, pattern="sp.m", match_type="regex")
    store.should_filter_response(_response("spam"))
    assert len(store.regex_cache) == 1

    store.add_rule(BODIES, pattern="other")

    assert len(store.regex_cache) == 0


def test_regex_cache_cleared_on_external_change(
    store: NGRuleStore, storage: FakeStorage
) -> None:
    store.add_rule(BODIES, pattern="sp.m", match_type="regex")
    store.should_filter_response(_response("spam"))

    storage.emit_external(NG_STORAGE_KEY, json.dumps(NGWordsConfig().to_dict()))

    assert len(store.regex_cache) == 0


def test_store_filters_response_with_default_hide_mode(store: NGRuleStore) -> None:
    store.add_rule(BODIES, {"pattern": "spam", "match_type": "partial", "enabled": True})

    assert store.should_filter_response(_response("Some SPAM here")) == FilterResult(
        filtered=True, hide_mode="collapsed"
    )
    assert store.should_filter_response(_response("clean")) == FilterResult(
        filtered=False, hide_mode=None
    )


def test_store_filters_thread(store: NGRuleStore) -> None:
    store.add_rule(NGCategory.THREAD_TITLES, pattern="荒らし")

    thread = ThreadSummary(id=1, title="荒らしスレ", response_count=1)

    assert store.should_filter_thread(thread)


def test_failed_write_is_swallowed(
    store: NGRuleStore, storage: FakeStorage, loop: FakeLoop
) -> None:
    storage.fail_writes = True
    store.add_rule(BODIES, pattern="a")

    loop.advance(1)

    assert storage.writes == []
    assert store.config.rules(BODIES)[0].pattern == "a"


def test_dispose_cancels_pending_write_and_detaches(
    store: NGRuleStore, storage: FakeStorage, loop: FakeLoop
) -> None:
    store.add_rule(BODIES, pattern="a")
    store.dispose()
    loop.advance(1)

    assert storage.writes == []
    assert storage.listeners[NG_STORAGE_KEY] == []


def test_subscribe_notifies_on_each_change(store: NGRuleStore) -> None:
    seen: list[NGWordsConfig] = []
    unsubscribe = store.subscribe(seen.append)

    store.add_rule(BODIES, pattern="a")
    unsubscribe()
    store.add_rule(BODIES, pattern="b")

    assert len(seen) == 1
    assert seen[0].rules(BODIES)[0].pattern == "a"


def test_without_loop_writes_wait_for_flush() -> None:
    storage = FakeStorage()
    store = NGRuleStore(storage)

    store.add_rule(BODIES, pattern="a")
    assert storage.writes == []
    assert store.has_pending_write

    store.flush()
    assert len(storage.writes) == 1
    assert not store.has_pending_write


def test_context_manager_flushes_on_exit() -> None:
    storage = FakeStorage()

    with NGRuleStore(storage) as store:
        store.add_rule(BODIES, pattern="a")

    assert len(storage.writes) == 1
    assert storage.listeners[NG_STORAGE_KEY] == []


def test_debounce_runs_on_running_asyncio_loop() -> None:
    storage = FakeStorage()

    async def scenario() -> None:
        store = NGRuleStore(storage, debounce=0.01)
        store.add_rule(BODIES, pattern="a")
        store.add_rule(BODIES, pattern="b")
        await asyncio.sleep(0.05)
        store.dispose()

    asyncio.run(scenario())

    assert len(storage.writes) == 1


def test_rule_from_value_keeps_hide_mode_for_responses_only() -> None:
    assert rule_from_value(NGCategory.RESPONSE_AUTHOR_IDS, "abc", "hidden") == {
        "pattern": "abc",
        "match_type": "partial",
        "enabled": True,
        "hide_mode": "hidden",
    }
    assert "hide_mode" not in rule_from_value(NGCategory.THREAD_AUTHOR_IDS, "abc", "hidden")
