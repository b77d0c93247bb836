"""Shared test fixtures."""

import pytest

from bbs_reader.config import NG_STORAGE_KEY
from bbs_reader.core.ng.store import NGRuleStore
from tests.unit.fakes import FakeLoop, FakeStorage


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def loop() -> FakeLoop:
    return FakeLoop()


@pytest.fixture
def store(storage: FakeStorage, loop: FakeLoop) -> NGRuleStore:
    """A store on in-memory storage with a manually advanced debounce clock."""
    return NGRuleStore(storage, loop=loop, key=NG_STORAGE_KEY)
