"""Durable JSON key-value slots with change notifications."""

import os
import re
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

Listener = Callable[[str | None], None]


@dataclass(frozen=True)
class StorageEvent:
    """A value changed by another writer."""

    key: str
    new_value: str | None


def _key_filename(key: str) -> str:
    return re.sub(r"[^\w.-]", "-", key) + ".json"


class JsonFileStorage:
    """Store each key as a file under a directory.

    Several instances (or processes) may share a directory. Writes through
    an instance never notify its own listeners; ``poll()`` picks up values
    written by anyone else since this instance last read or wrote them.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory).expanduser()
        self._listeners: dict[str, list[Listener]] = {}
        # Last value this instance saw per key, used to detect foreign writes.
        self._seen: dict[str, str | None] = {}

    def _path(self, key: str) -> Path:
        return self.directory / _key_filename(key)

    def _read(self, key: str) -> str | None:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Unreadable storage key {!r}, treating it as empty: {}", key, e)
            return None

    def get_item(self, key: str) -> str | None:
        value = self._read(key)
        self._seen[key] = value
        return value

    def set_item(self, key: str, value: str) -> None:
        """Write value atomically (temp file + rename)."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        self._seen[key] = value
        logger.debug("Wrote storage key {!r} ({} bytes)", key, len(value))

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
        self._seen[key] = None

    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        """Register listener for foreign changes to key; returns an unsubscribe function."""
        self._listeners.setdefault(key, []).append(listener)
        if key not in self._seen:
            self._seen[key] = self._read(key)

        def unsubscribe() -> None:
            listeners = self._listeners.get(key, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def poll(self) -> list[StorageEvent]:
        """Deliver changes made by other writers to subscribed keys.

        Returns:
            The events that were delivered.
        """
        events: list[StorageEvent] = []
        for key, listeners in list(self._listeners.items()):
            if not listeners:
                continue
            current = self._read(key)
            if current == self._seen.get(key):
                continue
            self._seen[key] = current
            event = StorageEvent(key=key, new_value=current)
            events.append(event)
            for listener in list(listeners):
                listener(event.new_value)
        return events
