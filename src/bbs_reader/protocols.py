"""Protocols for dependency injection in the NG rule store."""

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class TimerHandleProtocol(Protocol):
    """A deferred callback that can be cancelled before it fires."""

    def cancel(self) -> None:
        """Cancel the callback."""
        ...


@runtime_checkable
class SchedulerProtocol(Protocol):
    """Anything with asyncio's ``call_later`` signature."""

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> TimerHandleProtocol:
        """Run callback after delay seconds, returning a cancellable handle."""
        ...


@runtime_checkable
class StorageProtocol(Protocol):
    """Protocol for durable key-value slots with change notifications."""

    def get_item(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""
        ...

    def set_item(self, key: str, value: str) -> None:
        """Store value under key."""
        ...

    def subscribe(self, key: str, listener: Callable[[str | None], None]) -> Callable[[], None]:
        """Call listener with the new value when another writer changes key.

        Returns a function that detaches the listener.
        """
        ...
