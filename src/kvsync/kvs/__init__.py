"""
Key-value store collaborators.

kvsync does not talk to any particular backend. It pushes pairs into a Store,
pulls Updates from a ChangeSource, and optionally reads through a Getter.
MemoryStore (kvsync.kvs.memory) implements all three.
"""
import threading
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class Update:
    """One change of the key-value store.

    Attributes:
        key: Changed key. A key ending with '/' denotes every key under it.
        value: New value, None when the key is deleted
        previous: Previous value, None when the key is created
    """
    key: str
    value: Optional[str] = None
    previous: Optional[str] = None

    @property
    def is_delete(self) -> bool:
        return self.value is None


@runtime_checkable
class Store(Protocol):
    """Destination of encoded objects. Errors are raised."""

    def set(self, key: str, value: str) -> None:
        """Store value at key."""

    def delete(self, key: str) -> None:
        """Remove key, or every key under it when it ends with '/'."""


@runtime_checkable
class ChangeSource(Protocol):
    """Stream of store changes.

    The first calls replay every existing pair as a creation. Updates of the
    same key come in order; there is no ordering across keys.
    """

    def next(self, timeout: Optional[float] = None, cancel: Optional[threading.Event] = None) -> Update:
        """Block until the next update.

        Raises:
            DeadlineExceededError: If timeout expires first
            CancelledError: If cancel is set first
        """


@runtime_checkable
class Getter(Protocol):
    """Read access to the store."""

    def get(self, key: str) -> str:
        """Value at key.

        Raises:
            NoSuchKeyError: If the key is not in the store
        """


__all__ = ['Update', 'Store', 'ChangeSource', 'Getter']
