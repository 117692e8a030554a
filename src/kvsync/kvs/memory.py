"""
In-memory key-value store.

Implements Store, ChangeSource and Getter over a plain dict, with a FIFO of
pending updates. Producers may call set/delete from any thread while one
consumer waits in next().
"""
import logging
import threading
import time
from collections import deque
from typing import Deque, Dict, List, Mapping, Optional

from kvsync.config import get_framework_config
from kvsync.errors import CancelledError, DeadlineExceededError, NoSuchKeyError
from kvsync.format import SEPARATOR
from kvsync.kvs import Update

logger = logging.getLogger(__name__)


class MemoryStore:
    """Dict-backed store.

    Usage:
        store = MemoryStore({"/o/B": "nya"})
        store.next()        # Update(key="/o/B", value="nya", previous=None)
        store.set("/o/B", "nyu")
        store.delete("/o/")
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: Dict[str, str] = {}
        self._queue: Deque[Update] = deque()
        self._condition = threading.Condition(threading.Lock())
        # Held by the store helpers around object mutations
        self.lock = threading.RLock()

        for key, value in (initial or {}).items():
            self._data[key] = value
            self._queue.append(Update(key=key, value=value))

    def set(self, key: str, value: str) -> None:
        with self._condition:
            previous = self._data.get(key)
            self._data[key] = value
            self._queue.append(Update(key=key, value=value, previous=previous))
            self._condition.notify_all()

    def delete(self, key: str) -> None:
        """Remove key, or with a trailing '/' every key under that prefix.

        A prefix deletion queues a single update for the prefix itself.

        Raises:
            NoSuchKeyError: If no key matches
        """
        with self._condition:
            if key.endswith(SEPARATOR):
                removed: List[str] = [k for k in self._data if k.startswith(key)]
                if not removed:
                    raise NoSuchKeyError(key)
                for k in removed:
                    del self._data[k]
                logger.debug(f"Deleted {len(removed)} keys under '{key}'")
                self._queue.append(Update(key=key))
            else:
                if key not in self._data:
                    raise NoSuchKeyError(key)
                previous = self._data.pop(key)
                self._queue.append(Update(key=key, previous=previous))
            self._condition.notify_all()

    def next(self, timeout: Optional[float] = None, cancel: Optional[threading.Event] = None) -> Update:
        """Pop the oldest pending update, waiting for one if needed.

        Args:
            timeout: Seconds to wait, None to wait forever
            cancel: Event that aborts the wait when set

        Raises:
            DeadlineExceededError: If timeout expires first
            CancelledError: If cancel is set first
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        poll_interval = get_framework_config().poll_interval
        with self._condition:
            while not self._queue:
                if cancel is not None and cancel.is_set():
                    raise CancelledError("Waiting for updates was cancelled")
                wait = poll_interval if cancel is not None else None
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise DeadlineExceededError(f"No update within {timeout}s")
                    wait = remaining if wait is None else min(wait, remaining)
                self._condition.wait(wait)
            return self._queue.popleft()

    def get(self, key: str) -> str:
        with self._condition:
            try:
                return self._data[key]
            except KeyError:
                raise NoSuchKeyError(key) from None

    def snapshot(self) -> Dict[str, str]:
        """Copy of the stored pairs."""
        with self._condition:
            return dict(self._data)

    def pending(self) -> int:
        """Number of updates not yet returned by next()."""
        with self._condition:
            return len(self._queue)
