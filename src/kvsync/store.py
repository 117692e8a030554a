"""
Store helpers.

Push an object, or part of it, into a Store. set_object and delete_object
modify the in-memory object first, holding a lock against concurrent
writers, then push the change. The store write itself is not covered by the
lock.
"""
import contextlib
import logging
from typing import Any, ContextManager, Optional

from kvsync.encoding import delete_by_fields, encode, set_by_fields
from kvsync.kvs import Store

logger = logging.getLogger(__name__)


def _lock_for(store: Store, lock: Optional[ContextManager]) -> ContextManager:
    if lock is not None:
        return lock
    store_lock = getattr(store, 'lock', None)
    return store_lock if store_lock is not None else contextlib.nullcontext()


def store_object(store: Store, obj: Any, format: str, *fields: Any) -> None:
    """Write obj, or the sub-object selected by fields, into the store."""
    kvs = encode(obj, format, *fields)
    for key, value in kvs.items():
        store.set(key, value)
    logger.debug(f"Stored {len(kvs)} keys of {type(obj).__name__} at '{format}'")


def set_object(store: Store, obj: Any, format: str, value: Any, *fields: Any,
               lock: Optional[ContextManager] = None) -> None:
    """Set the sub-object selected by fields and write it into the store.

    Args:
        store: Destination store
        obj: Root object
        format: Format of the root object
        value: New value of the sub-object
        *fields: Field selectors of the sub-object
        lock: Held while obj is modified. Defaults to store.lock when the
            store has one.
    """
    with _lock_for(store, lock):
        set_by_fields(obj, format, value, *fields)
    store_object(store, obj, format, *fields)


def delete_object(store: Store, obj: Any, format: str, *fields: Any,
                  lock: Optional[ContextManager] = None) -> str:
    """Remove the dict entry selected by fields and delete it from the store.

    Returns:
        The deleted key, ending with '/' when the entry was stored recursively
    """
    with _lock_for(store, lock):
        key = delete_by_fields(obj, format, *fields)
    store.delete(key)
    return key
