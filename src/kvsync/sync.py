"""
Change router.

Keeps objects synchronized with a key-value store. Each object is registered
with the format it is stored with; every update pulled from the ChangeSource
is applied to the object whose key space contains it, and that object's
callback receives a ChangeEvent describing which field changed:

    def on_change(event: ChangeEvent) -> None:
        if event.field("M").map_value(int).field("A").ok:
            ...

    sync = Sync(store)
    sync.sync_object(SyncObject("/o/", obj, on_change))
    while True:
        sync.next()
"""
import contextlib
import itertools
import logging
from dataclasses import dataclass, field, is_dataclass, replace
from typing import Any, Callable, ContextManager, Dict, List, Optional, Tuple

from kvsync.config import get_framework_config
from kvsync.encoding import delete_key_object, update_key_object
from kvsync.errors import (
    CallbackError,
    EventError,
    IsDeletedError,
    KvsyncError,
    NilPointerError,
    NoMoreFieldsError,
    NotABoolError,
    NotAMapError,
    NotAStringError,
    NotAStructError,
    NotAnIntError,
    NotSyncedError,
    NotThisPathError,
    ObjectNotFoundError,
    OverlappingKeySpaceError,
    WrongKeyTypeError,
)
from kvsync.format import SEPARATOR, prefix_collision
from kvsync.kvs import ChangeSource, Update
from kvsync.walker import ABSENT

logger = logging.getLogger(__name__)


# ==================== EVENTS ====================

@dataclass(frozen=True)
class ChangeEvent:
    """Which part of a synchronized object changed.

    Navigation returns a new event one level down, or an event carrying the
    error if the change is not on the requested path. Errors are sticky, so a
    whole chain can be checked once at the end:

        value = event.field("M").map_value(int).field("A").as_int()

    Attributes:
        object: Object at the current level, ABSENT if it was deleted
        fields: Fields from the current level to the changed object
        keys: Map keys consumed by map_value so far
        error: First navigation error, if any
    """
    object: Any
    fields: Tuple[Any, ...] = ()
    keys: Tuple[Any, ...] = ()
    error: Optional[EventError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def key(self) -> Any:
        """Last map key consumed by map_value."""
        return self.keys[-1] if self.keys else None

    def _fail(self, error: EventError) -> 'ChangeEvent':
        return replace(self, error=error)

    def _deref(self) -> 'ChangeEvent':
        if self.object is ABSENT:
            return self._fail(IsDeletedError("Object is being deleted"))
        if self.object is None:
            return self._fail(NilPointerError("Reached an unset optional value"))
        return self

    def field(self, name: str) -> 'ChangeEvent':
        """Descend into the dataclass field name."""
        if self.error is not None:
            return self
        event = self._deref()
        if event.error is not None:
            return event
        if not self.fields:
            return self._fail(NoMoreFieldsError("No more fields to consume"))
        if not is_dataclass(self.object):
            return self._fail(NotAStructError(f"{type(self.object).__name__} is not a dataclass"))
        if self.fields[0] != name:
            return self._fail(NotThisPathError(f"Changed field is '{self.fields[0]}', not '{name}'"))
        return replace(self, object=getattr(self.object, name), fields=self.fields[1:])

    def map_value(self, key_type: Optional[type] = None) -> 'ChangeEvent':
        """Descend into the changed entry of a dict.

        Args:
            key_type: Expected type of the dict keys

        The consumed key is available as .key afterwards. The entry is ABSENT
        if it was deleted.
        """
        if self.error is not None:
            return self
        event = self._deref()
        if event.error is not None:
            return event
        if not self.fields:
            return self._fail(NoMoreFieldsError("No more fields to consume"))
        if not isinstance(self.object, dict):
            return self._fail(NotAMapError(f"{type(self.object).__name__} is not a dict"))
        key = self.fields[0]
        if key_type is not None and not isinstance(key, key_type):
            return self._fail(WrongKeyTypeError(f"Map key {key!r} is not a {key_type.__name__}"))
        return replace(
            self,
            object=self.object.get(key, ABSENT),
            fields=self.fields[1:],
            keys=self.keys + (key,),
        )

    def is_deleted(self) -> bool:
        """Whether the object at this level was deleted."""
        return self.object is ABSENT and not self.fields

    def current(self) -> Any:
        """Object at the current level."""
        if self.error is not None:
            raise self.error
        if self.object is ABSENT:
            raise IsDeletedError("Object is being deleted")
        return self.object

    def as_str(self) -> str:
        value = self.current()
        if not isinstance(value, str):
            raise NotAStringError(f"{type(value).__name__} is not a string")
        return value

    def as_int(self) -> int:
        value = self.current()
        if not isinstance(value, int) or isinstance(value, bool):
            raise NotAnIntError(f"{type(value).__name__} is not an integer")
        return value

    def as_bool(self) -> bool:
        value = self.current()
        if not isinstance(value, bool):
            raise NotABoolError(f"{type(value).__name__} is not a bool")
        return value


# ==================== ROUTER ====================

SyncCallback = Callable[[ChangeEvent], None]


@dataclass
class SyncObject:
    """An object kept synchronized with the store.

    Attributes:
        format: Format the object is stored with, e.g. "/o/"
        object: The object, updated in place
        callback: Called with a ChangeEvent after each change
        lock: Held while the object is modified
    """
    format: str
    object: Any
    callback: SyncCallback
    lock: Optional[ContextManager] = field(default=None, repr=False)


class Sync:
    """Routes store updates to synchronized objects.

    Only one thread may call next() at a time.
    """

    def __init__(self, source: ChangeSource):
        self.source = source
        self._objects: Dict[int, SyncObject] = {}
        self._ids = itertools.count()

    @property
    def objects(self) -> List[SyncObject]:
        return list(self._objects.values())

    def sync_object(self, sync_object: SyncObject) -> int:
        """Start synchronizing an object.

        Returns:
            Registration id

        Raises:
            OverlappingKeySpaceError: If another object is stored in the same key space
        """
        for registered in self._objects.values():
            if prefix_collision(sync_object.format, registered.format):
                raise OverlappingKeySpaceError(
                    f"Cannot sync objects in overlapping key spaces '{sync_object.format}' and '{registered.format}'"
                )
        sync_id = next(self._ids)
        self._objects[sync_id] = sync_object
        logger.debug(f"Syncing {type(sync_object.object).__name__} at '{sync_object.format}' (id={sync_id})")
        return sync_id

    def unsync_object(self, format: str) -> None:
        """Stop synchronizing the object stored with format.

        Raises:
            NotSyncedError: If no object is synchronized with this format
        """
        for sync_id, registered in self._objects.items():
            if registered.format == format:
                del self._objects[sync_id]
                logger.debug(f"Stopped syncing '{format}' (id={sync_id})")
                return
        raise NotSyncedError(f"No object synchronized at '{format}'")

    def next(self, timeout: Optional[float] = None, cancel=None) -> Update:
        """Wait for the next update and apply it to the synchronized objects.

        Args:
            timeout: Seconds to wait for an update, None to wait forever
            cancel: threading.Event aborting the wait when set

        Returns:
            The update that was applied

        Raises:
            DeadlineExceededError: If timeout expires first
            CancelledError: If cancel is set first
            ObjectNotFoundError: If a deleted map entry is not in its object
            CallbackError: If a callback failed and raise_callback_errors is set
        """
        update = self.source.next(timeout=timeout, cancel=cancel)
        logger.debug(f"Routing update of '{update.key}'")

        if update.is_delete and self._route_delete(update.key):
            return update

        # Deleted leaves are reset to their zero value
        value = update.value if update.value is not None else ''
        self._route_upsert(update.key, value)
        return update

    def _route_delete(self, key: str) -> bool:
        if key.endswith(SEPARATOR):
            key = key[:-1]
        for registered in list(self._objects.values()):
            try:
                with self._locked(registered):
                    fields = delete_key_object(registered.object, registered.format, key)
            except ObjectNotFoundError:
                raise
            except KvsyncError as e:
                logger.debug(f"Deletion of '{key}' is not a map entry of '{registered.format}': {e}")
                continue

            logger.info(f"Deleted '{key}' from object synced at '{registered.format}'")
            failures: List[Tuple[str, Exception]] = []
            self._notify(registered, fields, failures)
            self._report(failures)
            return True
        return False

    def _route_upsert(self, key: str, value: str) -> None:
        failures: List[Tuple[str, Exception]] = []
        for registered in list(self._objects.values()):
            try:
                with self._locked(registered):
                    fields = update_key_object(registered.object, registered.format, key, value)
            except KvsyncError as e:
                logger.debug(f"Update of '{key}' not applied to '{registered.format}': {e}")
                continue
            self._notify(registered, fields, failures)
        self._report(failures)

    @staticmethod
    def _locked(registered: SyncObject) -> ContextManager:
        return registered.lock if registered.lock is not None else contextlib.nullcontext()

    @staticmethod
    def _notify(registered: SyncObject, fields: List[Any], failures: List[Tuple[str, Exception]]) -> None:
        event = ChangeEvent(object=registered.object, fields=tuple(fields))
        try:
            registered.callback(event)
        except Exception as e:
            failures.append((registered.format, e))

    @staticmethod
    def _report(failures: List[Tuple[str, Exception]]) -> None:
        if not failures:
            return
        if get_framework_config().raise_callback_errors:
            for format, error in failures[1:]:
                logger.warning(f"Error in callback for '{format}': {error}")
            format, error = failures[0]
            raise CallbackError(format, error) from error
        for format, error in failures:
            logger.warning(f"Error in callback for '{format}': {error}")
