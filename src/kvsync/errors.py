"""
Exception hierarchy for kvsync.

Every failure is reported with a specific exception class so callers can
dispatch on the kind of error rather than on its message.

Groups:
- Walker errors: raised while locating, creating or setting sub-objects
- Codec errors: raised while turning values into strings and back
- Router errors: raised by Sync registration and routing
- Event errors: raised when navigating a ChangeEvent that does not match
- Collaborator errors: raised by stores and change sources
"""
from typing import Any, List, Optional


class KvsyncError(Exception):
    """Base class for all kvsync errors."""


# ==================== WALKER ====================

class WalkerError(KvsyncError):
    """Base class for object path walker errors."""


class FormatError(WalkerError):
    """The format does not fit the object it is applied to."""


class TagFirstSlashError(FormatError):
    """Per-field formats cannot start with '/'."""

    def __init__(self, field_name: str, tag: str):
        super().__init__(f"Format of field '{field_name}' cannot start with '/': '{tag}'")
        self.field_name = field_name
        self.tag = tag


class PathNotFoundError(WalkerError):
    """No object is stored at the provided key path."""


class WrongFieldNameError(WalkerError):
    """The provided field does not exist."""


class WrongFieldTypeError(WalkerError):
    """The provided field selector is of the wrong type."""


class KeyWrongTypeError(WalkerError):
    """The provided map key is of the wrong type."""


class KeyNotFoundError(WalkerError):
    """The key was not found in the map."""


class ObjectNotFoundError(WalkerError):
    """The requested object does not exist."""


class PathPastObjectError(WalkerError):
    """The provided path goes past an object stored as a blob."""


class KeyInvalidError(WalkerError):
    """The key path ends before the object format does.

    The fields consumed before the path ran out are kept, since a key ending
    early still names the recursively stored object it stopped at.
    """

    def __init__(self, message: str = "Key path ends before the object format", fields: Optional[List[Any]] = None):
        super().__init__(message)
        self.fields = list(fields or [])


class SetNoExistsError(WalkerError):
    """Cannot set an object that does not exist."""


class SetWrongTypeError(WalkerError):
    """The provided object is of the wrong type."""


class ScalarTypeError(WalkerError):
    """Scalar types cannot be stored recursively."""


class UnsupportedTypeError(WalkerError):
    """The object type is not supported."""


class NotImplementedKvsError(WalkerError):
    """Sequence fields (list, tuple, set) cannot be stored recursively."""


class NotMapIndexError(WalkerError):
    """The selected object is not an entry of a map."""


class NotAddressableError(WalkerError):
    """The object cannot be written to."""


class KeyCollisionError(WalkerError):
    """Two different paths of the same object encode to the same key."""

    def __init__(self, key: str, value: str):
        super().__init__(f"Key '{key}' is already used by value '{value}'")
        self.key = key
        self.value = value


# ==================== CODEC ====================

class CodecError(KvsyncError):
    """Base class for value codec errors."""


class SerializationError(CodecError):
    """A value could not be turned into a string."""


class DeserializationError(CodecError):
    """A string could not be parsed into the expected type."""


# ==================== ROUTER ====================

class RouterError(KvsyncError):
    """Base class for Sync errors."""


class OverlappingKeySpaceError(RouterError):
    """Objects cannot be synchronized in overlapping key spaces."""


class NotSyncedError(RouterError):
    """No synchronized object uses this format."""


class CallbackError(RouterError):
    """A synchronized object callback failed."""

    def __init__(self, format: str, error: BaseException):
        super().__init__(f"Callback for '{format}' failed: {error}")
        self.format = format
        self.error = error


# ==================== EVENTS ====================

class EventError(KvsyncError):
    """Base class for ChangeEvent navigation errors."""


class NoMoreFieldsError(EventError):
    """No more fields to consume."""


class NotAStructError(EventError):
    """Object is not a structure."""


class NotAMapError(EventError):
    """Object is not a map."""


class NotThisPathError(EventError):
    """The modified object is not on this path."""


class WrongKeyTypeError(EventError):
    """The map key is not of the requested type."""


class NilPointerError(EventError):
    """Reached an unset optional value."""


class IsDeletedError(EventError):
    """Object is being deleted."""


class NotAStringError(EventError):
    """Object is not a string."""


class NotAnIntError(EventError):
    """Object is not an integer."""


class NotABoolError(EventError):
    """Object is not a bool."""


# ==================== COLLABORATORS ====================

class StoreError(KvsyncError):
    """Base class for store and change source errors."""


class NoSuchKeyError(StoreError, KeyError):
    """The key is not in the store."""


class CancelledError(StoreError):
    """Waiting for the next update was cancelled."""


class DeadlineExceededError(StoreError, TimeoutError):
    """No update arrived before the timeout."""


__all__ = [name for name, value in list(globals().items())
           if isinstance(value, type) and issubclass(value, Exception)]
