"""
Public encoding API.

Encodes objects into flat key/value pairs and maps keys back onto the fields
of an object, following the object's format:

    encode(obj, "/here/")                       -> {"/here/A": "1", ...}
    find_by_fields(obj, "/here/", ["B", "A"])   -> (1, "/here/sub/A")
    find_by_key(obj, "/here/", "/here/sub/A")   -> (1, ["B", "A"])
    update_key_object(obj, "/here/", "/here/sub/A", "2")
    set_by_fields(obj, "/here/", 2, "B", "A")
    delete_by_fields(obj, "/here/", "M", 1)     -> "/here/map/1/"
    delete_key_object(obj, "/here/", "/here/map/1/")

Key-mode entry points accept rooted and unrooted formats and keys alike.
"""
import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from kvsync.codec import NULL, serialize, serialize_key
from kvsync.config import get_framework_config
from kvsync.descriptors import Kind
from kvsync.errors import KeyCollisionError, KeyInvalidError, KeyNotFoundError, ObjectNotFoundError
from kvsync.format import SEPARATOR, strip_root
from kvsync.walker import (
    FindOptions,
    ObjectCursor,
    consume_field_literals,
    delete_map_entry,
    enter_map,
    expect_map_format,
    expect_struct_format,
    field_cursor,
    find_by_fields as walk_fields,
    find_by_key as walk_key,
    root_cursor,
    unsupported,
)

logger = logging.getLogger(__name__)


class Encoder:
    """Flattens the object under a cursor into key/value pairs."""

    def __init__(self):
        self.kvs: Dict[str, str] = {}

    def emit(self, keypath: Sequence[str], value: str) -> None:
        key = SEPARATOR.join(keypath)
        if key in self.kvs:
            raise KeyCollisionError(key, self.kvs[key])
        self.kvs[key] = value

    def encode(self, cursor: ObjectCursor) -> None:
        if cursor.descriptor.kind is Kind.OPTIONAL:
            if cursor.value is None:
                cursor = consume_field_literals(cursor)
                if not cursor.format:
                    self.emit(cursor.keypath, NULL)
                # Nothing is stored below an unset recursive object
                return
            cursor = replace(cursor, descriptor=cursor.descriptor.inner)

        cursor = consume_field_literals(cursor)
        if not cursor.format:
            self.emit(cursor.keypath, serialize(cursor.value, cursor.descriptor))
            return

        kind = cursor.descriptor.kind
        if kind is Kind.STRUCT:
            expect_struct_format(cursor)
            for fd in cursor.descriptor.fields:
                self.encode(field_cursor(cursor, fd))
        elif kind is Kind.MAP:
            expect_map_format(cursor)
            if cursor.value is None:
                return
            key_descriptor = cursor.descriptor.key
            for key in list(cursor.value):
                self.encode(enter_map(cursor, key, serialize_key(key, key_descriptor), FindOptions()))
        else:
            raise unsupported(cursor)


def encode(obj: Any, format: str, *fields: Any) -> Dict[str, str]:
    """Encode obj, or the sub-object selected by fields, into key/value pairs.

    Args:
        obj: Root object
        format: Format of the root object, e.g. "/here/"
        *fields: Field selectors of the sub-object to encode

    Returns:
        Dict of keys to stored strings

    Raises:
        ObjectNotFoundError: If the selected sub-object does not exist
        KeyCollisionError: If two values would be stored at the same key
    """
    cursor = walk_fields(root_cursor(obj, format), fields, FindOptions())
    if not cursor.exists:
        raise ObjectNotFoundError(f"No object at '{cursor.key}'")
    encoder = Encoder()
    encoder.encode(cursor)
    return encoder.kvs


def find_by_fields(obj: Any, format: str, fields: Sequence[Any]) -> Tuple[Any, str]:
    """Get the sub-object selected by fields and the key it is stored at.

    Returns:
        (value, key) where key ends with '/' when the value is stored recursively
    """
    cursor = walk_fields(root_cursor(obj, format), fields, FindOptions())
    if not cursor.exists:
        raise KeyNotFoundError(f"No object at '{cursor.key}'")
    return cursor.value, cursor.key


def _key_path(key: str) -> List[str]:
    return strip_root(key).split(SEPARATOR)


def find_by_key(obj: Any, format: str, key: str) -> Tuple[Any, List[Any]]:
    """Get the sub-object stored at key and the fields selecting it."""
    cursor = walk_key(root_cursor(obj, strip_root(format)), _key_path(key), FindOptions())
    if not cursor.exists:
        raise KeyNotFoundError(f"No object at '{key}'")
    return cursor.value, list(cursor.fields)


def update_key_object(obj: Any, format: str, key: str, value: str,
                      ignore_unmarshal_failure: Optional[bool] = None) -> List[Any]:
    """Set the sub-object stored at key from its stored string.

    Missing intermediate objects (optionals, dicts, dict entries) are created.

    Args:
        obj: Root object
        format: Format of the root object
        key: Key that changed
        value: New stored string
        ignore_unmarshal_failure: Use the zero value when value cannot be
            parsed. Defaults to the framework configuration.

    Returns:
        Fields selecting the updated sub-object
    """
    if ignore_unmarshal_failure is None:
        ignore_unmarshal_failure = get_framework_config().ignore_unmarshal_failure
    opts = FindOptions(create=True, set_value=value, ignore_unmarshal_failure=ignore_unmarshal_failure)
    cursor = walk_key(root_cursor(obj, strip_root(format)), _key_path(key), opts)
    return list(cursor.fields)


def set_by_fields(obj: Any, format: str, value: Any, *fields: Any) -> None:
    """Set the sub-object selected by fields, creating missing intermediate objects.

    Raises:
        SetWrongTypeError: If value is not of the selected field's type
    """
    walk_fields(root_cursor(obj, format), fields, FindOptions(create=True, set_object=value))


def delete_by_fields(obj: Any, format: str, *fields: Any) -> str:
    """Remove the dict entry selected by fields.

    Returns:
        Key of the removed object, ending with '/' when it was stored recursively
    """
    return delete_map_entry(root_cursor(obj, format), fields)


def delete_key_object(obj: Any, format: str, key: str) -> List[Any]:
    """Remove the dict entry stored at key.

    The key may name a recursively stored entry without its trailing '/'.

    Returns:
        Fields selecting the removed entry
    """
    try:
        cursor = walk_key(root_cursor(obj, strip_root(format)), _key_path(key), FindOptions())
        fields = list(cursor.fields)
    except KeyInvalidError as e:
        # Key names a recursively stored object
        fields = list(e.fields)
    delete_by_fields(obj, format, *fields)
    logger.debug(f"Deleted '{key}' (fields {fields!r})")
    return fields
