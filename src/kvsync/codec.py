"""
Value codec.

Leaf values are stored as strings. Strings pass through untouched so keys and
values stay human readable; every other value is JSON encoded with a pydantic
TypeAdapter built for its declared annotation, which also validates and
converts JSON back into dataclasses, dicts with typed keys, enums, etc.

Map keys use the same rules when they become key path segments.
"""
import logging
from typing import Any, Dict, Optional

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from kvsync.descriptors import Kind, TypeDescriptor, describe
from kvsync.errors import DeserializationError, SerializationError
from kvsync.format import SEPARATOR

logger = logging.getLogger(__name__)

NULL = 'null'

# TypeAdapters are expensive to build, keep one per annotation
_adapter_cache: Dict[Any, TypeAdapter] = {}


def _adapter(annotation: Any) -> TypeAdapter:
    adapter = _adapter_cache.get(annotation)
    if adapter is None:
        adapter = TypeAdapter(annotation)
        _adapter_cache[annotation] = adapter
    return adapter


def _is_plain_str(descriptor: TypeDescriptor) -> bool:
    return descriptor.kind is Kind.SCALAR and descriptor.py_type is str


def serialize(value: Any, descriptor: Optional[TypeDescriptor] = None) -> str:
    """Turn a value into its stored string.

    Args:
        value: Value to serialize
        descriptor: Declared type of the value. Defaults to its runtime type.

    Returns:
        The string itself for str values, JSON otherwise
    """
    if value is None:
        return NULL
    if type(value) is str:
        return value
    if descriptor is None or descriptor.kind in (Kind.UNSUPPORTED, Kind.OPTIONAL):
        descriptor = describe(type(value))
    try:
        return _adapter(descriptor.annotation).dump_json(value).decode()
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise SerializationError(f"Cannot serialize {descriptor.name} value {value!r}: {e}") from e


def deserialize(text: str, descriptor: TypeDescriptor) -> Any:
    """Parse a stored string into a value of the described type.

    Raises:
        DeserializationError: If text is not valid for the type
    """
    if _is_plain_str(descriptor):
        return text
    if descriptor.kind is Kind.OPTIONAL:
        if text == NULL:
            return None
        return deserialize(text, descriptor.inner)
    try:
        return _adapter(descriptor.annotation).validate_json(text)
    except ValidationError as e:
        raise DeserializationError(f"Cannot parse '{text}' as {descriptor.name}: {e.error_count()} error(s)") from e
    except TypeError as e:
        # No pydantic schema for this annotation
        raise DeserializationError(f"Cannot parse values of type {descriptor.name}: {e}") from e


def serialize_key(key: Any, descriptor: Optional[TypeDescriptor] = None) -> str:
    """Turn a map key into a key path segment.

    Raises:
        SerializationError: If the key is empty or contains a path separator
    """
    text = serialize(key, descriptor)
    if not text or SEPARATOR in text:
        raise SerializationError(f"Map key {key!r} cannot be used as a key path segment")
    return text


def deserialize_key(text: str, descriptor: TypeDescriptor) -> Any:
    """Parse a key path segment into a map key."""
    if descriptor.kind is Kind.UNSUPPORTED:
        # Untyped keys stay as the segment text
        return text
    return deserialize(text, descriptor)


def clear_cache() -> None:
    """Forget all TypeAdapters."""
    _adapter_cache.clear()
