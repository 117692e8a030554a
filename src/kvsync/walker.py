"""
Object path walker.

Walks into nested dataclasses, dicts and optionals, following either a list
of field selectors (Fields-mode) or a list of key path components
(Key-mode). Both modes thread an ObjectCursor by value through the descent,
and can create missing intermediate objects and set the target on the way.

Field selectors are plain values interpreted by the kind of the current
object: a field name (str) for a dataclass, a key of the dict's key type for
a dict.

Writes never happen through a bare value. Every cursor carries the Slot it
was read from (dataclass attribute, dict entry, or the root object), and
every dict is accessed through a MapCursor that reads, creates and writes
back entries. Mutating something stored inside a dict therefore works the
same way whether the entry is a mutable dataclass or an immutable int.
"""
import dataclasses
import logging
from dataclasses import dataclass, field, is_dataclass, replace
from typing import Any, List, Optional, Sequence, Tuple

from kvsync.codec import deserialize, deserialize_key, serialize_key
from kvsync.descriptors import Kind, FieldDescriptor, TypeDescriptor, describe_value
from kvsync.errors import (
    DeserializationError,
    FormatError,
    KeyInvalidError,
    KeyWrongTypeError,
    NotAddressableError,
    NotImplementedKvsError,
    NotMapIndexError,
    ObjectNotFoundError,
    PathNotFoundError,
    PathPastObjectError,
    ScalarTypeError,
    SetNoExistsError,
    SetWrongTypeError,
    UnsupportedTypeError,
    WrongFieldNameError,
    WrongFieldTypeError,
)
from kvsync.format import END, KEY, SEPARATOR, Format, format_to_text, parse_format, validate_format

logger = logging.getLogger(__name__)


class _Marker:
    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __bool__(self) -> bool:
        return False


# The object does not exist (unset optional, missing dict entry)
ABSENT = _Marker('ABSENT')

# No object to set
UNSET = _Marker('UNSET')


# ==================== SLOTS ====================

class Slot:
    """Write-back handle for the position a value was read from."""

    def set(self, value: Any) -> None:
        raise NotAddressableError("Object is not addressable")


class RootSlot(Slot):
    """The root object itself. Replacing it copies the new contents in place."""

    def __init__(self, obj: Any):
        self.obj = obj

    def set(self, value: Any) -> None:
        obj = self.obj
        if value is obj:
            return
        if is_dataclass(obj) and not isinstance(obj, type):
            try:
                for f in dataclasses.fields(obj):
                    setattr(obj, f.name, getattr(value, f.name))
            except dataclasses.FrozenInstanceError as e:
                raise NotAddressableError(f"{type(obj).__name__} is frozen") from e
        elif isinstance(obj, dict):
            obj.clear()
            obj.update(value)
        else:
            raise NotAddressableError(f"Root object of type {type(obj).__name__} cannot be replaced")


class AttributeSlot(Slot):
    """A dataclass attribute."""

    def __init__(self, obj: Any, name: str):
        self.obj = obj
        self.name = name

    def set(self, value: Any) -> None:
        try:
            setattr(self.obj, self.name, value)
        except dataclasses.FrozenInstanceError as e:
            raise NotAddressableError(f"{type(self.obj).__name__}.{self.name} is frozen") from e


class MapCursor:
    """Copy-modify-write access to the entries of one dict.

    The dict itself may not exist yet (None), in which case it is allocated
    and written through the slot holding it the first time an entry is
    created.
    """

    def __init__(self, mapping: Any, slot: Optional[Slot], descriptor: TypeDescriptor):
        self.mapping = mapping
        self.slot = slot
        self.descriptor = descriptor

    @property
    def exists(self) -> bool:
        return self.mapping is not ABSENT and self.mapping is not None

    def get(self, key: Any) -> Any:
        """Current entry, or ABSENT."""
        if not self.exists:
            return ABSENT
        return self.mapping.get(key, ABSENT)

    def get_or_create(self, key: Any) -> Any:
        """Current entry, creating the dict and a zero-valued entry if needed."""
        if self.mapping is ABSENT:
            raise ObjectNotFoundError("Cannot create an entry in a map that does not exist")
        if self.mapping is None:
            if self.slot is None:
                raise NotAddressableError("Map cannot be created")
            self.mapping = {}
            self.slot.set(self.mapping)
        value = self.mapping.get(key, ABSENT)
        if value is ABSENT:
            value = self.descriptor.value.zero()
            self.put(key, value)
        return value

    def put(self, key: Any, value: Any) -> None:
        self.mapping[key] = value

    def delete(self, key: Any) -> None:
        del self.mapping[key]


class MapEntrySlot(Slot):
    """One entry of a dict, written back through its MapCursor."""

    def __init__(self, map_cursor: MapCursor, key: Any):
        self.map_cursor = map_cursor
        self.key = key

    def set(self, value: Any) -> None:
        self.map_cursor.put(self.key, value)


# ==================== CURSOR ====================

@dataclass(frozen=True)
class ObjectCursor:
    """Where a walk currently is.

    Attributes:
        value: The live object, or ABSENT if it does not exist
        descriptor: Static type at this position, known even when value is ABSENT
        slot: Where value was read from, None when the parent does not exist
        keypath: Concrete key path segments consumed so far
        fields: Field selectors consumed so far (names and typed map keys)
        format: Remaining format of the current object
        declared: Optional descriptor stepped through at this position, if any
    """
    value: Any
    descriptor: TypeDescriptor
    slot: Optional[Slot] = None
    keypath: Tuple[str, ...] = ()
    fields: Tuple[Any, ...] = ()
    format: Format = ()
    declared: Optional[TypeDescriptor] = None

    @property
    def exists(self) -> bool:
        return self.value is not ABSENT

    @property
    def key(self) -> str:
        """Key path joined with the remaining format."""
        key = SEPARATOR.join(self.keypath)
        if self.format:
            key += SEPARATOR + format_to_text(self.format)
        return key


@dataclass(frozen=True)
class FindOptions:
    """What a walk should do besides locating its target.

    Attributes:
        create: Create missing intermediate objects
        set_value: Parse this string into the target and set it
        set_object: Set the target to this object (type checked)
        ignore_unmarshal_failure: Use the zero value if set_value cannot be parsed
    """
    create: bool = False
    set_value: Optional[str] = None
    set_object: Any = field(default=UNSET)
    ignore_unmarshal_failure: bool = False

    @property
    def sets(self) -> bool:
        return self.set_value is not None or self.set_object is not UNSET


def root_cursor(obj: Any, format_text: str) -> ObjectCursor:
    """Cursor at the root of obj, stored with the given format."""
    segments = parse_format(format_text)
    validate_format(segments)
    return ObjectCursor(value=obj, descriptor=describe_value(obj), slot=RootSlot(obj), format=segments)


# ==================== SHARED STEPS ====================

def deref(cursor: ObjectCursor, opts: FindOptions) -> ObjectCursor:
    """Step through an Optional, creating its value if requested."""
    inner = cursor.descriptor.inner
    value = cursor.value
    if value is None:
        if opts.create:
            if cursor.slot is None:
                raise NotAddressableError(f"Cannot create {inner.name}")
            value = inner.zero()
            cursor.slot.set(value)
        else:
            value = ABSENT
    return replace(cursor, value=value, descriptor=inner, declared=cursor.descriptor)


def consume_field_literals(cursor: ObjectCursor) -> ObjectCursor:
    """Move leading literal format segments into the key path."""
    keypath = list(cursor.keypath)
    segments = cursor.format
    while segments and isinstance(segments[0], str):
        keypath.append(segments[0])
        segments = segments[1:]
    return replace(cursor, keypath=tuple(keypath), format=segments)


def consume_key_literals(cursor: ObjectCursor, path: Sequence[str]) -> Tuple[ObjectCursor, List[str]]:
    """Match leading literal format segments against the key path.

    Stops at KEY, END, or when the path is exhausted.

    Raises:
        PathNotFoundError: If a literal does not match the path
    """
    keypath = list(cursor.keypath)
    segments = cursor.format
    path = list(path)
    while segments and isinstance(segments[0], str) and path:
        if segments[0] != path[0]:
            raise PathNotFoundError(f"Expected '{segments[0]}' but path has '{path[0]}'")
        keypath.append(path.pop(0))
        segments = segments[1:]
    return replace(cursor, keypath=tuple(keypath), format=segments), path


def field_cursor(cursor: ObjectCursor, fd: FieldDescriptor) -> ObjectCursor:
    """Cursor on one field of the current dataclass."""
    if cursor.exists:
        value = getattr(cursor.value, fd.name, ABSENT)
        slot = AttributeSlot(cursor.value, fd.name)
    else:
        value = ABSENT
        slot = None
    return replace(cursor, value=value, descriptor=fd.descriptor, slot=slot, format=fd.format, declared=None)


def expect_struct_format(cursor: ObjectCursor) -> None:
    if cursor.format != (END,):
        raise FormatError(
            f"{cursor.descriptor.name} fields are stored recursively, format must end with '/' "
            f"(got '{format_to_text(cursor.format)}')"
        )


def expect_map_format(cursor: ObjectCursor) -> None:
    if not cursor.format or cursor.format[0] is not KEY:
        raise FormatError(f"Map format must contain a '{{key}}' element (got '{format_to_text(cursor.format)}')")


def enter_map(cursor: ObjectCursor, key: Any, key_text: str, opts: FindOptions) -> ObjectCursor:
    """Cursor on the entry of the current dict at key."""
    maps = MapCursor(cursor.value, cursor.slot, cursor.descriptor)
    if opts.create and cursor.exists:
        value = maps.get_or_create(key)
    else:
        value = maps.get(key)
    return ObjectCursor(
        value=value,
        descriptor=cursor.descriptor.value,
        slot=MapEntrySlot(maps, key) if cursor.exists else None,
        keypath=cursor.keypath + (key_text,),
        fields=cursor.fields + (key,),
        format=cursor.format[1:],
    )


def unsupported(cursor: ObjectCursor) -> Exception:
    """Error for descending into an object that cannot be descended into."""
    kind = cursor.descriptor.kind
    if kind is Kind.SEQUENCE:
        return NotImplementedKvsError(f"Cannot store {cursor.descriptor.name} recursively")
    if kind is Kind.SCALAR:
        return ScalarTypeError(f"Cannot recursively store scalar type {cursor.descriptor.name}")
    return UnsupportedTypeError(f"Object type {cursor.descriptor.name} not supported")


def set_maybe(cursor: ObjectCursor, opts: FindOptions) -> ObjectCursor:
    """Apply the pending set, if any, at the walk's target."""
    if not opts.sets:
        return cursor
    if not cursor.exists:
        raise SetNoExistsError(f"Cannot set non existent object at '{cursor.key}'")
    if cursor.slot is None:
        raise NotAddressableError(f"Object at '{cursor.key}' is not addressable")

    # An unwrapped Optional may be set back to None
    descriptor = cursor.declared if cursor.declared is not None else cursor.descriptor
    if opts.set_value is not None:
        try:
            value = deserialize(opts.set_value, descriptor)
        except DeserializationError:
            if not opts.ignore_unmarshal_failure:
                raise
            logger.warning(f"Ignoring invalid value for '{cursor.key}', using zero value of {descriptor.name}")
            value = descriptor.zero()
    else:
        value = opts.set_object
        if not descriptor.accepts(value):
            raise SetWrongTypeError(
                f"Cannot set {type(value).__name__} value at '{cursor.key}', expected {descriptor.name}"
            )

    cursor.slot.set(value)
    return replace(cursor, value=value)


# ==================== FIELDS MODE ====================

def find_by_fields(cursor: ObjectCursor, fields: Sequence[Any], opts: FindOptions) -> ObjectCursor:
    """Walk down the object following field selectors."""
    if cursor.descriptor.kind is Kind.OPTIONAL:
        return find_by_fields(deref(cursor, opts), fields, opts)

    cursor = consume_field_literals(cursor)

    if not fields:
        return set_maybe(cursor, opts)

    if not cursor.format:
        # TODO: return the blob and the remaining fields so callers can decode inside it
        raise PathPastObjectError(f"Fields {list(fields)!r} go past the object stored at '{cursor.key}'")

    kind = cursor.descriptor.kind
    if kind is Kind.STRUCT:
        return _find_by_fields_struct(cursor, fields, opts)
    if kind is Kind.MAP:
        return _find_by_fields_map(cursor, fields, opts)
    raise unsupported(cursor)


def _find_by_fields_struct(cursor: ObjectCursor, fields: Sequence[Any], opts: FindOptions) -> ObjectCursor:
    expect_struct_format(cursor)

    name = fields[0]
    if not isinstance(name, str):
        raise WrongFieldTypeError(f"{cursor.descriptor.name} fields are selected by name, got {name!r}")

    fd = cursor.descriptor.get_field(name)
    if fd is None:
        raise WrongFieldNameError(f"{cursor.descriptor.name} has no field '{name}'")

    child = field_cursor(cursor, fd)
    return find_by_fields(replace(child, fields=child.fields + (name,)), fields[1:], opts)


def _find_by_fields_map(cursor: ObjectCursor, fields: Sequence[Any], opts: FindOptions) -> ObjectCursor:
    expect_map_format(cursor)

    key = fields[0]
    key_descriptor = cursor.descriptor.key
    if not key_descriptor.accepts(key):
        raise KeyWrongTypeError(f"Map key {key!r} is not a {key_descriptor.name}")

    child = enter_map(cursor, key, serialize_key(key, key_descriptor), opts)
    return find_by_fields(child, fields[1:], opts)


# ==================== KEY MODE ====================

def find_by_key(cursor: ObjectCursor, path: Sequence[str], opts: FindOptions) -> ObjectCursor:
    """Walk down the object following key path components."""
    if cursor.descriptor.kind is Kind.OPTIONAL:
        return find_by_key(deref(cursor, opts), path, opts)

    cursor, path = consume_key_literals(cursor, path)

    if not cursor.format:
        # Stored as a blob
        if path:
            raise PathPastObjectError(f"Path '{SEPARATOR.join(path)}' goes past the object stored at '{cursor.key}'")
        return set_maybe(cursor, opts)

    if not path or (path[0] == '' and len(path) != 1):
        raise KeyInvalidError(f"Key path ends before the format of '{cursor.key}'", fields=list(cursor.fields))

    if path[0] == '':
        # Trailing '/', the key names this recursively stored object
        return set_maybe(cursor, opts)

    kind = cursor.descriptor.kind
    if kind is Kind.STRUCT:
        return _find_by_key_struct(cursor, path, opts)
    if kind is Kind.MAP:
        return _find_by_key_map(cursor, path, opts)
    raise unsupported(cursor)


def _find_by_key_struct(cursor: ObjectCursor, path: List[str], opts: FindOptions) -> ObjectCursor:
    expect_struct_format(cursor)

    # First field whose format matches the path wins
    for fd in cursor.descriptor.fields:
        try:
            child, rest = consume_key_literals(field_cursor(cursor, fd), path)
        except PathNotFoundError:
            continue
        return find_by_key(replace(child, fields=child.fields + (fd.name,)), rest, opts)

    raise PathNotFoundError(f"No field of {cursor.descriptor.name} is stored at '{SEPARATOR.join(path)}'")


def _find_by_key_map(cursor: ObjectCursor, path: List[str], opts: FindOptions) -> ObjectCursor:
    expect_map_format(cursor)

    key = deserialize_key(path[0], cursor.descriptor.key)
    child = enter_map(cursor, key, path[0], opts)
    return find_by_key(child, path[1:], opts)


# ==================== DELETION ====================

def delete_map_entry(cursor: ObjectCursor, fields: Sequence[Any]) -> str:
    """Remove the dict entry selected by fields.

    The last selector must be a key of the dict selected by the previous ones.

    Returns:
        Key of the removed object, ending with '/' if it was stored recursively
    """
    if not fields:
        raise NotMapIndexError("No map key selected")

    parent = find_by_fields(cursor, fields[:-1], FindOptions())
    if parent.descriptor.kind is not Kind.MAP:
        raise NotMapIndexError(f"{parent.descriptor.name} at '{parent.key}' is not a map")

    entry = find_by_fields(parent, fields[-1:], FindOptions())
    if not entry.exists:
        raise ObjectNotFoundError(f"No object at '{SEPARATOR.join(entry.keypath)}'")

    MapCursor(parent.value, parent.slot, parent.descriptor).delete(fields[-1])

    key = SEPARATOR.join(entry.keypath)
    if entry.format:
        # More sub-keys
        key += SEPARATOR
    return key
