"""
Type descriptor table.

The walker never introspects objects ad hoc. Each annotation it meets is
described once, and the description is cached:

- STRUCT: dataclass, with its public fields and their per-field formats
- MAP: dict, with key and value descriptors
- OPTIONAL: Optional[T], transparently dereferenced by the walker
- SEQUENCE: list, tuple, set (recursion not implemented)
- SCALAR: str, int, float, bool, enums and other leaf classes
- UNSUPPORTED: Any, non-optional unions, callables

Per-field formats are declared in the dataclass field metadata:

    @dataclass
    class Data:
        nodes: Dict[str, Node] = kvs_field("Nodes/{key}", default_factory=dict)
        edges: Dict[str, Edge] = kvs_field("Edges/{key}/", default_factory=dict)
        quit: bool = False
"""
import collections.abc
import enum
import logging
import typing
from dataclasses import MISSING, dataclass, field, fields as dataclass_fields, is_dataclass
from types import UnionType
from typing import Any, Dict, Optional, Tuple, Union, get_args, get_origin

from kvsync.config import get_framework_config
from kvsync.format import Format, parse_field_format

logger = logging.getLogger(__name__)


class Kind(enum.Enum):
    STRUCT = 'struct'
    MAP = 'map'
    OPTIONAL = 'optional'
    SEQUENCE = 'sequence'
    SCALAR = 'scalar'
    UNSUPPORTED = 'unsupported'


_SEQUENCE_ORIGINS = (list, tuple, set, frozenset, collections.abc.Sequence, collections.abc.Set)
_MAP_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)

# Cache of descriptors, keyed by (annotation, tag)
_descriptor_cache: Dict[Tuple[Any, str], 'TypeDescriptor'] = {}


def kvs_field(format: str, **kwargs) -> Any:
    """Declare a dataclass field with a storage format.

    Args:
        format: Per-field format, relative to the parent (no leading '/')
        **kwargs: Passed to dataclasses.field (default, default_factory, ...)
    """
    metadata = dict(kwargs.pop('metadata', None) or {})
    metadata[get_framework_config().tag] = format
    return field(metadata=metadata, **kwargs)


@dataclass(frozen=True)
class FieldDescriptor:
    """One public field of a dataclass."""
    name: str
    annotation: Any
    format: Format

    @property
    def descriptor(self) -> 'TypeDescriptor':
        # Resolved lazily so self-referencing dataclasses can be described
        return describe(self.annotation)


@dataclass(frozen=True, eq=False)
class TypeDescriptor:
    """Description of one annotation."""
    kind: Kind
    annotation: Any
    py_type: Optional[type] = None
    fields: Tuple[FieldDescriptor, ...] = ()
    key_annotation: Any = None
    value_annotation: Any = None
    inner_annotation: Any = None

    @property
    def key(self) -> 'TypeDescriptor':
        return describe(self.key_annotation)

    @property
    def value(self) -> 'TypeDescriptor':
        return describe(self.value_annotation)

    @property
    def inner(self) -> 'TypeDescriptor':
        return describe(self.inner_annotation)

    @property
    def name(self) -> str:
        return getattr(self.annotation, '__name__', repr(self.annotation))

    def get_field(self, name: str) -> Optional[FieldDescriptor]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def accepts(self, value: Any) -> bool:
        """Whether value can be stored at a position of this type."""
        if self.kind is Kind.OPTIONAL:
            return value is None or self.inner.accepts(value)
        if self.kind is Kind.UNSUPPORTED:
            return True
        if self.py_type is None:
            return True
        if self.py_type is bool:
            return isinstance(value, bool)
        if self.py_type is int:
            return isinstance(value, int) and not isinstance(value, bool)
        if self.py_type is float:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        return isinstance(value, self.py_type)

    def zero(self) -> Any:
        """The zero value of this type.

        Dataclass fields keep their declared defaults; fields without one get
        the zero value of their own type.
        """
        if self.kind is Kind.STRUCT:
            kwargs = {}
            for f in dataclass_fields(self.py_type):
                if not f.init or f.default is not MISSING or f.default_factory is not MISSING:
                    continue
                kwargs[f.name] = describe(_field_hints(self.py_type)[f.name]).zero()
            return self.py_type(**kwargs)
        if self.kind is Kind.MAP:
            return {}
        if self.kind is Kind.SEQUENCE:
            return self.py_type() if self.py_type in (list, tuple, set, frozenset) else []
        if self.kind is Kind.SCALAR:
            if issubclass(self.py_type, enum.Enum):
                return next(iter(self.py_type))
            try:
                return self.py_type()
            except TypeError:
                return None
        return None


def _field_hints(cls: type) -> Dict[str, Any]:
    return typing.get_type_hints(cls)


def _optional_inner(annotation: Any) -> Tuple[bool, Any]:
    """Return (is_optional, inner) for Optional[T] / T | None."""
    origin = get_origin(annotation)
    if origin in (Union, UnionType):
        args = get_args(annotation)
        if len(args) == 2 and type(None) in args:
            return True, next(arg for arg in args if arg is not type(None))
    return False, None


def _build(annotation: Any, tag: str) -> TypeDescriptor:
    if annotation is Any or annotation is None or annotation is object:
        return TypeDescriptor(kind=Kind.UNSUPPORTED, annotation=annotation)

    is_optional, inner = _optional_inner(annotation)
    if is_optional:
        return TypeDescriptor(kind=Kind.OPTIONAL, annotation=annotation, inner_annotation=inner)

    origin = get_origin(annotation)
    if origin in (Union, UnionType):
        return TypeDescriptor(kind=Kind.UNSUPPORTED, annotation=annotation)

    if origin is not None:
        args = get_args(annotation)
        if origin in _MAP_ORIGINS:
            key_ann, value_ann = args if len(args) == 2 else (Any, Any)
            return TypeDescriptor(kind=Kind.MAP, annotation=annotation, py_type=dict,
                                  key_annotation=key_ann, value_annotation=value_ann)
        if origin in _SEQUENCE_ORIGINS:
            py_type = origin if isinstance(origin, type) and origin in (list, tuple, set, frozenset) else list
            return TypeDescriptor(kind=Kind.SEQUENCE, annotation=annotation, py_type=py_type)
        return TypeDescriptor(kind=Kind.UNSUPPORTED, annotation=annotation)

    if not isinstance(annotation, type):
        return TypeDescriptor(kind=Kind.UNSUPPORTED, annotation=annotation)

    if is_dataclass(annotation):
        hints = _field_hints(annotation)
        described = []
        for f in dataclass_fields(annotation):
            if f.name.startswith('_'):
                # Private attribute, not stored
                continue
            text = f.metadata.get(tag)
            field_format = parse_field_format(f.name, text) if text else (f.name,)
            described.append(FieldDescriptor(
                name=f.name,
                annotation=hints.get(f.name, Any),
                format=field_format,
            ))
        return TypeDescriptor(kind=Kind.STRUCT, annotation=annotation, py_type=annotation,
                              fields=tuple(described))

    if issubclass(annotation, dict):
        return TypeDescriptor(kind=Kind.MAP, annotation=annotation, py_type=dict,
                              key_annotation=Any, value_annotation=Any)
    if issubclass(annotation, (list, tuple, set, frozenset)) and not issubclass(annotation, (str, bytes)):
        return TypeDescriptor(kind=Kind.SEQUENCE, annotation=annotation, py_type=annotation)
    return TypeDescriptor(kind=Kind.SCALAR, annotation=annotation, py_type=annotation)


def describe(annotation: Any) -> TypeDescriptor:
    """Get the (cached) descriptor of an annotation."""
    tag = get_framework_config().tag
    key = (annotation, tag)
    cached = _descriptor_cache.get(key)
    if cached is not None:
        return cached
    descriptor = _build(annotation, tag)
    _descriptor_cache[key] = descriptor
    logger.debug(f"Described {descriptor.name} as {descriptor.kind.value}")
    return descriptor


def describe_value(value: Any) -> TypeDescriptor:
    """Descriptor of a root object, from its runtime type."""
    return describe(type(value))


def clear_cache() -> None:
    """Forget all descriptors (e.g. after changing the field tag) and the TypeAdapters built for them."""
    from kvsync import codec

    _descriptor_cache.clear()
    codec.clear_cache()
