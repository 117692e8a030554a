"""Tests for type descriptors."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import pytest

from kvsync import config_override
from kvsync.descriptors import Kind, clear_cache, describe, describe_value, kvs_field
from kvsync.errors import TagFirstSlashError
from kvsync.format import END, KEY

from conftest import Holder, Inner, Outer, Record


class TestKinds:
    """Test how annotations are classified."""

    def test_dataclass(self):
        """Dataclasses are structs with their fields in declaration order."""
        descriptor = describe(Outer)
        assert descriptor.kind is Kind.STRUCT
        assert [f.name for f in descriptor.fields] == ["S", "B", "M"]

    def test_field_formats(self):
        """Formats come from kvs_field, the field name otherwise."""
        descriptor = describe(Outer)
        assert descriptor.get_field("S").format == ("S", END)
        assert descriptor.get_field("B").format == ("B",)
        assert descriptor.get_field("M").format == ("map", KEY, "s1", END)
        assert descriptor.get_field("missing") is None

    def test_dict(self):
        """Dicts expose key and value descriptors."""
        descriptor = describe(Dict[int, Inner])
        assert descriptor.kind is Kind.MAP
        assert descriptor.key.py_type is int
        assert descriptor.value is describe(Inner)

    def test_optional(self):
        """Optional wraps its inner descriptor."""
        descriptor = describe(Optional[Inner])
        assert descriptor.kind is Kind.OPTIONAL
        assert descriptor.inner is describe(Inner)

    def test_sequences_scalars_unsupported(self):
        """Lists are sequences, leaves are scalars, Any and unions are unsupported."""
        assert describe(List[int]).kind is Kind.SEQUENCE
        assert describe(int).kind is Kind.SCALAR
        assert describe(str).kind is Kind.SCALAR
        assert describe(Any).kind is Kind.UNSUPPORTED
        assert describe(Union[int, str]).kind is Kind.UNSUPPORTED

    def test_private_fields_skipped(self):
        """Fields starting with '_' are not stored."""
        @dataclass
        class WithPrivate:
            A: int = 0
            _cache: Dict[str, str] = field(default_factory=dict)

        assert [f.name for f in describe(WithPrivate).fields] == ["A"]

    def test_describe_value(self):
        """Root objects are described by their runtime type."""
        assert describe_value(Outer()) is describe(Outer)

    def test_cached(self):
        """Descriptors are built once per annotation."""
        assert describe(Outer) is describe(Outer)
        first = describe(Record)
        clear_cache()
        assert describe(Record) is not first

    def test_clear_cache_drops_adapters(self):
        """Clearing descriptors also drops the adapters built for them."""
        from kvsync import codec

        codec.serialize(Inner(A=1), describe(Inner))
        assert codec._adapter_cache
        clear_cache()
        assert codec._adapter_cache == {}


class TestFieldFormatErrors:
    """Test invalid per-field formats."""

    def test_rooted_field_format(self):
        """A per-field format starting with '/' is rejected."""
        @dataclass
        class Rooted:
            A: int = kvs_field("/A", default=0)

        with pytest.raises(TagFirstSlashError):
            describe(Rooted)

    def test_custom_tag(self):
        """The metadata key holding formats is configurable."""
        @dataclass
        class Tagged:
            A: Inner = field(default_factory=Inner, metadata={"store": "x/"})

        with config_override(tag="store"):
            assert describe(Tagged).get_field("A").format == ("x", END)
        assert describe(Tagged).get_field("A").format == ("A",)


class TestValues:
    """Test zero values and type acceptance."""

    def test_zero_values(self):
        """Zero values of each kind."""
        assert describe(int).zero() == 0
        assert describe(str).zero() == ""
        assert describe(Dict[str, int]).zero() == {}
        assert describe(Optional[Inner]).zero() is None
        assert describe(Outer).zero() == Outer()

    def test_zero_without_defaults(self):
        """Fields without defaults get the zero value of their type."""
        @dataclass
        class NoDefaults:
            A: int
            B: Optional[Inner]
            C: Dict[str, int]

        assert describe(NoDefaults).zero() == NoDefaults(A=0, B=None, C={})

    def test_accepts(self):
        """Bools are not ints, ints are floats."""
        assert describe(int).accepts(3)
        assert not describe(int).accepts(True)
        assert not describe(int).accepts("3")
        assert describe(float).accepts(3)
        assert describe(Optional[Inner]).accepts(None)
        assert describe(Optional[Inner]).accepts(Inner())
        assert not describe(Inner).accepts(Holder())
