"""Tests for the format grammar."""
import pytest

from kvsync.errors import FormatError, TagFirstSlashError
from kvsync.format import (
    END,
    KEY,
    format_to_text,
    literal_prefix,
    parse_field_format,
    parse_format,
    prefix_collision,
    strip_root,
    validate_format,
)


class TestParseFormat:
    """Test splitting formats into segments."""

    def test_rooted_recursive(self):
        """A leading '/' is an empty literal, a trailing one is END."""
        assert parse_format("/o/") == ("", "o", END)

    def test_blob(self):
        """No trailing '/' means the object is a blob."""
        assert parse_format("/here") == ("", "here")

    def test_key_token(self):
        """{key} becomes KEY wherever it appears."""
        assert parse_format("map/{key}/s1/") == ("map", KEY, "s1", END)
        assert parse_format("{key}/after") == (KEY, "after")

    def test_empty_format(self):
        """Empty format is the recursive marker alone."""
        assert parse_format("") == (END,)

    def test_render_back(self):
        """Rendering restores the original text."""
        for text in ("/o/", "/here", "map/{key}/s1/", "{key}/after", "a/b"):
            assert format_to_text(parse_format(text)) == text


class TestFieldFormat:
    """Test per-field formats."""

    def test_relative_format(self):
        """Relative formats parse like any other."""
        assert parse_field_format("S", "S/") == ("S", END)

    def test_leading_slash_rejected(self):
        """Per-field formats cannot be rooted."""
        with pytest.raises(TagFirstSlashError, match="cannot start with"):
            parse_field_format("S", "/S")

    def test_end_must_be_last(self):
        """END in the middle of a format is invalid."""
        with pytest.raises(FormatError):
            validate_format(("a", END, "b"))
        validate_format(("a", KEY, END))


class TestPrefixCollision:
    """Test key space overlap detection."""

    def test_nested_key_spaces_collide(self):
        """/a/ contains /a/b/."""
        assert prefix_collision("/a/", "/a/b/")
        assert prefix_collision("/a/b/", "/a/")

    def test_sibling_key_spaces(self):
        """/a/ and /b/ are disjoint."""
        assert not prefix_collision("/a/", "/b/")
        assert not prefix_collision("/a/b/", "/a/c/")

    def test_component_wise(self):
        """Prefixes are compared per component, not per character."""
        assert not prefix_collision("/ab/", "/a/")

    def test_rooted_and_unrooted(self):
        """A leading '/' does not change the key space."""
        assert prefix_collision("/a/", "a/")

    def test_literal_prefix(self):
        """Literal prefix stops at the first token."""
        assert literal_prefix(parse_format("map/{key}/s1/")) == ("map",)
        assert literal_prefix(parse_format("/o/")) == ("", "o")

    def test_strip_root(self):
        """Only one leading '/' is dropped."""
        assert strip_root("/o/") == "o/"
        assert strip_root("o/") == "o/"
        assert strip_root("//o") == "/o"
