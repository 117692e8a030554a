"""
Path/format grammar.

A format is the textual template that decides where an object is stored:

    "/here"               the object is one blob stored at key /here
    "/here/"              each field is stored under /here/<field>
    "map/{key}/s1/"       map entries are stored under map/<key>/s1/...
    "Nodes/{key}"         map entries are blobs stored at Nodes/<key>

Parsing splits purely on '/'. The token '{key}' becomes KEY, and an empty last
segment becomes END (recurse here). Any other segment, including the empty
one produced by a leading '/', is a literal.
"""
from typing import Iterable, List, Tuple, Union

from kvsync.errors import FormatError, TagFirstSlashError

KEY_TOKEN = '{key}'
SEPARATOR = '/'


class _Token:
    """Special format segment."""

    def __init__(self, name: str, text: str):
        self._name = name
        self.text = text

    def __repr__(self) -> str:
        return self._name

    def __reduce__(self):
        return self._name


KEY = _Token('KEY', KEY_TOKEN)
END = _Token('END', '')

Segment = Union[str, _Token]
Format = Tuple[Segment, ...]


def parse_format(text: str) -> Format:
    """Parse a format string into segments.

    Args:
        text: Format text, e.g. "/o/" or "map/{key}/s1/"

    Returns:
        Tuple of literal strings, KEY and END (END only as the last segment)
    """
    parts = text.split(SEPARATOR)
    segments: List[Segment] = []
    for index, part in enumerate(parts):
        if part == KEY_TOKEN:
            segments.append(KEY)
        elif part == '' and index == len(parts) - 1:
            segments.append(END)
        else:
            segments.append(part)
    return tuple(segments)


def parse_field_format(field_name: str, text: str) -> Format:
    """Parse a per-field format, which must be relative to its parent."""
    if text.startswith(SEPARATOR):
        raise TagFirstSlashError(field_name, text)
    return parse_format(text)


def validate_format(segments: Format) -> None:
    """Check that END only appears as the last segment."""
    for index, segment in enumerate(segments):
        if segment is END and index != len(segments) - 1:
            raise FormatError(f"END must be the last segment of {segments!r}")


def format_to_text(segments: Iterable[Segment]) -> str:
    """Render segments back to their textual form."""
    return SEPARATOR.join(s.text if isinstance(s, _Token) else s for s in segments)


def literal_prefix(segments: Format) -> Tuple[str, ...]:
    """Literal segments before the first KEY or END."""
    prefix = []
    for segment in segments:
        if isinstance(segment, _Token):
            break
        prefix.append(segment)
    return tuple(prefix)


def strip_root(text: str) -> str:
    """Drop one leading '/' so rooted and unrooted paths compare equal."""
    return text[1:] if text.startswith(SEPARATOR) else text


def prefix_collision(format1: str, format2: str) -> bool:
    """Whether one format's key space contains the other's.

    Literal key paths are compared component-wise, e.g. "/a/" and "/a/b/"
    collide, "/a/" and "/b/" do not.
    """
    p1 = literal_prefix(parse_format(strip_root(format1)))
    p2 = literal_prefix(parse_format(strip_root(format2)))
    if len(p1) < len(p2):
        p1, p2 = p2, p1
    return p1[:len(p2)] == p2
