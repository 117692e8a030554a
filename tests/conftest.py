"""Pytest configuration and shared fixtures."""
import pytest
from dataclasses import dataclass
from typing import Dict, Optional

from kvsync import MemoryStore, kvs_field, reset_framework_config


@dataclass
class Record:
    """Flat dataclass, stored as a blob or field by field."""
    A: int = 0
    B: str = ""
    C: float = 0.0


@dataclass
class Pair:
    """Same dataclass stored as a blob and recursively."""
    A: Record = kvs_field("custom", default_factory=Record)
    B: Record = kvs_field("sub/", default_factory=Record)


@dataclass
class Maps:
    """Dicts stored with the key before, between and after literals."""
    A: Dict[str, str] = kvs_field("{key}/after", default_factory=dict)
    B: Dict[int, Record] = kvs_field("prev/{key}/", default_factory=dict)
    C: Dict[str, str] = kvs_field("C/{key}/", default_factory=dict)


@dataclass
class Leaf:
    A: int = kvs_field("A", default=0)
    B: str = ""
    C: float = 0.0


@dataclass
class Tree:
    """Blobs, nested paths and dicts of optional dataclasses."""
    A: Leaf = kvs_field("in/blob", default_factory=Leaf)
    B: Leaf = kvs_field("sub/path/", default_factory=Leaf)
    C: Dict[str, Optional[Leaf]] = kvs_field("map1/{key}/in/here", default_factory=dict)
    D: Dict[int, Optional[Leaf]] = kvs_field("map2/{key}/", default_factory=dict)


@dataclass
class Inner:
    A: int = 0


@dataclass
class Outer:
    """Object of the synchronization scenario, synced at /o/."""
    S: Inner = kvs_field("S/", default_factory=Inner)
    B: str = ""
    M: Dict[int, Inner] = kvs_field("map/{key}/s1/", default_factory=dict)


@dataclass
class Holder:
    """Optional dataclasses and dicts, unset until written."""
    P: Optional[Inner] = kvs_field("P/", default=None)
    Q: Optional[Dict[str, int]] = kvs_field("Q/{key}", default=None)
    R: Optional[Inner] = None


class RecordingLock:
    """Context manager counting how often it is entered."""

    def __init__(self):
        self.entered = 0
        self.held = False

    def __enter__(self):
        self.entered += 1
        self.held = True
        return self

    def __exit__(self, *exc_info):
        self.held = False
        return False


@pytest.fixture(autouse=True)
def reset_config():
    """Restore the default framework configuration after each test."""
    yield
    reset_framework_config()


@pytest.fixture
def tree():
    """Tree with both Leaf fields populated and empty dicts."""
    leaf = Leaf(A=1, B="nya", C=1.2)
    return Tree(A=leaf, B=Leaf(A=1, B="nya", C=1.2))


@pytest.fixture
def outer():
    return Outer()


@pytest.fixture
def store():
    return MemoryStore()
