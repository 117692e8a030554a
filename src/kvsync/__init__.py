"""
Object/key-value store synchronization.

kvsync maps dataclasses, nested dataclasses and dicts onto a flat key-value
address space, and maps key-value changes back onto the fields of those
objects.

Key Features:
- Declarative per-field storage formats (blob or recursive, dict keys in paths)
- Encoding of whole objects or sub-objects into key/value pairs
- Lookup by field path or by storage key, with create-on-write
- Change routing from a store's update stream to synchronized objects

Quick Start:
    >>> from dataclasses import dataclass, field
    >>> from typing import Dict
    >>> from kvsync import MemoryStore, Sync, SyncObject, kvs_field, store_object
    >>>
    >>> @dataclass
    ... class Point:
    ...     x: int = 0
    ...     y: int = 0
    >>>
    >>> @dataclass
    ... class Plot:
    ...     title: str = ""
    ...     points: Dict[str, Point] = kvs_field("points/{key}/", default_factory=dict)
    >>>
    >>> store = MemoryStore()
    >>> store_object(store, Plot(points={"a": Point(1, 2)}), "/plot/")
    >>> sync = Sync(store)
    >>> sync.sync_object(SyncObject("/plot/", Plot(), print))
    >>> sync.next()

Formats:
    "/here"             the object is one blob stored at /here
    "/here/"            each field is stored under /here/<field format>
    "map/{key}/"        each dict entry is stored recursively under map/<key>/
    "map/{key}"         each dict entry is a blob stored at map/<key>

Modules:
    - format: format grammar
    - descriptors: type descriptors and the kvs_field helper
    - codec: string/JSON value codec
    - walker: object path walker
    - encoding: encode, find, update, set and delete entry points
    - sync: change router and change events
    - store: helpers pushing objects into a store
    - kvs: store collaborators and the in-memory store
    - config: framework configuration
"""

# Configuration
from kvsync.config import (
    FrameworkConfig,
    get_framework_config,
    set_framework_config,
    reset_framework_config,
    config_override,
)

# Formats and descriptors
from kvsync.format import KEY, END, parse_format, prefix_collision
from kvsync.descriptors import Kind, TypeDescriptor, describe, kvs_field

# Encoding
from kvsync.encoding import (
    encode,
    find_by_fields,
    find_by_key,
    update_key_object,
    set_by_fields,
    delete_by_fields,
    delete_key_object,
)

# Walker marker for deleted objects
from kvsync.walker import ABSENT

# Sync
from kvsync.sync import ChangeEvent, Sync, SyncObject

# Store
from kvsync.store import store_object, set_object, delete_object
from kvsync.kvs import ChangeSource, Getter, Store, Update
from kvsync.kvs.memory import MemoryStore

# Errors
from kvsync.errors import *  # noqa: F401,F403
from kvsync import errors

__all__ = [
    # Configuration
    'FrameworkConfig',
    'get_framework_config',
    'set_framework_config',
    'reset_framework_config',
    'config_override',
    # Formats and descriptors
    'KEY',
    'END',
    'parse_format',
    'prefix_collision',
    'Kind',
    'TypeDescriptor',
    'describe',
    'kvs_field',
    # Encoding
    'encode',
    'find_by_fields',
    'find_by_key',
    'update_key_object',
    'set_by_fields',
    'delete_by_fields',
    'delete_key_object',
    'ABSENT',
    # Sync
    'ChangeEvent',
    'Sync',
    'SyncObject',
    # Store
    'store_object',
    'set_object',
    'delete_object',
    'ChangeSource',
    'Getter',
    'Store',
    'Update',
    'MemoryStore',
]

__all__ += errors.__all__

__version__ = '0.1.0'
__description__ = 'Synchronize Python objects with key-value stores'
