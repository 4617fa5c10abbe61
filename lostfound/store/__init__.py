from __future__ import annotations

from .cache import CacheKeys, EntityCache, default_id_selector, field_id_selector, merge_by_id
from .kv import (
    JsonFileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    SqliteKeyValueStore,
    open_store,
)

__all__ = [
    "CacheKeys",
    "EntityCache",
    "JsonFileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "default_id_selector",
    "field_id_selector",
    "merge_by_id",
    "open_store",
]
