from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from .kv import KeyValueStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

IdSelector = Callable[[Any], str]


@dataclass(frozen=True)
class CacheKeys:
    loaded_key: str = "LoadedItems"
    cache_key: str = "CachedItems"


def default_id_selector(item: Any) -> str:
    return str(item["id"])


def field_id_selector(field: str) -> IdSelector:
    def _select(item: Any) -> str:
        return str(item[field])

    return _select


def merge_by_id(
    new_items: Iterable[T],
    current: Iterable[T],
    id_selector: IdSelector,
) -> list[T]:
    """Merge two entity lists keyed by identity.

    ``new_items`` are visited first, so the first occurrence of an id wins and
    fresh copies replace stale cached ones. Cached entities absent from
    ``new_items`` keep their relative order after the new ones. Applying the
    same ``new_items`` twice yields the same list.
    """
    by_id: dict[str, T] = {}
    for item in [*new_items, *current]:
        try:
            item_id = id_selector(item)
        except (KeyError, TypeError) as exc:
            logger.warning("skipping entity without a usable id", exc_info=exc)
            continue
        if item_id in by_id:
            continue
        by_id[item_id] = item
    return list(by_id.values())


class EntityCache(Generic[T]):
    """Typed JSON-array cache over a :class:`KeyValueStore`.

    Two slots are used per instance: the ids already materialized in a feed
    and the serialized entity list. Reads tolerate missing or corrupt
    payloads and writes report success instead of raising.
    """

    def __init__(
        self,
        store: KeyValueStore,
        keys: CacheKeys | None = None,
        *,
        id_selector: IdSelector | None = None,
    ) -> None:
        self.store = store
        self.keys = keys or CacheKeys()
        self.id_selector = id_selector or default_id_selector

    async def _load_json(self, key: str) -> Any:
        raw = await self.store.get(key)
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError) as exc:
            logger.warning("cache slot %s holds invalid json", key, exc_info=exc)
            return None

    async def _save_json(self, key: str, value: Any) -> bool:
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            logger.warning("cache slot %s could not be serialized", key, exc_info=exc)
            return False
        return await self.store.set(key, payload)

    async def load_loaded_ids(self) -> set[str]:
        data = await self._load_json(self.keys.loaded_key)
        if not isinstance(data, list):
            return set()
        return {item for item in data if isinstance(item, str)}

    async def save_loaded_ids(self, ids: Iterable[str]) -> bool:
        return await self._save_json(self.keys.loaded_key, list(ids))

    async def load_all(self) -> list[T]:
        data = await self._load_json(self.keys.cache_key)
        if not isinstance(data, list):
            return []
        return data

    async def save_all(self, items: Sequence[T]) -> bool:
        return await self._save_json(self.keys.cache_key, list(items))

    async def merge(self, new_items: Sequence[T]) -> list[T]:
        current = await self.load_all()
        merged = merge_by_id(new_items, current, self.id_selector)
        await self.save_all(merged)
        return merged

    async def clear(self) -> bool:
        removed_loaded = await self.store.remove(self.keys.loaded_key)
        removed_cache = await self.store.remove(self.keys.cache_key)
        return removed_loaded and removed_cache
