from __future__ import annotations

import json

import pytest

from lostfound.store.cache import CacheKeys, EntityCache, field_id_selector, merge_by_id
from lostfound.store.kv import MemoryKeyValueStore

KEYS = CacheKeys(loaded_key="LoadedPosts", cache_key="CachedPublicPosts")


class _FailingStore:
    async def get(self, key: str) -> str | None:
        return None

    async def set(self, key: str, value: str) -> bool:
        return False

    async def remove(self, key: str) -> bool:
        return False


def _cache(store: MemoryKeyValueStore | None = None) -> EntityCache:
    return EntityCache(store or MemoryKeyValueStore(), KEYS, id_selector=field_id_selector("id"))


def test_merge_by_id_first_occurrence_wins() -> None:
    new = [{"id": "7", "name": "fresh"}, {"id": "8", "name": "new"}]
    current = [{"id": "7", "name": "stale"}, {"id": "3", "name": "kept"}]

    merged = merge_by_id(new, current, field_id_selector("id"))

    assert merged == [
        {"id": "7", "name": "fresh"},
        {"id": "8", "name": "new"},
        {"id": "3", "name": "kept"},
    ]


def test_merge_by_id_skips_items_without_id() -> None:
    merged = merge_by_id([{"name": "no id"}, {"id": "1"}], [], field_id_selector("id"))
    assert merged == [{"id": "1"}]


@pytest.mark.asyncio
async def test_merge_is_idempotent() -> None:
    cache = _cache()
    a = [{"id": "1", "v": "a"}, {"id": "2", "v": "a"}]
    b = [{"id": "2", "v": "b"}, {"id": "3", "v": "b"}]

    await cache.merge(a)
    await cache.merge(b)
    once = await cache.load_all()
    await cache.merge(b)
    twice = await cache.load_all()

    assert once == twice
    assert [item["id"] for item in once] == ["2", "3", "1"]


@pytest.mark.asyncio
async def test_merge_prefers_new_items_over_cached_copy() -> None:
    cache = _cache()
    await cache.save_all([{"id": "7", "status": "missing"}, {"id": "9", "status": "found"}])

    await cache.merge([{"id": "7", "status": "claimed"}])

    cached = await cache.load_all()
    assert {"id": "7", "status": "claimed"} in cached
    assert {"id": "7", "status": "missing"} not in cached
    assert len(cached) == 2


@pytest.mark.asyncio
async def test_default_selector_reads_id_field() -> None:
    cache = EntityCache(MemoryKeyValueStore())
    await cache.merge([{"id": 1}, {"id": 1}])
    assert await cache.load_all() == [{"id": 1}]


@pytest.mark.asyncio
async def test_loaded_ids_round_trip_and_corruption() -> None:
    store = MemoryKeyValueStore()
    cache = _cache(store)

    assert await cache.load_loaded_ids() == set()
    assert await cache.save_loaded_ids({"a", "b"}) is True
    assert await cache.load_loaded_ids() == {"a", "b"}

    await store.set(KEYS.loaded_key, "{oops")
    assert await cache.load_loaded_ids() == set()

    await store.set(KEYS.loaded_key, json.dumps({"a": 1}))
    assert await cache.load_loaded_ids() == set()

    await store.set(KEYS.loaded_key, json.dumps(["a", 2, None]))
    assert await cache.load_loaded_ids() == {"a"}


@pytest.mark.asyncio
async def test_load_all_treats_non_array_as_absent() -> None:
    store = MemoryKeyValueStore({KEYS.cache_key: json.dumps({"id": "1"})})
    assert await _cache(store).load_all() == []

    await store.set(KEYS.cache_key, "not json at all")
    assert await _cache(store).load_all() == []


@pytest.mark.asyncio
async def test_save_all_reports_unserializable_items() -> None:
    cache = _cache()
    assert await cache.save_all([{"id": "1", "blob": object()}]) is False
    assert await cache.load_all() == []


@pytest.mark.asyncio
async def test_clear_removes_both_slots() -> None:
    store = MemoryKeyValueStore()
    cache = _cache(store)
    await cache.merge([{"id": "1"}])
    await cache.save_loaded_ids({"1"})

    assert await cache.clear() is True
    assert store.snapshot() == {}


@pytest.mark.asyncio
async def test_storage_outage_never_raises() -> None:
    cache = EntityCache(_FailingStore(), KEYS)

    assert await cache.load_all() == []
    assert await cache.load_loaded_ids() == set()
    assert await cache.save_loaded_ids({"1"}) is False
    assert await cache.merge([{"id": "1"}]) == [{"id": "1"}]
    assert await cache.clear() is False


@pytest.mark.asyncio
async def test_distinct_keys_do_not_collide() -> None:
    store = MemoryKeyValueStore()
    posts = EntityCache(store, CacheKeys("LoadedPosts", "CachedPosts"))
    logs = EntityCache(store, CacheKeys("LoadedLogs", "CachedLogs"))

    await posts.merge([{"id": "p1"}])
    await logs.merge([{"id": "l1"}])

    assert await posts.load_all() == [{"id": "p1"}]
    assert await logs.load_all() == [{"id": "l1"}]
