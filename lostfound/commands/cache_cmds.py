from __future__ import annotations

import asyncio
from typing import Any

from rich import print

from ..store.cache import CacheKeys, EntityCache, field_id_selector


def _cache(open_store, load_config, keys: CacheKeys, id_field: str) -> EntityCache[Any]:
    store = open_store(load_config())
    return EntityCache(store, keys, id_selector=field_id_selector(id_field))


def cache_show_cmd(
    *,
    open_store,
    load_config,
    keys: CacheKeys,
    id_field: str,
    show_ids: bool,
) -> None:
    """Summarize one cached feed."""

    cache = _cache(open_store, load_config, keys, id_field)

    async def _read() -> tuple[list[Any], set[str]]:
        return await cache.load_all(), await cache.load_loaded_ids()

    items, loaded_ids = asyncio.run(_read())
    item_ids = []
    for item in items:
        try:
            item_ids.append(cache.id_selector(item))
        except (KeyError, TypeError):
            continue
    print(f"Cache slot:   {keys.cache_key} ({len(items)} items)")
    print(f"Loaded slot:  {keys.loaded_key} ({len(loaded_ids)} ids)")
    missing = loaded_ids - set(item_ids)
    orphaned = set(item_ids) - loaded_ids
    if missing or orphaned:
        print(
            f"[yellow]Slots disagree: {len(missing)} ids without entity, "
            f"{len(orphaned)} entities without id[/yellow]"
        )
    if show_ids:
        for item_id in item_ids:
            print(f"- {item_id}")


def cache_clear_cmd(*, open_store, load_config, keys: CacheKeys) -> None:
    """Remove both slots of one cached feed."""

    cache = EntityCache(open_store(load_config()), keys)
    if asyncio.run(cache.clear()):
        print(f"[green]Cleared {keys.cache_key} and {keys.loaded_key}[/green]")
    else:
        print("[yellow]Cache clear reported a storage failure[/yellow]")
