from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .filters import filter_items, status_criteria
from .store.cache import CacheKeys, EntityCache, field_id_selector
from .store.kv import KeyValueStore
from .sync.feed import DEFAULT_PAGE_SIZE, FeedSynchronizer, FetchByIds, FetchDelta, FetchPage
from .types import FilterMode, Post, PostStatus, SortDirection

POST_CACHE_KEYS = CacheKeys(loaded_key="LoadedPosts", cache_key="CachedPublicPosts")
POST_ID_FIELD = "post_id"
POST_DATE_FIELD = "submission_date"

post_id = field_id_selector(POST_ID_FIELD)


def create_post_cache(
    store: KeyValueStore, keys: CacheKeys | None = None
) -> EntityCache[Post]:
    return EntityCache(store, keys or POST_CACHE_KEYS, id_selector=post_id)


def status_filter(statuses: Iterable[PostStatus | str], mode: FilterMode = "union"):
    """Build an ``item_filter`` keeping posts in any (or all) of ``statuses``."""
    criteria = status_criteria(statuses)

    def _filter(posts: list[Any]) -> list[Any]:
        return filter_items(posts, criteria, mode)

    return _filter


def create_post_feed(
    store: KeyValueStore,
    fetch_page: FetchPage,
    *,
    keys: CacheKeys | None = None,
    fetch_delta: FetchDelta | None = None,
    fetch_by_ids: FetchByIds | None = None,
    page_size: int = DEFAULT_PAGE_SIZE,
    sort_direction: SortDirection = "desc",
    **kwargs: Any,
) -> FeedSynchronizer[Post]:
    return FeedSynchronizer(
        create_post_cache(store, keys),
        fetch_page,
        fetch_delta=fetch_delta,
        fetch_by_ids=fetch_by_ids,
        page_size=page_size,
        sort_field=POST_DATE_FIELD,
        sort_direction=sort_direction,
        **kwargs,
    )
