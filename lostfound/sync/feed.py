"""Incremental loading for one paged feed.

A :class:`FeedSynchronizer` paints from its :class:`EntityCache` first, then
reconciles with the remote source through caller-supplied fetch functions.
Every fetched batch is merged by id, so overlapping calls cannot duplicate
entries; the last call to finish decides ``has_more``.

Fetch failures stop at this boundary: they are logged, reported through
``on_error`` and leave ``items``/``loaded_ids``/``has_more`` as they were.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Generic, TypeVar

from ..filters import sort_items
from ..store.cache import EntityCache, IdSelector, merge_by_id
from ..types import SortDirection
from ..utils import maybe_await

logger = logging.getLogger(__name__)

T = TypeVar("T")

FetchPage = Callable[[list[str], int], Awaitable[list[Any]]]
FetchDelta = Callable[[], Awaitable[list[Any]]]
FetchByIds = Callable[[list[str]], Awaitable[list[Any]]]
ItemFilter = Callable[[list[Any]], list[Any]]
Listener = Callable[["FeedSynchronizer[Any]"], None]

DEFAULT_PAGE_SIZE = 5


class FeedSynchronizer(Generic[T]):
    def __init__(
        self,
        cache: EntityCache[T],
        fetch_page: FetchPage,
        *,
        fetch_delta: FetchDelta | None = None,
        fetch_by_ids: FetchByIds | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        id_selector: IdSelector | None = None,
        item_filter: ItemFilter | None = None,
        sort_field: str | None = None,
        sort_direction: SortDirection = "desc",
        is_online: Callable[[], Any] | None = None,
        on_error: Callable[[Exception], Any] | None = None,
        on_offline: Callable[[], Any] | None = None,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.cache = cache
        self.fetch_page = fetch_page
        self.fetch_delta = fetch_delta
        self.fetch_by_ids = fetch_by_ids
        self.page_size = page_size
        self.id_selector = id_selector or cache.id_selector
        self.item_filter = item_filter
        self.sort_field = sort_field
        self.sort_direction = sort_direction
        self.is_online = is_online
        self.on_error = on_error
        self.on_offline = on_offline

        self.items: list[T] = []
        self.loaded_ids: set[str] = set()
        self.has_more = True
        self._entries: list[T] = []
        self._in_flight = 0
        self._listeners: list[Listener] = []

    @property
    def is_fetching(self) -> bool:
        return self._in_flight > 0

    @property
    def loading(self) -> bool:
        return self.is_fetching and not self.items

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("feed listener failed")

    def _ids(self, items: Sequence[T]) -> list[str]:
        ids: list[str] = []
        for item in items:
            try:
                ids.append(self.id_selector(item))
            except (KeyError, TypeError):
                continue
        return ids

    def _unseen(self, batch: list[T]) -> list[T]:
        unseen: dict[str, T] = {}
        for item in batch:
            try:
                item_id = self.id_selector(item)
            except (KeyError, TypeError):
                continue
            if item_id not in self.loaded_ids and item_id not in unseen:
                unseen[item_id] = item
        return list(unseen.values())

    def _filtered(self, items: list[T]) -> list[T]:
        if self.item_filter is None:
            return items
        return list(self.item_filter(items))

    def _set_entries(self, entries: list[T]) -> None:
        self._entries = entries
        self.loaded_ids = set(self._ids(entries))
        if self.sort_field:
            self.items = sort_items(entries, self.sort_direction, self.sort_field)
        else:
            self.items = list(entries)

    async def _online(self) -> bool:
        if self.is_online is None:
            return True
        try:
            online = bool(await maybe_await(self.is_online()))
        except Exception:
            logger.exception("connectivity check failed; assuming online")
            return True
        if not online and self.on_offline is not None:
            await maybe_await(self.on_offline())
        return online

    async def _call(
        self, label: str, fn: Callable[..., Awaitable[list[Any]]], *args: Any
    ) -> list[T] | None:
        self._in_flight += 1
        try:
            result = await fn(*args)
        except Exception as exc:
            logger.exception("feed %s failed", label)
            if self.on_error is not None:
                await maybe_await(self.on_error(exc))
            return None
        finally:
            self._in_flight -= 1
        return list(result or [])

    def _appended(self, batch: list[T]) -> list[T]:
        incoming: dict[str, T] = {}
        for item in batch:
            try:
                incoming.setdefault(self.id_selector(item), item)
            except (KeyError, TypeError):
                continue
        entries = [incoming.pop(self.id_selector(item), item) for item in self._entries]
        entries.extend(incoming.values())
        return entries

    async def _commit(self, new_items: list[T], *, append: bool = False) -> list[T]:
        """Merge ``new_items`` into memory and cache; return the ones not loaded before.

        Memory is read and written with no await in between, so commits that
        finish close together both land.
        """
        stored = await self.cache.merge(new_items)
        added = self._unseen(new_items)
        if append:
            merged = self._appended(new_items)
        else:
            merged = merge_by_id(new_items, self._entries, self.id_selector)
        self._set_entries(merged)
        if self._ids(stored) != self._ids(merged):
            # Memory order wins over the persisted slot.
            await self.cache.save_all(list(self._entries))
        await self.cache.save_loaded_ids(self._ids(self._entries))
        return added

    async def _replace(self, items: list[T]) -> None:
        await self.cache.clear()
        entries = merge_by_id(items, [], self.id_selector)
        await self.cache.save_all(entries)
        self._set_entries(entries)
        await self.cache.save_loaded_ids(self._ids(entries))

    async def _paint_from_cache(self) -> None:
        cached = self._filtered(await self.cache.load_all())
        cached_ids = await self.cache.load_loaded_ids()
        if not cached:
            return
        entries = merge_by_id(cached, [], self.id_selector)
        self._set_entries(entries)
        if cached_ids != self.loaded_ids:
            logger.debug(
                "loaded-id slot %s disagrees with cache; rebuilt from entities",
                self.cache.keys.loaded_key,
            )
            await self.cache.save_loaded_ids(self._ids(entries))
        self._notify()

    async def _reconcile(self) -> None:
        page = await self._call("initial fetch", self.fetch_page, [], self.page_size)
        if page is None:
            return
        self.has_more = len(page) == self.page_size
        await self._commit(self._filtered(page))
        self._notify()

    async def initialize(self, *, background: bool = False) -> asyncio.Task[None] | None:
        """Paint from cache, then reconcile with the first remote page.

        With ``background=True`` the reconciliation runs as a task that is
        returned to the caller, who can render the cached items meanwhile.
        """
        await self._paint_from_cache()
        if not await self._online():
            self.has_more = False
            self._notify()
            return None
        if background:
            return asyncio.create_task(self._reconcile())
        await self._reconcile()
        return None

    async def load_more(self) -> list[T]:
        if not self.has_more:
            return []
        if not await self._online():
            return []
        exclude = self._ids(self._entries)
        page = await self._call("load more", self.fetch_page, exclude, self.page_size)
        if page is None:
            return []
        self.has_more = len(page) == self.page_size
        added = await self._commit(self._filtered(page), append=True)
        self._notify()
        return added

    async def refresh(self) -> None:
        """Replace the feed with the remote first page.

        The page is fetched before anything is cleared, so a failed refresh
        keeps the last good state.
        """
        if not await self._online():
            return
        page = await self._call("refresh", self.fetch_page, [], self.page_size)
        if page is None:
            return
        self.has_more = len(page) == self.page_size
        await self._replace(self._filtered(page))
        self._notify()

    async def fetch_new(self) -> int:
        """Merge items newer than the loaded ones at the front of the feed."""
        if not await self._online():
            return 0
        if self.fetch_delta is not None:
            fresh = await self._call("delta fetch", self.fetch_delta)
        else:
            exclude = self._ids(self._entries)
            fresh = await self._call("delta fetch", self.fetch_page, exclude, self.page_size)
        if not fresh:
            return 0
        added = await self._commit(self._filtered(fresh))
        self._notify()
        return len(added)

    async def revalidate(self) -> None:
        """Re-fetch the loaded entities; ones gone remotely drop out."""
        if self.fetch_by_ids is None or not self.loaded_ids:
            return
        if not await self._online():
            return
        fresh = await self._call("revalidate", self.fetch_by_ids, self._ids(self._entries))
        if fresh is None:
            return
        fresh = self._filtered(fresh)
        if not fresh:
            self.has_more = False
        await self._replace(fresh)
        self._notify()

    async def clear(self) -> None:
        await self.cache.clear()
        self._set_entries([])
        self.has_more = True
        self._notify()
