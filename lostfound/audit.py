"""Audit trail feed and the option lists derived from it."""

from __future__ import annotations

import datetime as dt
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any, Literal

from .filters import filter_by_date_range, filter_items, parse_criteria, sort_items
from .store.cache import CacheKeys, EntityCache, field_id_selector
from .store.kv import KeyValueStore
from .sync.feed import FeedSynchronizer, FetchPage
from .types import AuditLogEntry, FilterCategory, FilterOption, SortDirection
from .utils import parse_iso8601

AUDIT_PAGE_SIZE = 20
AUDIT_CACHE_KEYS = CacheKeys(loaded_key="LoadedAuditLogs", cache_key="CachedAuditLogs")
AUDIT_ID_FIELD = "log_id"
AUDIT_DATE_FIELD = "timestamp"

AuditSort = Literal["newest", "oldest"]
ReadLogs = Callable[[int, int], Awaitable[list[AuditLogEntry]]]

log_id = field_id_selector(AUDIT_ID_FIELD)

_SORT_DIRECTIONS: dict[str, SortDirection] = {"newest": "desc", "oldest": "asc"}


def offset_fetcher(read_logs: ReadLogs) -> FetchPage:
    """Adapt an offset-paged reader to the exclude-ids fetch contract.

    Audit pages arrive newest first, so everything already loaded is a prefix
    of the remote ordering and its size is the next offset.
    """

    async def _fetch(exclude_ids: list[str], limit: int) -> list[Any]:
        return await read_logs(limit, len(exclude_ids))

    return _fetch


class AuditLogFeed(FeedSynchronizer[AuditLogEntry]):
    def __init__(
        self,
        store: KeyValueStore,
        read_logs: ReadLogs,
        *,
        keys: CacheKeys | None = None,
        page_size: int = AUDIT_PAGE_SIZE,
        **kwargs: Any,
    ) -> None:
        cache: EntityCache[AuditLogEntry] = EntityCache(
            store, keys or AUDIT_CACHE_KEYS, id_selector=log_id
        )
        super().__init__(
            cache,
            offset_fetcher(read_logs),
            page_size=page_size,
            sort_field=AUDIT_DATE_FIELD,
            sort_direction="desc",
            **kwargs,
        )

    @property
    def action_types(self) -> list[FilterOption]:
        return unique_action_types(self.items)

    @property
    def user_names(self) -> list[FilterOption]:
        return unique_user_names(self.items)


def title_case(value: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in value.split("_"))


def format_action_type(action_type: str | None) -> str:
    if not action_type:
        return "Unknown Action"
    return title_case(action_type)


def format_timestamp(timestamp: str | None, tz: dt.tzinfo | None = None) -> str:
    """Render like "Mar 5, 2024, 03:04 PM" in ``tz`` (the local zone by default)."""
    if not timestamp:
        return "N/A"
    parsed = parse_iso8601(timestamp)
    if parsed is None:
        return "N/A"
    parsed = parsed.astimezone(tz)
    hour = parsed.hour % 12 or 12
    meridiem = "AM" if parsed.hour < 12 else "PM"
    return f"{parsed:%b} {parsed.day}, {parsed.year}, {hour:02d}:{parsed:%M} {meridiem}"


def _distinct(values: Iterable[Any]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values:
        if isinstance(value, str) and value.strip():
            seen.setdefault(value, None)
    return list(seen)


def unique_action_types(logs: Sequence[AuditLogEntry]) -> list[FilterOption]:
    return [
        {"label": format_action_type(value), "value": value}
        for value in _distinct(log.get("action_type") for log in logs)
    ]


def unique_user_names(logs: Sequence[AuditLogEntry]) -> list[FilterOption]:
    return [
        {"label": title_case(value), "value": value}
        for value in _distinct(log.get("user_name") for log in logs)
    ]


def filter_options(action_types: Iterable[str], user_names: Iterable[str]) -> list[FilterCategory]:
    return [
        {
            "categoryName": "Action Type",
            "options": [
                {"value": f"action:{value}", "label": format_action_type(value)}
                for value in action_types
            ],
        },
        {
            "categoryName": "User Names",
            "options": [
                {"value": f"user:{value}", "label": title_case(value) if value else "Unknown"}
                for value in user_names
            ],
        },
    ]


def sort_options() -> list[FilterOption]:
    return [
        {"value": "newest", "label": "Newest First"},
        {"value": "oldest", "label": "Oldest First"},
    ]


def sort_logs(logs: Sequence[AuditLogEntry], sort: AuditSort | str = "newest") -> list[Any]:
    direction = _SORT_DIRECTIONS.get(sort, "desc")
    return sort_items(logs, direction, AUDIT_DATE_FIELD)


def filter_logs(
    logs: Sequence[AuditLogEntry],
    criteria: Iterable[str],
    start: str | None = None,
    end: str | None = None,
) -> list[Any]:
    criteria = list(criteria)
    users = parse_criteria(criteria).get("user", set())
    others = [c for c in criteria if not str(c).strip().lower().startswith("user:")]
    matched = filter_items(logs, others, "intersection")
    if users:
        # Logs without a recorded user stay visible under a user filter.
        matched = [
            log
            for log in matched
            if not log.get("user_name") or str(log["user_name"]).lower() in users
        ]
    return filter_by_date_range(matched, start, end, field=AUDIT_DATE_FIELD)
