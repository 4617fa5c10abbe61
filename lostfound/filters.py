"""Filtered and sorted views over in-memory entity lists.

Criteria are ``"<dimension>:<value>"`` strings. Values within one dimension
are ORed; dimensions are ANDed in ``intersection`` mode and ORed in ``union``
mode. Matching is case-insensitive against the record fields mapped to each
dimension.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from .types import FilterMode, PostStatus, SortDirection
from .utils import parse_iso8601

STATUS_DIMENSION = "status"

DEFAULT_DIMENSION_FIELDS: dict[str, tuple[str, ...]] = {
    "status": ("post_status", "item_status", "item_type"),
    "action": ("action_type",),
    "user": ("user_name",),
    "category": ("category",),
}


def parse_criteria(criteria: Iterable[str]) -> dict[str, set[str]]:
    parsed: dict[str, set[str]] = {}
    for criterion in criteria:
        text = str(criterion).strip()
        if not text:
            continue
        if ":" in text:
            dimension, value = text.split(":", 1)
            dimension = dimension.strip().lower()
        else:
            dimension, value = STATUS_DIMENSION, text
        value = value.strip().lower()
        if not dimension or not value:
            continue
        parsed.setdefault(dimension, set()).add(value)
    return parsed


def status_criteria(statuses: Iterable[PostStatus | str]) -> set[str]:
    values = set()
    for status in statuses:
        value = status.value if isinstance(status, PostStatus) else str(status)
        values.add(f"{STATUS_DIMENSION}:{value.lower()}")
    return values


def _field_value(item: Any, field: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(field)
    return getattr(item, field, None)


def _matches_dimension(
    item: Any,
    values: set[str],
    fields: Sequence[str],
) -> bool:
    for field in fields:
        raw = _field_value(item, field)
        if raw is None:
            continue
        if str(raw).lower() in values:
            return True
    return False


def filter_items(
    items: Sequence[Any],
    criteria: Iterable[str],
    mode: FilterMode = "intersection",
    *,
    dimension_fields: Mapping[str, Sequence[str]] | None = None,
) -> list[Any]:
    parsed = parse_criteria(criteria)
    if not parsed:
        return list(items)
    if mode not in ("intersection", "union"):
        raise ValueError(f"unknown filter mode: {mode}")
    fields_map = dimension_fields or DEFAULT_DIMENSION_FIELDS

    def _keep(item: Any) -> bool:
        matches = (
            _matches_dimension(item, values, fields_map.get(dimension, ()))
            for dimension, values in parsed.items()
        )
        if mode == "union":
            return any(matches)
        return all(matches)

    return [item for item in items if _keep(item)]


def sort_items(
    items: Sequence[Any],
    direction: SortDirection = "desc",
    field: str = "submission_date",
) -> list[Any]:
    """Order items by a date-like string field.

    Comparison is lexicographic; items missing the field go last in both
    directions and equal keys keep their input order.
    """
    if direction not in ("asc", "desc"):
        raise ValueError(f"unknown sort direction: {direction}")
    dated: list[Any] = []
    undated: list[Any] = []
    for item in items:
        value = _field_value(item, field)
        if value:
            dated.append(item)
        else:
            undated.append(item)
    dated.sort(key=lambda item: str(_field_value(item, field)), reverse=direction == "desc")
    return dated + undated


def filter_and_sort(
    items: Sequence[Any],
    criteria: Iterable[str],
    direction: SortDirection = "desc",
    *,
    mode: FilterMode = "intersection",
    field: str = "submission_date",
    dimension_fields: Mapping[str, Sequence[str]] | None = None,
) -> list[Any]:
    filtered = filter_items(items, criteria, mode, dimension_fields=dimension_fields)
    return sort_items(filtered, direction, field)


def filter_by_date_range(
    items: Sequence[Any],
    start: str | None = None,
    end: str | None = None,
    *,
    field: str = "timestamp",
) -> list[Any]:
    start_at = parse_iso8601(start) if start else None
    end_at = parse_iso8601(end) if end else None
    if start_at is None and end_at is None:
        return list(items)
    kept: list[Any] = []
    for item in items:
        raw = _field_value(item, field)
        stamp = parse_iso8601(str(raw)) if raw else None
        if stamp is not None:
            if start_at is not None and stamp < start_at:
                continue
            if end_at is not None and stamp > end_at:
                continue
        kept.append(item)
    return kept
