from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol

from ..utils import maybe_await

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "post_public_view"
DEFAULT_DATE_FIELD = "submission_date"
DEFAULT_BATCH_SIZE = 10000

Row = dict[str, Any]
BatchCallback = Callable[[list[Row]], Awaitable[None] | None]


class RowSource(Protocol):
    async def fetch_range(
        self,
        table: str,
        *,
        select: str,
        date_field: str,
        gte: str,
        lte: str,
        start: int,
        end: int,
    ) -> list[Row]: ...


class InMemoryRowSource:
    """Applies the remote paging contract to a local list of rows."""

    def __init__(self, rows: Sequence[Row], *, table: str | None = None) -> None:
        self.rows = list(rows)
        self.table = table
        self.requests: list[tuple[int, int]] = []

    async def fetch_range(
        self,
        table: str,
        *,
        select: str,
        date_field: str,
        gte: str,
        lte: str,
        start: int,
        end: int,
    ) -> list[Row]:
        if self.table is not None and table != self.table:
            raise LookupError(f"unknown table: {table}")
        self.requests.append((start, end))
        matching = [
            row
            for row in self.rows
            if row.get(date_field) is not None and gte <= str(row[date_field]) <= lte
        ]
        matching.sort(key=lambda row: str(row[date_field]))
        page = matching[start : end + 1]
        columns = [c.strip() for c in select.split(",") if c.strip()]
        if not columns or "*" in columns:
            return [dict(row) for row in page]
        return [{c: row.get(c) for c in columns} for row in page]


async def fetch_paginated_rows(
    source: RowSource,
    *,
    gte: str,
    lte: str,
    on_batch: BatchCallback,
    table: str = DEFAULT_TABLE,
    select: str = "*",
    date_field: str = DEFAULT_DATE_FIELD,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> int:
    """Stream rows in ``[gte, lte]`` to ``on_batch`` one offset page at a time.

    Stops on an empty page or on a page shorter than ``batch_size``. Remote
    errors propagate to the caller. Returns the number of rows delivered.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    offset = 0
    delivered = 0
    while True:
        rows = await source.fetch_range(
            table,
            select=select,
            date_field=date_field,
            gte=gte,
            lte=lte,
            start=offset,
            end=offset + batch_size - 1,
        )
        if not rows:
            break
        await maybe_await(on_batch(rows))
        delivered += len(rows)
        logger.debug("delivered %s rows from %s at offset %s", len(rows), table, offset)
        if len(rows) < batch_size:
            break
        offset += batch_size
    return delivered
