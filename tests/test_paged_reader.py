from __future__ import annotations

import pytest

from lostfound.errors import RemoteFetchError
from lostfound.sync.paged_reader import InMemoryRowSource, fetch_paginated_rows


def _rows(count: int) -> list[dict]:
    return [
        {"post_id": f"p{i}", "submission_date": f"2024-01-{(i % 28) + 1:02d}T00:00:{i % 60:02d}"}
        for i in range(count)
    ]


@pytest.mark.asyncio
async def test_three_batches_for_one_short_of_three_full_pages() -> None:
    batch_size = 4
    source = InMemoryRowSource(_rows(3 * batch_size - 1))
    batches: list[list[dict]] = []

    total = await fetch_paginated_rows(
        source,
        gte="2024-01-01",
        lte="2024-12-31",
        batch_size=batch_size,
        on_batch=batches.append,
    )

    assert [len(b) for b in batches] == [4, 4, 3]
    assert total == 11
    assert source.requests == [(0, 3), (4, 7), (8, 11)]


@pytest.mark.asyncio
async def test_stops_on_empty_page_after_exact_multiple() -> None:
    source = InMemoryRowSource(_rows(8))
    batches: list[list[dict]] = []

    await fetch_paginated_rows(
        source, gte="2024", lte="2025", batch_size=4, on_batch=batches.append
    )

    assert [len(b) for b in batches] == [4, 4]
    assert source.requests == [(0, 3), (4, 7), (8, 11)]


@pytest.mark.asyncio
async def test_empty_range_never_calls_on_batch() -> None:
    calls: list[list[dict]] = []
    total = await fetch_paginated_rows(
        InMemoryRowSource([]), gte="2024", lte="2025", on_batch=calls.append
    )
    assert calls == []
    assert total == 0


@pytest.mark.asyncio
async def test_rows_arrive_ascending_and_within_range() -> None:
    rows = [
        {"id": "c", "submission_date": "2024-03-01"},
        {"id": "a", "submission_date": "2024-01-01"},
        {"id": "out", "submission_date": "2025-06-01"},
        {"id": "b", "submission_date": "2024-02-01"},
        {"id": "none", "submission_date": None},
    ]
    seen: list[str] = []

    async def _collect(batch: list[dict]) -> None:
        seen.extend(row["id"] for row in batch)

    await fetch_paginated_rows(
        InMemoryRowSource(rows),
        gte="2024-01-01",
        lte="2024-12-31",
        select="id",
        batch_size=2,
        on_batch=_collect,
    )

    assert seen == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_remote_error_propagates() -> None:
    class _Broken:
        async def fetch_range(self, table, **kwargs):
            raise RemoteFetchError("boom", status=500)

    with pytest.raises(RemoteFetchError, match="boom"):
        await fetch_paginated_rows(_Broken(), gte="a", lte="b", on_batch=lambda rows: None)


@pytest.mark.asyncio
async def test_callback_error_aborts_paging() -> None:
    source = InMemoryRowSource(_rows(10))

    def _fail(rows: list[dict]) -> None:
        raise RuntimeError("disk full")

    with pytest.raises(RuntimeError, match="disk full"):
        await fetch_paginated_rows(source, gte="2024", lte="2025", batch_size=3, on_batch=_fail)
    assert source.requests == [(0, 2)]


@pytest.mark.asyncio
async def test_rejects_non_positive_batch_size() -> None:
    with pytest.raises(ValueError):
        await fetch_paginated_rows(
            InMemoryRowSource([]), gte="a", lte="b", batch_size=0, on_batch=lambda rows: None
        )
