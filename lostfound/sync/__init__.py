from __future__ import annotations

from .feed import FeedSynchronizer
from .http_source import PostgrestRowSource
from .paged_reader import InMemoryRowSource, RowSource, fetch_paginated_rows

__all__ = [
    "FeedSynchronizer",
    "InMemoryRowSource",
    "PostgrestRowSource",
    "RowSource",
    "fetch_paginated_rows",
]
