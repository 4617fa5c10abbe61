from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import typer
from rich import print

from ..config import LostFoundConfig
from ..errors import LostFoundError
from ..sync.http_source import PostgrestRowSource
from ..sync.paged_reader import InMemoryRowSource, RowSource


def _load_rows(path: Path) -> list[dict[str, Any]]:
    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"cannot read rows from {path}: {exc}") from exc
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON array")
    return [row for row in data if isinstance(row, dict)]


def _source(cfg: LostFoundConfig, from_json: Path | None) -> RowSource:
    if from_json is not None:
        return InMemoryRowSource(_load_rows(from_json))
    if not cfg.remote_url:
        raise ValueError(
            "remote_url is not configured (set LOSTFOUND_REMOTE_URL or use --from-json)"
        )
    return PostgrestRowSource(
        cfg.remote_url, api_key=cfg.remote_api_key, timeout_s=cfg.remote_timeout_s
    )


async def _run_export(
    fetch_paginated_rows,
    source: RowSource,
    *,
    gte: str,
    lte: str,
    table: str,
    select: str,
    date_field: str,
    batch_size: int,
    output: Path | None,
) -> int:
    handle = output.open("w", encoding="utf-8") if output else sys.stdout
    try:

        def _write(rows: list[dict[str, Any]]) -> None:
            for row in rows:
                handle.write(json.dumps(row, ensure_ascii=False) + "\n")

        return await fetch_paginated_rows(
            source,
            gte=gte,
            lte=lte,
            on_batch=_write,
            table=table,
            select=select,
            date_field=date_field,
            batch_size=batch_size,
        )
    finally:
        if output:
            handle.close()
        if isinstance(source, PostgrestRowSource):
            await source.aclose()


def export_cmd(
    *,
    load_config,
    fetch_paginated_rows,
    gte: str,
    lte: str,
    table: str | None,
    select: str,
    date_field: str | None,
    batch_size: int | None,
    output: Path | None,
    from_json: Path | None,
) -> None:
    """Stream a date range of rows as JSON Lines."""

    cfg = load_config()
    try:
        source = _source(cfg, from_json)
        total = asyncio.run(
            _run_export(
                fetch_paginated_rows,
                source,
                gte=gte,
                lte=lte,
                table=table or cfg.export_table,
                select=select,
                date_field=date_field or cfg.export_date_field,
                batch_size=batch_size or cfg.export_batch_size,
                output=output,
            )
        )
    except (LostFoundError, ValueError) as exc:
        print(f"[red]Export failed: {exc}[/red]")
        raise typer.Exit(code=1) from exc
    if output:
        print(f"[green]Exported {total} rows to {output}[/green]")
