from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import typer
from rich import print

from ..config import LostFoundConfig, load_config, read_config_file, write_config_file
from ..store.cache import CacheKeys


def read_config_or_exit() -> dict[str, Any]:
    try:
        return read_config_file()
    except ValueError as exc:
        print(f"[red]Invalid config file: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def write_config_or_exit(data: dict[str, Any]) -> Path:
    try:
        return write_config_file(data)
    except OSError as exc:
        print(f"[red]Failed to write config: {exc}[/red]")
        raise typer.Exit(code=1) from exc


def load_config_or_exit() -> LostFoundConfig:
    read_config_or_exit()
    return load_config()


def configure_logging(cfg: LostFoundConfig) -> None:
    level = getattr(logging, str(cfg.log_level).upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def cache_keys(loaded_key: str | None, cache_key: str | None) -> CacheKeys:
    defaults = CacheKeys()
    return CacheKeys(
        loaded_key=loaded_key or defaults.loaded_key,
        cache_key=cache_key or defaults.cache_key,
    )


def print_json(data: object) -> None:
    typer.echo(json.dumps(data, ensure_ascii=False, indent=2))
