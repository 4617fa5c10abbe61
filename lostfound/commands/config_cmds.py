from __future__ import annotations

import typer
from rich import print

from ..config import CONFIG_KEYS, coerce_config_value, get_config_path
from .common import print_json


def config_show_cmd(*, load_config, resolve_backend) -> None:
    """Print the effective configuration with secrets redacted."""

    cfg = load_config()
    data = cfg.as_dict()
    data["config_path"] = str(get_config_path())
    data["resolved_store_backend"] = resolve_backend(cfg)
    print_json(data)


def config_set_cmd(*, read_config, write_config, key: str, value: str) -> None:
    """Store one key in the config file; an empty value removes it."""

    if key not in CONFIG_KEYS:
        print(f"[red]Unknown config key: {key}[/red]")
        raise typer.Exit(code=1)
    data = read_config()
    if value == "":
        data.pop(key, None)
        path = write_config(data)
        print(f"[green]Removed {key} from {path}[/green]")
        return
    try:
        data[key] = coerce_config_value(key, value)
    except ValueError as exc:
        print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    path = write_config(data)
    print(f"[green]Set {key} in {path}[/green]")
