from __future__ import annotations

from pathlib import Path

import typer

from . import __version__
from .commands.cache_cmds import cache_clear_cmd, cache_show_cmd
from .commands.common import (
    cache_keys,
    configure_logging,
    load_config_or_exit,
    read_config_or_exit,
    write_config_or_exit,
)
from .commands.config_cmds import config_set_cmd, config_show_cmd
from .commands.export_cmds import export_cmd
from .commands.fingerprint_cmds import fingerprint_cmd
from .fingerprint import compute_fingerprint, hamming_distance
from .store.kv import open_store, resolve_backend
from .sync.paged_reader import fetch_paginated_rows

app = typer.Typer(help="lostfound: feed cache, exports and photo fingerprints")
cache_app = typer.Typer(help="Inspect cached feeds")
config_app = typer.Typer(help="Configuration")
app.add_typer(cache_app, name="cache")
app.add_typer(config_app, name="config")


@app.callback()
def _root() -> None:
    configure_logging(load_config_or_exit())


@app.command()
def version() -> None:
    """Print the installed version."""
    typer.echo(__version__)


@app.command()
def fingerprint(
    images: list[Path] = typer.Argument(..., help="Image files to hash"),
    size: int = typer.Option(None, help="Canvas size the image is drawn onto"),
    bits: int = typer.Option(None, help="Grid width; the hash has bits*bits bits"),
    compare: bool = typer.Option(False, "--compare", help="Print pairwise Hamming distances"),
) -> None:
    """Compute perceptual fingerprints for item photos."""
    cfg = load_config_or_exit()
    fingerprint_cmd(
        compute_fingerprint=compute_fingerprint,
        hamming_distance=hamming_distance,
        images=images,
        size=size or cfg.fingerprint_size,
        bits=bits or cfg.fingerprint_bits,
        compare=compare,
    )


@app.command()
def export(
    gte: str = typer.Option(..., help="Inclusive lower bound on the date field"),
    lte: str = typer.Option(..., help="Inclusive upper bound on the date field"),
    table: str = typer.Option(None, help="Table or view to read"),
    select: str = typer.Option("*", help="Column selection"),
    date_field: str = typer.Option(None, help="Date column used for range and order"),
    batch_size: int = typer.Option(None, help="Rows per page"),
    output: Path = typer.Option(None, help="Write JSON Lines here instead of stdout"),
    from_json: Path = typer.Option(None, help="Read rows from a local JSON array"),
) -> None:
    """Export a date range of rows page by page."""
    export_cmd(
        load_config=load_config_or_exit,
        fetch_paginated_rows=fetch_paginated_rows,
        gte=gte,
        lte=lte,
        table=table,
        select=select,
        date_field=date_field,
        batch_size=batch_size,
        output=output,
        from_json=from_json,
    )


@cache_app.command("show")
def cache_show(
    cache_key: str = typer.Option(None, help="Entity slot key"),
    loaded_key: str = typer.Option(None, help="Loaded-id slot key"),
    id_field: str = typer.Option("id", help="Entity identity field"),
    ids: bool = typer.Option(False, "--ids", help="List cached ids"),
) -> None:
    """Show what a feed cache holds."""
    cache_show_cmd(
        open_store=open_store,
        load_config=load_config_or_exit,
        keys=cache_keys(loaded_key, cache_key),
        id_field=id_field,
        show_ids=ids,
    )


@cache_app.command("clear")
def cache_clear(
    cache_key: str = typer.Option(None, help="Entity slot key"),
    loaded_key: str = typer.Option(None, help="Loaded-id slot key"),
) -> None:
    """Drop a feed cache."""
    cache_clear_cmd(
        open_store=open_store,
        load_config=load_config_or_exit,
        keys=cache_keys(loaded_key, cache_key),
    )


@config_app.command("show")
def config_show() -> None:
    """Print the effective configuration."""
    config_show_cmd(load_config=load_config_or_exit, resolve_backend=resolve_backend)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Config key, e.g. feed_page_size"),
    value: str = typer.Argument(..., help="New value; an empty string removes the key"),
) -> None:
    """Write one key to the config file."""
    config_set_cmd(
        read_config=read_config_or_exit,
        write_config=write_config_or_exit,
        key=key,
        value=value,
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
