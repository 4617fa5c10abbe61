from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest
import typer
from PIL import Image
from typer.testing import CliRunner

from lostfound import __version__
from lostfound.cli import app
from lostfound.commands.fingerprint_cmds import fingerprint_cmd
from lostfound.config import load_config
from lostfound.fingerprint import compute_fingerprint
from lostfound.store.cache import CacheKeys, EntityCache
from lostfound.store.kv import open_store

runner = CliRunner()


def _write_image(path: Path, shade: int) -> Path:
    image = Image.new("RGB", (32, 32), (shade, shade, shade))
    for x in range(16):
        for y in range(32):
            image.putpixel((x, y), (255 - shade, 0, shade))
    image.save(path)
    return path


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("fingerprint", "export", "cache", "config", "version"):
        assert name in result.stdout


def test_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert result.stdout.strip() == __version__


def test_invalid_config_file_exits(tmp_path: Path) -> None:
    (tmp_path / "config.json").write_text("{not json")
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 1
    assert "Invalid config file" in result.stdout


def test_config_show_redacts_secret(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOSTFOUND_REMOTE_API_KEY", "secret-key")
    monkeypatch.setenv("LOSTFOUND_STORE_BACKEND", "file")
    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["remote_api_key"] != "secret-key"
    assert data["resolved_store_backend"] == "file"
    assert data["config_path"].endswith("config.json")


def test_config_set_writes_file_and_show_reflects_it(tmp_path: Path) -> None:
    result = runner.invoke(app, ["config", "set", "feed_page_size", "12"])
    assert result.exit_code == 0
    assert "Set feed_page_size" in result.stdout
    assert json.loads((tmp_path / "config.json").read_text()) == {"feed_page_size": 12}

    shown = runner.invoke(app, ["config", "show"])
    assert json.loads(shown.stdout)["feed_page_size"] == 12

    removed = runner.invoke(app, ["config", "set", "feed_page_size", ""])
    assert removed.exit_code == 0
    assert json.loads((tmp_path / "config.json").read_text()) == {}


def test_config_set_rejects_bad_values(tmp_path: Path) -> None:
    bad_value = runner.invoke(app, ["config", "set", "feed_page_size", "twelve"])
    assert bad_value.exit_code == 1
    assert "must be an integer" in bad_value.stdout

    unknown = runner.invoke(app, ["config", "set", "colour", "blue"])
    assert unknown.exit_code == 1
    assert "Unknown config key" in unknown.stdout
    assert not (tmp_path / "config.json").exists()


def test_fingerprint_prints_hashes_and_distance(tmp_path: Path) -> None:
    first = _write_image(tmp_path / "a.png", 20)
    second = _write_image(tmp_path / "b.png", 220)

    result = runner.invoke(app, ["fingerprint", str(first), str(second), "--compare"])

    assert result.exit_code == 0
    assert compute_fingerprint(first) in result.stdout
    assert compute_fingerprint(second) in result.stdout
    assert "<->" in result.stdout


def test_fingerprint_reports_unreadable_file(tmp_path: Path) -> None:
    bogus = tmp_path / "bogus.png"
    bogus.write_bytes(b"not an image")
    result = runner.invoke(app, ["fingerprint", str(bogus)])
    assert result.exit_code == 1


def test_fingerprint_rejects_odd_bits(tmp_path: Path) -> None:
    image = _write_image(tmp_path / "a.png", 20)
    result = runner.invoke(app, ["fingerprint", str(image), "--bits", "3"])
    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)
    assert "Invalid grid" in result.stdout


def test_fingerprint_cmd_reports_value_errors(tmp_path: Path) -> None:
    def _failing(path: Path, *, size: int, bits: int) -> str:
        raise ValueError("image smaller than grid")

    with pytest.raises(typer.Exit) as excinfo:
        fingerprint_cmd(
            compute_fingerprint=_failing,
            hamming_distance=lambda a, b: 0,
            images=[tmp_path / "tiny.png"],
            size=256,
            bits=8,
            compare=False,
        )
    assert excinfo.value.exit_code == 1


def test_export_from_json_writes_jsonl(tmp_path: Path) -> None:
    rows = [
        {"post_id": "p1", "submission_date": "2024-01-01"},
        {"post_id": "p2", "submission_date": "2024-01-05"},
        {"post_id": "p3", "submission_date": "2024-01-09"},
        {"post_id": "p4", "submission_date": "2024-02-01"},
    ]
    source = tmp_path / "rows.json"
    source.write_text(json.dumps(rows))
    output = tmp_path / "out.jsonl"

    result = runner.invoke(
        app,
        [
            "export",
            "--gte", "2024-01-01",
            "--lte", "2024-01-31",
            "--batch-size", "2",
            "--from-json", str(source),
            "--output", str(output),
        ],
    )

    assert result.exit_code == 0
    assert "Exported 3 rows" in result.stdout
    exported = [json.loads(line) for line in output.read_text().splitlines()]
    assert [row["post_id"] for row in exported] == ["p1", "p2", "p3"]


def test_export_without_remote_url_fails() -> None:
    result = runner.invoke(app, ["export", "--gte", "2024-01-01", "--lte", "2024-01-31"])
    assert result.exit_code == 1
    assert "Export failed" in result.stdout


@pytest.mark.parametrize("backend", ["sqlite", "file"])
def test_cache_show_and_clear(monkeypatch: pytest.MonkeyPatch, backend: str) -> None:
    monkeypatch.setenv("LOSTFOUND_STORE_BACKEND", backend)
    keys = CacheKeys(loaded_key="LoadedPosts", cache_key="CachedPublicPosts")
    store = open_store(load_config())
    cache: EntityCache[dict] = EntityCache(store, keys)

    async def _seed() -> None:
        await cache.save_all([{"id": "p1"}, {"id": "p2"}])
        await cache.save_loaded_ids(["p1"])

    asyncio.run(_seed())
    if hasattr(store, "close"):
        store.close()

    options = ["--cache-key", "CachedPublicPosts", "--loaded-key", "LoadedPosts"]
    shown = runner.invoke(app, ["cache", "show", *options, "--ids"])
    assert shown.exit_code == 0
    assert "(2 items)" in shown.stdout
    assert "(1 ids)" in shown.stdout
    assert "Slots disagree" in shown.stdout
    assert "- p2" in shown.stdout

    cleared = runner.invoke(app, ["cache", "clear", *options])
    assert cleared.exit_code == 0
    assert "Cleared" in cleared.stdout

    after = runner.invoke(app, ["cache", "show", *options])
    assert "(0 items)" in after.stdout
