"""Best-effort async key/value storage.

Every backend swallows its own failures: reads degrade to ``None`` and writes
report ``False``. A storage outage looks like a cache miss to callers.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sqlite3
import threading
from pathlib import Path
from typing import Protocol, runtime_checkable

from ..config import LostFoundConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> bool: ...

    async def remove(self, key: str) -> bool: ...


class MemoryKeyValueStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> bool:
        self._data[key] = value
        return True

    async def remove(self, key: str) -> bool:
        self._data.pop(key, None)
        return True

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


def connect(db_path: Path | str) -> sqlite3.Connection:
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA journal_mode = WAL")
    except sqlite3.OperationalError:
        conn.execute("PRAGMA journal_mode = DELETE")
    conn.execute("PRAGMA synchronous = NORMAL")
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS kv (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )
    conn.commit()
    return conn


class SqliteKeyValueStore:
    """Persistent device storage backed by a single SQLite table."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path).expanduser()
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = connect(self.db_path)
        return self._conn

    def _get(self, key: str) -> str | None:
        with self._lock:
            row = (
                self._connection()
                .execute("SELECT value FROM kv WHERE key = ?", (key,))
                .fetchone()
            )
        return str(row["value"]) if row else None

    def _set(self, key: str, value: str) -> None:
        with self._lock:
            conn = self._connection()
            conn.execute(
                "INSERT INTO kv(key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            conn.commit()

    def _remove(self, key: str) -> None:
        with self._lock:
            conn = self._connection()
            conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            conn.commit()

    async def get(self, key: str) -> str | None:
        try:
            return await asyncio.to_thread(self._get, key)
        except (sqlite3.Error, OSError) as exc:
            logger.warning("kv get failed for %s", key, exc_info=exc)
            return None

    async def set(self, key: str, value: str) -> bool:
        try:
            await asyncio.to_thread(self._set, key, value)
        except (sqlite3.Error, OSError) as exc:
            logger.warning("kv set failed for %s", key, exc_info=exc)
            return False
        return True

    async def remove(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self._remove, key)
        except (sqlite3.Error, OSError) as exc:
            logger.warning("kv remove failed for %s", key, exc_info=exc)
            return False
        return True

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None


class JsonFileKeyValueStore:
    """Local storage kept in one JSON object file."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = self.path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            logger.warning(
                "kv file %s is not valid utf-8; treating as empty", self.path, exc_info=exc
            )
            return {}
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.warning(
                "kv file %s is not valid json; treating as empty", self.path, exc_info=exc
            )
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp_path, self.path)

    def _get(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def _set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def _remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key not in data:
                return
            del data[key]
            self._write(data)

    async def get(self, key: str) -> str | None:
        try:
            return await asyncio.to_thread(self._get, key)
        except (OSError, ValueError) as exc:
            logger.warning("kv get failed for %s", key, exc_info=exc)
            return None

    async def set(self, key: str, value: str) -> bool:
        try:
            await asyncio.to_thread(self._set, key, value)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("kv set failed for %s", key, exc_info=exc)
            return False
        return True

    async def remove(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self._remove, key)
        except (OSError, ValueError) as exc:
            logger.warning("kv remove failed for %s", key, exc_info=exc)
            return False
        return True


def _directory_writable(path: Path) -> bool:
    directory = path.parent
    while not directory.exists():
        if directory.parent == directory:
            return False
        directory = directory.parent
    return os.access(directory, os.W_OK)


def _sqlite_available() -> bool:
    return bool(getattr(sqlite3, "sqlite_version", ""))


def resolve_backend(cfg: LostFoundConfig) -> str:
    if cfg.store_backend != "auto":
        return cfg.store_backend
    path = Path(cfg.store_path).expanduser()
    if not _directory_writable(path):
        return "memory"
    if _sqlite_available():
        return "sqlite"
    return "file"


def open_store(cfg: LostFoundConfig) -> KeyValueStore:
    backend = resolve_backend(cfg)
    path = Path(cfg.store_path).expanduser()
    if backend == "sqlite":
        return SqliteKeyValueStore(path)
    if backend == "file":
        if path.suffix != ".json":
            path = path.with_suffix(".json")
        return JsonFileKeyValueStore(path)
    return MemoryKeyValueStore()
