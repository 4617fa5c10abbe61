from __future__ import annotations

import json
import os
import warnings
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/lostfound/config.json").expanduser()
DEFAULT_STORE_PATH = "~/.lostfound/cache.sqlite"

STORE_BACKENDS = {"auto", "sqlite", "file", "memory"}

CONFIG_ENV_OVERRIDES = {
    "store_backend": "LOSTFOUND_STORE_BACKEND",
    "store_path": "LOSTFOUND_STORE_PATH",
    "feed_page_size": "LOSTFOUND_FEED_PAGE_SIZE",
    "audit_page_size": "LOSTFOUND_AUDIT_PAGE_SIZE",
    "export_batch_size": "LOSTFOUND_EXPORT_BATCH_SIZE",
    "export_table": "LOSTFOUND_EXPORT_TABLE",
    "export_date_field": "LOSTFOUND_EXPORT_DATE_FIELD",
    "remote_url": "LOSTFOUND_REMOTE_URL",
    "remote_api_key": "LOSTFOUND_REMOTE_API_KEY",
    "remote_timeout_s": "LOSTFOUND_REMOTE_TIMEOUT_S",
    "fingerprint_size": "LOSTFOUND_FINGERPRINT_SIZE",
    "fingerprint_bits": "LOSTFOUND_FINGERPRINT_BITS",
    "log_level": "LOSTFOUND_LOG_LEVEL",
}

_INT_KEYS = {
    "feed_page_size",
    "audit_page_size",
    "export_batch_size",
    "fingerprint_size",
    "fingerprint_bits",
}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("LOSTFOUND_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = config_path.with_suffix(config_path.suffix + ".tmp")
    tmp_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    os.replace(tmp_path, config_path)
    return config_path


def get_env_overrides() -> dict[str, str]:
    return {
        key: os.environ[env_var]
        for key, env_var in CONFIG_ENV_OVERRIDES.items()
        if env_var in os.environ
    }


@dataclass
class LostFoundConfig:
    store_backend: str = "auto"
    store_path: str = DEFAULT_STORE_PATH
    feed_page_size: int = 5
    audit_page_size: int = 20
    export_batch_size: int = 10000
    export_table: str = "post_public_view"
    export_date_field: str = "submission_date"
    remote_url: str | None = None
    remote_api_key: str | None = None
    remote_timeout_s: float = 10.0
    fingerprint_size: int = 256
    fingerprint_bits: int = 8
    log_level: str = "WARNING"

    def as_dict(self, *, redact_secrets: bool = True) -> dict[str, Any]:
        data = asdict(self)
        if redact_secrets and data.get("remote_api_key"):
            data["remote_api_key"] = "[REDACTED]"
        return data


CONFIG_KEYS = frozenset(field.name for field in fields(LostFoundConfig))


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default


def _parse_backend(value: object, default: str) -> str:
    if value is None:
        return default
    backend = str(value).strip().lower()
    if backend not in STORE_BACKENDS:
        warnings.warn(f"Invalid store_backend: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    return backend


def load_config(path: Path | None = None) -> LostFoundConfig:
    cfg = LostFoundConfig()
    config_path = get_config_path(path)
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError:
            data = {}
        if isinstance(data, dict):
            cfg = _apply_dict(cfg, data)
    cfg = _apply_env(cfg)
    return cfg


def _apply_dict(cfg: LostFoundConfig, data: dict[str, Any]) -> LostFoundConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if key == "remote_timeout_s":
            cfg.remote_timeout_s = _parse_float(value, cfg.remote_timeout_s, key=key)
            continue
        if key == "store_backend":
            cfg.store_backend = _parse_backend(value, cfg.store_backend)
            continue
        setattr(cfg, key, value)
    return cfg


def _apply_env(cfg: LostFoundConfig) -> LostFoundConfig:
    return _apply_dict(cfg, get_env_overrides())


def coerce_config_value(key: str, value: str) -> Any:
    """Convert a CLI string for ``key``; raise ``ValueError`` when it does not fit."""
    if key not in CONFIG_KEYS:
        raise ValueError(f"unknown config key: {key}")
    if key in _INT_KEYS:
        try:
            return int(value)
        except ValueError:
            raise ValueError(f"{key} must be an integer") from None
    if key == "remote_timeout_s":
        try:
            return float(value)
        except ValueError:
            raise ValueError(f"{key} must be a number") from None
    if key == "store_backend":
        backend = value.strip().lower()
        if backend not in STORE_BACKENDS:
            raise ValueError(f"store_backend must be one of {', '.join(sorted(STORE_BACKENDS))}")
        return backend
    return value
