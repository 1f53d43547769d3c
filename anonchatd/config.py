from __future__ import annotations

import tomllib
from dataclasses import asdict, dataclass, replace

from .constants import (
    ALIAS_MAX_CHARS,
    COLOR_MAX_CHARS,
    DEFAULT_ALIAS,
    DEFAULT_COLOR,
    DEFAULT_ENDPOINT_PATH,
    HISTORY_LIMIT,
    TEXT_MAX_CHARS,
)


@dataclass(frozen=True)
class HubRuntimeConfig:
    config_path: str | None = None
    host: str = "127.0.0.1"
    port: int = 8080
    endpoint_path: str = DEFAULT_ENDPOINT_PATH
    history_limit: int = HISTORY_LIMIT
    text_max_chars: int = TEXT_MAX_CHARS
    alias_max_chars: int = ALIAS_MAX_CHARS
    color_max_chars: int = COLOR_MAX_CHARS
    default_alias: str = DEFAULT_ALIAS
    default_color: str = DEFAULT_COLOR
    max_frame_bytes: int = 64 * 1024  # 64 KiB default
    send_queue_size: int = 256
    ping_interval_s: float = 20.0
    ping_timeout_s: float = 20.0
    log_level: str = "INFO"
    log_websockets_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


_LOGGING_KEYS = {
    "level": "log_level",
    "websockets_level": "log_websockets_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
}


def load_toml(path: str) -> dict:
    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: HubRuntimeConfig, data: dict) -> HubRuntimeConfig:
    hub = data.get("hub") if isinstance(data, dict) else None
    if isinstance(hub, dict):
        data = {**data, **hub}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped = {dst: log_table[src] for src, dst in _LOGGING_KEYS.items() if src in log_table}
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the config came from; do not let the file override it.
    allowed.discard("config_path")
    updates = {k: v for k, v in data.items() if k in allowed}

    for key in ("log_file", "log_datefmt"):
        if key in updates and updates[key] == "":
            updates[key] = None

    cfg = replace(base, **updates) if updates else base
    validate_config(cfg)
    return cfg


def validate_config(cfg: HubRuntimeConfig) -> None:
    if not isinstance(cfg.port, int) or not 0 <= cfg.port <= 65535:
        raise ValueError(f"port must be an integer in 0..65535, got {cfg.port!r}")

    if not isinstance(cfg.endpoint_path, str) or not cfg.endpoint_path.startswith("/"):
        raise ValueError(f"endpoint_path must start with '/', got {cfg.endpoint_path!r}")

    for name in ("history_limit", "send_queue_size", "max_frame_bytes"):
        v = getattr(cfg, name)
        if not isinstance(v, int) or v < 1:
            raise ValueError(f"{name} must be a positive integer, got {v!r}")

    # 0 disables clamping for these.
    for name in ("text_max_chars", "alias_max_chars", "color_max_chars"):
        v = getattr(cfg, name)
        if not isinstance(v, int) or v < 0:
            raise ValueError(f"{name} must be a non-negative integer, got {v!r}")

    for name in ("ping_interval_s", "ping_timeout_s"):
        v = getattr(cfg, name)
        if not isinstance(v, (int, float)) or v < 0:
            raise ValueError(f"{name} must be a non-negative number, got {v!r}")
