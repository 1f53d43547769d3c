from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config import HubRuntimeConfig

_FALLBACK_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def parse_level(value: Any, default: int) -> int:
    """Map a level name or number to a logging level, falling back to ``default``."""
    if value is None:
        return default
    if isinstance(value, int):
        return value

    text = str(value).strip().upper()
    if not text:
        return default
    if text == "WARN":
        text = "WARNING"

    level = logging.getLevelNamesMapping().get(text)
    if level is not None:
        return level

    try:
        return int(text)
    except ValueError:
        return default


def _file_handler(path_text: str) -> logging.Handler:
    p = Path(os.path.expanduser(path_text))
    p.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(p, encoding="utf-8")
    try:
        os.chmod(p, 0o600)
    except OSError:
        pass
    return handler


def configure_logging(
    cfg: HubRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> None:
    """Configure Python logging for anonchatd.

    Safe to call more than once; each call replaces the root handlers.
    An empty ``override_file`` disables file logging.
    """

    level = parse_level(override_level or cfg.log_level, logging.INFO)
    ws_level = parse_level(cfg.log_websockets_level, logging.WARNING)

    log_file = cfg.log_file if override_file is None else override_file
    log_file = log_file.strip() if isinstance(log_file, str) else None

    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())
    if log_file:
        handlers.append(_file_handler(log_file))

    fmt = str(cfg.log_format or "").strip() or _FALLBACK_FORMAT
    datefmt = str(cfg.log_datefmt).strip() if cfg.log_datefmt else None
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt or None)

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
        h.close()

    for h in handlers:
        h.setFormatter(formatter)
        root.addHandler(h)

    root.setLevel(level)

    # The websockets library logs every handshake and keepalive at INFO/DEBUG.
    logging.getLogger("websockets").setLevel(ws_level)

    logging.captureWarnings(True)
