from __future__ import annotations

import argparse
import os
import sys
from dataclasses import replace
from pathlib import Path

from .config import HubRuntimeConfig, apply_config_data, load_toml, validate_config
from .logging_config import configure_logging
from .paths import default_config_path, ensure_private_dir
from .service import HubService
from .util import expand_path

DEFAULT_CONFIG = """# anonchatd configuration (TOML)
#
# This file was created on first run.
# Edit it, then start anonchatd again.

[hub]

# Listen address and port for the WebSocket endpoint.
host = "127.0.0.1"
port = 8080

# The single path that accepts the WebSocket upgrade. Plain HTTP requests to it
# get "426 Upgrade Required"; every other path gets "404 Not Found".
endpoint_path = "/api/socket"

# Number of recent messages kept in memory and replayed to new clients.
history_limit = 200

# Message normalization. Longer values are cut, never rejected.
# 0 disables the cut for that field.
text_max_chars = 480
alias_max_chars = 48
color_max_chars = 64
default_alias = "Anonymous"
default_color = "bg-slate-100 text-slate-900"

# Transport limits.
#
# max_frame_bytes: largest inbound WebSocket frame accepted.
# send_queue_size: outbound frames buffered per client. A client that falls
# this far behind is disconnected instead of slowing everyone else down.
max_frame_bytes = 65536
send_queue_size = 256

# WebSocket keepalive (0 disables).
ping_interval_s = 20.0
ping_timeout_s = 20.0

[logging]

# Log level for anonchatd itself.
level = "INFO"

# Log level for the websockets library.
websockets_level = "WARNING"

# Log to stderr (systemd/journald friendly).
console = true

# Optional file path for logs (leave empty to disable).
file = ""

# Log format and optional date format.
format = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
datefmt = ""
"""


def _ensure_first_run_files(config_path: str) -> bool:
    if os.path.exists(config_path):
        return False

    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(DEFAULT_CONFIG)
    try:
        os.chmod(config_path, 0o600)
    except OSError:
        pass
    return True


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="anonchatd", description="Run an ephemeral broadcast chat hub"
    )

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )

    p.add_argument("--host", default=None, help="Listen address")
    p.add_argument("--port", type=int, default=None, help="Listen port")
    p.add_argument(
        "--endpoint",
        default=None,
        help="WebSocket endpoint path (default: /api/socket)",
    )

    p.add_argument(
        "--history-limit",
        type=int,
        default=None,
        help="Number of recent messages replayed to new clients",
    )

    p.add_argument(
        "--ping-interval",
        type=float,
        default=None,
        help="WebSocket keepalive interval seconds (0 disables)",
    )
    p.add_argument(
        "--ping-timeout",
        type=float,
        default=None,
        help="Close the connection if a keepalive pong is late by this many seconds (0 disables)",
    )

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )

    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def build_config(args: argparse.Namespace) -> HubRuntimeConfig:
    config_path = expand_path(str(args.config))

    cfg = HubRuntimeConfig(config_path=config_path)
    if config_path and os.path.exists(config_path):
        cfg = apply_config_data(cfg, load_toml(config_path))

    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.endpoint is not None:
        cfg = replace(cfg, endpoint_path=str(args.endpoint))

    if args.history_limit is not None:
        cfg = replace(cfg, history_limit=int(args.history_limit))

    if args.ping_interval is not None:
        cfg = replace(cfg, ping_interval_s=float(args.ping_interval))
    if args.ping_timeout is not None:
        cfg = replace(cfg, ping_timeout_s=float(args.ping_timeout))

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) or None)

    validate_config(cfg)
    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = expand_path(str(args.config))
    if _ensure_first_run_files(config_path):
        print(
            "Created default anonchatd config. Edit it before starting:\n"
            f"- Config: {config_path}\n"
            "\nThen re-run anonchatd.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    try:
        cfg = build_config(args)
    except (OSError, ValueError) as e:
        # tomllib.TOMLDecodeError is a ValueError.
        print(f"anonchatd: invalid configuration in {config_path}: {e}", file=sys.stderr)
        raise SystemExit(2) from e

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    svc = HubService(cfg)
    svc.start()
    svc.run_forever()


if __name__ == "__main__":
    main()
