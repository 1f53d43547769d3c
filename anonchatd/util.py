from __future__ import annotations

import os


def expand_path(p: str) -> str:
    return os.path.expanduser(os.path.expandvars(p))


def clamp_text(value, max_chars: int) -> str | None:
    """Cut a string to at most ``max_chars`` characters.

    Returns None for non-strings and for strings that end up empty.
    """
    if not isinstance(value, str):
        return None

    if max_chars > 0:
        value = value[:max_chars]

    return value or None


def fmt_conn_id(connection, *, prefix: int = 8) -> str:
    cid = getattr(connection, "id", None)
    if not isinstance(cid, str) or not cid:
        return "-"
    return cid if prefix <= 0 else cid[: min(prefix, len(cid))]


def fmt_peer(connection) -> str:
    addr = getattr(connection, "remote_address", None)
    if isinstance(addr, (tuple, list)) and len(addr) >= 2:
        return f"{addr[0]}:{addr[1]}"
    return "-"
