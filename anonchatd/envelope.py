from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from .constants import (
    ALIAS_MAX_CHARS,
    COLOR_MAX_CHARS,
    DEFAULT_ALIAS,
    DEFAULT_COLOR,
    K_ALIAS,
    K_COLOR,
    K_COUNT,
    K_MESSAGE,
    K_MESSAGES,
    K_TEXT,
    K_TYPE,
    M_ALIAS,
    M_COLOR,
    M_ID,
    M_SENT_AT,
    M_TEXT,
    T_HISTORY,
    T_MESSAGE,
    T_PRESENCE,
    TEXT_MAX_CHARS,
)
from .util import clamp_text


def now_iso() -> str:
    ts = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    return ts.replace("+00:00", "Z")


def msg_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ChatMessage:
    id: str
    text: str
    alias: str
    color: str
    sent_at: str

    def to_wire(self) -> dict:
        return {
            M_ID: self.id,
            M_TEXT: self.text,
            M_ALIAS: self.alias,
            M_COLOR: self.color,
            M_SENT_AT: self.sent_at,
        }


def make_history(messages: Iterable[ChatMessage]) -> dict:
    return {K_TYPE: T_HISTORY, K_MESSAGES: [m.to_wire() for m in messages]}


def make_message(message: ChatMessage) -> dict:
    return {K_TYPE: T_MESSAGE, K_MESSAGE: message.to_wire()}


def make_presence(count: int) -> dict:
    return {K_TYPE: T_PRESENCE, K_COUNT: int(count)}


def validate_client_message(env: dict) -> None:
    if not isinstance(env, dict):
        raise TypeError("payload must be a JSON object")

    t = env.get(K_TYPE)
    if t != T_MESSAGE:
        raise ValueError(f"unsupported message type {t!r}")

    text = env.get(K_TEXT)
    if text is None:
        raise ValueError("missing text")
    if not isinstance(text, str):
        raise TypeError("text must be a string")
    if not text.strip():
        raise ValueError("text must not be empty")

    # alias and color are optional; wrong types fall back to defaults.


def build_chat_message(
    env: dict,
    *,
    text_max_chars: int = TEXT_MAX_CHARS,
    alias_max_chars: int = ALIAS_MAX_CHARS,
    color_max_chars: int = COLOR_MAX_CHARS,
    default_alias: str = DEFAULT_ALIAS,
    default_color: str = DEFAULT_COLOR,
    mid: str | None = None,
    sent_at: str | None = None,
) -> ChatMessage:
    """Build a ChatMessage from a validated inbound envelope.

    Call validate_client_message() first; this only normalizes.
    """
    text = str(env[K_TEXT]).strip()
    if text_max_chars > 0:
        text = text[:text_max_chars]

    return ChatMessage(
        id=mid or msg_id(),
        text=text,
        alias=clamp_text(env.get(K_ALIAS), alias_max_chars) or default_alias,
        color=clamp_text(env.get(K_COLOR), color_max_chars) or default_color,
        sent_at=sent_at or now_iso(),
    )
