from __future__ import annotations

import json


def encode(obj) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))


def decode(s: str | bytes) -> dict:
    obj = json.loads(s)
    if not isinstance(obj, dict):
        raise ValueError("payload must be a JSON object")
    return obj
