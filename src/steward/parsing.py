from __future__ import annotations

import json
import re
from typing import Any

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def extract_json_object(text: str) -> tuple[dict[str, Any] | None, str | None]:
    """Pull one JSON object out of a model reply.

    Handles bare JSON, fenced ```json blocks, and JSON wrapped in prose.
    """
    raw = text.strip()
    if not raw:
        return None, "empty response"
    fenced = _FENCE.search(raw)
    if fenced:
        raw = fenced.group(1).strip()
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end < start:
        return None, "no json object found"
    try:
        payload = json.loads(raw[start : end + 1])
    except json.JSONDecodeError as exc:
        return None, f"invalid json: {exc}"
    if not isinstance(payload, dict):
        return None, "payload must be object"
    return payload, None
