from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

JSONValue = Union[Dict[str, Any], List[Any], str, int, float, bool, None]
Matcher = Callable[[JSONValue], Optional[str]]


def _get(value: JSONValue, *path: Union[str, int]) -> JSONValue:
    """Walk ``path`` through nested dicts/lists, returning None on any mismatch."""
    current = value
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
            current = current[key]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(key)
    return current


def _text(value: JSONValue) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def candidate_first_part(obj: JSONValue) -> Optional[str]:
    return _text(_get(obj, "candidates", 0, "content", "parts", 0, "text"))


def outputs_content(obj: JSONValue) -> Optional[str]:
    return _text(_get(obj, "outputs", 0, "content", 0, "text"))


def top_level_text(obj: JSONValue) -> Optional[str]:
    return _text(_get(obj, "text"))


def response_text(obj: JSONValue) -> Optional[str]:
    return _text(_get(obj, "response", "text"))


def chat_completion(obj: JSONValue) -> Optional[str]:
    message = _get(obj, "choices", 0, "message", "content")
    if message is None:
        message = _get(obj, "choices", 0, "text")
    return _text(message)


def candidate_all_parts(obj: JSONValue) -> Optional[str]:
    parts = _get(obj, "candidates", 0, "content", "parts")
    if not isinstance(parts, list) or not parts:
        return None
    texts = [p.get("text") for p in parts if isinstance(p, dict)]
    return _text("\n\n".join(t for t in texts if isinstance(t, str) and t))


REPLY_MATCHERS: Sequence[Matcher] = (
    candidate_first_part,
    outputs_content,
    top_level_text,
    response_text,
    chat_completion,
    candidate_all_parts,
)


def extract_reply(obj: JSONValue) -> str:
    """
    Pull a reply string out of any provider response shape.
    First matcher to return text wins; unknown shapes come back as compact JSON,
    so this never fails on a decoded body.
    """
    for matcher in REPLY_MATCHERS:
        found = matcher(obj)
        if found is not None:
            return found
    try:
        return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError):
        return str(obj)


def try_parse_json(text: str) -> Optional[Dict[str, Any]]:
    """
    Best-effort JSON object extraction (handles code fences and extra text around JSON).
    Returns None when no object can be decoded.
    """
    if not text:
        return None
    s = text.strip()
    if s.startswith("```"):
        s = s.strip("`")
        if s.lower().startswith("json"):
            s = s[4:]
        s = s.strip()

    start = s.find("{")
    end = s.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        parsed = json.loads(s[start:end + 1])
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None
