"""JSON helpers for TEXT columns that hold serialized values."""

import json
from typing import Any


def parse_json_or_none(raw: str | dict | list | None) -> dict | list | None:
    """Parse a JSON string or return structured value as-is, None on failure.

    Accepts dicts and lists as-is without re-parsing.
    Returns None for: None, empty string, invalid JSON.
    """
    if raw is None:
        return None
    if isinstance(raw, (dict, list)):
        return raw
    if isinstance(raw, str):
        if not raw:
            return None
        try:
            return json.loads(raw)
        except (ValueError, TypeError):
            return None
    return None


def parse_json_list(raw: str | list | None) -> list[Any]:
    """Parse a JSON array column. Anything that is not a list becomes []."""
    parsed = parse_json_or_none(raw)
    return parsed if isinstance(parsed, list) else []


def compact_dumps(value: Any) -> str:
    """Serialize without whitespace, for fragments embedded in larger payloads."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
