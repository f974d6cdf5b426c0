"""Tolerant decoders for loosely-typed JSON columns.

Every nested field coming back from the store is treated as optional: wrong
types decode to empty values instead of raising.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional


def as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip().startswith("{"):
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, str) and value.strip().startswith("["):
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            return []
        return decoded if isinstance(decoded, list) else []
    return []


def as_text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def as_str_list(value: Any) -> List[str]:
    """Strings of a JSON array; objects are rendered as compact JSON."""
    items: List[str] = []
    for item in as_list(value):
        if isinstance(item, str):
            if item.strip():
                items.append(item.strip())
        elif isinstance(item, (dict, list)):
            items.append(json.dumps(item, ensure_ascii=False, sort_keys=True))
        elif isinstance(item, (int, float)) and not isinstance(item, bool):
            items.append(str(item))
    return items


def unique(values: List[str]) -> List[str]:
    """Drop repeats (case-insensitive), keeping first-seen order."""
    seen = set()
    result: List[str] = []
    for value in values:
        key = value.strip().lower()
        if key and key not in seen:
            seen.add(key)
            result.append(value.strip())
    return result


def format_date(value: Any) -> Optional[str]:
    """ISO timestamp -> YYYY-MM-DD; anything unparseable -> None."""
    text = as_text(value)
    if not text:
        return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        return None


def format_duration(minutes: Any) -> Optional[str]:
    """45 -> "45 minutes", 90 -> "1h 30m"; None when there is no duration."""
    value = as_float(minutes)
    if not value:
        return None
    hours = int(value // 60)
    mins = round(value % 60)
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins} minutes"


def format_score(score: float) -> str:
    """72 -> "72/100", 71.5 -> "71.5/100"."""
    if float(score).is_integer():
        return f"{int(score)}/100"
    return f"{score:.1f}/100"


def parse_id(value: Any) -> Any:
    """Integer-looking ids become ints; anything else is returned as-is."""
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return value
