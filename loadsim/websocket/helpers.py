"""
Helper utilities for WebSocket handlers.
"""

import json
from typing import Any


def _parse_variant_dict(value: Any) -> dict[str, Any] | None:
    """Parse a client message (JSON string or dict) to a dictionary."""
    if isinstance(value, dict):
        return value
    if isinstance(value, (str, bytes)):
        try:
            parsed = json.loads(value)
        except Exception:
            return None
        if isinstance(parsed, dict):
            return parsed
    return None


def _clean_str(value: Any) -> str | None:
    """Strip a string field; empty or non-string values become None."""
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None
