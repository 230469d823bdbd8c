"""
Safe parsing helpers for exchange and ledger payloads.

Exchange numbers arrive as JSON numbers or decimal strings and ledger rows
carry loosely typed scalars, so every conversion here returns a fallback
instead of raising.
"""

from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

# Epoch values above this are treated as milliseconds
_EPOCH_MS_THRESHOLD = 1e11


def to_number(value: Any, default: Optional[float] = None) -> Optional[float]:
    """Convert an int/float/Decimal/numeric string to a finite float.

    Booleans, None, empty strings, NaN and infinities yield ``default``.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, Decimal):
        try:
            number = float(value)
        except (InvalidOperation, ValueError):
            return default
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return default
        try:
            number = float(text)
        except ValueError:
            return default
    else:
        return default
    if not math.isfinite(number):
        return default
    return number


def to_float(value: Any, default: float = 0.0) -> float:
    """Like :func:`to_number` but never returns None."""
    number = to_number(value)
    return default if number is None else number


def to_int(value: Any, default: int = 0) -> int:
    number = to_number(value)
    if number is None:
        return default
    return int(number)


def parse_json_object(value: Any) -> Dict[str, Any]:
    """Decode a metadata field that may be a dict or a JSON-serialized dict.

    Anything that does not decode to a JSON object yields an empty dict.
    """
    if isinstance(value, dict):
        return value
    if isinstance(value, (str, bytes, bytearray)):
        try:
            decoded = json.loads(value)
        except (ValueError, TypeError):
            return {}
        return decoded if isinstance(decoded, dict) else {}
    return {}


def parse_timestamp_ms(value: Any) -> Optional[float]:
    """Parse an ISO-8601 string, datetime or epoch (s or ms) into epoch milliseconds.

    Returns None when the value cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return dt.timestamp() * 1000.0

    number = to_number(value)
    if number is not None:
        return number if abs(number) >= _EPOCH_MS_THRESHOLD else number * 1000.0

    if isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.timestamp() * 1000.0

    return None


def now_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return datetime.now(timezone.utc).timestamp() * 1000.0
