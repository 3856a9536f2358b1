"""
Trade Reconstruction - Safe Numeric Parsing.

============================================================
PURPOSE
============================================================
Safe string -> number conversion for exchange payloads.

Exchange REST APIs return numbers as strings, and history
windows routinely contain empty or malformed fields. These
helpers never raise: any parse failure returns the caller's
fallback so a single bad record degrades to a zeroed field
instead of aborting the batch.

PARSING RULES:
- A leading numeric prefix is honoured ("12abc" -> 12)
- None, empty and non-numeric input -> fallback
- NaN and infinities -> fallback (result is always finite)

============================================================
"""

import math
import re
from decimal import Decimal
from typing import Any


_INT_PREFIX = re.compile(r"^\s*([+-]?\d+)")
_FLOAT_PREFIX = re.compile(r"^\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_int(value: Any, fallback: int = 0) -> int:
    """
    Parse an integer, returning fallback on failure.

    Floats and float strings are truncated toward zero.

    Args:
        value: String, number or None
        fallback: Value returned when parsing fails

    Returns:
        Parsed integer or fallback
    """
    if value is None or isinstance(value, bool):
        return fallback

    if isinstance(value, int):
        return value

    if isinstance(value, Decimal):
        return int(value) if value.is_finite() else fallback

    if isinstance(value, float):
        if not math.isfinite(value):
            return fallback
        return int(value)

    match = _INT_PREFIX.match(str(value))
    if not match:
        return fallback
    return int(match.group(1))


def parse_float(value: Any, fallback: float = 0.0) -> float:
    """
    Parse a float, returning fallback on failure.

    Args:
        value: String, number or None
        fallback: Value returned when parsing fails

    Returns:
        Parsed finite float or fallback
    """
    if value is None or isinstance(value, bool):
        return fallback

    if isinstance(value, Decimal):
        if not value.is_finite():
            return fallback
        parsed = float(value)
    elif isinstance(value, (int, float)):
        try:
            parsed = float(value)
        except OverflowError:
            return fallback
    else:
        match = _FLOAT_PREFIX.match(str(value))
        if not match:
            return fallback
        try:
            parsed = float(match.group(1))
        except (OverflowError, ValueError):
            return fallback

    if not math.isfinite(parsed):
        return fallback
    return parsed
