"""
Shared value-coercion helpers for the FormPlan engine.
"""

import json
import math
from datetime import date, datetime
from typing import Any

from dateutil import parser as dateutil_parser


def parse_date(value: str) -> date | None:
    """Parse a date string into a date object.

    Supports ISO 8601 formats (YYYY-MM-DD) and datetime strings.
    Returns None if the value cannot be parsed.
    """
    if not value or not isinstance(value, str):
        return None

    try:
        parsed = dateutil_parser.parse(value)
        if isinstance(parsed, datetime):
            return parsed.date()
        return parsed
    except (ValueError, TypeError, OverflowError):
        return None


def to_number(value: Any) -> float | None:
    """Coerce a value to a finite float.

    Numbers and numeric strings convert; booleans, blanks, NaN and
    infinities do not. Returns None when no finite number results.
    """
    if isinstance(value, bool) or value is None:
        return None

    try:
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            number = float(value.strip())
        else:
            return None
    except (ValueError, OverflowError):
        # Integers too large for a float are treated as non-numeric
        return None

    return number if math.isfinite(number) else None


def scalar_text(value: Any) -> str:
    """Canonical text form of a scalar for equality tests.

    Booleans render as ``true``/``false`` and integral floats drop
    their fractional part, so ``3``, ``3.0`` and ``"3"`` compare equal.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_json_list(value: str) -> list | None:
    """Decode a JSON-array string, or return None if it is not one."""
    text = value.strip()
    if not (text.startswith("[") and text.endswith("]")):
        return None
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        return None
    return decoded if isinstance(decoded, list) else None
