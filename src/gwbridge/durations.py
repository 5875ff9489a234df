"""Human-readable duration parsing.

Accepts ``<number><unit>`` where unit is one of ``ms``, ``s``, ``m``, ``h``
(case-insensitive).  A bare number uses the caller's default unit::

    parse_duration_ms("2h")                   -> 7200000
    parse_duration_ms("1.5s")                 -> 1500
    parse_duration_ms("5", default_unit="s")  -> 5000
"""

from __future__ import annotations

import math
import re
from typing import Literal

DurationUnit = Literal["ms", "s", "m", "h"]

UNIT_MS: dict[str, int] = {
    "ms": 1,
    "s": 1_000,
    "m": 60_000,
    "h": 3_600_000,
}

_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)(ms|s|m|h)?$")


class InvalidDuration(ValueError):
    """Raised when a duration string cannot be turned into milliseconds."""


def parse_duration_ms(raw: str, *, default_unit: DurationUnit = "ms") -> int:
    """Parse *raw* into a whole number of milliseconds.

    Fractional results are rounded to the nearest millisecond.
    """
    trimmed = str(raw if raw is not None else "").strip().lower()
    if not trimmed:
        raise InvalidDuration("invalid duration (empty)")

    match = _DURATION_RE.match(trimmed)
    if match is None:
        raise InvalidDuration(f"invalid duration: {raw}")

    value = float(match.group(1))
    if not math.isfinite(value) or value < 0:
        raise InvalidDuration(f"invalid duration: {raw}")

    unit = match.group(2) or default_unit
    if unit not in UNIT_MS:
        raise InvalidDuration(f"invalid duration unit: {unit}")

    scaled = value * UNIT_MS[unit]
    if not math.isfinite(scaled):
        raise InvalidDuration(f"invalid duration: {raw}")
    # Python's round() is banker's rounding; durations round half up.
    return int(math.floor(scaled + 0.5))


def format_duration(value: int | float, unit: DurationUnit = "ms") -> str:
    """Render *value* in *unit* so that ``parse_duration_ms`` reads it back."""
    if unit not in UNIT_MS:
        raise InvalidDuration(f"invalid duration unit: {unit}")
    if value < 0 or not math.isfinite(value):
        raise InvalidDuration(f"invalid duration: {value}")
    if float(value).is_integer():
        return f"{int(value)}{unit}"
    text = format(value, ".12f").rstrip("0").rstrip(".")
    return f"{text or '0'}{unit}"
