"""Parse the right-hand side of ``set path=value`` into a Python value."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

import json5

_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")


@dataclass(frozen=True)
class ParsedValue:
    value: Any = None
    error: str | None = None


def parse_config_value(raw: str) -> ParsedValue:
    """Interpret *raw* as a JSON-like literal.

    Objects and arrays are read as JSON5, so chat users may write
    ``{enabled: true}`` or leave a trailing comma.  ``true``/``false``/``null``
    and decimal numbers map to their Python equivalents.  Quoted strings
    are unquoted.  Anything else is kept as the trimmed string.
    """
    trimmed = raw.strip()
    if not trimmed:
        return ParsedValue(error="Missing value.")

    if trimmed.startswith(("{", "[")):
        try:
            return ParsedValue(value=json5.loads(trimmed))
        except ValueError as exc:
            return ParsedValue(error=f"Invalid JSON: {exc}")

    if trimmed == "true":
        return ParsedValue(value=True)
    if trimmed == "false":
        return ParsedValue(value=False)
    if trimmed == "null":
        return ParsedValue(value=None)

    if _NUMBER_RE.match(trimmed):
        if "." in trimmed:
            number = float(trimmed)
            if math.isfinite(number):
                return ParsedValue(value=number)
        else:
            return ParsedValue(value=int(trimmed))

    if len(trimmed) >= 2 and (
        (trimmed.startswith('"') and trimmed.endswith('"'))
        or (trimmed.startswith("'") and trimmed.endswith("'"))
    ):
        try:
            decoded = json5.loads(trimmed)
        except ValueError:
            return ParsedValue(value=trimmed[1:-1])
        return ParsedValue(value=decoded if isinstance(decoded, str) else trimmed[1:-1])

    return ParsedValue(value=trimmed)
