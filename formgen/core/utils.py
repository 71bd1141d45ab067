"""
Shared utility functions for the formgen library.
"""

import re
from collections.abc import Mapping
from datetime import date, datetime, timedelta
from typing import Any

from dateutil import parser as dateutil_parser

# PHP-style date tokens accepted in format options ("Y-m-d", "d/m/Y H:i").
_PHP_DATE_TOKENS = {
    "d": "%d",
    "j": "%-d",
    "D": "%a",
    "l": "%A",
    "m": "%m",
    "n": "%-m",
    "M": "%b",
    "F": "%B",
    "y": "%y",
    "Y": "%Y",
    "H": "%H",
    "G": "%-H",
    "h": "%I",
    "g": "%-I",
    "i": "%M",
    "s": "%S",
    "A": "%p",
    "a": "%p",
    "u": "%f",
    "e": "%Z",
    "T": "%Z",
    "O": "%z",
    "P": "%z",
}

_RELATIVE_DAYS = {
    "today": 0,
    "tomorrow": 1,
    "yesterday": -1,
}

_NUMERIC_RE = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")


def to_strftime(fmt: str) -> str:
    """Convert a PHP-style date format into a strftime format.

    Formats that already contain a ``%`` directive are returned unchanged.
    A backslash escapes the following character.
    """
    if "%" in fmt:
        return fmt

    out = []
    escaped = False
    for char in fmt:
        if escaped:
            out.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        else:
            out.append(_PHP_DATE_TOKENS.get(char, char))
    return "".join(out)


def parse_date(value: Any) -> date | None:
    """Parse a value into a date object.

    Supports date/datetime instances, ISO 8601 strings and the relative
    keywords ``today``, ``tomorrow``, ``yesterday`` and ``now``.
    Returns None if the value cannot be parsed.

    Args:
        value: The value to parse.

    Returns:
        A date object, or None if parsing fails.
    """
    parsed = parse_datetime(value)
    return parsed.date() if parsed is not None else None


def parse_datetime(value: Any) -> datetime | None:
    """Parse a value into a datetime, or None if it cannot be parsed."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not value or not isinstance(value, str):
        return None

    keyword = value.strip().lower()
    if keyword == "now":
        return datetime.now()
    if keyword in _RELATIVE_DAYS:
        today = datetime.combine(date.today(), datetime.min.time())
        return today + timedelta(days=_RELATIVE_DAYS[keyword])

    try:
        return dateutil_parser.parse(value)
    except (ValueError, TypeError, OverflowError):
        return None


def is_numeric(value: Any) -> bool:
    """True for ints, floats and numeric strings; False for bools."""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and bool(_NUMERIC_RE.match(value))


def is_empty_value(value: Any) -> bool:
    """True for None, blank strings and empty collections."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, Mapping)):
        return len(value) == 0
    return False


def humanize(name: str) -> str:
    """Turn a field name such as ``first_name`` into ``first name``."""
    return name.replace("_", " ").replace(".", " ").strip()


def interpolate(template: str, parameters: Mapping[str, Any] | None) -> str:
    """Replace ``{{ key }}`` and ``%key%`` placeholders with parameter values."""
    if not parameters:
        return template

    def _sub(match: re.Match) -> str:
        key = match.group(1) or match.group(2)
        if key in parameters:
            return _stringify(parameters[key])
        return match.group(0)

    return re.sub(r"\{\{\s*([\w.]+)\s*\}\}|%([\w.]+)%", _sub, template)


def _stringify(value: Any) -> str:
    if isinstance(value, (list, tuple, set)):
        return ", ".join(str(v) for v in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
