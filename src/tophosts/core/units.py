from __future__ import annotations
import re
from typing import Any, Optional

_TIME_MULTIPLIERS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 604800,
}

_SIZE_EXPONENTS = {"K": 1, "M": 2, "G": 3, "T": 4}

_NUMBER_RE = re.compile(
    r"(?P<number>-?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?)(?P<suffix>[KMGTsmhdw])?"
)

_BINARY_UNITS = {"B", "Bps"}

# Units rendered without prefix scaling
_UNSCALED_UNITS = {"%", "ms", "rpm", "RPM", "s", "unixtime", "uptime"}

_PREFIXES = ("", "K", "M", "G", "T", "P")


def time_unit_to_seconds(value: Any) -> Optional[int]:
    """Convert a Zabbix duration to seconds.

    Accepts plain integers and values with an s/m/h/d/w suffix.

    Args:
        value: Duration such as ``90``, ``"1h"`` or ``"31d"``

    Returns:
        Number of seconds or None if the value is not a valid duration
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    text = str(value).strip()
    match = re.fullmatch(r"(\d+)([smhdw])?", text)
    if not match:
        return None
    return int(match.group(1)) * _TIME_MULTIPLIERS[match.group(2) or "s"]


def parse_number(text: Any, *, binary: bool = False) -> Optional[float]:
    """Parse a number that may carry a size or time suffix.

    Size suffixes (K, M, G, T) scale by powers of 1000, or by powers of
    1024 when ``binary`` is set. Time suffixes (s, m, h, d, w) scale to
    seconds.

    Args:
        text: Number such as ``"10"``, ``"1.5K"``, ``"2E3"`` or ``"5m"``
        binary: Use binary multipliers for size suffixes

    Returns:
        The numeric value or None if the text is not a number
    """
    if text is None:
        return None
    if isinstance(text, (int, float)) and not isinstance(text, bool):
        return float(text)
    match = _NUMBER_RE.fullmatch(str(text).strip())
    if not match:
        return None
    number = float(match.group("number"))
    suffix = match.group("suffix")
    if suffix is None:
        return number
    if suffix in _SIZE_EXPONENTS:
        base = 1024 if binary else 1000
        return number * base ** _SIZE_EXPONENTS[suffix]
    return number * _TIME_MULTIPLIERS[suffix]


def is_binary_units(units: str | None) -> bool:
    """Whether values with these units scale by 1024."""
    return (units or "") in _BINARY_UNITS


def convert_units(value: Any, units: str = "", decimals: int = 2, binary: bool | None = None) -> str:
    """Format a numeric value with its units for display.

    Values with units are scaled with K/M/G/T/P prefixes, by 1024 for binary
    units and by 1000 otherwise. Non-numeric values are returned as text.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return str(value)

    units = units or ""
    if binary is None:
        binary = is_binary_units(units)

    if not units or units in _UNSCALED_UNITS:
        text = _format_number(number, decimals)
        return f"{text} {units}" if units else text

    base = 1024 if binary else 1000
    step = 0
    scaled = number
    while abs(scaled) >= base and step < len(_PREFIXES) - 1:
        scaled /= base
        step += 1
    return f"{_format_number(scaled, decimals)} {_PREFIXES[step]}{units}"


def _format_number(number: float, decimals: int) -> str:
    if number.is_integer():
        return str(int(number))
    formatted = f"{number:.{max(decimals, 0)}f}"
    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")
    return formatted or "0"
