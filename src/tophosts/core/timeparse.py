from __future__ import annotations
import calendar
import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .models import TimeWindow

_TOKEN_RE = re.compile(r"(?P<sign>[+-])(?P<amount>\d+)(?P<unit>[smhdwMy]?)|/(?P<round>[smhdwMy])")
_ABSOLUTE_RE = re.compile(
    r"(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"
    r"(?:\s+(?P<hour>\d{1,2})(?::(?P<minute>\d{2})(?::(?P<second>\d{2}))?)?)?"
)

_FIXED_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}


class TimeParseError(ValueError):
    """Raised when a time range expression cannot be parsed."""


def _zone(tz: Optional[str], now: int) -> tzinfo:
    if tz in ("UTC", "utc"):
        return timezone.utc
    if tz:
        try:
            return ZoneInfo(tz)
        except (ZoneInfoNotFoundError, ValueError) as err:
            raise TimeParseError(f"Unknown timezone: {tz!r}") from err
    local = datetime.fromtimestamp(now).astimezone().tzinfo
    assert local is not None
    return local


def _add_months(moment: datetime, months: int) -> datetime:
    index = moment.month - 1 + months
    year = moment.year + index // 12
    month = index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _period_start(moment: datetime, unit: str) -> datetime:
    moment = moment.replace(microsecond=0)
    if unit == "s":
        return moment
    moment = moment.replace(second=0)
    if unit == "m":
        return moment
    moment = moment.replace(minute=0)
    if unit == "h":
        return moment
    moment = moment.replace(hour=0)
    if unit == "d":
        return moment
    if unit == "w":
        return moment - timedelta(days=moment.weekday())
    moment = moment.replace(day=1)
    if unit == "M":
        return moment
    return moment.replace(month=1)


def _round(moment: datetime, unit: str, is_start: bool) -> datetime:
    start = _period_start(moment, unit)
    if is_start:
        return start
    if unit in _FIXED_UNITS:
        following = start + _FIXED_UNITS[unit]
    elif unit == "M":
        following = _add_months(start, 1)
    else:
        following = _add_months(start, 12)
    return following - timedelta(seconds=1)


def _parse_relative(expression: str, base: datetime, is_start: bool) -> datetime:
    position = 3
    moment = base
    while position < len(expression):
        match = _TOKEN_RE.match(expression, position)
        if not match:
            raise TimeParseError(f"Invalid time expression: {expression!r}")
        if match.group("round"):
            moment = _round(moment, match.group("round"), is_start)
        else:
            amount = int(match.group("amount"))
            if match.group("sign") == "-":
                amount = -amount
            unit = match.group("unit") or "s"
            if unit in _FIXED_UNITS:
                moment = moment + _FIXED_UNITS[unit] * amount
            elif unit == "M":
                moment = _add_months(moment, amount)
            else:
                moment = _add_months(moment, amount * 12)
        position = match.end()
    return moment


def _parse_absolute(expression: str, zone: tzinfo, is_start: bool) -> datetime:
    match = _ABSOLUTE_RE.fullmatch(expression)
    if not match:
        raise TimeParseError(f"Invalid time expression: {expression!r}")

    def part(name: str, low: int, high: int) -> int:
        raw = match.group(name)
        if raw is None:
            return low if is_start else high
        return int(raw)

    try:
        return datetime(
            int(match.group("year")),
            int(match.group("month")),
            int(match.group("day")),
            part("hour", 0, 23),
            part("minute", 0, 59),
            part("second", 0, 59),
            tzinfo=zone,
        )
    except ValueError as err:
        raise TimeParseError(f"Invalid time expression: {expression!r}") from err


def parse_time(expression: str, *, is_start: bool, now: int, tz: Optional[str] = None) -> int:
    """Resolve a time range expression to a timestamp.

    Relative expressions start with ``now`` followed by offsets such as
    ``-1h`` or ``+2d`` and rounding tokens such as ``/d``. A rounding token
    moves a start anchor to the beginning of the period and an end anchor to
    its last second. Absolute expressions use ``YYYY-MM-DD[ HH[:MM[:SS]]]``.

    Args:
        expression: Expression to resolve
        is_start: Whether the expression is the start of a range
        now: Timestamp ``now`` refers to
        tz: Timezone name; the local zone when omitted

    Returns:
        Timestamp in seconds

    Raises:
        TimeParseError: If the expression is malformed
    """
    text = (expression or "").strip()
    zone = _zone(tz, now)
    if text.startswith("now"):
        moment = _parse_relative(text, datetime.fromtimestamp(now, tz=zone), is_start)
    else:
        moment = _parse_absolute(text, zone, is_start)
    return int(moment.timestamp())


def resolve_window(time_from: str, time_to: str, *, now: int, tz: Optional[str] = None) -> TimeWindow:
    return TimeWindow(
        time_from=parse_time(time_from, is_start=True, now=now, tz=tz),
        time_to=parse_time(time_to, is_start=False, now=now, tz=tz),
    )
