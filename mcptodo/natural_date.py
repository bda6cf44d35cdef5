"""Parsing of loose date phrases and rendering of relative times."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo

_WEEKDAYS = {
    "monday": 0,
    "lunes": 0,
    "tuesday": 1,
    "martes": 1,
    "wednesday": 2,
    "miercoles": 2,
    "miércoles": 2,
    "thursday": 3,
    "jueves": 3,
    "friday": 4,
    "viernes": 4,
    "saturday": 5,
    "sabado": 5,
    "sábado": 5,
    "sunday": 6,
    "domingo": 6,
}

_FORWARD_UNITS = (
    (" days", "days"),
    (" day", "days"),
    (" weeks", "weeks"),
    (" week", "weeks"),
    (" months", "months"),
    (" month", "months"),
)
_BACKWARD_UNITS = ((" days", "days"), (" day", "days"))

_INTEGER = re.compile(r"[+-]?[0-9]+")
_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%m/%d/%Y", "%Y/%m/%d")
_RFC3339 = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})[Tt ]([0-9]{2}):([0-9]{2}):([0-9]{2})"
    r"(?:\.([0-9]+))?([Zz]|[+-][0-9]{2}:[0-9]{2})"
)
_DAY_MICROSECONDS = 86_400_000_000


def _trunc_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b > 0) else -quotient


def _trunc_rem(a: int, b: int) -> int:
    return a - b * _trunc_div(a, b)


@dataclass(frozen=True)
class _Clock:
    now: datetime
    zone: tzinfo | None

    @property
    def today(self) -> date:
        return self.now.date()

    def at(self, day: date, hour: int) -> datetime:
        moment = datetime.combine(day, time(hour))
        if self.zone is None:
            return moment.astimezone()
        return moment.replace(tzinfo=self.zone)


def parse_natural_date(text: str, now: datetime | None = None) -> datetime | None:
    """Turn a phrase such as 'tomorrow', 'next friday' or '2024-03-05' into a UTC time.

    ``now`` fixes the current moment and its zone; by default the local clock is used.
    Returns None when the phrase is not understood.
    """
    text = text.strip().lower()
    if now is None:
        clock = _Clock(datetime.now().astimezone(), None)
    else:
        if now.tzinfo is None:
            now = now.astimezone()
        clock = _Clock(now, now.tzinfo)

    for parser in (_parse_relative, _parse_day_name):
        try:
            result = parser(text, clock)
        except (OverflowError, ValueError):
            result = None
        if result is not None:
            return result.astimezone(timezone.utc)

    return _parse_date_string(text)


def _parse_relative(text: str, clock: _Clock) -> datetime | None:
    today = clock.today
    if text == "today":
        return clock.now
    simple = {"tomorrow": 1, "yesterday": -1, "next week": 7}
    if text in simple:
        return clock.at(today + timedelta(days=simple[text]), 9)
    if text == "next month":
        if today.month == 12:
            return clock.at(date(today.year + 1, 1, 1), 9)
        return clock.at(date(today.year, today.month + 1, 1), 9)
    if text == "end of week":
        return clock.at(today + timedelta(days=7 - today.weekday()), 18)
    if text == "end of month":
        if today.month == 12:
            last = date(today.year, 12, 31)
        else:
            last = date(today.year, today.month + 1, 1) - timedelta(days=1)
        return clock.at(last, 18)
    return _parse_offset(text, clock)


def _parse_offset(text: str, clock: _Clock) -> datetime | None:
    for prefix, units, sign in (("in ", _FORWARD_UNITS, 1), ("last ", _BACKWARD_UNITS, -1)):
        if not text.startswith(prefix):
            continue
        rest = text[len(prefix):]
        for suffix, unit in units:
            if not rest.endswith(suffix):
                continue
            count = rest[: -len(suffix)].strip()
            if not _INTEGER.fullmatch(count):
                continue
            amount = sign * int(count)
            if unit == "months":
                return _add_months(clock, amount)
            return clock.at(clock.today + timedelta(**{unit: amount}), 9)
    return None


def _add_months(clock: _Clock, amount: int) -> datetime | None:
    today = clock.today
    new_month = today.month + amount
    year = today.year + _trunc_div(new_month - 1, 12)
    month = _trunc_rem(new_month - 1, 12) + 1
    try:
        target = date(year, month, today.day)
    except ValueError:
        return None
    return clock.at(target, 9)


def _parse_day_name(text: str, clock: _Clock) -> datetime | None:
    is_next = text.startswith("next ")
    name = text[5:] if is_next else text
    target = _WEEKDAYS.get(name)
    if target is None:
        return None
    current = clock.today.weekday()
    ahead = target - current if target > current else 7 - (current - target)
    if is_next:
        ahead += 7
    return clock.at(clock.today + timedelta(days=ahead), 9)


def _parse_date_string(text: str) -> datetime | None:
    for fmt in _DATE_FORMATS:
        try:
            day = datetime.strptime(text, fmt).date()
        except ValueError:
            continue
        return datetime.combine(day, time(9), tzinfo=timezone.utc)
    return _parse_rfc3339(text)


def _parse_rfc3339(text: str) -> datetime | None:
    match = _RFC3339.fullmatch(text)
    if match is None:
        return None
    year, month, day, hour, minute, second = (int(match.group(i)) for i in range(1, 7))
    micros = int(((match.group(7) or "") + "000000")[:6])
    offset_text = match.group(8)
    try:
        if offset_text in ("Z", "z"):
            zone = timezone.utc
        else:
            sign = 1 if offset_text[0] == "+" else -1
            offset = timedelta(hours=int(offset_text[1:3]), minutes=int(offset_text[4:6]))
            zone = timezone(sign * offset)
        moment = datetime(year, month, day, hour, minute, second, micros, tzinfo=zone)
    except ValueError:
        return None
    return moment.astimezone(timezone.utc)


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


def format_relative_time(dt: datetime, now: datetime | None = None) -> str:
    """Describe ``dt`` relative to ``now`` (default: the current UTC time)."""
    if now is None:
        now = datetime.now(timezone.utc)
    delta = _aware(dt) - _aware(now)
    days = _trunc_div(delta // timedelta(microseconds=1), _DAY_MICROSECONDS)

    if days < 0:
        past = -days
        if past == 1:
            return "yesterday"
        return f"{past} days ago"
    if days == 0:
        return "today"
    if days == 1:
        return "tomorrow"
    if 7 <= days <= 13:
        return "next week"
    return f"in {days} days"