from datetime import date, datetime, time, timedelta, timezone

import pytest

from mcptodo.natural_date import format_relative_time, parse_natural_date

NOW = datetime(2024, 1, 10, 15, 30, tzinfo=timezone.utc)


def _offset_days(result):
    return (result.date() - NOW.date()).days


def _parse(text, now=NOW):
    result = parse_natural_date(text, now)
    assert result is not None
    assert result.utcoffset() == timedelta(0)
    return result


@pytest.mark.parametrize(
    "text,days",
    [
        ("tomorrow", 1),
        ("yesterday", -1),
        ("next week", 7),
        ("in 3 days", 3),
        ("in 1 day", 1),
        ("in 2 weeks", 14),
        ("in 1 week", 7),
        ("last 4 days", -4),
        ("last 1 day", -1),
    ],
)
def test_relative_phrases_land_at_nine(text, days):
    result = _parse(text)
    assert _offset_days(result) == days
    assert result.time() == time(9)


def test_today_is_now():
    assert _parse("today") == NOW


def test_input_is_trimmed_and_lowercased():
    assert _parse("  TOMORROW ") == _parse("tomorrow")


def test_in_months_keeps_day():
    result = _parse("in 1 month")
    assert (result.year, result.month, result.day) == (2024, 2, 10)
    later = _parse("in 12 months")
    assert (later.year, later.month, later.day) == (2025, 1, 10)


def test_in_months_invalid_day_gives_none():
    now = datetime(2024, 1, 31, 12, tzinfo=timezone.utc)
    assert parse_natural_date("in 1 month", now) is None


def test_next_month_is_first_day():
    result = _parse("next month")
    assert (result.year, result.month, result.day) == (2024, 2, 1)
    december = datetime(2024, 12, 20, 8, tzinfo=timezone.utc)
    rolled = _parse("next month", december)
    assert (rolled.year, rolled.month, rolled.day) == (2025, 1, 1)


def test_end_of_month():
    result = _parse("end of month")
    assert (result.month, result.day, result.hour) == (1, 31, 18)
    december = datetime(2024, 12, 5, 8, tzinfo=timezone.utc)
    assert _parse("end of month", december).date() == date(2024, 12, 31)


def test_end_of_week():
    result = _parse("end of week")
    assert result.weekday() == 0
    assert result.hour == 18
    assert 0 < _offset_days(result) <= 7


def test_weekday_names():
    friday = _parse("friday")
    assert friday.weekday() == 4
    assert 0 < _offset_days(friday) <= 7
    assert _parse("next friday") == friday + timedelta(days=7)


def test_same_weekday_is_a_week_ahead():
    assert _offset_days(_parse("wednesday")) == 7


def test_spanish_names():
    assert _parse("viernes") == _parse("friday")
    assert _parse("miércoles") == _parse("wednesday")
    assert _parse("sabado") == _parse("saturday")


@pytest.mark.parametrize(
    "text,expected",
    [
        ("2024-03-05", date(2024, 3, 5)),
        ("05/03/2024", date(2024, 3, 5)),
        ("12/25/2024", date(2024, 12, 25)),
        ("2024/07/04", date(2024, 7, 4)),
    ],
)
def test_date_strings_are_nine_utc(text, expected):
    assert _parse(text) == datetime.combine(expected, time(9), tzinfo=timezone.utc)


def test_rfc3339():
    zone = timezone(timedelta(hours=2))
    assert _parse("2024-06-01T12:00:00+02:00") == datetime(2024, 6, 1, 12, tzinfo=zone)
    assert _parse("2024-06-01T12:00:00Z") == datetime(2024, 6, 1, 12, tzinfo=timezone.utc)


@pytest.mark.parametrize("text", ["", "someday", "in x days", "next blursday", "2024-13-45"])
def test_unknown_gives_none(text):
    assert parse_natural_date(text, NOW) is None


def test_local_zone_is_taken_from_now():
    zone = timezone(timedelta(hours=5))
    now = datetime(2024, 1, 10, 15, 30, tzinfo=zone)
    result = parse_natural_date("tomorrow", now)
    assert result == datetime.combine(date(2024, 1, 11), time(9), tzinfo=zone)
    assert result.utcoffset() == timedelta(0)


@pytest.mark.parametrize(
    "delta,expected",
    [
        (timedelta(hours=1), "today"),
        (timedelta(hours=-1), "today"),
        (timedelta(days=1, hours=1), "tomorrow"),
        (timedelta(days=3, hours=1), "in 3 days"),
        (timedelta(days=8), "next week"),
        (timedelta(days=20, hours=1), "in 20 days"),
        (timedelta(days=-1, hours=-1), "yesterday"),
        (timedelta(days=-5, hours=-1), "5 days ago"),
    ],
)
def test_format_relative_time(delta, expected):
    assert format_relative_time(NOW + delta, NOW) == expected


def test_format_relative_time_accepts_other_zones():
    zone = timezone(timedelta(hours=-3))
    assert format_relative_time((NOW + timedelta(days=3, hours=1)).astimezone(zone), NOW) == (
        format_relative_time(NOW + timedelta(days=3, hours=1), NOW)
    )