import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

# Ensure project root on path
sys.path.append(str(Path(__file__).resolve().parents[1]))

from eventplanner.time_utils import (
    InvalidTimezoneError,
    add_months,
    calendar_day,
    ensure_tz,
    occurs_on,
    parse_datetime,
    parse_day,
    resolve_tz,
    same_day,
)


LA = ZoneInfo("America/Los_Angeles")
NY = ZoneInfo("America/New_York")
UTC = ZoneInfo("UTC")


def test_ensure_tz_converts_fixed_offset_to_given_zone():
    dt = datetime.fromisoformat("2023-10-29T09:00:00-07:00")

    converted = ensure_tz(dt, LA)

    assert isinstance(converted.tzinfo, ZoneInfo)
    assert converted.tzinfo.key == "America/Los_Angeles"
    assert converted.utcoffset() == timedelta(hours=-7)
    # Adding a week should cross the DST boundary and adopt the new offset
    assert (converted + timedelta(days=7)).utcoffset() == timedelta(hours=-8)


def test_parse_datetime_normalizes_timezone():
    dt = parse_datetime("2023-10-29T16:00:00Z", LA)

    assert dt.tzinfo.key == "America/Los_Angeles"
    assert dt.hour == 9


def test_parse_datetime_naive_is_local():
    dt = parse_datetime("2024-03-10T08:00", NY)
    assert dt.tzinfo is NY
    assert dt.hour == 8


def test_resolve_tz_default(monkeypatch):
    monkeypatch.delenv("EVENTPLANNER_TZ", raising=False)
    assert resolve_tz(None).key == "UTC"
    monkeypatch.setenv("EVENTPLANNER_TZ", "Europe/Paris")
    assert resolve_tz("").key == "Europe/Paris"
    assert resolve_tz("Asia/Tokyo").key == "Asia/Tokyo"


@pytest.mark.parametrize("name", ["Mars/Olympus", "America", 5, ["UTC"]])
def test_resolve_tz_unknown(name):
    with pytest.raises(InvalidTimezoneError):
        resolve_tz(name)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-03-10", date(2024, 3, 10)),
        ("2024-03-10T23:59:00Z", date(2024, 3, 10)),
        (datetime(2024, 3, 10, 5), date(2024, 3, 10)),
        (date(2024, 3, 10), date(2024, 3, 10)),
        ("2024-13-01", None),
        ("2024-03-10 and more", None),
        ("", None),
        (None, None),
        (20240310, None),
    ],
)
def test_parse_day(value, expected):
    assert parse_day(value) == expected


def test_same_day_uses_local_calendar():
    late = datetime(2024, 3, 10, 23, 30, tzinfo=UTC)
    early = datetime(2024, 3, 11, 0, 30, tzinfo=UTC)

    assert not same_day(late, early, UTC)
    # Both are the evening of March 10th in New York
    assert same_day(late, early, NY)
    assert calendar_day(early, NY) == date(2024, 3, 10)


def test_same_day_with_plain_date():
    assert same_day(date(2024, 3, 10), datetime(2024, 3, 11, 1, 0, tzinfo=UTC), NY)


@pytest.mark.parametrize(
    "start, months, expected",
    [
        (date(2024, 1, 15), 1, date(2024, 2, 15)),
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2023, 1, 31), 1, date(2023, 2, 28)),
        (date(2024, 11, 30), 3, date(2025, 2, 28)),
        (date(2024, 3, 31), -1, date(2024, 2, 29)),
        (date(2024, 1, 31), 12, date(2025, 1, 31)),
    ],
)
def test_add_months(start, months, expected):
    assert add_months(start, months) == expected


def test_occurs_on_matches_local_day():
    values = ["2024-03-11T01:30:00Z", date(2024, 3, 20), "garbage-that-is-long", "nope"]
    # 01:30 UTC on the 11th is still the 10th in New York
    assert occurs_on(values, date(2024, 3, 10), NY)
    assert not occurs_on(values, date(2024, 3, 10), UTC)
    assert occurs_on(values, date(2024, 3, 11), UTC)
    assert occurs_on(values, date(2024, 3, 20), UTC)
    assert not occurs_on([], date(2024, 3, 20), UTC)
