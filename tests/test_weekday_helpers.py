import sys
from datetime import date, timedelta
from pathlib import Path

# Ensure project root on path
sys.path.append(str(Path(__file__).resolve().parents[1]))

from eventplanner.recurrence import (
    from_sunday_index,
    to_sunday_index,
    weekday_flagged,
    weekday_index,
    weekdays_from_sunday_first,
)


def test_sunday_index_conversion():
    # Sunday=0 ... Saturday=6
    assert [from_sunday_index(n) for n in range(7)] == [6, 0, 1, 2, 3, 4, 5]
    assert all(to_sunday_index(from_sunday_index(n)) == n for n in range(7))


def test_weekday_index_is_monday_based():
    monday = date(2024, 3, 4)
    assert [weekday_index(monday + timedelta(days=i)) for i in range(7)] == list(range(7))
    assert all(
        weekday_index(monday + timedelta(days=i)) == (monday + timedelta(days=i)).weekday()
        for i in range(14)
    )


def test_weekday_flagged():
    flags = [False, False, False, False, False, True, False]
    assert weekday_flagged(date(2024, 3, 9), flags)  # Saturday
    assert not weekday_flagged(date(2024, 3, 10), flags)  # Sunday


def test_rotate_sunday_first_flags():
    # Sunday and Wednesday in Sunday-first order
    sunday_first = [True, False, False, True, False, False, False]
    assert weekdays_from_sunday_first(sunday_first) == (
        False, False, True, False, False, False, True
    )
