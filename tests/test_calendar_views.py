import sys
from datetime import date
from pathlib import Path
from zoneinfo import ZoneInfo

# Ensure project root on path
sys.path.append(str(Path(__file__).resolve().parents[1]))

from eventplanner.calendar import events_in_range, events_on_day, month_grid, week_start
from eventplanner.recurrence import EventRecord


UTC = ZoneInfo("UTC")


def _events():
    return [
        EventRecord.model_validate(
            {
                "id": "gym",
                "title": "Gym",
                "targetDate": "2024-03-10T14:30:00Z",
                "snoozeDates": {
                    "kind": "Weekly",
                    "startDate": "2024-03-04",
                    "endDate": "2024-03-18",
                    "weekdays": [True, False, False, False, False, True, False],
                },
            }
        ),
        EventRecord.model_validate(
            {"id": "call", "title": "Call", "targetDate": "2024-03-11T08:00:00Z"}
        ),
    ]


def test_week_start_is_sunday():
    assert week_start(date(2024, 3, 13)) == date(2024, 3, 10)
    assert week_start(date(2024, 3, 10)) == date(2024, 3, 10)
    assert week_start(date(2024, 3, 9)) == date(2024, 3, 3)


def test_month_grid_shape():
    grid = month_grid(2024, 3, [], UTC, today=date(2024, 3, 15))
    assert len(grid) == 42
    assert grid[0].date == date(2024, 2, 25)
    assert grid[-1].date == date(2024, 4, 6)
    assert not grid[0].is_current_month
    assert [cell.date for cell in grid if cell.is_today] == [date(2024, 3, 15)]
    assert sum(cell.is_current_month for cell in grid) == 31


def test_month_grid_places_original_and_snoozed_occurrences():
    grid = month_grid(2024, 3, _events(), UTC, today=date(2024, 3, 15))
    by_day = {
        cell.date.isoformat(): [(i.event.id, i.occurrence.is_original) for i in cell.events]
        for cell in grid
        if cell.events
    }
    assert by_day == {
        "2024-03-09": [("gym", False)],
        "2024-03-10": [("gym", True)],
        "2024-03-11": [("call", True), ("gym", False)],
        "2024-03-16": [("gym", False)],
        "2024-03-18": [("gym", False)],
    }


def test_events_in_range_is_sorted_by_start():
    items = events_in_range(date(2024, 3, 10), date(2024, 3, 16), _events(), UTC)
    assert [(i.occurrence.date, i.event.id) for i in items] == [
        ("2024-03-10", "gym"),
        ("2024-03-11", "call"),
        ("2024-03-11", "gym"),
        ("2024-03-16", "gym"),
    ]


def test_events_on_day():
    items = events_on_day(date(2024, 3, 16), _events(), UTC)
    assert [(i.event.id, i.occurrence.is_original) for i in items] == [("gym", False)]
    assert events_on_day(date(2024, 3, 12), _events(), UTC) == []
