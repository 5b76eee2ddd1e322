from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
import json
import logging
from typing import Iterable, List, Optional

from .recurrence import EventRecord, ExpansionLimits, Occurrence, occurrences_for_event
from .time_utils import get_now


logger = logging.getLogger(__name__)

GRID_DAYS = 42
SLOT_MINUTES = 30


@dataclass
class ScheduledEvent:
    event: EventRecord
    occurrence: Occurrence


@dataclass
class CalendarDay:
    date: date
    is_current_month: bool
    is_today: bool
    events: List[ScheduledEvent] = field(default_factory=list)


@dataclass
class TimeSlot:
    time: str
    time_range: str
    task: str = ""
    events: List[ScheduledEvent] = field(default_factory=list)


@dataclass
class Countdown:
    days: int = 0
    hours: int = 0
    minutes: int = 0
    seconds: int = 0
    expired: bool = False


def _sort_key(item: ScheduledEvent):
    occ = item.occurrence
    start = occ.start.timestamp() if occ.start else 0.0
    return (occ.date, start, item.event.title)


def schedule(
    events: Iterable[EventRecord],
    tz: tzinfo,
    limits: ExpansionLimits | None = None,
    until: date | None = None,
) -> List[ScheduledEvent]:
    """Expand every event into its occurrences, ordered by start."""
    if limits is None:
        limits = ExpansionLimits.from_settings()
    scheduled = [
        ScheduledEvent(event=event, occurrence=occ)
        for event in events
        for occ in occurrences_for_event(event, tz, limits, until)
    ]
    scheduled.sort(key=_sort_key)
    return scheduled


def week_start(day: date) -> date:
    """Return the Sunday on or before ``day``."""
    return day - timedelta(days=day.isoweekday() % 7)


def month_grid(
    year: int,
    month: int,
    events: Iterable[EventRecord],
    tz: tzinfo,
    today: date | None = None,
    limits: ExpansionLimits | None = None,
) -> List[CalendarDay]:
    """Return the six week grid shown for ``year``/``month``.

    The grid starts on the Sunday on or before the first of the month.  Each
    cell lists the events with an occurrence, original or snoozed, on that
    local day.
    """
    if today is None:
        today = get_now(tz).date()
    first = date(year, month, 1)
    grid_start = week_start(first)
    days = []
    for i in range(GRID_DAYS):
        day = grid_start + timedelta(days=i)
        days.append(
            CalendarDay(
                date=day,
                is_current_month=day.month == month,
                is_today=day == today,
            )
        )
    cells = {cell.date: cell for cell in days}
    for item in schedule(events, tz, limits, until=days[-1].date):
        cell = cells.get(date.fromisoformat(item.occurrence.date))
        if cell:
            cell.events.append(item)
    return days


def events_in_range(
    start: date,
    end: date,
    events: Iterable[EventRecord],
    tz: tzinfo,
    limits: ExpansionLimits | None = None,
) -> List[ScheduledEvent]:
    """Return occurrences whose local day lies in ``[start, end]``."""
    first, last = start.isoformat(), end.isoformat()
    return [
        item
        for item in schedule(events, tz, limits, until=end)
        if first <= item.occurrence.date <= last
    ]


def events_on_day(
    day: date,
    events: Iterable[EventRecord],
    tz: tzinfo,
    limits: ExpansionLimits | None = None,
) -> List[ScheduledEvent]:
    return events_in_range(day, day, events, tz, limits)


def _clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def time_slots(start_hour: int, end_hour: int) -> List[TimeSlot]:
    """Half hour slots from ``start_hour``:00 through ``end_hour``:00."""
    for hour in (start_hour, end_hour):
        if not 0 <= hour <= 23:
            raise ValueError(f"Hour out of range: {hour}")
    start, end = min(start_hour, end_hour), max(start_hour, end_hour)
    slots = []
    for minutes in range(start * 60, end * 60 + 1, SLOT_MINUTES):
        slots.append(
            TimeSlot(
                time=_clock(minutes),
                time_range=f"{_clock(minutes)} - {_clock(minutes + SLOT_MINUTES)}",
            )
        )
    return slots


def parse_tasks(raw: str | dict | None) -> dict[str, str]:
    """Read a stored day plan (``{"HH:MM": "task"}``), tolerating bad JSON."""
    if not raw:
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unparseable day plan: %r", raw)
            return {}
    if not isinstance(raw, dict):
        logger.warning("Ignoring day plan that is not an object: %r", raw)
        return {}
    return {str(k): str(v) for k, v in raw.items() if v is not None}


def dump_tasks(slots: Iterable[TimeSlot]) -> dict[str, str]:
    """Return the non-empty slot tasks keyed by slot time."""
    return {slot.time: slot.task for slot in slots if slot.task.strip()}


def day_planner(
    day: date,
    events: Iterable[EventRecord],
    tz: tzinfo,
    start_hour: int = 9,
    end_hour: int = 17,
    tasks: str | dict | None = None,
    limits: ExpansionLimits | None = None,
) -> List[TimeSlot]:
    """Lay out ``day`` as half hour slots holding tasks and event occurrences.

    Occurrences land in the slot containing their local start time; those
    outside the planner's hours are not shown.
    """
    slots = time_slots(start_hour, end_hour)
    by_time = {slot.time: slot for slot in slots}
    stored = parse_tasks(tasks)
    for slot in slots:
        slot.task = stored.get(slot.time, "")
    for item in events_on_day(day, events, tz, limits):
        start: Optional[datetime] = item.occurrence.start
        if start is None:
            continue
        local = start.astimezone(tz)
        minutes = local.hour * 60 + local.minute
        slot = by_time.get(_clock(minutes - minutes % SLOT_MINUTES))
        if slot:
            slot.events.append(item)
    return slots


def copy_targets(day: date, count: int) -> List[date]:
    """Days following ``day`` that a plan is copied onto."""
    return [day + timedelta(days=i) for i in range(1, count + 1)]


def countdown(target: datetime, now: datetime) -> Countdown:
    """Return the whole days/hours/minutes/seconds left until ``target``."""
    left = (target - now).total_seconds()
    if left <= 0:
        return Countdown(expired=True)
    days, remaining = divmod(int(left), 86400)
    hours, remaining = divmod(remaining, 3600)
    minutes, seconds = divmod(remaining, 60)
    return Countdown(days=days, hours=hours, minutes=minutes, seconds=seconds)
