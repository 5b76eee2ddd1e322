from datetime import date
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .calendar import (
    CalendarDay,
    ScheduledEvent,
    TimeSlot,
    copy_targets,
    countdown,
    day_planner,
    dump_tasks,
    month_grid,
)
from .recurrence import (
    EventRecord,
    ExpansionLimits,
    InvalidDescriptor,
    InvalidRecurrenceError,
    LegacyDates,
    expand,
    occurrences_for_event,
    parse_descriptor,
    validate_descriptor,
    weekdays_from_sunday_first,
)
from .settings import get_settings
from .time_utils import InvalidTimezoneError, get_now, parse_datetime, resolve_tz


settings = get_settings()
resolve_tz(settings.default_timezone)

app = FastAPI()

logger = logging.getLogger(__name__)


@app.exception_handler(InvalidTimezoneError)
async def handle_invalid_timezone(request: Request, exc: InvalidTimezoneError):
    return JSONResponse({"error": str(exc)}, status_code=400)


@app.exception_handler(InvalidRecurrenceError)
async def handle_invalid_recurrence(request: Request, exc: InvalidRecurrenceError):
    return JSONResponse({"error": str(exc)}, status_code=400)


async def _json_body(request: Request) -> dict:
    try:
        data = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Request body must be JSON")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return data


def _event(raw) -> EventRecord:
    try:
        return EventRecord.model_validate(raw)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid event: {exc.errors()[0]['msg']}")


def _events(data: dict) -> list[EventRecord]:
    raw = data.get("events") or []
    if not isinstance(raw, list):
        raise HTTPException(status_code=400, detail="events must be a list")
    return [_event(item) for item in raw]


def _given(raw: dict, key: str, default):
    value = raw.get(key)
    return default if value is None else value


def _limits(raw) -> ExpansionLimits:
    """Configured limits, optionally lowered by the caller."""
    limits = ExpansionLimits.from_settings()
    if not raw:
        return limits
    if not isinstance(raw, dict):
        raise HTTPException(status_code=400, detail="limits must be an object")
    try:
        max_occurrences = int(_given(raw, "maxOccurrences", limits.max_occurrences))
        max_span_days = int(_given(raw, "maxSpanDays", limits.max_span_days))
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="limits must be integers")
    if max_occurrences < 1 or max_span_days < 1:
        raise HTTPException(status_code=400, detail="limits must be positive")
    return ExpansionLimits(
        max_occurrences=min(max_occurrences, limits.max_occurrences),
        max_span_days=min(max_span_days, limits.max_span_days),
        default_span_days=limits.default_span_days,
    )


def _descriptor(data: dict):
    """The request's descriptor, with Sunday-first weekday flags rotated if flagged."""
    raw = data.get("descriptor")
    if data.get("sundayFirst") and isinstance(raw, dict):
        weekdays = raw.get("weekdays")
        if isinstance(weekdays, list) and len(weekdays) == 7:
            raw = {**raw, "weekdays": list(weekdays_from_sunday_first(weekdays))}
    return raw


def _scheduled_json(item: ScheduledEvent) -> dict:
    return {
        "event": item.event.model_dump(mode="json", by_alias=True),
        "occurrence": item.occurrence.model_dump(mode="json", by_alias=True),
    }


def _day_json(cell: CalendarDay) -> dict:
    return {
        "date": cell.date.isoformat(),
        "isCurrentMonth": cell.is_current_month,
        "isToday": cell.is_today,
        "events": [_scheduled_json(item) for item in cell.events],
    }


def _slot_json(slot: TimeSlot) -> dict:
    return {
        "time": slot.time,
        "timeRange": slot.time_range,
        "task": slot.task,
        "events": [_scheduled_json(item) for item in slot.events],
    }


@app.post("/occurrences")
async def event_occurrences(request: Request):
    data = await _json_body(request)
    if "event" not in data:
        raise HTTPException(status_code=400, detail="Missing event")
    event = _event(data["event"])
    tz = resolve_tz(data.get("timezone"))
    occurrences = occurrences_for_event(event, tz, _limits(data.get("limits")))
    return JSONResponse(
        [occ.model_dump(mode="json", by_alias=True) for occ in occurrences]
    )


@app.post("/recurrence/expand")
async def expand_recurrence(request: Request):
    data = await _json_body(request)
    descriptor = parse_descriptor(_descriptor(data))
    resp = {"dates": expand(descriptor, _limits(data.get("limits")))}
    if isinstance(descriptor, InvalidDescriptor):
        logger.info("Expanding invalid recurrence descriptor: %s", descriptor.reason)
        resp["error"] = descriptor.reason
    return JSONResponse(resp)


@app.post("/recurrence/validate")
async def validate_recurrence(request: Request):
    data = await _json_body(request)
    descriptor = validate_descriptor(_descriptor(data))
    resp = {"descriptor": descriptor.to_storage()}
    if isinstance(descriptor, LegacyDates):
        resp["legacy"] = True
    return JSONResponse(resp)


@app.post("/calendar/{year}/{month}")
async def calendar_month(request: Request, year: int, month: int):
    if not 1 <= month <= 12 or not 1 <= year <= 9999:
        raise HTTPException(status_code=404)
    data = await _json_body(request)
    tz = resolve_tz(data.get("timezone"))
    today = None
    if data.get("today"):
        try:
            today = date.fromisoformat(data["today"])
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="today must be YYYY-MM-DD")
    grid = month_grid(
        year, month, _events(data), tz, today=today, limits=_limits(data.get("limits"))
    )
    return JSONResponse({"year": year, "month": month, "days": [_day_json(c) for c in grid]})


@app.post("/planner/{day}")
async def plan_day(request: Request, day: str):
    try:
        planned = date.fromisoformat(day)
    except ValueError:
        raise HTTPException(status_code=404)
    data = await _json_body(request)
    tz = resolve_tz(data.get("timezone"))
    try:
        start_hour = int(data.get("startHour", 9))
        end_hour = int(data.get("endHour", 17))
        copy_days = int(data.get("copyDays", 0))
        slots = day_planner(
            planned,
            _events(data),
            tz,
            start_hour=start_hour,
            end_hour=end_hour,
            tasks=data.get("tasks"),
            limits=_limits(data.get("limits")),
        )
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    if not 0 <= copy_days <= 31:
        raise HTTPException(status_code=400, detail="copyDays must be between 0 and 31")
    return JSONResponse(
        {
            "date": planned.isoformat(),
            "slots": [_slot_json(slot) for slot in slots],
            "tasks": dump_tasks(slots),
            "copyTo": [d.isoformat() for d in copy_targets(planned, copy_days)],
        }
    )


@app.get("/countdown")
async def event_countdown(target: str, now: str | None = None, timezone: str | None = None):
    tz = resolve_tz(timezone)
    try:
        target_dt = parse_datetime(target, tz)
        now_dt = parse_datetime(now, tz) if now else get_now(tz)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid datetime")
    left = countdown(target_dt, now_dt)
    return JSONResponse(
        {
            "days": left.days,
            "hours": left.hours,
            "minutes": left.minutes,
            "seconds": left.seconds,
            "expired": left.expired,
        }
    )
