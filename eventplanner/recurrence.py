from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum
from itertools import islice, takewhile
import json
import logging
from typing import Any, ClassVar, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .settings import get_settings
from .time_utils import add_months, calendar_day, ensure_tz, parse_datetime, parse_day


logger = logging.getLogger(__name__)


class RecurrenceKind(str, Enum):
    Once = "Once"
    Daily = "Daily"
    Weekly = "Weekly"
    Custom = "Custom"


class CustomUnit(str, Enum):
    Days = "Days"
    Weeks = "Weeks"
    Months = "Months"


class InvalidRecurrenceError(ValueError):
    """Raised by :func:`validate_descriptor` for descriptors that can't be stored."""


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class _Recurrence(_Model):
    kind: ClassVar[RecurrenceKind]

    start_date: date
    end_date: Optional[date] = None
    time_of_day: Optional[time] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def check_calendar_day(cls, value: Any) -> Any:
        if value is None:
            return None
        day = parse_day(value)
        if day is None:
            raise ValueError(f"not a calendar date: {value!r}")
        return day

    @field_validator("time_of_day", mode="before")
    @classmethod
    def check_clock(cls, value: Any) -> Any:
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            try:
                return time.fromisoformat(text)
            except ValueError:
                raise ValueError(f"not a time of day: {value!r}") from None
        return value

    def to_storage(self) -> dict:
        """Return the JSON-shaped dict stored in an event's ``snoozeDates``."""
        data = {"kind": self.kind.value}
        data.update(self.model_dump(mode="json", by_alias=True, exclude_none=True))
        if self.time_of_day is not None:
            data["timeOfDay"] = self.time_of_day.strftime("%H:%M")
        return data


class OnceRecurrence(_Recurrence):
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.Once


class DailyRecurrence(_Recurrence):
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.Daily


class WeeklyRecurrence(_Recurrence):
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.Weekly

    # Monday first
    weekdays: Tuple[bool, bool, bool, bool, bool, bool, bool]

    @field_validator("weekdays")
    @classmethod
    def check_any_weekday(cls, value: Tuple[bool, ...]) -> Tuple[bool, ...]:
        if not any(value):
            raise ValueError("at least one weekday must be selected")
        return value


class CustomRecurrence(_Recurrence):
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.Custom

    custom_interval: int = Field(gt=0)
    custom_unit: CustomUnit


class LegacyDates(_Model):
    """Older snooze format: an explicit list of dates."""

    dates: Tuple[str, ...]

    def to_storage(self) -> dict:
        return {"dates": list(self.dates)}


@dataclass(frozen=True)
class InvalidDescriptor:
    reason: str


Recurrence = Union[OnceRecurrence, DailyRecurrence, WeeklyRecurrence, CustomRecurrence]
Descriptor = Union[Recurrence, LegacyDates, InvalidDescriptor]

_VARIANTS = {
    RecurrenceKind.Once: OnceRecurrence,
    RecurrenceKind.Daily: DailyRecurrence,
    RecurrenceKind.Weekly: WeeklyRecurrence,
    RecurrenceKind.Custom: CustomRecurrence,
}


@dataclass(frozen=True)
class ExpansionLimits:
    max_occurrences: int = 500
    max_span_days: int = 730
    default_span_days: int = 90

    @classmethod
    def from_settings(cls) -> "ExpansionLimits":
        settings = get_settings()
        return cls(
            max_occurrences=settings.max_occurrences,
            max_span_days=settings.max_span_days,
            default_span_days=settings.default_span_days,
        )


def _describe_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def parse_descriptor(raw: Any) -> Descriptor:
    """Parse a stored snooze descriptor.

    ``raw`` may be a JSON string, an already decoded ``dict``/``list``, or a
    parsed descriptor (returned unchanged).  Never raises: anything that
    can't be understood becomes an :class:`InvalidDescriptor` naming the
    problem.
    """
    if isinstance(raw, (_Recurrence, LegacyDates, InvalidDescriptor)):
        return raw
    if raw is None:
        return InvalidDescriptor("No recurrence descriptor")
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except (ValueError, RecursionError) as exc:
            return InvalidDescriptor(f"Unparseable JSON: {exc}")
    if isinstance(raw, list):
        raw = {"dates": raw}
    if not isinstance(raw, dict):
        return InvalidDescriptor(f"Expected an object, got {type(raw).__name__}")

    kind = raw.get("kind")
    if kind is None:
        if "dates" not in raw:
            return InvalidDescriptor("Missing recurrence kind")
        try:
            return LegacyDates.model_validate(raw)
        except ValidationError as exc:
            return InvalidDescriptor(_describe_errors(exc))
    try:
        model = _VARIANTS[RecurrenceKind(kind)]
    except ValueError:
        return InvalidDescriptor(f"Unknown recurrence kind: {kind!r}")
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        return InvalidDescriptor(_describe_errors(exc))


def validate_descriptor(raw: Any) -> Union[Recurrence, LegacyDates]:
    """Parse ``raw`` for storage, raising :class:`InvalidRecurrenceError`.

    Stricter than :func:`parse_descriptor`: an end date before the start
    date is rejected instead of silently producing no occurrences.
    """
    parsed = parse_descriptor(raw)
    if isinstance(parsed, InvalidDescriptor):
        raise InvalidRecurrenceError(parsed.reason)
    if (
        isinstance(parsed, _Recurrence)
        and parsed.end_date is not None
        and parsed.end_date < parsed.start_date
    ):
        raise InvalidRecurrenceError("endDate must not be before startDate")
    return parsed


def from_sunday_index(weekday: int) -> int:
    """Convert a Sunday=0 weekday into the Monday=0 convention."""
    return (weekday + 6) % 7


def to_sunday_index(weekday: int) -> int:
    """Convert a Monday=0 weekday into the Sunday=0 convention."""
    return (weekday + 1) % 7


def weekday_index(value: date) -> int:
    """Return the Monday=0 weekday of ``value``."""
    return from_sunday_index(value.isoweekday() % 7)


def weekday_flagged(value: date, weekdays) -> bool:
    """Return ``True`` if ``value``'s weekday is set in the Monday-first ``weekdays``."""
    return bool(weekdays[weekday_index(value)])


def weekdays_from_sunday_first(flags) -> Tuple[bool, ...]:
    """Rotate a Sunday-first list of 7 flags into Monday-first order."""
    flags = list(flags)
    return tuple(bool(flags[to_sunday_index(i)]) for i in range(7))


def _advance(rec: Recurrence, step: int) -> date:
    start = rec.start_date
    if isinstance(rec, CustomRecurrence):
        count = step * rec.custom_interval
        if rec.custom_unit == CustomUnit.Months:
            # Always measured from the anchor so clamped month ends don't drift.
            return add_months(start, count)
        if rec.custom_unit == CustomUnit.Weeks:
            return start + timedelta(weeks=count)
        return start + timedelta(days=count)
    return start + timedelta(days=step)


def _recurrence_generator(rec: Recurrence, end: date) -> Iterator[date]:
    if isinstance(rec, OnceRecurrence):
        yield rec.start_date
        return
    # Weekly recurrences treat the start date as an anchor, not an occurrence.
    step = 1 if isinstance(rec, WeeklyRecurrence) else 0
    while True:
        try:
            day = _advance(rec, step)
        except (OverflowError, ValueError):
            # Ran past the last representable date.
            return
        if day > end:
            return
        if isinstance(rec, CustomRecurrence) and step and day == end:
            # Custom steps carry the event's time of day past a midnight end bound.
            return
        if not isinstance(rec, WeeklyRecurrence) or weekday_flagged(day, rec.weekdays):
            yield day
        step += 1


def _shift(day: date, days: int) -> date:
    try:
        return day + timedelta(days=days)
    except OverflowError:
        return date.max


def expand_days(
    rec: Recurrence, limits: ExpansionLimits | None = None, until: date | None = None
) -> List[date]:
    """Return the ordered calendar days generated by ``rec``.

    ``until`` cuts generation off after a display window without changing
    how the descriptor's own end date is applied.
    """
    if limits is None:
        limits = ExpansionLimits.from_settings()
    start = rec.start_date
    end = rec.end_date or _shift(start, limits.default_span_days)
    if end < start and not isinstance(rec, OnceRecurrence):
        return []
    hard_end = _shift(start, limits.max_span_days)
    if end > hard_end:
        logger.debug("Limiting %s recurrence from %s to %s", rec.kind.value, end, hard_end)
        end = hard_end
    days_iter = _recurrence_generator(rec, end)
    if until is not None:
        days_iter = takewhile(lambda day: day <= until, days_iter)
    days = list(islice(days_iter, limits.max_occurrences + 1))
    if len(days) > limits.max_occurrences:
        logger.debug(
            "Truncating %s recurrence at %d occurrences", rec.kind.value, limits.max_occurrences
        )
        del days[limits.max_occurrences:]
    return days


def expand(
    descriptor: Any, limits: ExpansionLimits | None = None, until: date | None = None
) -> List[str]:
    """Expand ``descriptor`` into ``YYYY-MM-DD`` strings.

    Dates are ascending and unique, and none is later than ``until`` when
    given.  Malformed descriptors produce an empty list; this function does
    not raise for bad input.
    """
    if limits is None:
        limits = ExpansionLimits.from_settings()
    parsed = parse_descriptor(descriptor)
    if isinstance(parsed, InvalidDescriptor):
        return []
    if isinstance(parsed, LegacyDates):
        dates = sorted(set(parsed.dates))
        if until is not None:
            dates = [d for d in dates if d[:10] <= until.isoformat()]
        return dates[: limits.max_occurrences]
    return [day.isoformat() for day in expand_days(parsed, limits, until)]


def materialize(
    descriptor: Any,
    base: datetime | None,
    tz: tzinfo,
    limits: ExpansionLimits | None = None,
    until: date | None = None,
) -> List[datetime]:
    """Return aware datetimes for each date generated by ``descriptor``.

    Each day takes the descriptor's ``timeOfDay`` when set and otherwise the
    local time of day of ``base``.  Legacy entries written as full datetimes
    keep their own instant.
    """
    parsed = parse_descriptor(descriptor)
    if isinstance(parsed, InvalidDescriptor):
        return []
    local_base = ensure_tz(base, tz)
    clock = local_base.time() if local_base else time(0, 0)
    if isinstance(parsed, LegacyDates):
        result = []
        for value in expand(parsed, limits, until):
            if len(value) > 10:
                try:
                    result.append(parse_datetime(value, tz))
                except ValueError:
                    logger.debug("Skipping unreadable snooze date %r", value)
                continue
            day = parse_day(value)
            if day is None:
                logger.debug("Skipping unreadable snooze date %r", value)
                continue
            result.append(datetime.combine(day, clock, tzinfo=tz))
        return result
    if parsed.time_of_day is not None:
        clock = parsed.time_of_day.replace(tzinfo=None)
    return [
        datetime.combine(day, clock, tzinfo=tz)
        for day in expand_days(parsed, limits, until)
    ]


class EventRecord(_Model):
    id: Optional[str] = None
    title: str = ""
    description: str = ""
    target_date: Optional[datetime] = None
    category_id: Optional[str] = Field(default=None, alias="categoryID")
    snooze_dates: Optional[Union[str, dict, list]] = None


class Occurrence(_Model):
    date: str
    is_original: bool = False
    start: Optional[datetime] = None


def occurrences_for_event(
    event: EventRecord,
    tz: tzinfo,
    limits: ExpansionLimits | None = None,
    until: date | None = None,
) -> List[Occurrence]:
    """Return the original occurrence of ``event`` merged with its snoozes.

    Generated occurrences falling on the same local day as the original (or
    on the same day as each other) are dropped.
    Nothing after ``until`` is generated, which bounds the work done for a
    calendar window.
    """
    occurrences: List[Occurrence] = []
    seen: set[date] = set()
    start = ensure_tz(event.target_date, tz)
    if start is not None:
        seen.add(start.date())
        occurrences.append(
            Occurrence(date=start.date().isoformat(), is_original=True, start=start)
        )
    if event.snooze_dates:
        parsed = parse_descriptor(event.snooze_dates)
        if isinstance(parsed, InvalidDescriptor):
            logger.warning(
                "Could not parse snooze schedule for event %s: %s",
                event.id or event.title,
                parsed.reason,
            )
        else:
            for when in materialize(parsed, start, tz, limits, until):
                day = calendar_day(when, tz)
                if day in seen:
                    continue
                seen.add(day)
                occurrences.append(
                    Occurrence(date=day.isoformat(), is_original=False, start=when)
                )
    occurrences.sort(key=lambda o: o.date)
    return occurrences
