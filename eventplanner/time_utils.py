from __future__ import annotations

import calendar as cal
from datetime import date, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .settings import get_settings


class InvalidTimezoneError(ValueError):
    pass


def resolve_tz(name: str | None = None) -> tzinfo:
    """Return the IANA timezone ``name``.

    Falls back to the zone configured via ``EVENTPLANNER_TZ`` (default UTC)
    when ``name`` is empty.
    """
    if name is not None and not isinstance(name, str):
        raise InvalidTimezoneError(f"Timezone must be a name, got {type(name).__name__}")
    tz_name = name or get_settings().default_timezone
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        raise InvalidTimezoneError(f"Unknown timezone: {tz_name}") from exc


def get_now(tz: tzinfo) -> datetime:
    """Return the current time in ``tz``."""
    return datetime.now(tz)


def parse_datetime(value: str, tz: tzinfo) -> datetime:
    """Parse an ISO formatted datetime string.

    If ``value`` lacks timezone information it is interpreted in ``tz``.  If
    ``value`` already includes timezone information (including a trailing
    ``Z``), it is converted into ``tz`` so that local calendar days are
    computed in the owner's zone.
    """
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return ensure_tz(datetime.fromisoformat(value), tz)


def ensure_tz(dt: datetime | None, tz: tzinfo) -> datetime | None:
    """Ensure ``dt`` is timezone-aware and expressed in ``tz``."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    if dt.tzinfo == tz:
        return dt
    return dt.astimezone(tz)


def parse_day(value) -> date | None:
    """Return the calendar day of ``value`` or ``None`` if it can't be read.

    Accepts ``date`` and ``datetime`` objects as well as ``YYYY-MM-DD`` and
    full ISO datetime strings.  Only the written calendar day is kept; no
    timezone conversion happens here.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        if len(text) > 10:
            return datetime.fromisoformat(text).date()
        return date.fromisoformat(text)
    except ValueError:
        return None


def calendar_day(value: date | datetime, tz: tzinfo) -> date:
    """Return the local calendar day of ``value`` in ``tz``.

    Naive datetimes are taken to already be local to ``tz``.
    """
    if isinstance(value, datetime):
        return ensure_tz(value, tz).date()
    return value


def same_day(a: date | datetime, b: date | datetime, tz: tzinfo) -> bool:
    """Compare ``a`` and ``b`` at calendar-day granularity in ``tz``."""
    return calendar_day(a, tz) == calendar_day(b, tz)


def occurs_on(values, day: date, tz: tzinfo) -> bool:
    """Return ``True`` if any of ``values`` falls on the local calendar ``day``.

    ``values`` may mix dates, datetimes and their ISO strings; unreadable
    strings never match.
    """
    for value in values:
        if isinstance(value, str):
            if len(value.strip()) > 10:
                try:
                    value = parse_datetime(value.strip(), tz)
                except ValueError:
                    continue
            else:
                value = parse_day(value)
                if value is None:
                    continue
        if calendar_day(value, tz) == day:
            return True
    return False


def add_months(day: date, months: int) -> date:
    """Add ``months`` calendar months to ``day``.

    The day of month is clamped to the length of the target month, so
    January 31st plus one month is the last day of February.
    """
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    last = cal.monthrange(year, month)[1]
    return day.replace(year=year, month=month, day=min(day.day, last))
