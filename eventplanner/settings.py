from __future__ import annotations

import logging
import os
from dataclasses import dataclass


logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = "UTC"
DEFAULT_MAX_OCCURRENCES = 500
DEFAULT_MAX_SPAN_DAYS = 730
DEFAULT_SPAN_DAYS = 90


@dataclass(frozen=True)
class Settings:
    default_timezone: str = DEFAULT_TIMEZONE
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES
    max_span_days: int = DEFAULT_MAX_SPAN_DAYS
    default_span_days: int = DEFAULT_SPAN_DAYS


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r; using %d", name, raw, default)
        return default
    if value < 1:
        logger.warning("Ignoring non-positive %s=%r; using %d", name, raw, default)
        return default
    return value


def get_settings() -> Settings:
    """Read the ``EVENTPLANNER_*`` environment variables.

    Read on every call so that tests and long running processes can change
    the environment without restarting.
    """
    return Settings(
        default_timezone=os.getenv("EVENTPLANNER_TZ") or DEFAULT_TIMEZONE,
        max_occurrences=_int_env("EVENTPLANNER_MAX_OCCURRENCES", DEFAULT_MAX_OCCURRENCES),
        max_span_days=_int_env("EVENTPLANNER_MAX_SPAN_DAYS", DEFAULT_MAX_SPAN_DAYS),
        default_span_days=_int_env("EVENTPLANNER_DEFAULT_SPAN_DAYS", DEFAULT_SPAN_DAYS),
    )
