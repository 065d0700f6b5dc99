"""Instants, service-local calendar days, and session-length arithmetic.

All persisted instants are timezone-aware UTC.  Two rules depend on a
*calendar day* instead: a record's session_date, and the same-day edit
window.  Both use the service time zone (SERVICE_TIMEZONE), so "today"
means the same thing for every learner of the organization.
"""

from __future__ import annotations

import datetime as dt
import math

import pytz

from lms.core.config import SETTINGS
from lms.core.errors import InvalidDuration


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


def service_timezone() -> dt.tzinfo:
    return pytz.timezone(SETTINGS.service_timezone)


def as_utc(value: dt.datetime) -> dt.datetime:
    """Normalize to tz-aware UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        value = value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC)


def local_date(instant: dt.datetime, tz: dt.tzinfo | None = None) -> dt.date:
    """Calendar date of an instant in the service time zone."""
    return as_utc(instant).astimezone(tz or service_timezone()).date()


def same_local_day(
    a: dt.datetime, b: dt.datetime, tz: dt.tzinfo | None = None
) -> bool:
    tz = tz or service_timezone()
    return local_date(a, tz) == local_date(b, tz)


def session_minutes(start: dt.datetime, end: dt.datetime) -> int:
    """Whole minutes between start and end, half a minute rounding up.

    Raises InvalidDuration when the session ends before it starts.
    """
    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    if seconds < 0:
        raise InvalidDuration("session_end_time is before session_start_time")
    return math.floor(seconds / 60 + 0.5)
