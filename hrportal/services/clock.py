from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from hrportal.settings import get_settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_ts(ts_utc: datetime | None) -> datetime:
    if ts_utc is None:
        return utcnow()

    if ts_utc.tzinfo is None:
        return ts_utc.replace(tzinfo=timezone.utc)

    return ts_utc.astimezone(timezone.utc)


def attendance_timezone() -> ZoneInfo:
    raw_name = (get_settings().attendance_timezone or "").strip() or "UTC"
    try:
        return ZoneInfo(raw_name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def to_local(ts_utc: datetime) -> datetime:
    return normalize_ts(ts_utc).astimezone(attendance_timezone())


def local_day(ts_utc: datetime | None = None) -> date:
    return to_local(normalize_ts(ts_utc)).date()


def local_day_bounds_utc(day: date) -> tuple[datetime, datetime]:
    tz = attendance_timezone()
    local_start = datetime.combine(day, time.min, tzinfo=tz)
    local_end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return local_start.astimezone(timezone.utc), local_end.astimezone(timezone.utc)


def local_end_of_day_utc(day: date) -> datetime:
    tz = attendance_timezone()
    return datetime.combine(day, time(23, 59, 59), tzinfo=tz).astimezone(timezone.utc)
