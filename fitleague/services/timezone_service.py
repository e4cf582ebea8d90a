"""Clock and timezone helpers shared by every component.

Users store either a plain IANA zone ("America/Bogota") or the label shown by
the mobile client ("(GMT-05:00) America/Bogota"). Both resolve to a ZoneInfo.
Week arithmetic uses ISO weeks (Monday start) and the ISO week-year, so the
last days of December can belong to week 1 of the following year.
"""
from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fitleague.config import settings

logger = logging.getLogger(__name__)

_GMT_LABEL = re.compile(r"^\(GMT[^)]*\)\s*")


def resolve_zone(label: str | None) -> ZoneInfo:
    name = _GMT_LABEL.sub("", (label or "").strip()) or "UTC"
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone '%s'; falling back to UTC", label)
        return ZoneInfo("UTC")


def get_scheduler_timezone() -> ZoneInfo:
    return resolve_zone(settings.SCHEDULER_TIMEZONE)


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_user_local(value: datetime, zone: ZoneInfo) -> datetime:
    return as_utc(value).astimezone(zone)


def epoch_ms(value: datetime) -> int:
    return int(as_utc(value).timestamp() * 1000)


def iso_week(local: datetime | date) -> tuple[int, int]:
    """(ISO week-year, ISO week number)."""
    iso = local.isocalendar()
    return iso[0], iso[1]


def week_key(year: int, week: int) -> str:
    return f"{year}-W{week:02d}"


def start_of_week(local: datetime) -> datetime:
    monday = local.date() - timedelta(days=local.weekday())
    return datetime.combine(monday, time.min, tzinfo=local.tzinfo)


def week_bounds(year: int, week: int, zone: ZoneInfo) -> tuple[datetime, datetime]:
    """Local Monday 00:00 (inclusive) and next Monday 00:00 (exclusive) of an ISO week."""
    monday = date.fromisocalendar(year, week, 1)
    start = datetime.combine(monday, time.min, tzinfo=zone)
    end = datetime.combine(monday + timedelta(days=7), time.min, tzinfo=zone)
    return start, end


def day_bounds(day: date, zone: ZoneInfo) -> tuple[datetime, datetime]:
    """Local 00:00:00 and 23:59:59.999999 of a calendar day."""
    return datetime.combine(day, time.min, tzinfo=zone), datetime.combine(day, time.max, tzinfo=zone)


def previous_weeks(local: datetime, count: int) -> list[tuple[int, int]]:
    """ISO (year, week) pairs for `count` weeks ending with the week of `local`, oldest first."""
    monday = start_of_week(local).date()
    return [iso_week(monday - timedelta(weeks=offset)) for offset in range(count - 1, -1, -1)]
