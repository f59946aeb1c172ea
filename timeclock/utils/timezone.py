"""Timezone-aware date helpers for local business rules."""
import math
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo


@lru_cache(maxsize=None)
def get_zone(name: str) -> ZoneInfo:
    """
    Load an IANA timezone.

    Args:
        name: Zone name, e.g. "America/Santiago"

    Returns:
        ZoneInfo instance (cached)
    """
    return ZoneInfo(name)


def to_local(moment: datetime, zone: ZoneInfo) -> datetime:
    """
    Express a timestamp in the given zone.

    Naive timestamps are taken to already be local wall-clock time.

    Example:
        >>> santiago = get_zone("America/Santiago")
        >>> to_local(datetime(2024, 1, 15, 11, 0, tzinfo=timezone.utc), santiago).hour
        8
    """
    if moment.tzinfo is None:
        return moment.replace(tzinfo=zone)
    return moment.astimezone(zone)


def from_storage(moment: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from MongoDB."""
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def local_date(moment: datetime, zone: ZoneInfo) -> date:
    """Calendar date of a timestamp in the given zone."""
    return to_local(moment, zone).date()


def iso_week_bounds(day: date) -> tuple[date, date]:
    """
    Monday and Sunday of the ISO week containing a date.

    Example:
        >>> iso_week_bounds(date(2024, 1, 17))
        (datetime.date(2024, 1, 15), datetime.date(2024, 1, 21))
    """
    monday = day - timedelta(days=day.weekday())
    return monday, monday + timedelta(days=6)


def minutes_between(start: datetime, end: datetime) -> float:
    """Signed number of minutes from start to end."""
    return (end - start).total_seconds() / 60


def round_minutes(minutes: float) -> int:
    """Round to the nearest whole minute, halves going up."""
    return math.floor(minutes + 0.5)
