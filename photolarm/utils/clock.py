# photolarm/utils/clock.py
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_HHMM_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

LOCAL_ZONE_NAMES = {"", "local"}

MS_PER_HOUR = 60 * 60 * 1000


class InvalidTimeOfDayError(ValueError):
    pass


def parse_hhmm(hhmm: str) -> tuple[int, int]:
    """Parse a 24-hour "HH:mm" (or "H:mm") string into (hour, minute)."""
    m = _HHMM_RE.match((hhmm or "").strip())
    if not m:
        raise InvalidTimeOfDayError(f"Invalid time of day: {hhmm!r} (expected HH:mm)")
    return int(m.group(1)), int(m.group(2))


def hhmm_to_minutes(hhmm: str) -> int:
    h, m = parse_hhmm(hhmm)
    return h * 60 + m


def parse_iso(value: str) -> datetime:
    """ISO-8601 to an aware datetime. Accepts a trailing Z; naive values are UTC."""
    dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_iso(dt: datetime) -> str:
    """Render an instant as a UTC ISO string with a Z suffix."""
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_zone(name: Optional[str]) -> Optional[tzinfo]:
    """IANA name -> ZoneInfo. "local"/empty -> None (keep the instant's own offset)."""
    if name is None or name.strip().lower() in LOCAL_ZONE_NAMES:
        return None
    if name.strip().upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name!r}") from e


def to_wall_clock(dt: datetime, zone: Optional[tzinfo]) -> datetime:
    return dt.astimezone(zone) if zone is not None else dt


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def at_time_of_day(day: datetime, hhmm: str) -> datetime:
    """Same calendar day as `day`, wall-clock hour/minute from "HH:mm"."""
    h, m = parse_hhmm(hhmm)
    return day.replace(hour=h, minute=m, second=0, microsecond=0)


def add_days(dt: datetime, days: int) -> datetime:
    # wall-clock day arithmetic, re-resolved for DST zones
    shifted = dt + timedelta(days=days)
    return shifted.astimezone(timezone.utc).astimezone(shifted.tzinfo)


def add_exact(dt: datetime, delta: timedelta) -> datetime:
    """Absolute-time addition; the result stays on the wall clock of `dt`."""
    return (dt.astimezone(timezone.utc) + delta).astimezone(dt.tzinfo)


def hours_to_timedelta(hours: float) -> timedelta:
    """Fractional hours as an exact millisecond duration."""
    return timedelta(milliseconds=round(hours * MS_PER_HOUR))


def minutes_of_day(dt: datetime) -> int:
    return dt.hour * 60 + dt.minute
