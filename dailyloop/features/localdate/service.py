"""
Local calendar day resolution.

A user's "day" is the calendar date in their configured IANA timezone.
Offsets are applied to the local calendar date, never to the UTC instant,
so the day before a 23- or 25-hour DST day is still exactly one day back.
Unknown timezones fall back to UTC with a warning instead of failing.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dailyloop.core.logging import log_event

FALLBACK_TIMEZONE = "UTC"


@dataclass(frozen=True)
class LocalDays:
    today: str
    yesterday: str
    timezone: str
    warning: Optional[str] = None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_zone(timezone_name: Optional[str]) -> Tuple[ZoneInfo, Optional[str]]:
    """Return the zone for ``timezone_name`` and a warning if UTC was substituted."""
    if not timezone_name:
        return ZoneInfo(FALLBACK_TIMEZONE), f"No timezone configured; using {FALLBACK_TIMEZONE}"
    try:
        return ZoneInfo(timezone_name), None
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(FALLBACK_TIMEZONE), f"Unknown timezone '{timezone_name}'; using {FALLBACK_TIMEZONE}"


def is_known_timezone(timezone_name: Optional[str]) -> bool:
    return bool(timezone_name) and resolve_zone(timezone_name)[1] is None


def _local_date(zone: ZoneInfo, offset_days: int, now: Optional[datetime]) -> date:
    moment = now or utc_now()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(zone).date() + timedelta(days=offset_days)


def local_date_string(timezone_name: Optional[str], offset_days: int = 0, *, now: Optional[datetime] = None) -> str:
    """``YYYY-MM-DD`` for the local day in ``timezone_name``, shifted by ``offset_days``."""
    zone, warning = resolve_zone(timezone_name)
    if warning:
        log_event("warning", "localdate.timezone_fallback", request_id=None, event_type="timezone_fallback", extra={"timezone": timezone_name})
    return _local_date(zone, offset_days, now).isoformat()


def resolve_local_days(timezone_name: Optional[str], *, now: Optional[datetime] = None) -> LocalDays:
    """Today and yesterday for one instant, computed against the same clock reading."""
    zone, warning = resolve_zone(timezone_name)
    if warning:
        log_event("warning", "localdate.timezone_fallback", request_id=None, event_type="timezone_fallback", extra={"timezone": timezone_name})
    moment = now or utc_now()
    return LocalDays(
        today=_local_date(zone, 0, moment).isoformat(),
        yesterday=_local_date(zone, -1, moment).isoformat(),
        timezone=zone.key,
        warning=warning,
    )
