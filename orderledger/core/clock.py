from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from orderledger.core.config import LOCAL_TIMEZONE


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def local_zone(name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(name or LOCAL_TIMEZONE)


def local_midnight(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> datetime:
    """Start of the current local day, as an aware UTC datetime."""
    tz = local_zone(tz_name)
    local_now = (now or now_utc()).astimezone(tz)
    start = datetime.combine(local_now.date(), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc)


def day_bounds(start_day: date, end_day: Optional[date] = None, tz_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    """[00:00:00 of start_day, 23:59:59.999999 of end_day] in local time, returned in UTC."""
    tz = local_zone(tz_name)
    end_day = end_day or start_day
    start = datetime.combine(start_day, time.min, tzinfo=tz)
    end = datetime.combine(end_day + timedelta(days=1), time.min, tzinfo=tz) - timedelta(microseconds=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def day_key(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> str:
    """Local calendar day as YYYYMMDD."""
    return (now or now_utc()).astimezone(local_zone(tz_name)).strftime("%Y%m%d")
