import os
from datetime import date, datetime, time
from typing import Optional, Union
from zoneinfo import ZoneInfo


def _timezone() -> ZoneInfo:
    name = os.environ.get("APP_TIMEZONE", "UTC")
    return ZoneInfo(name)


def now_tz() -> datetime:
    return datetime.now(_timezone())


def today_tz() -> date:
    return now_tz().date()


def parse_date(value: Union[str, date, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def parse_time(value: Union[str, time, None]) -> Optional[time]:
    """Accepts ``HH:MM`` or ``HH:MM:SS``; returns None for blank or malformed input."""
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value).strip())
    except ValueError:
        return None


def format_time(value: Optional[time]) -> str:
    if value is None:
        return ""
    return value.strftime("%H:%M")
