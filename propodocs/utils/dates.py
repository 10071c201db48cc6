from datetime import date, datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as naive UTC, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def is_past(moment: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if moment is None:
        return False
    return to_naive_utc(moment) < (now or utcnow())


def format_us_date(value: date) -> str:
    """e.g. 10/17/2026"""
    return f"{value.month}/{value.day}/{value.year}"


def format_us_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{format_us_date(value)}, {hour}:{value.minute:02d}:{value.second:02d} {suffix} UTC"


def format_amount(value: Optional[float]) -> str:
    """Thousands separators, no trailing zero cents: 1500 -> 1,500, 99.5 -> 99.5"""
    if not value:
        return "0"
    text = f"{value:,.2f}"
    return text.rstrip("0").rstrip(".")
