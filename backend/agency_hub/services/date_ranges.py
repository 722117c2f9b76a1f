"""Local-time date range helpers.

Ranges are inclusive on both ends: start at 00:00:00.000 of the first day,
end at 23:59:59.999 of the last day, expressed as epoch milliseconds.
"""
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Optional, Tuple

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta

from agency_hub.schemas.view_state import DateRange

PRESETS = ("today", "weekly", "monthly", "yearly", "all")


def _ms(dt: datetime) -> int:
    return round(dt.timestamp() * 1000)


def day_bounds(start_day: date, end_day: date) -> Tuple[int, int]:
    """Epoch-ms bounds covering start_day through end_day in local time."""
    if end_day < start_day:
        start_day, end_day = end_day, start_day
    start = datetime.combine(start_day, time.min)
    end = datetime.combine(end_day, time(23, 59, 59, 999000))
    return _ms(start), _ms(end)


def custom_range(start_day: date, end_day: date) -> DateRange:
    start, end = day_bounds(start_day, end_day)
    lo, hi = sorted((start_day, end_day))
    return DateRange(start=start, end=end, label=f"{lo.isoformat()} - {hi.isoformat()}")


def preset_range(preset: str, today: Optional[date] = None) -> DateRange:
    """Build one of the named ranges shown in the date picker."""
    today = today or date.today()

    if preset == "today":
        start, end = day_bounds(today, today)
        return DateRange(start=start, end=end, label="Today")

    if preset == "weekly":
        # Weeks run Sunday through Saturday
        week_start = today - timedelta(days=(today.weekday() + 1) % 7)
        start, end = day_bounds(week_start, week_start + timedelta(days=6))
        return DateRange(start=start, end=end, label="Weekly")

    if preset == "monthly":
        first = today.replace(day=1)
        start, end = day_bounds(first, first + relativedelta(months=1, days=-1))
        return DateRange(start=start, end=end, label="Monthly")

    if preset == "yearly":
        start, end = day_bounds(date(today.year, 1, 1), date(today.year, 12, 31))
        return DateRange(start=start, end=end, label="Yearly")

    if preset == "all":
        _, end = day_bounds(today, today)
        return DateRange(start=0, end=end, label="All Time")

    raise ValueError(f"Unknown date range preset: {preset}")


def to_epoch_ms(value: Any) -> Optional[int]:
    """
    Parse a record's date value into epoch ms.

    Accepts epoch-ms numbers, digit strings, plain YYYY-MM-DD days (read as
    local midnight so the day doesn't shift), and ISO datetimes. Returns None
    for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        try:
            return int(value)
        except (ValueError, OverflowError):
            return None
    if isinstance(value, datetime):
        return _ms(value)
    if isinstance(value, date):
        return _ms(datetime.combine(value, time.min))
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if text.lstrip("-").isdigit():
        return int(text)
    try:
        # Naive results (including plain days) are local time
        return _ms(isoparse(text))
    except (ValueError, OverflowError):
        return None
