# FILE: pharmacy_stock/utils/timezone.py
from __future__ import annotations

from datetime import datetime, date
from zoneinfo import ZoneInfo

from pharmacy_stock.core.config import settings

LOCAL_TZ = ZoneInfo(settings.TIMEZONE)


def now_local() -> datetime:
    """
    Returns a *naive* datetime in the configured business timezone.
    DateTime columns are naive.
    """
    return datetime.now(LOCAL_TZ).replace(tzinfo=None)


def today_local() -> date:
    return now_local().date()


def as_date(value: date | datetime | None) -> date:
    """None -> today; datetime -> its calendar date."""
    if value is None:
        return today_local()
    if isinstance(value, datetime):
        return value.date()
    return value
