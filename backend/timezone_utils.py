"""
Timezone utilities for shop-aware date/time handling.

Timestamps are stored as naive UTC. Report date filters and bill numbers are
expressed in the shop's local calendar, so a sale made at 00:30 local time
lands on the right day even when the server runs in UTC.
"""
from datetime import datetime, date, timedelta
from typing import Optional, Tuple
import pytz

from config import settings


def get_shop_timezone(shop_timezone: Optional[str] = None) -> pytz.BaseTzInfo:
    """
    Get pytz timezone object for a shop.

    Falls back to DEFAULT_TIMEZONE when unset, and to UTC when the name is invalid.
    """
    try:
        return pytz.timezone(shop_timezone or settings.DEFAULT_TIMEZONE)
    except pytz.exceptions.UnknownTimeZoneError:
        return pytz.UTC


def get_shop_now(shop_timezone: Optional[str] = None) -> datetime:
    """Current local time in the shop's timezone (aware)"""
    tz = get_shop_timezone(shop_timezone)
    return datetime.utcnow().replace(tzinfo=pytz.UTC).astimezone(tz)


def get_shop_today(shop_timezone: Optional[str] = None) -> date:
    return get_shop_now(shop_timezone).date()


def get_shop_day_bounds(
    start_date: Optional[date],
    end_date: Optional[date],
    shop_timezone: Optional[str] = None,
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Convert an inclusive local date range into naive UTC datetimes.

    The start is 00:00:00 local on start_date, the end is 23:59:59.999999 local
    on end_date. Either side may be None (open range).

    Example:
        For India (UTC+5:30), 2026-03-01..2026-03-01 becomes
        2026-02-28 18:30:00 .. 2026-03-01 18:29:59.999999 UTC
    """
    tz = get_shop_timezone(shop_timezone)
    start_utc = end_utc = None

    if start_date is not None:
        local_start = tz.localize(datetime.combine(start_date, datetime.min.time()))
        start_utc = local_start.astimezone(pytz.UTC).replace(tzinfo=None)

    if end_date is not None:
        local_end = tz.localize(datetime.combine(end_date, datetime.min.time())) + timedelta(days=1)
        end_utc = (local_end.astimezone(pytz.UTC) - timedelta(microseconds=1)).replace(tzinfo=None)

    return start_utc, end_utc


def utc_to_shop_date(utc_datetime: datetime, shop_timezone: Optional[str] = None) -> date:
    """
    Convert UTC datetime to date in the shop's timezone.

    Used for grouping bills by day in reports and exports.
    """
    tz = get_shop_timezone(shop_timezone)

    if utc_datetime.tzinfo is None:
        utc_datetime = utc_datetime.replace(tzinfo=pytz.UTC)

    return utc_datetime.astimezone(tz).date()
