# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by St. Edward Church & School (Nashville, TN).
# Unauthorized use, distribution, or modification is prohibited.

"""
Timezone utilities for converting between UTC and the business timezone
"""
from datetime import date, datetime, time, timedelta
import pytz
from typing import Optional, Tuple

import config


def get_business_timezone():
    """Get the configured business timezone"""
    return pytz.timezone(config.BUSINESS_TIMEZONE)


def get_local_time() -> datetime:
    """Get current time in the business timezone"""
    return datetime.now(get_business_timezone())


def utc_now() -> datetime:
    """Get current aware UTC time"""
    return datetime.now(pytz.UTC)


def utc_to_local(utc_dt: datetime) -> datetime:
    """Convert UTC datetime to business time"""
    if utc_dt is None:
        return None

    # If the datetime is naive (no timezone), assume it's UTC
    if utc_dt.tzinfo is None:
        utc_dt = pytz.UTC.localize(utc_dt)

    return utc_dt.astimezone(get_business_timezone())


def format_local_time(dt: Optional[datetime], include_timezone: bool = True) -> str:
    """Format datetime in business time for display"""
    if dt is None:
        return "Never"

    local_dt = utc_to_local(dt)
    if include_timezone:
        return local_dt.strftime('%d %b %Y at %H:%M %Z')
    return local_dt.strftime('%d %b %Y at %H:%M')


def to_api_timestamp(dt: datetime) -> str:
    """Serialize an aware datetime as ISO-8601 UTC with milliseconds and a Z suffix"""
    if dt.tzinfo is None:
        raise ValueError("dt must be timezone-aware")

    utc_dt = dt.astimezone(pytz.UTC)
    return utc_dt.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def day_window(target: date, tz_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    """
    Build the fetch window for one business day.

    The window starts at 23:59 of the previous day and ends at 23:59:59.999
    of the target day, both in the business timezone, so appointments stored
    right at midnight survive timezone skew at the boundary.

    Returns:
        (scheduled_after, scheduled_before) as aware datetimes in UTC
    """
    tz = pytz.timezone(tz_name) if tz_name else get_business_timezone()

    previous_day = target - timedelta(days=1)
    start = tz.localize(datetime.combine(previous_day, time(23, 59)))
    end = tz.localize(datetime.combine(target, time(23, 59, 59, 999000)))

    return start.astimezone(pytz.UTC), end.astimezone(pytz.UTC)


def parse_api_date(value) -> Optional[date]:
    """Parse a YYYY-MM-DD string (or ISO timestamp) into a date"""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def parse_api_time(value) -> Optional[time]:
    """Parse HH:MM or HH:MM:SS into a time"""
    if not value:
        return None
    if isinstance(value, time):
        return value

    text = str(value).strip()
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    return None


def format_api_time(value: Optional[time]) -> Optional[str]:
    """Format a time as HH:MM for the API"""
    if value is None:
        return None
    return value.strftime('%H:%M')
