"""Date-only parsing for rentals, in the market's local timezone."""
from datetime import datetime, date

import pytz

from carmarket.config import Config
from carmarket.utils.constants import DATE_FMT


def market_tz():
    return pytz.timezone(Config.MARKET_TZ)


def to_market_date(value) -> date:
    """
    Reduce a date-like value to a calendar date in the market timezone.
    Supports:
      - date objects and 'YYYY-MM-DD'
      - datetime objects and ISO strings with 'T' or ' ' and an optional
        'Z' / '+03:00' offset; aware values are converted to the market
        timezone first, naive ones are taken as local
    Raises ValueError on anything else.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return value
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            raise ValueError("empty date")
        if len(s) == 10:
            return datetime.strptime(s, DATE_FMT).date()
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
    else:
        raise ValueError(f"Unsupported date: {value!r}")

    if dt.tzinfo is not None:
        dt = dt.astimezone(market_tz())
    return dt.date()


def inclusive_days(start: date, end: date) -> int:
    """Rental length counting both ends: same-day rentals are one day."""
    return (end - start).days + 1
