"""Time helpers pinned to the exchange time zone (IST)."""

import re
from datetime import date, datetime, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo

MARKET_TZ = ZoneInfo("Asia/Kolkata")

Clock = Callable[[], datetime]

_MS_DATE = re.compile(r"/Date\((-?\d+)")


def market_now() -> datetime:
    """Current time in the exchange time zone."""
    return datetime.now(MARKET_TZ)


def market_today(clock: Optional[Clock] = None) -> date:
    """Today's date in the exchange time zone."""
    return (clock or market_now)().date()


def previous_weekday(day: date) -> date:
    """Step back one day, skipping Saturday and Sunday."""
    day -= timedelta(days=1)
    while day.weekday() >= 5:
        day -= timedelta(days=1)
    return day


def parse_ms_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a .NET JSON date ("/Date(1766159098000)/") into an IST datetime.

    Returns None when the value does not carry an epoch.
    """
    match = _MS_DATE.search(value or "")
    if match is None:
        return None
    return datetime.fromtimestamp(int(match.group(1)) / 1000, MARKET_TZ)
