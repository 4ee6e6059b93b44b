"""
Expiry selection.

Picks the nearest tradable expiry: dates before today are dropped, today's
expiry counts only before the exchange cutoff, otherwise the first future
date wins.
"""

from datetime import date, time
from typing import Iterable

from chainwatch.core.clock import Clock, market_now
from chainwatch.core.errors import ExpiryResolutionError, ParseError
from chainwatch.core.exchange import parse_expiry


def select_expiry(
    expiry_dates: Iterable[str],
    date_format: str,
    cutoff: time,
    clock: Clock = market_now,
) -> str:
    """
    Select the expiry to fetch.

    Args:
        expiry_dates: Candidate expiry strings (any order)
        date_format: strptime format of the candidates
        cutoff: Local time after which today's expiry is skipped
        clock: Returns "now" in the exchange time zone

    Returns:
        The selected expiry string, as given

    Raises:
        ExpiryResolutionError: If no candidate survives
    """
    now = clock()
    today = now.date()

    candidates: list[tuple[date, str]] = []
    for value in expiry_dates:
        try:
            candidates.append((parse_expiry(value, date_format), value))
        except ParseError as e:
            raise ExpiryResolutionError(str(e)) from e
    candidates.sort(key=lambda c: c[0])

    for expiry_date, value in candidates:
        if expiry_date < today:
            continue
        if expiry_date == today and now.time() >= cutoff:
            continue
        return value

    raise ExpiryResolutionError(
        f"No valid expiry among {len(candidates)} candidates on {today.isoformat()}"
    )

