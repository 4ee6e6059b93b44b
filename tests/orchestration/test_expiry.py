"""
Tests for expiry selection.
"""

from datetime import time

import pytest

from chainwatch.core.errors import ExpiryResolutionError
from chainwatch.orchestration.expiry import select_expiry
from tests.fixtures.chain_fixtures import FIXED_NOW, fixed_clock

NSE_FORMAT = "%d-%b-%Y"
CUTOFF = time(15, 30)


def at(hour: int, minute: int = 0):
    return fixed_clock(FIXED_NOW.replace(hour=hour, minute=minute))


class TestSelectExpiry:
    def test_earliest_future_date(self):
        dates = ["27-Jan-2026", "30-Dec-2025", "23-Dec-2025"]
        assert select_expiry(dates, NSE_FORMAT, CUTOFF, clock=at(10)) == "23-Dec-2025"

    def test_past_dates_discarded(self):
        dates = ["09-Dec-2025", "30-Dec-2025"]
        assert select_expiry(dates, NSE_FORMAT, CUTOFF, clock=at(10)) == "30-Dec-2025"

    def test_today_accepted_before_cutoff(self):
        dates = ["15-Dec-2025", "30-Dec-2025"]
        assert select_expiry(dates, NSE_FORMAT, CUTOFF, clock=at(15, 29)) == "15-Dec-2025"

    def test_today_skipped_at_cutoff(self):
        dates = ["15-Dec-2025", "30-Dec-2025"]
        assert select_expiry(dates, NSE_FORMAT, CUTOFF, clock=at(15, 30)) == "30-Dec-2025"

    def test_mcx_cutoff_and_format(self):
        dates = ["15DEC2025", "16JAN2026"]
        assert select_expiry(dates, "%d%b%Y", time(17, 0), clock=at(16, 45)) == "15DEC2025"
        assert select_expiry(dates, "%d%b%Y", time(17, 0), clock=at(17, 5)) == "16JAN2026"

    def test_no_valid_date(self):
        with pytest.raises(ExpiryResolutionError):
            select_expiry(["01-Dec-2025", "15-Dec-2025"], NSE_FORMAT, CUTOFF, clock=at(16))

    def test_empty_list(self):
        with pytest.raises(ExpiryResolutionError):
            select_expiry([], NSE_FORMAT, CUTOFF, clock=at(10))

    def test_unparseable_date(self):
        with pytest.raises(ExpiryResolutionError):
            select_expiry(["2025-12-30"], NSE_FORMAT, CUTOFF, clock=at(10))
