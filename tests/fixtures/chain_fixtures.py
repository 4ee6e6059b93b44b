"""
Option chain fixtures for testing.

Provides wire payloads in the NSE and MCX shapes, raw strike builders and a
fixed exchange clock so date arithmetic is deterministic.

Usage:
    def test_parse(nse_chain_payload):
        snapshot = NseAdapter().parse_option_chain(security, "30-Dec-2025", nse_chain_payload)
"""

from datetime import datetime
from typing import Optional

import pytest

from chainwatch.core.clock import MARKET_TZ
from chainwatch.core.models import RawOptionSide, RawStrikeRecord

# Monday 15-Dec-2025 10:00 IST
FIXED_NOW = datetime(2025, 12, 15, 10, 0, tzinfo=MARKET_TZ)
NSE_EXPIRY = "30-Dec-2025"
MCX_EXPIRY = "23DEC2025"


def fixed_clock(now: datetime = FIXED_NOW):
    return lambda: now


def make_side(
    oi: Optional[float] = 1000.0,
    ltp: Optional[float] = 10.0,
    pchange_in_oi: Optional[float] = 0.0,
    pchange: Optional[float] = 0.0,
    change_in_oi: Optional[float] = 0.0,
) -> RawOptionSide:
    return RawOptionSide(
        open_interest=oi,
        change_in_oi=change_in_oi,
        last_price=ltp,
        price_change=0.0,
        pchange=pchange,
        pchange_in_oi=pchange_in_oi,
    )


def make_strike(
    strike: float,
    ce: Optional[RawOptionSide] = None,
    pe: Optional[RawOptionSide] = None,
    expiry: str = NSE_EXPIRY,
) -> RawStrikeRecord:
    return RawStrikeRecord(strike=strike, expiry=expiry, ce=ce, pe=pe)


def make_chain(strikes, oi: float = 1000.0, ltp: float = 10.0) -> list[RawStrikeRecord]:
    """Both sides present on every strike with identical OI and price."""
    return [
        make_strike(s, ce=make_side(oi=oi, ltp=ltp), pe=make_side(oi=oi, ltp=ltp))
        for s in strikes
    ]


def nse_row(strike: float, spot: float, ce_oi: float = 1000, pe_oi: float = 800,
            ce_ltp: float = 50.0, pe_ltp: float = 40.0, expiry: str = NSE_EXPIRY) -> dict:
    def side(oi, ltp):
        return {
            "strikePrice": strike,
            "underlyingValue": spot,
            "openInterest": oi,
            "changeinOpenInterest": 100,
            "pchangeinOpenInterest": 11.11,
            "lastPrice": ltp,
            "change": -1.5,
            "pchange": -2.9,
        }

    return {
        "expiryDates": expiry,
        "strikePrice": strike,
        "CE": side(ce_oi, ce_ltp),
        "PE": side(pe_oi, pe_ltp),
    }


def nse_chain_payload(strikes=(24000, 24050, 24100, 24150, 24200), spot: float = 24110.5) -> dict:
    rows = [nse_row(s, spot) for s in strikes]
    return {
        "records": {
            "timestamp": "15-Dec-2025 10:00:00",
            "underlyingValue": spot,
            "data": rows,
            "expiryDates": [NSE_EXPIRY, "27-Jan-2026"],
            "strikePrices": [str(s) for s in strikes],
        },
        "filtered": {
            "data": rows,
            "CE": {"totOI": 5000},
            "PE": {"totOI": 4000},
        },
    }


def mcx_row(strike: float, spot: float, ce_oi: Optional[float] = 200, pe_oi: Optional[float] = 150,
            ce_change: float = 50, pe_change: float = -30) -> dict:
    return {
        "CE_StrikePrice": strike,
        "CE_OpenInterest": ce_oi,
        "CE_ChangeInOI": ce_change,
        "CE_LTP": 120.0,
        "CE_AbsoluteChange": -5.0,
        "CE_NetChange": -4.0,
        "PE_OpenInterest": pe_oi,
        "PE_ChangeInOI": pe_change,
        "PE_LTP": 90.0,
        "PE_AbsoluteChange": 3.0,
        "PE_NetChange": 3.4,
        "ExpiryDate": MCX_EXPIRY,
        "UnderlyingValue": spot,
        "LTT": "/Date(1765773000000)/",
    }


def mcx_chain_payload(strikes=(5200, 5250, 5300, 5350), spot: float = 5270.0) -> dict:
    return {
        "d": {
            "__type": "OptionChain",
            "Data": [mcx_row(s, spot) for s in strikes],
            # 2025-12-15 10:00:00 IST
            "Summary": {"AsOn": "/Date(1765773000000)/", "Count": len(strikes), "Status": None},
        }
    }


@pytest.fixture
def market_clock():
    """Exchange clock pinned to Monday 15-Dec-2025 10:00 IST."""
    return fixed_clock()


@pytest.fixture
def nse_payload():
    return nse_chain_payload()


@pytest.fixture
def mcx_payload():
    return mcx_chain_payload()
