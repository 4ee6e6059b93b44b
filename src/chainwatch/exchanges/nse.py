"""
NSE (National Stock Exchange) adapter.

Wire schema of the nseindia.com JSON API: master-quote for the equity list,
option-chain-contract-info for expiries/strikes and option-chain-v3 for the
per-expiry chain.

Quirks handled here:
- A 2xx body that is not JSON (bot-protection HTML) is retried
- %OI-change is supplied by the exchange
- CE/PE OI totals are supplied in the filtered view
"""

import random
from datetime import date
from typing import Any, Optional

from chainwatch.core.errors import ParseError
from chainwatch.core.exchange import (
    ApiRequest,
    HeuristicThresholds,
    TickerFeed,
    expect_mapping,
    optional_float,
)
from chainwatch.core.models import (
    ContractInfo,
    InstrumentType,
    OptionChainSnapshot,
    RawOptionSide,
    RawStrikeRecord,
    Security,
)

NSE_BASE_URL = "https://www.nseindia.com"
NSE_INDICES = ("NIFTY", "BANKNIFTY", "FINNIFTY", "MIDCPNIFTY", "NIFTYNXT50")

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)
ACCEPT_LANGUAGES = ("en-US,en;q=0.9", "en-GB,en;q=0.8", "en-IN,en;q=0.9")


class NseAdapter:
    """Adapter for the NSE option chain API."""

    name = "nse"
    base_url = NSE_BASE_URL
    date_format = "%d-%b-%Y"
    heuristics = HeuristicThresholds(
        tmj_oi_above=30.0,
        tmj_price_below=-15.0,
        tmg_oi_below=-10.0,
        tmg_price_above=16.0,
    )
    retry_non_json = True
    shares_equity_expiry = True
    dated_ticker_feed = False

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def default_headers(self) -> dict[str, str]:
        return {
            "User-Agent": USER_AGENT,
            "Accept": "*/*",
            "Accept-Language": self._rng.choice(ACCEPT_LANGUAGES),
            "Referer": f"{NSE_BASE_URL}/",
            "X-Requested-With": "XMLHttpRequest",
        }

    def warmup_requests(self) -> list[ApiRequest]:
        return [ApiRequest(path="/", expect_json=False)]

    # -----------------------------------------------
    # Ticker list
    # -----------------------------------------------
    def ticker_list_request(self, as_of: Optional[date] = None) -> ApiRequest:
        return ApiRequest(path="/api/master-quote")

    def parse_ticker_list(self, payload: Any) -> TickerFeed:
        if not isinstance(payload, list):
            raise ParseError("master-quote: expected a JSON array of symbols")

        securities = [Security.equity(str(symbol)) for symbol in payload if symbol]
        securities.extend(Security.index(symbol) for symbol in NSE_INDICES)
        return TickerFeed(securities=securities)

    # -----------------------------------------------
    # Contract info
    # -----------------------------------------------
    def contract_info_request(self, symbol: str) -> ApiRequest:
        return ApiRequest(
            path="/api/option-chain-contract-info",
            params={"symbol": symbol},
        )

    def parse_contract_info(self, symbol: str, payload: Any) -> ContractInfo:
        expiry_dates = expect_mapping(payload, "expiryDates", f"contract-info {symbol}")
        strikes = payload.get("strikePrice") or []
        if not isinstance(expiry_dates, list):
            raise ParseError(f"contract-info {symbol}: expiryDates is not a list")

        return ContractInfo(
            symbol=symbol,
            expiry_dates=tuple(str(d) for d in expiry_dates),
            strikes=tuple(
                s for s in (optional_float(v) for v in strikes) if s is not None
            ),
        )

    # -----------------------------------------------
    # Option chain
    # -----------------------------------------------
    def option_chain_request(self, security: Security, expiry: str) -> ApiRequest:
        chain_type = "Indices" if security.instrument_type == InstrumentType.INDEX else "Equity"
        return ApiRequest(
            path="/api/option-chain-v3",
            params={"type": chain_type, "symbol": security.symbol, "expiry": expiry},
        )

    def parse_option_chain(
        self, security: Security, expiry: str, payload: Any
    ) -> OptionChainSnapshot:
        context = f"option-chain {security.symbol}"
        records = expect_mapping(payload, "records", context)
        filtered = expect_mapping(payload, "filtered", context)

        spot = optional_float(expect_mapping(records, "underlyingValue", context))
        if spot is None:
            raise ParseError(f"{context}: underlyingValue is not numeric")

        filtered_rows = expect_mapping(filtered, "data", context)
        if not isinstance(filtered_rows, list):
            raise ParseError(f"{context}: filtered.data is not a list")

        return OptionChainSnapshot(
            symbol=security.symbol,
            timestamp=str(records.get("timestamp", "")),
            underlying_value=spot,
            records=self._parse_rows(filtered_rows),
            expiry=expiry,
            all_records=self._parse_rows(records.get("data") or []),
            ce_total_oi=_total_oi(filtered.get("CE")),
            pe_total_oi=_total_oi(filtered.get("PE")),
        )

    def parse_raw_strike(self, row: dict[str, Any]) -> Optional[RawStrikeRecord]:
        strike = optional_float(row.get("strikePrice"))
        if strike is None:
            return None

        return RawStrikeRecord(
            strike=strike,
            expiry=row.get("expiryDates") or row.get("expiryDate"),
            ce=_parse_side(row.get("CE")),
            pe=_parse_side(row.get("PE")),
        )

    def security_for(self, symbol: str) -> Security:
        symbol = symbol.upper()
        if symbol in NSE_INDICES:
            return Security.index(symbol)
        return Security.equity(symbol)

    def display_expiry(self, expiry: str) -> str:
        return expiry

    def _parse_rows(self, rows: list) -> list[RawStrikeRecord]:
        parsed = []
        for row in rows:
            if not isinstance(row, dict):
                raise ParseError("option-chain: strike row is not an object")
            record = self.parse_raw_strike(row)
            if record is not None:
                parsed.append(record)
        return parsed


def _parse_side(detail: Any) -> Optional[RawOptionSide]:
    if not isinstance(detail, dict):
        return None

    return RawOptionSide(
        open_interest=optional_float(detail.get("openInterest")),
        change_in_oi=optional_float(detail.get("changeinOpenInterest")),
        last_price=optional_float(detail.get("lastPrice")),
        price_change=optional_float(detail.get("change")),
        pchange=optional_float(detail.get("pchange")),
        pchange_in_oi=optional_float(detail.get("pchangeinOpenInterest")),
        underlying_value=optional_float(detail.get("underlyingValue")),
    )


def _total_oi(totals: Any) -> Optional[float]:
    if not isinstance(totals, dict):
        return None
    return optional_float(totals.get("totOI"))
