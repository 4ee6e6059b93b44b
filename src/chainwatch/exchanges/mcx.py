"""
MCX (Multi Commodity Exchange) adapter.

Wire schema of the mcxindia.com ASP.NET backpage API. Responses are wrapped
as {"d": {"Data": [...], "Summary": {"AsOn": "/Date(ms)/", "Count": n}}}.

Quirks handled here:
- Ticker list comes from the dated settlement (bhavcopy) feed; the client
  walks back weekdays when a date has no records
- Contract expiries are embedded in the option chain page as `var vTick=[...]`
- A side is present only when its OpenInterest is present
- %OI-change is not supplied and is recomputed (see pchange_in_oi)
- A 2xx non-JSON body is NOT retried
"""

import json
import re
from datetime import date, datetime
from typing import Any, Optional

from chainwatch.core.clock import Clock, market_now, market_today, parse_ms_date
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

MCX_BASE_URL = "https://www.mcxindia.com"
MCX_OPTION_CHAIN_PAGE = "/market-data/option-chain"
MCX_BHAVCOPY_PAGE = "/market-data/bhavcopy"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

_VTICK = re.compile(r"var vTick=(\[.*?\]);", re.DOTALL)

TIMESTAMP_FORMAT = "%d-%b-%Y %H:%M:%S"


def pchange_in_oi(change_in_oi: Optional[float], open_interest: Optional[float]) -> float:
    """
    Percent change in OI as MCX reports it downstream.

    Divides by (openInterest + changeInOI), not by the prior-day OI
    (openInterest - changeInOI). Kept as observed; 0.0 when the
    denominator is zero.
    """
    change = change_in_oi or 0.0
    oi = open_interest or 0.0
    denominator = oi + change
    if denominator == 0:
        return 0.0
    return change / denominator * 100.0


def convert_timestamp(value: Optional[str], clock: Clock = market_now) -> str:
    """Render "/Date(ms)/" as "DD-Mon-YYYY HH:MM:SS" IST, falling back to now."""
    parsed = parse_ms_date(value)
    return (parsed or clock()).strftime(TIMESTAMP_FORMAT)


def convert_expiry(value: str) -> str:
    """Render an MCX expiry ("23DEC2025") as "23-Dec-2025"; unparseable input is returned as-is."""
    try:
        return datetime.strptime(value.strip(), "%d%b%Y").strftime("%d-%b-%Y")
    except ValueError:
        return value


def _expiry_sort_key(value: str):
    try:
        return (0, datetime.strptime(value, "%d%b%Y").date(), value)
    except ValueError:
        return (1, date.max, value)


class McxAdapter:
    """Adapter for the MCX option chain API."""

    name = "mcx"
    base_url = MCX_BASE_URL
    date_format = "%d%b%Y"
    heuristics = HeuristicThresholds(
        tmj_oi_above=30.0,
        tmj_price_below=-15.0,
        tmg_oi_below=-10.0,
        tmg_price_above=15.0,
    )
    retry_non_json = False
    shares_equity_expiry = False
    dated_ticker_feed = True

    def __init__(self, clock: Clock = market_now):
        self._clock = clock

    def default_headers(self) -> dict[str, str]:
        return {
            "User-Agent": USER_AGENT,
            "Accept": "application/json, text/javascript, */*; q=0.01",
            "Accept-Language": "en-US,en;q=0.9",
            "Referer": f"{MCX_BASE_URL}/",
            "X-Requested-With": "XMLHttpRequest",
        }

    def warmup_requests(self) -> list[ApiRequest]:
        # The option chain page sets the ASP.NET session cookie the backpage API needs.
        return [
            ApiRequest(path="/", expect_json=False),
            ApiRequest(
                path=MCX_OPTION_CHAIN_PAGE,
                referer=f"{MCX_BASE_URL}/",
                expect_json=False,
            ),
        ]

    # -----------------------------------------------
    # Ticker list (settlement feed)
    # -----------------------------------------------
    def ticker_list_request(self, as_of: Optional[date] = None) -> ApiRequest:
        as_of = as_of or market_today(self._clock)
        return ApiRequest(
            path="/backpage.aspx/GetDateWiseBhavCopy",
            method="POST",
            json={"Date": as_of.strftime("%Y%m%d"), "InstrumentName": "OPTFUT"},
            referer=f"{MCX_BASE_URL}{MCX_BHAVCOPY_PAGE}",
        )

    def parse_ticker_list(self, payload: Any) -> TickerFeed:
        body = _expect_object(expect_mapping(payload, "d", "bhavcopy"), "d", "bhavcopy")
        rows = body.get("Data") or []
        if not isinstance(rows, list):
            raise ParseError("bhavcopy: Data is not a list")
        summary = _summary(body, "bhavcopy")

        as_on = parse_ms_date(summary.get("AsOn"))
        count = summary.get("Count")
        if count == 0 or not rows:
            return TickerFeed(securities=[], as_of=as_on.date() if as_on else None)

        grouped: dict[str, list[str]] = {}
        for row in rows:
            if not isinstance(row, dict):
                raise ParseError("bhavcopy: row is not an object")
            symbol = str(row.get("Symbol") or "").strip()
            if not symbol:
                continue
            expiries = grouped.setdefault(symbol, [])
            expiry = str(row.get("ExpiryDate") or "").strip()
            if expiry and expiry not in expiries:
                expiries.append(expiry)

        securities = [
            Security(
                symbol=symbol,
                instrument_type=InstrumentType.COMMODITY,
                expiry_dates=tuple(sorted(expiries, key=_expiry_sort_key)),
            )
            for symbol, expiries in grouped.items()
        ]
        return TickerFeed(securities=securities, as_of=as_on.date() if as_on else None)

    # -----------------------------------------------
    # Contract info (vTick script on the option chain page)
    # -----------------------------------------------
    def contract_info_request(self, symbol: str) -> ApiRequest:
        return ApiRequest(
            path=MCX_OPTION_CHAIN_PAGE,
            referer=f"{MCX_BASE_URL}/",
            expect_json=False,
        )

    def parse_contract_info(self, symbol: str, payload: Any) -> ContractInfo:
        match = _VTICK.search(payload if isinstance(payload, str) else "")
        if match is None:
            raise ParseError("option-chain page: vTick data not found")
        try:
            ticks = json.loads(match.group(1))
        except json.JSONDecodeError as e:
            raise ParseError(f"option-chain page: invalid vTick JSON: {e}") from e
        if not isinstance(ticks, list):
            raise ParseError("option-chain page: vTick is not a list")

        expiries: list[str] = []
        for tick in ticks:
            if not isinstance(tick, dict):
                raise ParseError("option-chain page: vTick entry is not an object")
            if str(tick.get("Symbol", "")).upper() != symbol.upper():
                continue
            expiry = str(tick.get("ExpiryDate") or "")
            if expiry and expiry not in expiries:
                expiries.append(expiry)

        if not expiries:
            raise ParseError(f"Symbol '{symbol}' not found")

        return ContractInfo(
            symbol=symbol,
            expiry_dates=tuple(sorted(expiries, key=_expiry_sort_key)),
        )

    # -----------------------------------------------
    # Option chain
    # -----------------------------------------------
    def option_chain_request(self, security: Security, expiry: str) -> ApiRequest:
        return ApiRequest(
            path="/backpage.aspx/GetOptionChain",
            method="POST",
            json={"Commodity": security.symbol, "Expiry": expiry},
            referer=f"{MCX_BASE_URL}{MCX_OPTION_CHAIN_PAGE}",
        )

    def parse_option_chain(
        self, security: Security, expiry: str, payload: Any
    ) -> OptionChainSnapshot:
        context = f"option-chain {security.symbol}"
        body = _expect_object(expect_mapping(payload, "d", context), "d", context)
        rows = expect_mapping(body, "Data", context)
        if not isinstance(rows, list):
            raise ParseError(f"{context}: Data is not a list")

        records: list[RawStrikeRecord] = []
        seen: set[float] = set()
        spot: Optional[float] = None
        for row in rows:
            if not isinstance(row, dict):
                raise ParseError(f"{context}: strike row is not an object")
            if spot is None:
                spot = optional_float(row.get("UnderlyingValue")) or None
            record = self.parse_raw_strike(row)
            if record is None or record.strike in seen:
                continue
            seen.add(record.strike)
            records.append(record)

        if spot is None and records:
            raise ParseError(f"{context}: UnderlyingValue missing")

        summary = _summary(body, context)
        return OptionChainSnapshot(
            symbol=security.symbol,
            timestamp=convert_timestamp(summary.get("AsOn"), self._clock),
            underlying_value=spot or 0.0,
            records=records,
            expiry=expiry,
        )

    def parse_raw_strike(self, row: dict[str, Any]) -> Optional[RawStrikeRecord]:
        strike = optional_float(row.get("CE_StrikePrice"))
        if strike is None:
            strike = optional_float(row.get("PE_StrikePrice"))
        if strike is None:
            return None

        underlying = optional_float(row.get("UnderlyingValue"))
        return RawStrikeRecord(
            strike=strike,
            expiry=row.get("ExpiryDate"),
            ce=_parse_side(row, "CE", underlying),
            pe=_parse_side(row, "PE", underlying),
        )

    def security_for(self, symbol: str) -> Security:
        return Security(symbol=symbol.upper(), instrument_type=InstrumentType.COMMODITY)

    def display_expiry(self, expiry: str) -> str:
        return convert_expiry(expiry)


def _parse_side(row: dict[str, Any], prefix: str, underlying: Optional[float]) -> Optional[RawOptionSide]:
    open_interest = optional_float(row.get(f"{prefix}_OpenInterest"))
    if open_interest is None:
        return None

    change_in_oi = optional_float(row.get(f"{prefix}_ChangeInOI"))
    return RawOptionSide(
        open_interest=open_interest,
        change_in_oi=change_in_oi,
        last_price=optional_float(row.get(f"{prefix}_LTP")),
        price_change=optional_float(row.get(f"{prefix}_AbsoluteChange")),
        pchange=optional_float(row.get(f"{prefix}_NetChange")),
        pchange_in_oi=pchange_in_oi(change_in_oi, open_interest),
        underlying_value=underlying,
    )


def _expect_object(value: Any, key: str, context: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ParseError(f"{context}: '{key}' is not an object")
    return value


def _summary(body: dict[str, Any], context: str) -> dict[str, Any]:
    summary = body.get("Summary")
    if summary is None:
        return {}
    return _expect_object(summary, "Summary", context)
