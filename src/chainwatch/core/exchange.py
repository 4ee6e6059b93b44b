"""
Exchange Adapter Protocol

One generic client/processor/rule-engine pipeline serves every exchange.
Everything that differs between exchanges (URLs, wire schema, date format,
heuristic thresholds, response quirks) lives behind this small adapter
interface.

Key patterns:
- Protocol for duck-typing (adapters need no common base class)
- ApiRequest describes a call; the client owns transport and retry
- Parsing raises ParseError on wire-shape mismatch
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Optional, Protocol, runtime_checkable

from chainwatch.core.errors import ParseError
from chainwatch.core.models import (
    ContractInfo,
    Heuristic,
    OptionChainSnapshot,
    RawStrikeRecord,
    Security,
)


@dataclass(frozen=True, slots=True)
class HeuristicThresholds:
    """
    Thresholds for the TMJ/TMG divergence flag.

    TMJ fires when %OI-change > tmj_oi_above AND %price-change < tmj_price_below.
    TMG fires when %OI-change < tmg_oi_below AND %price-change > tmg_price_above.
    """

    tmj_oi_above: float = 30.0
    tmj_price_below: float = -15.0
    tmg_oi_below: float = -10.0
    tmg_price_above: float = 16.0

    def classify(
        self,
        pchange_in_oi: Optional[float],
        pchange: Optional[float],
    ) -> Optional[Heuristic]:
        oi = pchange_in_oi or 0.0
        price = pchange or 0.0
        if oi > self.tmj_oi_above and price < self.tmj_price_below:
            return Heuristic.TMJ
        if oi < self.tmg_oi_below and price > self.tmg_price_above:
            return Heuristic.TMG
        return None


@dataclass(frozen=True, slots=True)
class ApiRequest:
    """
    Description of one exchange API call.

    Attributes:
        path: Path relative to the exchange base URL
        method: HTTP method
        params: Query string parameters
        json: JSON body (POST endpoints)
        referer: Referer header override
        expect_json: False for HTML pages (body returned as text)
    """

    path: str
    method: str = "GET"
    params: dict[str, str] = field(default_factory=dict)
    json: Optional[dict[str, Any]] = None
    referer: Optional[str] = None
    expect_json: bool = True


@dataclass(slots=True)
class TickerFeed:
    """Parsed ticker list, with the date the server reports it as of (if any)."""

    securities: list[Security]
    as_of: Optional[date] = None


@runtime_checkable
class ExchangeAdapter(Protocol):
    """
    Exchange-specific behaviour plugged into the generic pipeline.

    Attributes:
        name: Short exchange name ("nse", "mcx")
        base_url: Exchange web root, also the warmup page
        date_format: strptime format of expiry dates on the wire
        heuristics: TMJ/TMG thresholds
        retry_non_json: Whether a 2xx non-JSON body is retried
        shares_equity_expiry: Equities share one expiry calendar
        dated_ticker_feed: Ticker list comes from a dated settlement feed
    """

    name: str
    base_url: str
    date_format: str
    heuristics: HeuristicThresholds
    retry_non_json: bool
    shares_equity_expiry: bool
    dated_ticker_feed: bool

    def default_headers(self) -> dict[str, str]:
        ...

    def warmup_requests(self) -> list[ApiRequest]:
        ...

    def ticker_list_request(self, as_of: Optional[date] = None) -> ApiRequest:
        ...

    def parse_ticker_list(self, payload: Any) -> TickerFeed:
        ...

    def contract_info_request(self, symbol: str) -> ApiRequest:
        ...

    def parse_contract_info(self, symbol: str, payload: Any) -> ContractInfo:
        ...

    def option_chain_request(self, security: Security, expiry: str) -> ApiRequest:
        ...

    def parse_option_chain(
        self, security: Security, expiry: str, payload: Any
    ) -> OptionChainSnapshot:
        ...

    def parse_raw_strike(self, row: dict[str, Any]) -> Optional[RawStrikeRecord]:
        ...

    def security_for(self, symbol: str) -> Security:
        ...

    def display_expiry(self, expiry: str) -> str:
        ...


def parse_expiry(value: str, date_format: str) -> date:
    """Parse an expiry string with an exchange date format (case-insensitive month)."""
    try:
        return datetime.strptime(value.strip().title(), date_format).date()
    except (AttributeError, ValueError) as e:
        raise ParseError(f"Invalid expiry date '{value}' for format {date_format}") from e


def expect_mapping(payload: Any, key: str, context: str) -> Any:
    """Fetch a required key from a JSON object, raising ParseError on mismatch."""
    if not isinstance(payload, dict) or key not in payload:
        raise ParseError(f"{context}: missing '{key}' in response")
    return payload[key]


def optional_float(value: Any) -> Optional[float]:
    """Coerce a wire number (int, float, numeric string) to float; '-' and '' are None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).replace(",", "").strip()
    if text in ("", "-"):
        return None
    try:
        return float(text)
    except ValueError:
        return None


def market_time(value: str) -> time:
    """Parse "HH:MM" into a time."""
    hour, minute = value.split(":")
    return time(int(hour), int(minute))
