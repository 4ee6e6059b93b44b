"""
Option Chain Data Models

Exchange-neutral data models shared by the client, processor and rule engine.
Uses dataclasses with slots=True (internal data, validated on entry).

Key patterns:
- dataclass(slots=True) for performance
- frozen=True for values sourced from the exchange (Security, ContractInfo)
- __post_init__ validation for data integrity
- to_dict() renders the camelCase wire shape consumed downstream

Lifecycle:
    ContractInfo and OptionChainSnapshot live for one fetch → process → alert
    cycle. ProcessedStrikeRecord is derived and never mutated after processing.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class InstrumentType(str, Enum):
    """Exchange-specific classification of an underlying."""

    EQUITY = "Equity"
    INDEX = "Indices"
    COMMODITY = "Commodity"


class OptionSide(str, Enum):
    """Call or put side of a strike."""

    CALL = "CE"
    PUT = "PE"


class Heuristic(str, Enum):
    """
    Open interest / price divergence flag.

    TMJ: OI building up sharply while premium collapses (writers piling in).
    TMG: OI unwinding while premium jumps (short covering).
    """

    TMJ = "TMJ"
    TMG = "TMG"


@dataclass(frozen=True, slots=True)
class Security:
    """
    Tradable underlying from an exchange master list.

    Attributes:
        symbol: Exchange symbol (e.g., "RELIANCE", "NIFTY", "CRUDEOIL")
        instrument_type: Equity, index or commodity
        expiry_dates: Known expiry dates (commodity lists carry them inline)
    """

    symbol: str
    instrument_type: InstrumentType
    expiry_dates: tuple[str, ...] = ()

    def __post_init__(self):
        if not self.symbol:
            raise ValueError("Security symbol cannot be empty")

    @classmethod
    def equity(cls, symbol: str) -> "Security":
        return cls(symbol=symbol, instrument_type=InstrumentType.EQUITY)

    @classmethod
    def index(cls, symbol: str) -> "Security":
        return cls(symbol=symbol, instrument_type=InstrumentType.INDEX)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "symbol": self.symbol,
            "type": self.instrument_type.value,
        }
        if self.expiry_dates:
            data["expiryDates"] = list(self.expiry_dates)
        return data


@dataclass(frozen=True, slots=True)
class ContractInfo:
    """Available expiry dates and strike universe for one security."""

    symbol: str
    expiry_dates: tuple[str, ...]
    strikes: tuple[float, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "expiryDates": list(self.expiry_dates),
            "strikePrice": [_format_number(s) for s in self.strikes],
        }


@dataclass(slots=True)
class RawOptionSide:
    """
    Raw quote fields for one side (CE or PE) of a strike.

    Any field may be missing on the wire; missing numeric fields are None.
    ``pchange_in_oi`` is only populated when the exchange supplies it or the
    adapter recomputes it.
    """

    open_interest: Optional[float] = None
    change_in_oi: Optional[float] = None
    last_price: Optional[float] = None
    price_change: Optional[float] = None
    pchange: Optional[float] = None
    pchange_in_oi: Optional[float] = None
    underlying_value: Optional[float] = None

    def to_dict(self, strike: float) -> dict[str, Any]:
        return {
            "strikePrice": strike,
            "underlyingValue": self.underlying_value,
            "openInterest": self.open_interest,
            "changeinOpenInterest": self.change_in_oi,
            "lastPrice": self.last_price,
            "change": self.price_change,
            "pchange": self.pchange,
            "pchangeinOpenInterest": self.pchange_in_oi,
        }


@dataclass(slots=True)
class RawStrikeRecord:
    """
    One strike's raw call/put quotes.

    Strike price is the key within one snapshot+expiry; either side may be absent.
    """

    strike: float
    expiry: Optional[str] = None
    ce: Optional[RawOptionSide] = None
    pe: Optional[RawOptionSide] = None

    def side(self, side: OptionSide) -> Optional[RawOptionSide]:
        return self.ce if side == OptionSide.CALL else self.pe


@dataclass(slots=True)
class OptionChainSnapshot:
    """
    Result of one option chain fetch.

    Attributes:
        symbol: Underlying symbol
        timestamp: Exchange timestamp, "DD-Mon-YYYY HH:MM:SS"
        underlying_value: Spot price of the underlying
        records: Single-expiry strike records used for processing
        expiry: Expiry the snapshot was fetched for
        all_records: Full-chain view across expiries, when the exchange sends it
        ce_total_oi: Exchange-supplied call OI total (None if not supplied)
        pe_total_oi: Exchange-supplied put OI total (None if not supplied)
    """

    symbol: str
    timestamp: str
    underlying_value: float
    records: list[RawStrikeRecord]
    expiry: Optional[str] = None
    all_records: list[RawStrikeRecord] = field(default_factory=list)
    ce_total_oi: Optional[float] = None
    pe_total_oi: Optional[float] = None


@dataclass(slots=True)
class ProcessedOptionSide:
    """RawOptionSide plus derived analytics."""

    raw: RawOptionSide
    moneyness: str
    time_value: float
    pchange_in_oi: float
    heuristic: Optional[Heuristic] = None
    oi_rank: Optional[int] = None
    days_to_expiry: int = 0

    def to_dict(self, strike: float) -> dict[str, Any]:
        data = self.raw.to_dict(strike)
        data["pchangeinOpenInterest"] = self.pchange_in_oi
        data["the_money"] = self.moneyness
        data["tambu"] = self.heuristic.value if self.heuristic else None
        data["time_val"] = self.time_value
        data["oiRank"] = self.oi_rank
        data["days_to_expiry"] = self.days_to_expiry
        return data


@dataclass(slots=True)
class ProcessedStrikeRecord:
    """One strike after enrichment; either side may be absent."""

    strike: float
    expiry: Optional[str]
    days_to_expiry: int
    ce: Optional[ProcessedOptionSide] = None
    pe: Optional[ProcessedOptionSide] = None

    def side(self, side: OptionSide) -> Optional[ProcessedOptionSide]:
        return self.ce if side == OptionSide.CALL else self.pe

    def max_oi(self) -> float:
        """Larger of call and put open interest (0 when both missing)."""
        return max(_side_oi(self.ce), _side_oi(self.pe))

    def to_dict(self) -> dict[str, Any]:
        return {
            "expiryDates": self.expiry,
            "strikePrice": self.strike,
            "CE": self.ce.to_dict(self.strike) if self.ce else None,
            "PE": self.pe.to_dict(self.strike) if self.pe else None,
            "days_to_expiry": self.days_to_expiry,
        }


@dataclass(slots=True)
class ProcessResult:
    """Output of OptionChainProcessor.process()."""

    strikes: list[ProcessedStrikeRecord]
    spread: float
    days_to_expiry: int
    ce_oi_total: float
    pe_oi_total: float


@dataclass(frozen=True, slots=True)
class FetchTarget:
    """One unit of batch work: a security and (optionally) a pinned expiry."""

    security: Security
    expiry: Optional[str] = None

    @property
    def symbol(self) -> str:
        return self.security.symbol


@dataclass(slots=True)
class FetchResult:
    """
    Per-target batch outcome. Exactly one of snapshot/error is set.

    Attributes:
        target: Target this result belongs to
        snapshot: Fetched snapshot on success
        error: Failure on error (FetchTimeout when cut by the batch deadline)
    """

    target: FetchTarget
    snapshot: Optional[OptionChainSnapshot] = None
    error: Optional[Exception] = None

    def __post_init__(self):
        if (self.snapshot is None) == (self.error is None):
            raise ValueError("FetchResult needs exactly one of snapshot or error")

    @property
    def ok(self) -> bool:
        return self.error is None


def _side_oi(side) -> float:
    if side is None:
        return 0.0
    raw = side.raw if isinstance(side, ProcessedOptionSide) else side
    return raw.open_interest or 0.0


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
