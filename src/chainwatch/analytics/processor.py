"""
Option Chain Processor

Pure transform from raw per-strike quotes to analyst-ready records:
raw strikes + spot + expiry → processed strikes, spread, days to expiry and
CE/PE OI totals.

Pipeline:
1. ATM strike = strike closest to spot (ties go to the lower strike)
2. Spread = gap from ATM to the next strike up (mean gap as fallback)
3. Per side: moneyness by index distance, time value, TMJ/TMG flag
4. Window = ATM ±6 strikes plus any OI outlier above the band maximum
5. OI rank per side within the window
6. CE/PE OI totals (exchange-supplied, else summed over the window)

Nothing here performs I/O; identical inputs give identical output.
"""

from datetime import date
from typing import Callable, Optional, Sequence

from loguru import logger

from chainwatch.core.clock import Clock, market_now, market_today
from chainwatch.core.errors import DateArithmeticError
from chainwatch.core.exchange import ExchangeAdapter, HeuristicThresholds, parse_expiry
from chainwatch.core.models import (
    OptionSide,
    ProcessedOptionSide,
    ProcessedStrikeRecord,
    ProcessResult,
    RawOptionSide,
    RawStrikeRecord,
)

WINDOW_HALF_WIDTH = 6


def find_atm_strike(strikes: Sequence[float], spot: float) -> Optional[float]:
    """Strike closest to spot; on a tie the lower strike wins. None if no strikes."""
    best: Optional[float] = None
    best_distance = float("inf")
    for strike in strikes:
        distance = abs(strike - spot)
        if distance < best_distance or (distance == best_distance and strike < best):
            best = strike
            best_distance = distance
    return best


def calculate_spread(strikes: Sequence[float], atm: Optional[float]) -> float:
    """
    Strike interval near the money.

    Next strike above ATM minus ATM on the sorted, de-duplicated list. When ATM
    is the top strike or absent, the mean gap across the whole list; 0.0 for
    fewer than two strikes.
    """
    ordered = sorted(set(strikes))
    if atm in ordered:
        position = ordered.index(atm)
        if position + 1 < len(ordered):
            return ordered[position + 1] - atm

    if len(ordered) < 2:
        return 0.0
    return (ordered[-1] - ordered[0]) / (len(ordered) - 1)


def classify_moneyness(
    strike: float,
    atm: float,
    index_space: Sequence[float],
    side: OptionSide,
) -> str:
    """
    Moneyness label by index distance: "ATM", "N OTM" or "N ITM".

    Calls above ATM are OTM and below are ITM; puts are the reverse. Distance is
    the difference in positions within the sorted strike list, since strike
    spacing is not always uniform.
    """
    if strike == atm:
        return "ATM"

    above = strike > atm
    otm = above if side == OptionSide.CALL else not above
    label = "OTM" if otm else "ITM"

    try:
        distance = abs(index_space.index(strike) - index_space.index(atm))
    except ValueError:
        return label
    return f"{distance} {label}"


def calculate_time_value(
    last_price: Optional[float],
    strike: float,
    spot: float,
    side: OptionSide,
) -> float:
    """
    Premium minus intrinsic value. Negative results signal mispricing and are
    returned as-is.
    """
    price = last_price or 0.0
    if side == OptionSide.CALL:
        return price - (spot - strike) if spot > strike else price
    return price - (strike - spot) if strike > spot else price


def days_to_expiry(expiry: str, date_format: str, today: date) -> int:
    """
    Calendar days from today to expiry (0 on expiry day).

    Raises:
        DateArithmeticError: If the expiry has already passed
        ParseError: If the expiry string does not match date_format
    """
    expiry_date = parse_expiry(expiry, date_format)
    days = (expiry_date - today).days
    if days < 0:
        raise DateArithmeticError(
            f"Current date ({today.isoformat()}) is after expiry date "
            f"({expiry_date.isoformat()}). Days difference: {days}"
        )
    return days


def filter_strike_window(
    records: Sequence[ProcessedStrikeRecord],
    atm: Optional[float],
    half_width: int = WINDOW_HALF_WIDTH,
) -> list[ProcessedStrikeRecord]:
    """
    Keep the ATM ±half_width band plus out-of-band OI outliers.

    A strike outside the band survives when its max(CE OI, PE OI) strictly
    exceeds the largest max-OI inside the band.
    """
    ordered = sorted(records, key=lambda r: r.strike)
    atm_index = next((i for i, r in enumerate(ordered) if r.strike == atm), 0)

    start = max(0, atm_index - half_width)
    end = min(len(ordered), atm_index + half_width + 1)
    band_max = max((r.max_oi() for r in ordered[start:end]), default=0.0)
    band_max = max(band_max, 0.0)

    return [
        record
        for i, record in enumerate(ordered)
        if start <= i < end or record.max_oi() > band_max
    ]


def rank_open_interest(records: Sequence[ProcessedStrikeRecord]) -> None:
    """Assign 1-based OI rank per side, highest OI first. Sides without OI stay unranked."""
    for side in (OptionSide.CALL, OptionSide.PUT):
        ranked = [
            processed
            for processed in (record.side(side) for record in records)
            if processed is not None and processed.raw.open_interest is not None
        ]
        ranked.sort(key=lambda p: p.raw.open_interest, reverse=True)
        for rank, processed in enumerate(ranked, start=1):
            processed.oi_rank = rank


class OptionChainProcessor:
    """
    Enrich one snapshot's strikes for a single expiry.

    Attributes:
        heuristics: TMJ/TMG thresholds of the exchange
        date_format: Expiry date format of the exchange
        half_width: Strikes kept either side of ATM

    Example:
        ```python
        processor = OptionChainProcessor.for_adapter(NseAdapter())
        result = processor.process(snapshot.records, snapshot.underlying_value, snapshot.expiry)
        ```
    """

    def __init__(
        self,
        heuristics: HeuristicThresholds,
        date_format: str,
        clock: Clock = market_now,
        display_expiry: Optional[Callable[[str], str]] = None,
        half_width: int = WINDOW_HALF_WIDTH,
    ):
        self.heuristics = heuristics
        self.date_format = date_format
        self.half_width = half_width
        self._clock = clock
        self._display_expiry = display_expiry or (lambda value: value)

    @classmethod
    def for_adapter(cls, adapter: ExchangeAdapter, clock: Clock = market_now) -> "OptionChainProcessor":
        return cls(
            heuristics=adapter.heuristics,
            date_format=adapter.date_format,
            clock=clock,
            display_expiry=adapter.display_expiry,
        )

    def process(
        self,
        raw_strikes: Sequence[RawStrikeRecord],
        spot: float,
        expiry: str,
        ce_oi_total: Optional[float] = None,
        pe_oi_total: Optional[float] = None,
    ) -> ProcessResult:
        """
        Process one expiry's strikes.

        Args:
            raw_strikes: Raw strike records (duplicates by strike: first wins)
            spot: Underlying value
            expiry: Expiry being processed, in the exchange date format
            ce_oi_total: Exchange-supplied call OI total, if any
            pe_oi_total: Exchange-supplied put OI total, if any

        Returns:
            ProcessResult with windowed strikes, spread, days to expiry and totals

        Raises:
            DateArithmeticError: If the expiry has already passed
            ParseError: If the expiry cannot be parsed
        """
        dte = days_to_expiry(expiry, self.date_format, market_today(self._clock))

        unique: dict[float, RawStrikeRecord] = {}
        for record in raw_strikes:
            unique.setdefault(record.strike, record)

        index_space = sorted(unique)
        atm = find_atm_strike(index_space, spot)
        spread = calculate_spread(index_space, atm)
        label = self._display_expiry(expiry)

        processed = [
            ProcessedStrikeRecord(
                strike=strike,
                expiry=label,
                days_to_expiry=dte,
                ce=self._process_side(record.ce, strike, spot, atm, index_space, OptionSide.CALL, dte),
                pe=self._process_side(record.pe, strike, spot, atm, index_space, OptionSide.PUT, dte),
            )
            for strike, record in unique.items()
        ]

        window = filter_strike_window(processed, atm, self.half_width)
        rank_open_interest(window)

        ce_total = ce_oi_total if ce_oi_total is not None else _sum_oi(window, OptionSide.CALL)
        pe_total = pe_oi_total if pe_oi_total is not None else _sum_oi(window, OptionSide.PUT)

        logger.debug(
            f"Processed {len(index_space)} strikes → {len(window)} "
            f"(ATM={atm}, spread={spread}, dte={dte})"
        )
        return ProcessResult(
            strikes=window,
            spread=spread,
            days_to_expiry=dte,
            ce_oi_total=ce_total,
            pe_oi_total=pe_total,
        )

    def _process_side(
        self,
        raw: Optional[RawOptionSide],
        strike: float,
        spot: float,
        atm: Optional[float],
        index_space: list[float],
        side: OptionSide,
        dte: int,
    ) -> Optional[ProcessedOptionSide]:
        if raw is None:
            return None

        pchange_in_oi = raw.pchange_in_oi or 0.0
        return ProcessedOptionSide(
            raw=raw,
            moneyness=classify_moneyness(strike, atm, index_space, side),
            time_value=calculate_time_value(raw.last_price, strike, spot, side),
            pchange_in_oi=pchange_in_oi,
            heuristic=self.heuristics.classify(pchange_in_oi, raw.pchange),
            days_to_expiry=dte,
        )


def _sum_oi(records: Sequence[ProcessedStrikeRecord], side: OptionSide) -> float:
    total = 0.0
    for record in records:
        processed = record.side(side)
        if processed is not None:
            total += processed.raw.open_interest or 0.0
    return total
