"""
Alert Rules and Rule Engine

Threshold rules evaluated over one symbol's processed strikes. Unlike a
first-wins decision engine, every registered rule runs against every
side-present strike and any subset may fire.

Key patterns:
- Rule protocol (name + evaluate) for duck-typed registration
- Pure evaluation: identical inputs always give identical alerts
- Final moneyness whitelist drops far-from-money alerts
- Stats track how often each rule fires (observability only)
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Protocol, Sequence, runtime_checkable

from loguru import logger

from chainwatch.alerts.models import Alert, AlertType, AlertValues, RulesOutput
from chainwatch.core.models import OptionSide, ProcessedOptionSide, ProcessedStrikeRecord

HUGE_OI_INCREASE_PCT = 1000.0
HUGE_OI_DECREASE_PCT = -50.0

NEAR_MONEY = frozenset({"ATM", "1 OTM", "1 ITM"})
REPORTED_MONEYNESS = frozenset({"ATM", "1 OTM", "1 ITM", "2 OTM", "2 ITM"})


@dataclass(frozen=True, slots=True)
class StrikeContext:
    """Everything a rule needs to judge one side of one strike."""

    symbol: str
    strike: float
    expiry: str
    side: OptionSide
    detail: ProcessedOptionSide
    spot: float
    spread: float
    days_to_expiry: int

    @property
    def strike_label(self) -> str:
        return _format_strike(self.strike)

    def make_alert(
        self,
        alert_type: AlertType,
        description: str,
        last_price: Optional[float] = None,
    ) -> Alert:
        raw = self.detail.raw
        return Alert(
            symbol=self.symbol,
            strike_price=self.strike,
            expiry_date=self.expiry,
            option_type=self.side.value,
            alert_type=alert_type,
            description=description,
            spread=self.spread,
            values=AlertValues(
                pchange_in_oi=self.detail.pchange_in_oi,
                last_price=raw.last_price if last_price is None else last_price,
                open_interest=raw.open_interest,
                the_money=self.detail.moneyness,
                time_val=self.detail.time_value,
                days_to_expiry=self.days_to_expiry,
            ),
        )


@runtime_checkable
class AlertRule(Protocol):
    """
    Rule protocol for alert rules.

    Attributes:
        name: Unique rule name/identifier
        alert_type: Alert type this rule emits

    Methods:
        evaluate: Return an Alert if the rule fires, None otherwise
    """

    name: str
    alert_type: AlertType

    def evaluate(self, ctx: StrikeContext) -> Optional[Alert]:
        ...


class HugeOIIncreaseRule:
    """Fires when %OI-change exceeds +1000%."""

    name = "huge_oi_increase"
    alert_type = AlertType.HUGE_OI_INCREASE

    def __init__(self, threshold: float = HUGE_OI_INCREASE_PCT):
        self.threshold = threshold

    def evaluate(self, ctx: StrikeContext) -> Optional[Alert]:
        pct = ctx.detail.pchange_in_oi
        if pct <= self.threshold:
            return None
        return ctx.make_alert(
            self.alert_type,
            f"{ctx.symbol} {ctx.side.value} {ctx.strike_label} strike has massive OI increase "
            f"of {pct:.2f}% ({ctx.days_to_expiry} days to expiry)",
        )


class HugeOIDecreaseRule:
    """Fires when %OI-change drops below -50%."""

    name = "huge_oi_decrease"
    alert_type = AlertType.HUGE_OI_DECREASE

    def __init__(self, threshold: float = HUGE_OI_DECREASE_PCT):
        self.threshold = threshold

    def evaluate(self, ctx: StrikeContext) -> Optional[Alert]:
        pct = ctx.detail.pchange_in_oi
        if pct >= self.threshold:
            return None
        return ctx.make_alert(
            self.alert_type,
            f"{ctx.symbol} {ctx.side.value} {ctx.strike_label} strike has massive OI decrease "
            f"of {pct:.2f}% ({ctx.days_to_expiry} days to expiry)",
        )


class LowPriceRule:
    """
    Cheap time value near the money.

    Fires when 0 < timeValue < f * spot and timeValue / max(dte, 1) < 0.0005 * spot,
    with f = 0.002 for dte <= 3 and 0.001 otherwise. Only ATM and 1 strike either side.
    """

    name = "low_price"
    alert_type = AlertType.LOW_PRICE

    def evaluate(self, ctx: StrikeContext) -> Optional[Alert]:
        if ctx.detail.moneyness not in NEAR_MONEY:
            return None

        tv = ctx.detail.time_value
        dte = ctx.days_to_expiry
        max_factor = 0.002 if dte <= 3 else 0.001
        per_day = tv / max(dte, 1)
        if not (tv > 0 and tv < max_factor * ctx.spot and per_day < 0.0005 * ctx.spot):
            return None

        last_price = ctx.detail.raw.last_price or 0.0
        return ctx.make_alert(
            self.alert_type,
            f"{ctx.symbol} {ctx.side.value} {ctx.strike_label} strike has low price "
            f"of ₹{last_price:.2f} ({dte} days to expiry)",
            last_price=last_price,
        )


class NegativeTimeValueRule:
    """Traded near-the-money premium below intrinsic value."""

    name = "negative_time_value"
    alert_type = AlertType.NEGATIVE_TIME_VALUE

    def evaluate(self, ctx: StrikeContext) -> Optional[Alert]:
        if ctx.detail.moneyness not in NEAR_MONEY:
            return None

        tv = ctx.detail.time_value
        last_price = ctx.detail.raw.last_price
        if not (tv < 0 and last_price is not None and last_price > 0):
            return None

        return ctx.make_alert(
            self.alert_type,
            f"{ctx.symbol} {ctx.side.value} {ctx.strike_label} strike has negative time value "
            f"of {tv:.2f} ({ctx.days_to_expiry} days to expiry)",
        )


def default_rules() -> list[AlertRule]:
    return [
        HugeOIIncreaseRule(),
        HugeOIDecreaseRule(),
        LowPriceRule(),
        NegativeTimeValueRule(),
    ]


@dataclass(slots=True)
class SymbolChain:
    """Input of one symbol to RuleEngine.evaluate_batch()."""

    symbol: str
    timestamp: str
    spot: float
    spread: float
    strikes: Sequence[ProcessedStrikeRecord]


class RuleEngine:
    """
    Evaluate alert rules over processed strikes.

    Every rule runs for every side-present strike. Alerts whose moneyness is
    outside ATM ±2 are dropped; a symbol with no remaining alerts produces no
    RulesOutput.

    Example:
        ```python
        engine = RuleEngine()
        output = engine.evaluate("NIFTY", timestamp, spot, result.spread, result.strikes)
        if output:
            print(len(output.alerts))
        ```
    """

    def __init__(self, rules: Optional[Iterable[AlertRule]] = None):
        self._rules: list[AlertRule] = []
        self._stats: dict[str, int] = {}

        for rule in default_rules() if rules is None else rules:
            self.register_rule(rule)

        logger.debug(f"RuleEngine initialized with {len(self._rules)} rules")

    def register_rule(self, rule: AlertRule) -> None:
        """Register a rule, replacing any rule with the same name."""
        self._rules = [r for r in self._rules if r.name != rule.name]
        self._rules.append(rule)
        self._stats.setdefault(rule.name, 0)

    def evaluate(
        self,
        symbol: str,
        timestamp: str,
        spot: float,
        spread: float,
        strikes: Sequence[ProcessedStrikeRecord],
    ) -> Optional[RulesOutput]:
        """
        Evaluate all rules for one symbol.

        Returns:
            RulesOutput with the reported alerts, or None if none qualify
        """
        alerts: list[Alert] = []
        for record in strikes:
            for side in (OptionSide.CALL, OptionSide.PUT):
                detail = record.side(side)
                if detail is None:
                    continue
                ctx = StrikeContext(
                    symbol=symbol,
                    strike=record.strike,
                    expiry=record.expiry or "UNKNOWN",
                    side=side,
                    detail=detail,
                    spot=spot,
                    spread=spread,
                    days_to_expiry=record.days_to_expiry,
                )
                alerts.extend(self._evaluate_strike(ctx))

        alerts = [a for a in alerts if a.values.the_money in REPORTED_MONEYNESS]
        if not alerts:
            return None

        logger.info(f"{symbol}: {len(alerts)} alerts")
        return RulesOutput(
            symbol=symbol,
            timestamp=timestamp,
            underlying_value=spot,
            alerts=alerts,
        )

    def evaluate_batch(self, chains: Iterable[SymbolChain]) -> list[RulesOutput]:
        """Evaluate many symbols; only symbols with alerts are returned."""
        outputs = []
        for chain in chains:
            output = self.evaluate(chain.symbol, chain.timestamp, chain.spot, chain.spread, chain.strikes)
            if output is not None:
                outputs.append(output)
        return outputs

    def get_rule_stats(self) -> dict[str, int]:
        return self._stats.copy()

    def get_rules(self) -> list[str]:
        return [rule.name for rule in self._rules]

    @property
    def rule_count(self) -> int:
        return len(self._rules)

    def _evaluate_strike(self, ctx: StrikeContext) -> list[Alert]:
        fired = []
        for rule in self._rules:
            alert = rule.evaluate(ctx)
            if alert is not None:
                self._stats[rule.name] = self._stats.get(rule.name, 0) + 1
                fired.append(alert)
        return fired


def _format_strike(strike: float) -> str:
    return str(int(strike)) if float(strike).is_integer() else str(strike)
