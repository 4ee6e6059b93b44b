"""
Alert Data Models

Alerts are derived, ephemeral values grouped per symbol into a RulesOutput.
to_dict() renders the artifact shape written to batch_rules.json and served
to clients.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class AlertType(str, Enum):
    """Threshold rule that produced an alert."""

    HUGE_OI_INCREASE = "HUGE_OI_INCREASE"
    HUGE_OI_DECREASE = "HUGE_OI_DECREASE"
    LOW_PRICE = "LOW_PRICE"
    NEGATIVE_TIME_VALUE = "NEGATIVE TIME VALUE"


@dataclass(frozen=True, slots=True)
class AlertValues:
    """Supporting values captured when the alert fired."""

    time_val: float
    days_to_expiry: int
    pchange_in_oi: Optional[float] = None
    last_price: Optional[float] = None
    open_interest: Optional[float] = None
    the_money: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        optional = {
            "pchangeInOi": self.pchange_in_oi,
            "lastPrice": self.last_price,
            "openInterest": self.open_interest,
            "theMoney": self.the_money,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        data["timeVal"] = self.time_val
        data["daysToExpiry"] = self.days_to_expiry
        return data


@dataclass(frozen=True, slots=True)
class Alert:
    """
    One flagged strike side.

    Attributes:
        symbol: Underlying symbol
        strike_price: Strike that fired
        expiry_date: Expiry of the strike
        option_type: "CE" or "PE"
        alert_type: Rule that fired
        description: Human-readable summary
        spread: Strike interval of the chain
        values: Supporting value snapshot
    """

    symbol: str
    strike_price: float
    expiry_date: str
    option_type: str
    alert_type: AlertType
    description: str
    spread: float
    values: AlertValues

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "strikePrice": self.strike_price,
            "expiryDate": self.expiry_date,
            "optionType": self.option_type,
            "alertType": self.alert_type.value,
            "description": self.description,
            "spread": self.spread,
            "values": self.values.to_dict(),
        }


@dataclass(slots=True)
class RulesOutput:
    """All alerts for one symbol in one run."""

    symbol: str
    timestamp: str
    underlying_value: float
    alerts: list[Alert] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "timestamp": self.timestamp,
            "underlyingValue": self.underlying_value,
            "alerts": [alert.to_dict() for alert in self.alerts],
        }
