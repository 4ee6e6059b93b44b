"""Threshold alerts over processed option chains."""

from chainwatch.alerts.models import Alert, AlertType, AlertValues, RulesOutput
from chainwatch.alerts.rules import RuleEngine, SymbolChain, default_rules

__all__ = [
    "Alert",
    "AlertType",
    "AlertValues",
    "RuleEngine",
    "RulesOutput",
    "SymbolChain",
    "default_rules",
]
