"""Option chain analytics."""

from chainwatch.analytics.processor import OptionChainProcessor

__all__ = ["OptionChainProcessor"]
