"""Exchange adapters."""

from chainwatch.exchanges.mcx import McxAdapter
from chainwatch.exchanges.nse import NseAdapter

ADAPTERS = {
    "nse": NseAdapter,
    "mcx": McxAdapter,
}


def get_adapter(name: str):
    """Instantiate the adapter registered under ``name``."""
    try:
        return ADAPTERS[name.lower()]()
    except KeyError:
        raise ValueError(f"Unknown exchange: {name}. Must be one of {sorted(ADAPTERS)}")


__all__ = ["ADAPTERS", "McxAdapter", "NseAdapter", "get_adapter"]
