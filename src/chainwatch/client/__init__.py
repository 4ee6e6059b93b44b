"""Exchange HTTP client."""

from chainwatch.client.exchange_client import ExchangeClient, create_client
from chainwatch.client.session import ExchangeSession

__all__ = ["ExchangeClient", "ExchangeSession", "create_client"]
