"""Configuration for chainwatch runs."""

from chainwatch.config.exchange_config import (
    AppConfig,
    ExchangeConfig,
    RetryConfig,
    mcx_defaults,
    nse_defaults,
)
from chainwatch.config.loader import is_ci_environment, load_config, merge_config_with_env

__all__ = [
    "AppConfig",
    "ExchangeConfig",
    "RetryConfig",
    "is_ci_environment",
    "load_config",
    "mcx_defaults",
    "merge_config_with_env",
    "nse_defaults",
]
