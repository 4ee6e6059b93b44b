"""
Exchange Configuration Module

Dataclass configuration for exchange clients and batch runs. Defaults match
what each exchange tolerates in practice; CI runs use their own values.

Key patterns:
- Plain dataclasses with defaults, built from dicts via from_dict()
- validate() returns a list of problems instead of raising
- Core components receive these objects; they never read the environment
"""

from dataclasses import dataclass, field, fields
from datetime import time
from typing import Any, Optional

from chainwatch.core.exchange import market_time
from chainwatch.utils.retry import RetryPolicy


@dataclass
class RetryConfig:
    """Backoff parameters (seconds) for one exchange."""

    base_delay: float = 0.1
    factor: float = 2.0
    max_delay: float = 3.0
    max_attempts: int = 3

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            base_delay=self.base_delay,
            factor=self.factor,
            max_delay=self.max_delay,
            max_attempts=self.max_attempts,
        )

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> "RetryConfig":
        return cls(**_known(cls, data or {}))


@dataclass
class ExchangeConfig:
    """
    Client and batch settings for one exchange.

    Attributes:
        name: Exchange key ("nse" or "mcx")
        timeout: HTTP timeout in seconds
        ci_timeout: HTTP timeout in seconds for CI runs
        warmup_delay: Pause after session warmup in seconds
        ci_warmup_delay: Warmup pause for CI runs
        retry: Backoff parameters
        ci_retry: Backoff parameters for CI runs
        max_concurrent: Batch concurrency cap
        ci_max_concurrent: Batch concurrency cap for CI runs
        batch_timeout: Batch deadline in seconds for CI runs (None = no deadline)
        expiry_cutoff: Local "HH:MM" after which today's expiry is skipped
    """

    name: str
    timeout: float = 20.0
    ci_timeout: float = 12.0
    warmup_delay: float = 0.2
    ci_warmup_delay: float = 0.1
    retry: RetryConfig = field(default_factory=RetryConfig)
    ci_retry: RetryConfig = field(default_factory=RetryConfig)
    max_concurrent: int = 10
    ci_max_concurrent: int = 15
    batch_timeout: Optional[float] = None
    expiry_cutoff: str = "15:30"

    def retry_policy(self, ci: bool = False) -> RetryPolicy:
        return (self.ci_retry if ci else self.retry).to_policy()

    def concurrency(self, ci: bool = False) -> int:
        return self.ci_max_concurrent if ci else self.max_concurrent

    def http_timeout(self, ci: bool = False) -> float:
        return self.ci_timeout if ci else self.timeout

    def warmup_pause(self, ci: bool = False) -> float:
        return self.ci_warmup_delay if ci else self.warmup_delay

    def deadline(self, ci: bool = False) -> Optional[float]:
        return self.batch_timeout if ci else None

    def cutoff_time(self) -> time:
        return market_time(self.expiry_cutoff)

    def validate(self) -> list[str]:
        errors = []
        if self.max_concurrent < 1 or self.ci_max_concurrent < 1:
            errors.append(f"{self.name}: concurrency must be >= 1")
        if self.timeout <= 0 or self.ci_timeout <= 0:
            errors.append(f"{self.name}: timeout must be positive")
        if self.batch_timeout is not None and self.batch_timeout <= 0:
            errors.append(f"{self.name}: batch_timeout must be positive")
        for retry in (self.retry, self.ci_retry):
            if retry.max_attempts < 1:
                errors.append(f"{self.name}: retry max_attempts must be >= 1")
        try:
            self.cutoff_time()
        except ValueError:
            errors.append(f"{self.name}: invalid expiry_cutoff {self.expiry_cutoff!r}")
        return errors

    @classmethod
    def from_dict(cls, data: dict[str, Any], defaults: "ExchangeConfig") -> "ExchangeConfig":
        """Overlay a (possibly partial) dict onto defaults."""
        values = {f.name: getattr(defaults, f.name) for f in fields(cls)}
        for key, value in _known(cls, data).items():
            if key in ("retry", "ci_retry"):
                base = getattr(defaults, key)
                merged = {**{f.name: getattr(base, f.name) for f in fields(RetryConfig)}, **(value or {})}
                values[key] = RetryConfig.from_dict(merged)
            else:
                values[key] = value
        return cls(**values)


def nse_defaults() -> ExchangeConfig:
    return ExchangeConfig(
        name="nse",
        timeout=20.0,
        ci_timeout=12.0,
        warmup_delay=0.2,
        ci_warmup_delay=0.1,
        retry=RetryConfig(base_delay=0.1, factor=2.0, max_delay=3.0, max_attempts=3),
        ci_retry=RetryConfig(base_delay=0.18, factor=2.0, max_delay=2.0, max_attempts=3),
        max_concurrent=10,
        ci_max_concurrent=15,
        batch_timeout=750.0,
        expiry_cutoff="15:30",
    )


def mcx_defaults() -> ExchangeConfig:
    return ExchangeConfig(
        name="mcx",
        timeout=30.0,
        ci_timeout=30.0,
        warmup_delay=0.3,
        ci_warmup_delay=0.3,
        retry=RetryConfig(base_delay=0.3, factor=2.0, max_delay=10.0, max_attempts=3),
        ci_retry=RetryConfig(base_delay=0.3, factor=2.0, max_delay=10.0, max_attempts=3),
        max_concurrent=3,
        ci_max_concurrent=2,
        batch_timeout=300.0,
        expiry_cutoff="17:00",
    )


@dataclass
class AppConfig:
    """
    Top-level run configuration.

    Attributes:
        mode: "batch" (all tickers) or "single" (one symbol)
        exchange: "nse", "mcx" or "both" (batch only)
        ci: Automated run (CI / GitHub Actions)
        output_dir: Directory for batch output files
        log_level: Loguru level
        log_file: Optional rotating log file
        symbol: Symbol for single mode
        expiry: Expiry for single mode (None = nearest valid)
        cache_ttl: Seconds a cached fetch stays valid
        nse: NSE exchange settings
        mcx: MCX exchange settings
    """

    mode: str = "batch"
    exchange: str = "nse"
    ci: bool = False
    output_dir: str = "."
    log_level: str = "INFO"
    log_file: Optional[str] = None
    symbol: Optional[str] = None
    expiry: Optional[str] = None
    cache_ttl: float = 300.0
    nse: ExchangeConfig = field(default_factory=nse_defaults)
    mcx: ExchangeConfig = field(default_factory=mcx_defaults)

    def exchanges(self) -> list[ExchangeConfig]:
        if self.exchange == "both":
            return [self.nse, self.mcx]
        return [self.exchange_config(self.exchange)]

    def exchange_config(self, name: str) -> ExchangeConfig:
        if name == "nse":
            return self.nse
        if name == "mcx":
            return self.mcx
        raise ValueError(f"Unknown exchange: {name}")

    def validate(self) -> list[str]:
        errors = []
        if self.mode not in ("batch", "single"):
            errors.append(f"Invalid mode: {self.mode}. Must be 'batch' or 'single'")
        if self.exchange not in ("nse", "mcx", "both"):
            errors.append(f"Invalid exchange: {self.exchange}. Must be 'nse', 'mcx' or 'both'")
        if self.mode == "single" and self.exchange == "both":
            errors.append("Single mode needs one exchange, not 'both'")
        if self.mode == "single" and not self.symbol:
            errors.append("Single mode needs a symbol")
        if self.log_level.upper() not in ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"Invalid log_level: {self.log_level}")
        if self.cache_ttl < 0:
            errors.append("cache_ttl cannot be negative")
        errors.extend(self.nse.validate())
        errors.extend(self.mcx.validate())
        return errors

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AppConfig":
        values = _known(cls, data)
        values["nse"] = ExchangeConfig.from_dict(data.get("nse") or {}, nse_defaults())
        values["mcx"] = ExchangeConfig.from_dict(data.get("mcx") or {}, mcx_defaults())
        return cls(**values)


def _known(cls, data: dict[str, Any]) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}
