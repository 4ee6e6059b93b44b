"""
Chain Runner

Drives one exchange end to end: ticker list → batch fetch → process →
rules → files. Also serves single-symbol analysis through a TTL cache.

Key patterns:
- Per-target isolation: fetch, parse and date errors fail one symbol only
- Timeouts are counted separately from other failures
- Batch output order follows the ticker list, not completion order
"""

import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from loguru import logger

from chainwatch.alerts.models import RulesOutput
from chainwatch.alerts.rules import RuleEngine
from chainwatch.analytics.processor import OptionChainProcessor
from chainwatch.client.exchange_client import ExchangeClient
from chainwatch.config.exchange_config import ExchangeConfig
from chainwatch.core.clock import Clock, market_now
from chainwatch.core.errors import ChainwatchError, FetchTimeout
from chainwatch.core.models import FetchResult, FetchTarget, OptionChainSnapshot, ProcessResult
from chainwatch.data.cache import ResultCache
from chainwatch.data.snapshot_writer import SnapshotWriter
from chainwatch.orchestration.batch import BatchFetcher


@dataclass
class BatchSummary:
    """
    Outcome counts for one batch run.

    Attributes:
        exchange: Exchange key
        total: Targets attempted
        succeeded: Targets fetched and processed
        failed: Targets that failed (excluding timeouts)
        timed_out: Targets cut by the batch deadline
        alerts: Total alerts across all symbols
        elapsed: Wall time in seconds
        errors: Symbol → error message for failed and timed-out targets
        rules_output: Per-symbol rule outputs (only symbols with alerts)
    """

    exchange: str
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    timed_out: int = 0
    alerts: int = 0
    elapsed: float = 0.0
    errors: dict[str, str] = field(default_factory=dict)
    rules_output: list[RulesOutput] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "exchange": self.exchange,
            "total": self.total,
            "success": self.succeeded,
            "failed": self.failed,
            "timeout": self.timed_out,
            "alerts": self.alerts,
            "elapsed_seconds": round(self.elapsed, 2),
        }


@dataclass
class SingleAnalysis:
    """Processed chain and alerts for one symbol."""

    symbol: str
    expiry: str
    timestamp: str
    underlying_value: float
    result: ProcessResult
    rules: Optional[RulesOutput] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "symbol": self.symbol,
            "expiry": self.expiry,
            "timestamp": self.timestamp,
            "underlying_value": self.underlying_value,
            "spread": self.result.spread,
            "days_to_expiry": self.result.days_to_expiry,
            "ce_oi": self.result.ce_oi_total,
            "pe_oi": self.result.pe_oi_total,
            "processed_data": [record.to_dict() for record in self.result.strikes],
            "alerts": [alert.to_dict() for alert in self.rules.alerts] if self.rules else [],
        }


class ChainRunner:
    """
    Batch and single-symbol driver for one exchange.

    Attributes:
        client: Exchange client
        config: Exchange settings (concurrency, deadline, cutoff)
        ci: Use CI concurrency and deadline
        writer: Optional file writer for batch output
        engine: Rule engine
        cache: TTL cache for single-symbol fetches
    """

    def __init__(
        self,
        client: ExchangeClient,
        config: ExchangeConfig,
        ci: bool = False,
        writer: Optional[SnapshotWriter] = None,
        engine: Optional[RuleEngine] = None,
        cache: Optional[ResultCache] = None,
        clock: Clock = market_now,
    ):
        self.client = client
        self.config = config
        self.ci = ci
        self.writer = writer
        self.engine = engine or RuleEngine()
        self.cache = cache or ResultCache()
        self.processor = OptionChainProcessor.for_adapter(client.adapter, clock=clock)
        self.fetcher = BatchFetcher(client, cutoff=config.cutoff_time(), clock=clock)

    async def run_batch(self, symbols: Optional[Iterable[str]] = None) -> BatchSummary:
        """
        Fetch, process and evaluate every security (or the given symbols).

        Returns:
            BatchSummary with counts and rule outputs
        """
        started = time.perf_counter()
        securities = await self.client.fetch_ticker_list()
        if symbols is not None:
            wanted = {s.upper() for s in symbols}
            securities = [s for s in securities if s.symbol.upper() in wanted]

        targets = [FetchTarget(security=s) for s in securities]
        results = await self.fetcher.fetch_all(
            targets,
            concurrency_limit=self.config.concurrency(self.ci),
            deadline=self.config.deadline(self.ci),
        )

        summary = BatchSummary(exchange=self.client.name, total=len(results))
        for result in results:
            self._collect(result, summary)

        if self.writer is not None:
            self.writer.write_rules(summary.rules_output)

        summary.elapsed = time.perf_counter() - started
        logger.info(
            f"{'=' * 20} {self.client.name.upper()} BATCH SUMMARY {'=' * 20}\n"
            f"  Total:    {summary.total}\n"
            f"  Success:  {summary.succeeded}\n"
            f"  Failed:   {summary.failed}\n"
            f"  Timeout:  {summary.timed_out}\n"
            f"  Alerts:   {summary.alerts} across {len(summary.rules_output)} symbols\n"
            f"  Elapsed:  {summary.elapsed:.1f}s"
        )
        return summary

    async def run_single(self, symbol: str, expiry: Optional[str] = None) -> SingleAnalysis:
        """
        Analyse one symbol.

        Raises:
            ChainwatchError: Fetch, parse, expiry or date errors surface directly
        """
        target = FetchTarget(security=self.client.adapter.security_for(symbol), expiry=expiry)
        self.fetcher.reset()
        resolved = await self.fetcher.resolve_expiry(target)

        snapshot: OptionChainSnapshot = await self.cache.get_or_fetch(
            (self.client.name, target.symbol, resolved),
            lambda: self.client.fetch_option_chain(target.security, resolved),
        )
        result = self._process(snapshot)
        rules = self.engine.evaluate(
            snapshot.symbol,
            snapshot.timestamp,
            snapshot.underlying_value,
            result.spread,
            result.strikes,
        )
        return SingleAnalysis(
            symbol=snapshot.symbol,
            expiry=resolved,
            timestamp=snapshot.timestamp,
            underlying_value=snapshot.underlying_value,
            result=result,
            rules=rules,
        )

    def _collect(self, result: FetchResult, summary: BatchSummary) -> None:
        symbol = result.target.symbol
        if not result.ok:
            if isinstance(result.error, FetchTimeout):
                summary.timed_out += 1
            else:
                summary.failed += 1
            summary.errors[symbol] = str(result.error)
            return

        snapshot = result.snapshot
        try:
            processed = self._process(snapshot)
        except ChainwatchError as e:
            logger.warning(f"✗ {symbol}: {e.error_type}: {e}")
            summary.failed += 1
            summary.errors[symbol] = str(e)
            return

        summary.succeeded += 1
        if self.writer is not None:
            self.writer.write_processed(symbol, snapshot.timestamp, snapshot.underlying_value, processed)

        output = self.engine.evaluate(
            symbol,
            snapshot.timestamp,
            snapshot.underlying_value,
            processed.spread,
            processed.strikes,
        )
        if output is not None:
            summary.rules_output.append(output)
            summary.alerts += len(output.alerts)

    def _process(self, snapshot: OptionChainSnapshot) -> ProcessResult:
        return self.processor.process(
            snapshot.records,
            snapshot.underlying_value,
            snapshot.expiry,
            ce_oi_total=snapshot.ce_total_oi,
            pe_oi_total=snapshot.pe_total_oi,
        )
