"""
Batch Fetch Orchestrator

Fans out many option chain fetches under a concurrency cap and collects one
FetchResult per target, aligned by position with the input.

Key patterns:
- asyncio.Semaphore bounds in-flight fetches
- One target's failure never aborts the batch (error captured in its result)
- Equities on a shared-calendar exchange resolve their expiry once; indices
  and commodities resolve individually
- Optional deadline: completed results are kept, the rest become FetchTimeout
"""

import asyncio
import time
from datetime import time as dt_time
from typing import Optional, Sequence

from loguru import logger

from chainwatch.client.exchange_client import ExchangeClient
from chainwatch.core.clock import Clock, market_now
from chainwatch.core.errors import ChainwatchError, FetchTimeout
from chainwatch.core.models import FetchResult, FetchTarget, InstrumentType, Security
from chainwatch.orchestration.expiry import select_expiry


class BatchFetcher:
    """
    Concurrent option chain fetcher for one exchange.

    Attributes:
        client: Exchange client (shared session across all targets)
        cutoff: Local time after which today's expiry is skipped

    Example:
        ```python
        fetcher = BatchFetcher(client, cutoff=time(15, 30))
        results = await fetcher.fetch_all(targets, concurrency_limit=10, deadline=750)
        ok = [r for r in results if r.ok]
        ```
    """

    def __init__(
        self,
        client: ExchangeClient,
        cutoff: dt_time,
        clock: Clock = market_now,
    ):
        self.client = client
        self.cutoff = cutoff
        self._clock = clock
        self._equity_expiry: Optional[str] = None
        self._equity_lock = asyncio.Lock()

    def reset(self) -> None:
        """Forget the shared equity expiry; expiries roll over between runs."""
        self._equity_expiry = None

    async def resolve_expiry(self, target: FetchTarget) -> str:
        """
        Resolve the expiry to fetch for a target.

        Pinned expiry wins; then expiries carried by the security (commodity
        lists); then the shared equity calendar; then a contract-info lookup.
        """
        if target.expiry:
            return target.expiry

        security = target.security
        if security.expiry_dates:
            return self._select(security.expiry_dates)

        if (
            self.client.adapter.shares_equity_expiry
            and security.instrument_type == InstrumentType.EQUITY
        ):
            return await self._shared_equity_expiry(security)

        info = await self.client.fetch_contract_info(security.symbol)
        return self._select(info.expiry_dates)

    async def fetch_one(self, target: FetchTarget) -> FetchResult:
        """Resolve expiry and fetch one option chain, capturing any failure."""
        try:
            expiry = await self.resolve_expiry(target)
            snapshot = await self.client.fetch_option_chain(target.security, expiry)
        except ChainwatchError as e:
            logger.warning(f"✗ {target.symbol}: {e.error_type}: {e}")
            return FetchResult(target=target, error=e)
        except Exception as e:
            logger.exception(f"✗ {target.symbol}: unexpected error")
            return FetchResult(target=target, error=e)

        logger.debug(f"✓ {target.symbol} {expiry}: {len(snapshot.records)} strikes")
        return FetchResult(target=target, snapshot=snapshot)

    async def fetch_all(
        self,
        targets: Sequence[FetchTarget],
        concurrency_limit: int,
        deadline: Optional[float] = None,
    ) -> list[FetchResult]:
        """
        Fetch every target with at most ``concurrency_limit`` in flight.

        Args:
            targets: Fetch targets
            concurrency_limit: Maximum concurrent fetches
            deadline: Optional batch-wide timeout in seconds

        Returns:
            One FetchResult per target, in input order
        """
        if concurrency_limit < 1:
            raise ValueError(f"concurrency_limit must be >= 1, got {concurrency_limit}")
        if not targets:
            return []

        self.reset()

        semaphore = asyncio.Semaphore(concurrency_limit)

        async def bounded(target: FetchTarget) -> FetchResult:
            async with semaphore:
                return await self.fetch_one(target)

        started = time.perf_counter()
        tasks = [asyncio.create_task(bounded(target)) for target in targets]
        logger.info(
            f"{self.client.name}: fetching {len(tasks)} targets "
            f"(concurrency={concurrency_limit}, deadline={deadline})"
        )

        done, pending = await asyncio.wait(tasks, timeout=deadline)
        if pending:
            logger.warning(
                f"{self.client.name}: deadline of {deadline}s reached, "
                f"cancelling {len(pending)} unfinished targets"
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        results = [
            task.result() if task in done else FetchResult(target=target, error=FetchTimeout())
            for target, task in zip(targets, tasks)
        ]

        succeeded = sum(1 for r in results if r.ok)
        logger.info(
            f"✓ {self.client.name}: {succeeded}/{len(results)} fetched "
            f"in {time.perf_counter() - started:.1f}s"
        )
        return results

    async def _shared_equity_expiry(self, security: Security) -> str:
        if self._equity_expiry is not None:
            return self._equity_expiry

        async with self._equity_lock:
            if self._equity_expiry is None:
                info = await self.client.fetch_contract_info(security.symbol)
                self._equity_expiry = self._select(info.expiry_dates)
                logger.info(
                    f"{self.client.name}: equity expiry {self._equity_expiry} "
                    f"(resolved via {security.symbol})"
                )
            return self._equity_expiry

    def _select(self, expiry_dates) -> str:
        return select_expiry(
            expiry_dates,
            self.client.adapter.date_format,
            self.cutoff,
            clock=self._clock,
        )
