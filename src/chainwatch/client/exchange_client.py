"""
Exchange Client

Generic fetch primitive shared by every exchange: session warmup, response
classification and retry. Exchange specifics come from the adapter.

Response classification:
- 2xx with a JSON-shaped body → success
- 429 or 5xx → TransportError (retryable)
- other 4xx → ClientError with a 200-char body preview (fail fast)
- 2xx with an empty/non-JSON body → NonJsonResponse, retryable only when
  the adapter says so (NSE yes, MCX no)
- network failure → TransportError (retryable)
"""

import asyncio
import json
import time
from typing import Any, Optional

import httpx
from loguru import logger

from chainwatch.client.session import ExchangeSession
from chainwatch.config.exchange_config import ExchangeConfig
from chainwatch.core.clock import Clock, market_now, market_today, previous_weekday
from chainwatch.core.errors import ClientError, NonJsonResponse, ParseError, TransportError
from chainwatch.core.exchange import ApiRequest, ExchangeAdapter
from chainwatch.core.models import ContractInfo, OptionChainSnapshot, Security
from chainwatch.exchanges import get_adapter
from chainwatch.utils.retry import RetryPolicy, Sleep, retry_async

PREVIEW_CHARS = 200
TICKER_FEED_ATTEMPTS = 5


class ExchangeClient:
    """
    Fetch ticker lists, contract info and option chains from one exchange.

    Attributes:
        adapter: Exchange adapter
        session: Owned cookie session (warmup happens once per session)
        policy: Retry policy applied to every data call
    """

    def __init__(
        self,
        adapter: ExchangeAdapter,
        session: ExchangeSession,
        policy: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = market_now,
    ):
        self.adapter = adapter
        self.session = session
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock

    @property
    def name(self) -> str:
        return self.adapter.name

    async def fetch_ticker_list(self) -> list[Security]:
        """
        Fetch all optionable securities.

        For a dated settlement feed, walks back one weekday at a time (from the
        date the server reports, else the requested date) while a date has no
        records, up to 5 attempts.

        Raises:
            ParseError: If no records are found in 5 attempts
        """
        if not self.adapter.dated_ticker_feed:
            payload = await self.request(self.adapter.ticker_list_request(), "ticker list")
            securities = self.adapter.parse_ticker_list(payload).securities
            logger.info(f"✓ {self.name}: {len(securities)} securities")
            return securities

        requested = market_today(self._clock)
        if requested.weekday() >= 5:
            requested = previous_weekday(requested)

        for attempt in range(1, TICKER_FEED_ATTEMPTS + 1):
            payload = await self.request(
                self.adapter.ticker_list_request(requested),
                f"settlement feed {requested.isoformat()}",
            )
            feed = self.adapter.parse_ticker_list(payload)
            if feed.securities:
                logger.info(
                    f"✓ {self.name}: {len(feed.securities)} securities "
                    f"(settlement {requested.isoformat()})"
                )
                return feed.securities

            anchor = requested
            if feed.as_of is not None and feed.as_of <= requested:
                anchor = feed.as_of
            logger.warning(
                f"{self.name}: settlement feed empty for {requested.isoformat()} "
                f"(attempt {attempt}/{TICKER_FEED_ATTEMPTS})"
            )
            requested = previous_weekday(anchor)

        raise ParseError(
            f"{self.name}: no settlement records in the last {TICKER_FEED_ATTEMPTS} weekdays"
        )

    async def fetch_contract_info(self, symbol: str) -> ContractInfo:
        payload = await self.request(
            self.adapter.contract_info_request(symbol),
            f"contract info {symbol}",
        )
        return self.adapter.parse_contract_info(symbol, payload)

    async def fetch_option_chain(self, security: Security, expiry: str) -> OptionChainSnapshot:
        payload = await self.request(
            self.adapter.option_chain_request(security, expiry),
            f"option chain {security.symbol} {expiry}",
        )
        return self.adapter.parse_option_chain(security, expiry, payload)

    async def request(self, request: ApiRequest, description: str = "request") -> Any:
        """Send one API request under the retry policy."""
        return await retry_async(
            lambda: self._send(request, description),
            self.policy,
            description=f"{self.name} {description}",
            sleep=self._sleep,
        )

    async def _send(self, request: ApiRequest, description: str) -> Any:
        await self.session.ensure_warm()

        headers = {}
        if request.referer:
            headers["Referer"] = request.referer

        started = time.perf_counter()
        try:
            response = await self.session.http.request(
                request.method,
                request.path,
                params=request.params or None,
                json=request.json,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        status = response.status_code
        logger.debug(f"{self.name} {description}: HTTP {status} in {elapsed_ms:.0f}ms")

        if status == 429 or status >= 500:
            raise TransportError(f"HTTP {status}", status=status)
        if status >= 400:
            raise ClientError(status, response.text[:PREVIEW_CHARS])
        if not response.is_success:
            raise TransportError(f"Unexpected HTTP {status}", status=status)

        body = response.text
        if not request.expect_json:
            return body

        return self._decode_json(body)

    def _decode_json(self, body: str) -> Any:
        stripped = body.lstrip()
        preview = stripped[:PREVIEW_CHARS]
        if not stripped.startswith(("{", "[")):
            raise NonJsonResponse(
                "Response is not JSON" if stripped else "Empty response body",
                preview=preview,
                should_retry=self.adapter.retry_non_json,
            )
        try:
            return json.loads(stripped)
        except ValueError as e:
            raise NonJsonResponse(
                f"Malformed JSON: {e}",
                preview=preview,
                should_retry=self.adapter.retry_non_json,
            ) from e

    async def close(self) -> None:
        await self.session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def create_client(
    exchange: str,
    config: ExchangeConfig,
    ci: bool = False,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sleep: Sleep = asyncio.sleep,
) -> ExchangeClient:
    """
    Build a client for an exchange from its config.

    Args:
        exchange: Exchange key ("nse" or "mcx")
        config: Exchange settings (timeouts, retry, warmup)
        ci: Use the CI variants of timeouts and retry
        transport: Optional httpx transport (tests use httpx.MockTransport)
        sleep: Awaitable sleep for backoff and warmup pauses
    """
    adapter = get_adapter(exchange)
    session = ExchangeSession(
        adapter,
        timeout=config.http_timeout(ci),
        warmup_delay=config.warmup_pause(ci),
        transport=transport,
        sleep=sleep,
    )
    return ExchangeClient(adapter, session, policy=config.retry_policy(ci), sleep=sleep)
