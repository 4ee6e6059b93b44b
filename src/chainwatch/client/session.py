"""
Exchange HTTP session.

Owns the httpx cookie jar for one exchange and the "warmed up" flag. The
first data call performs the warmup; concurrent callers wait on the same
lock instead of repeating it.
"""

import asyncio
from typing import Optional

import httpx
from loguru import logger

from chainwatch.core.errors import TransportError
from chainwatch.core.exchange import ExchangeAdapter
from chainwatch.utils.retry import Sleep


class ExchangeSession:
    """
    Cookie-holding HTTP session for one exchange.

    Attributes:
        adapter: Exchange adapter (base URL, headers, warmup pages)
        warmup_delay: Pause after warmup so the exchange registers the session
        warmup_count: Number of completed warmups (0 or 1)

    Example:
        ```python
        async with ExchangeSession(NseAdapter(), timeout=20.0) as session:
            await session.ensure_warm()
            response = await session.http.get("/api/master-quote")
        ```
    """

    def __init__(
        self,
        adapter: ExchangeAdapter,
        timeout: float = 20.0,
        warmup_delay: float = 0.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.adapter = adapter
        self.warmup_delay = warmup_delay
        self.warmup_count = 0
        self._sleep = sleep
        self._warmed_up = False
        self._warmup_lock = asyncio.Lock()
        self._http = httpx.AsyncClient(
            base_url=adapter.base_url,
            headers=adapter.default_headers(),
            timeout=timeout,
            follow_redirects=True,
            transport=transport,
        )

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http

    async def ensure_warm(self) -> None:
        """
        Visit the exchange's landing page(s) once to obtain session cookies.

        Raises:
            TransportError: If a warmup request fails at the network layer
        """
        if self._warmed_up:
            return

        async with self._warmup_lock:
            if self._warmed_up:
                return

            for request in self.adapter.warmup_requests():
                headers = {"Accept": "text/html,application/xhtml+xml,*/*;q=0.8"}
                if request.referer:
                    headers["Referer"] = request.referer
                try:
                    response = await self._http.request(request.method, request.path, headers=headers)
                except httpx.HTTPError as e:
                    raise TransportError(f"{self.adapter.name} warmup failed: {e}") from e
                logger.debug(
                    f"{self.adapter.name} warmup {request.path} → HTTP {response.status_code}"
                )

            if self.warmup_delay:
                await self._sleep(self.warmup_delay)

            self._warmed_up = True
            self.warmup_count += 1
            logger.info(f"✓ {self.adapter.name} session warmed up")

    async def close(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
