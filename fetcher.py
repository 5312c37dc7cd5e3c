import asyncio
import json
import httpx
from typing import Any, Dict, Optional
from loguru import logger
from errors import UpstreamError, UpstreamRateLimited, UpstreamTimeout

# HEADERS: some catalogs and cover CDNs reject clients without a UA
HEADERS = {
    "User-Agent": "Shelfwise/1.0 (book-discovery-service)",
}


class RateLimitedFetcher:
    """
    Outbound GETs against a single external source.

    All callers of one source share one instance, so the concurrency
    ceiling and dispatch spacing hold process-wide for that source.
    Only HTTP 429 is retried.
    """

    def __init__(
        self,
        source: str,
        client: Optional[httpx.AsyncClient] = None,
        max_concurrent: int = 3,
        min_interval: float = 0.2,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self.source = source
        self.max_concurrent = max_concurrent
        self.min_interval = min_interval
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._client = client or httpx.AsyncClient(headers=HEADERS, timeout=timeout, follow_redirects=True)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._next_slot = 0.0

    async def _wait_for_slot(self) -> None:
        # The slot is claimed before the first await, so concurrent callers
        # always get distinct, spaced-out dispatch times.
        loop = asyncio.get_running_loop()
        now = loop.time()
        slot = max(now, self._next_slot)
        self._next_slot = slot + self.min_interval
        if slot > now:
            await asyncio.sleep(slot - now)

    async def _dispatch(self, url: str, params: Optional[Dict[str, Any]], headers: Optional[Dict[str, str]]) -> bytes:
        async with self._semaphore:
            await self._wait_for_slot()
            try:
                resp = await asyncio.wait_for(self._client.get(url, params=params, headers=headers), self.timeout)
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                raise UpstreamTimeout(self.source, url, f"timed out after {self.timeout}s") from e
            except httpx.HTTPError as e:
                raise UpstreamError(self.source, url, f"transport error: {e}") from e

        if resp.status_code == 429:
            raise UpstreamRateLimited(self.source, url, "rate limited", status_code=429)
        if not resp.is_success:
            raise UpstreamError(self.source, url, f"HTTP {resp.status_code}", status_code=resp.status_code)
        return resp.content

    async def fetch(self, url: str, params: Optional[Dict[str, Any]] = None, headers: Optional[Dict[str, str]] = None) -> bytes:
        filtered_params = {k: v for k, v in (params or {}).items() if v is not None} or None
        retries_left = self.max_retries
        while True:
            try:
                return await self._dispatch(url, filtered_params, headers)
            except UpstreamRateLimited as e:
                if retries_left <= 0:
                    logger.error(f"[{self.source}] Rate limit retries exhausted for {url}")
                    raise UpstreamError(self.source, url, "rate limit retries exhausted", status_code=429) from e
                logger.warning(f"[{self.source}] Rate limit hit for {url}, retrying in {self.retry_delay}s ({retries_left} retries left)")
                retries_left -= 1
                await asyncio.sleep(self.retry_delay)
            except UpstreamError as e:
                logger.warning(f"[{self.source}] {e}")
                raise

    async def fetch_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        body = await self.fetch(url, params=params, headers={"Accept": "application/json"})
        try:
            return json.loads(body)
        except ValueError as e:
            raise UpstreamError(self.source, url, f"invalid JSON payload: {e}") from e

    async def aclose(self) -> None:
        await self._client.aclose()
