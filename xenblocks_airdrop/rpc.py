"""RPC client helpers with retry on rate limiting."""

import asyncio
import logging

import httpx
from solana.rpc.async_api import AsyncClient  # type: ignore[import-untyped]

logger = logging.getLogger(__name__)

_DEFAULT_MAX_RETRIES = 5


class _RetryTransport(httpx.AsyncBaseTransport):
    """HTTP transport that retries on 429 Too Many Requests."""

    def __init__(
        self,
        wrapped: httpx.AsyncBaseTransport | None = None,
        max_retries: int = _DEFAULT_MAX_RETRIES,
    ) -> None:
        self._wrapped = wrapped or httpx.AsyncHTTPTransport()
        self._max_retries = max_retries

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        for attempt in range(self._max_retries + 1):
            response = await self._wrapped.handle_async_request(request)
            if response.status_code != 429 or attempt >= self._max_retries:
                return response
            await response.aclose()
            delay = (attempt + 1) * 2
            logger.debug("rate limited by %s, retrying in %ss", request.url.host, delay)
            await asyncio.sleep(delay)
        return response  # unreachable, but satisfies type checker

    async def aclose(self) -> None:
        await self._wrapped.aclose()


def new_rpc_client(
    url: str,
    timeout: float = 30,
    max_retries: int = _DEFAULT_MAX_RETRIES,
) -> AsyncClient:
    """Create an async RPC client with automatic retry on 429 responses."""
    client = AsyncClient(url, timeout=timeout)
    # Replace the underlying httpx session with one using retry transport.
    transport = _RetryTransport(
        wrapped=httpx.AsyncHTTPTransport(),
        max_retries=max_retries,
    )
    client._provider.session = httpx.AsyncClient(
        timeout=timeout,
        transport=transport,
    )
    return client
