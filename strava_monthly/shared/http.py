"""HTTP client helpers shared by the Strava OAuth and API clients."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx


@asynccontextmanager
async def open_client(
    http_client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """
    Yield an AsyncClient for one call.

    A caller-owned client is reused and left open; otherwise a fresh
    client is created and closed on exit. Without an explicit timeout
    the httpx default applies.
    """
    if http_client is not None:
        yield http_client
        return

    kwargs = {}
    if timeout is not None:
        kwargs["timeout"] = httpx.Timeout(timeout)

    async with httpx.AsyncClient(**kwargs) as client:
        yield client
