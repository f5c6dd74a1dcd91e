from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx


@asynccontextmanager
async def client_scope(
    client: httpx.AsyncClient | None,
    *,
    timeout_seconds: float,
    user_agent: str,
    max_connections: int,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client as-is, or a run-scoped client that is closed afterwards."""
    if client is not None:
        yield client
        return

    limits = httpx.Limits(max_connections=max(1, max_connections), max_keepalive_connections=max(1, max_connections))
    async with httpx.AsyncClient(
        timeout=timeout_seconds,
        limits=limits,
        headers={"User-Agent": user_agent},
        follow_redirects=True,
    ) as run_client:
        yield run_client
