from __future__ import annotations

"""
ReelRelay · HTTP Utilities
==========================

Shared helpers for API routers:

- Client IP resolution (for request logs)
- Binding long-running work to the client connection (disconnect → cancel)
- No-store JSON helper

Notes
-----
• `watch_disconnect` polls `Request.is_disconnected()`; it never consumes a
  request body, so it is only used on body-less GET routes.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

__all__ = ["get_client_ip", "watch_disconnect", "json_no_store"]


def get_client_ip(request: Request) -> str:
    """Best-effort client address (direct peer only; no proxy headers trusted)."""
    client = request.client
    return client.host if client else "unknown"


@asynccontextmanager
async def watch_disconnect(request: Request, *, poll_interval: float = 0.5) -> AsyncIterator[asyncio.Event]:
    """
    Yield an event that is set once the client closes the connection.

    Usage
    -----
        async with watch_disconnect(request) as gone:
            await orchestrator.acquire(req, cancel_event=gone)
    """
    gone = asyncio.Event()

    async def _poll() -> None:
        while not gone.is_set():
            if await request.is_disconnected():
                logger.info("Client %s disconnected from %s", get_client_ip(request), request.url.path)
                gone.set()
                return
            await asyncio.sleep(poll_interval)

    watcher = asyncio.create_task(_poll())
    try:
        yield gone
    finally:
        watcher.cancel()
        try:
            await watcher
        except asyncio.CancelledError:
            pass


def json_no_store(payload: Any, status_code: int = 200, headers: Optional[dict] = None) -> JSONResponse:
    """JSON response that proxies and browsers must not cache."""
    h = {"Cache-Control": "no-store", "Pragma": "no-cache"}
    if headers:
        h.update(headers)
    return JSONResponse(payload, status_code=status_code, headers=h)
