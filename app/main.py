# app/main.py
from __future__ import annotations

"""
# ReelRelay · Application Entrypoint (FastAPI)

Transient media relay: acquires a remote video with yt-dlp (rotating through
HTTP relays on failure), serves it with byte-range streaming, and evicts it
a fixed time after the last access or as soon as the viewer leaves.

## Design Goals
- Deterministic, testable **app factory** (`create_app`) with explicit lifespan.
- One composition root: the relay pool, transient store and orchestrator are
  built here and hung off `app.state.runtime`.
- Middleware order: request id → exception handlers → routes. No GZip: the
  payload is already-compressed video and ranges must stay byte-exact.

## Lifecycle
- Startup: create + sweep the storage directory (fatal if unusable), load
  relays (best-effort), build the runtime.
- Shutdown: drain every pending eviction timer without deleting files.

## Probes
- `/health` : status, relay count, active media count.
- `/healthz`: liveness (process up).
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, List, Optional
import logging

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from app.api.http_utils import json_no_store
from app.core.config import Settings, get_settings
from app.core.exception_handlers import (
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.core.logger import configure_logging
from app.middleware.request_id import RequestIDMiddleware
from app.services.acquisition import FetchRunner
from app.services.relay_feed import load_relays
from app.services.runtime import MediaRuntime, build_runtime

logger = logging.getLogger("app.main")


RelayLoader = Callable[[Settings], Awaitable[List[str]]]


async def default_relay_loader(settings: Settings) -> List[str]:
    if not settings.RELAY_FEED_ENABLED:
        logger.info("Relay feed disabled; using direct connection")
        return []
    return await load_relays(settings.RELAY_SOURCES, timeout=settings.RELAY_FEED_TIMEOUT_SECONDS)


# ─────────────────────────────────────────────────────────────────────────────
# 🏗️ App factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(
    settings: Optional[Settings] = None,
    *,
    runner: Optional[FetchRunner] = None,
    relay_loader: Optional[RelayLoader] = None,
) -> FastAPI:
    """
    Build and configure the FastAPI app instance.

    Args:
        settings: explicit settings (tests); defaults to the env-driven singleton.
        runner: fetch runner override (tests); defaults to the yt-dlp runner.
        relay_loader: relay feed override (tests); defaults to the HTTP feed.

    Returns:
        FastAPI: fully wired application with middleware, exception handlers,
        routers, and health endpoints.
    """
    cfg = settings or get_settings()
    configure_logging(cfg)
    load = relay_loader or default_relay_loader

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("✅ %s starting up", cfg.PROJECT_NAME)
        runtime = build_runtime(cfg, runner=runner)

        # Fatal on purpose: without storage nothing else can work.
        removed = runtime.storage.prepare(sweep=cfg.SWEEP_ON_STARTUP)
        logger.info("📁 Storage ready at %s (%d stale entries removed)", runtime.storage.root, removed)

        runtime.relays.replace(await load(cfg))
        logger.info("🔀 %d relays available", len(runtime.relays))

        app.state.runtime = runtime
        try:
            yield
        finally:
            runtime.store.drain_all()
            await runtime.store.wait_idle()
            app.state.runtime = None
            logger.info("🛑 %s shutting down", cfg.PROJECT_NAME)

    docs_url = "/docs" if cfg.ENABLE_DOCS else None
    app = FastAPI(
        title=cfg.PROJECT_NAME,
        version=cfg.VERSION,
        docs_url=docs_url,
        redoc_url=None,
        openapi_url="/openapi.json" if cfg.ENABLE_DOCS else None,
        lifespan=lifespan,
    )
    app.state.runtime = None

    # ── Middlewares ─────────────────────────────────────────────────────────
    app.add_middleware(RequestIDMiddleware)

    # ── Exception handlers (problem+json) ───────────────────────────────────
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, http_exception_handler)           # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, global_exception_handler)             # type: ignore[arg-type]

    # ── Routers ─────────────────────────────────────────────────────────────
    from app.api.v1.routers import router as media_router

    app.include_router(media_router)

    # ── Meta endpoints ──────────────────────────────────────────────────────
    @app.get("/health", tags=["meta"])
    async def health() -> JSONResponse:
        """Status plus relay and active-media counts."""
        runtime: Optional[MediaRuntime] = app.state.runtime
        return json_no_store(
            {
                "status": "ok" if runtime is not None else "starting",
                "relays": len(runtime.relays) if runtime else 0,
                "active_media": len(runtime.store) if runtime else 0,
            }
        )

    @app.get("/healthz", tags=["meta"])
    async def healthz() -> dict[str, bool]:
        """Liveness probe. No external checks."""
        return {"ok": True}

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        body = {
            "name": cfg.PROJECT_NAME,
            "version": cfg.VERSION,
            "usage": "/video?url=VIDEO_URL&quality=1080p",
            "qualities": ["2160p", "1440p", "1080p", "720p", "480p", "360p", "best", "worst"],
        }
        return JSONResponse(body)

    return app


# ─────────────────────────────────────────────────────────────────────────────
# 🚀 Module-level ASGI app for Uvicorn
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()


__all__ = ["create_app", "app"]
