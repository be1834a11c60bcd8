# tests/fixtures/app.py

"""
🧩 App Fixtures:
- Isolated settings (tmp storage dir, relay feed off, short poll interval)
- Scripted fetch runner (no yt-dlp, no network)
- FastAPI app with its lifespan entered (storage prepared, runtime built)
- httpx AsyncClient over ASGITransport for integration tests
"""

from typing import AsyncGenerator, List

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from app.core.config import Settings
from app.main import create_app
from app.services.runtime import MediaRuntime
from tests.fixtures.mocks.fetch import ScriptedRunner

TEST_RELAYS: List[str] = [
    "http://10.0.0.1:8080",
    "http://10.0.0.2:3128",
    "http://10.0.0.3:80",
]


@pytest.fixture()
def settings(tmp_path) -> Settings:
    """
    🧪 Settings pointing at a throwaway storage directory.
    """
    return Settings(
        STORAGE_DIR=tmp_path / "videos",
        EVICTION_TTL_SECONDS=300,
        MAX_RELAY_ATTEMPTS=5,
        RELAY_FEED_ENABLED=False,
        DISCONNECT_POLL_SECONDS=0.05,
    )


@pytest.fixture()
def relays() -> List[str]:
    """Override in a test module to change what the relay loader returns."""
    return list(TEST_RELAYS)


@pytest.fixture()
def runner() -> ScriptedRunner:
    """Default runner: first attempt succeeds."""
    return ScriptedRunner(script=["ok"])


@pytest.fixture()
async def app(settings: Settings, runner: ScriptedRunner, relays: List[str]) -> AsyncGenerator[FastAPI, None]:
    """
    🧪 App with lifespan entered, so `app.state.runtime` is live.
    """
    async def _static_relays(_settings: Settings) -> List[str]:
        return relays

    application = create_app(settings, runner=runner, relay_loader=_static_relays)
    async with application.router.lifespan_context(application):
        yield application


@pytest.fixture()
def runtime(app: FastAPI) -> MediaRuntime:
    return app.state.runtime


@pytest.fixture()
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """
    🚀 Async HTTP client bound to the in-process app (no redirects followed).
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
