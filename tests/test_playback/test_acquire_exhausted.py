# tests/test_playback/test_acquire_exhausted.py

import pytest
from httpx import AsyncClient

from app.services.runtime import MediaRuntime
from tests.fixtures.app import TEST_RELAYS
from tests.fixtures.mocks.fetch import ScriptedRunner


@pytest.fixture()
def runner() -> ScriptedRunner:
    """Every attempt fails."""
    return ScriptedRunner(default="fail")


@pytest.mark.anyio
async def test_exhaustion_is_502_and_leaves_nothing(async_client: AsyncClient, runtime: MediaRuntime, runner: ScriptedRunner):
    resp = await async_client.get("/video", params={"url": "https://example.com/v"})

    body = resp.json()
    assert resp.status_code == 502
    assert body["detail"] == "Download failed after all attempts"
    assert body["reason"] == "no_output"
    assert body["attempts"] == 6

    # five relay-backed attempts in rotation, then one direct
    assert runner.relays == [
        TEST_RELAYS[0], TEST_RELAYS[1], TEST_RELAYS[2], TEST_RELAYS[0], TEST_RELAYS[1], None,
    ]
    assert len(runtime.store) == 0
    assert list(runtime.storage.root.iterdir()) == []


@pytest.mark.anyio
async def test_rotation_continues_across_requests(async_client: AsyncClient, runner: ScriptedRunner):
    await async_client.get("/video", params={"url": "https://example.com/a"})
    await async_client.get("/video", params={"url": "https://example.com/b"})

    # second request picks up where the first left the cursor
    assert runner.relays[6] == TEST_RELAYS[2]


@pytest.mark.anyio
async def test_missing_binary_reports_invocation_failure(async_client: AsyncClient, runtime: MediaRuntime):
    runtime.orchestrator.runner.default = "launch"

    resp = await async_client.get("/video", params={"url": "https://example.com/v"})

    assert resp.status_code == 502
    assert resp.json()["reason"] == "invocation_failed"
