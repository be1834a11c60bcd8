# tests/test_playback/test_acquire_route.py

import pytest
from httpx import AsyncClient

from app.core.storage import MEDIA_ID_RE
from app.services.formats import QualityTier
from app.services.runtime import MediaRuntime
from tests.fixtures.app import TEST_RELAYS
from tests.fixtures.mocks.fetch import ScriptedRunner

SOURCE = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


# ─────────────────────────────────────────────────────────────
# Validation (nothing is fetched)
# ─────────────────────────────────────────────────────────────

@pytest.mark.anyio
@pytest.mark.parametrize("query", ["", "?url=", "?url=%20%20", "?quality=720p"])
async def test_missing_url_is_400(async_client: AsyncClient, runner: ScriptedRunner, query):
    resp = await async_client.get(f"/video{query}")

    assert resp.status_code == 400
    assert resp.headers["content-type"].startswith("application/problem+json")
    assert "Missing URL parameter" in resp.json()["detail"]
    assert runner.calls == []


@pytest.mark.anyio
async def test_unknown_quality_is_400(async_client: AsyncClient, runner: ScriptedRunner):
    resp = await async_client.get("/video", params={"url": SOURCE, "quality": "8k"})

    body = resp.json()
    assert resp.status_code == 400
    assert body["details"]["quality"] == "8k"
    assert "720p" in body["details"]["allowed"]
    assert runner.calls == []


# ─────────────────────────────────────────────────────────────
# Success
# ─────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_success_redirects_to_player(async_client: AsyncClient, runtime: MediaRuntime, runner: ScriptedRunner):
    resp = await async_client.get("/video", params={"url": SOURCE, "quality": "720p"})

    assert resp.status_code == 303
    location = resp.headers["location"]
    assert location.startswith("/play/video_")
    media_id = location.rsplit("/", 1)[-1]
    assert MEDIA_ID_RE.fullmatch(media_id)

    assert runtime.storage.path_for(media_id).exists()
    assert media_id in runtime.store
    assert len(runtime.store) == 1

    call = runner.calls[0]
    assert call.relay == TEST_RELAYS[0]
    assert call.request.source_url == SOURCE
    assert call.request.quality is QualityTier.P720


@pytest.mark.anyio
async def test_quality_defaults_to_best(async_client: AsyncClient, runner: ScriptedRunner):
    resp = await async_client.get("/video", params={"url": SOURCE})

    assert resp.status_code == 303
    assert runner.calls[0].request.quality is QualityTier.BEST


@pytest.mark.anyio
async def test_each_request_gets_a_fresh_id(async_client: AsyncClient, runtime: MediaRuntime):
    runtime.orchestrator.runner.default = "ok"

    first = await async_client.get("/video", params={"url": SOURCE})
    second = await async_client.get("/video", params={"url": SOURCE})

    assert first.headers["location"] != second.headers["location"]
    assert len(runtime.store) == 2


# ─────────────────────────────────────────────────────────────
# Player page
# ─────────────────────────────────────────────────────────────

@pytest.mark.anyio
async def test_player_page_references_stream_and_cleanup(async_client: AsyncClient):
    redirect = await async_client.get("/video", params={"url": SOURCE})
    media_id = redirect.headers["location"].rsplit("/", 1)[-1]

    resp = await async_client.get(redirect.headers["location"])

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert f"/videos/{media_id}" in resp.text
    assert f"/cleanup/{media_id}" in resp.text
    assert "<video" in resp.text


@pytest.mark.anyio
async def test_player_page_for_unknown_id_is_404(async_client: AsyncClient):
    assert (await async_client.get("/play/video_unknown")).status_code == 404
    assert (await async_client.get("/play/not.valid")).status_code == 404


@pytest.mark.anyio
async def test_follow_redirect_then_stream(async_client: AsyncClient):
    player = await async_client.get("/video", params={"url": SOURCE}, follow_redirects=True)
    media_id = str(player.url).rsplit("/", 1)[-1]

    video = await async_client.get(f"/videos/{media_id}")

    assert player.status_code == 200
    assert video.status_code == 200
    assert len(video.content) == 4096
