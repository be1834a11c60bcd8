from __future__ import annotations

"""
ReelRelay • Playback (Acquire + Player Page)
============================================

Route Index
-----------
- GET /video?url=…&quality=…   → acquire via yt-dlp (relay rotation), then 303 → /play/{id}
- GET /play/{media_id}         → minimal HTML5 player with cleanup hooks

Lifecycle
---------
- Acquisition is bound to the client connection: if the client goes away,
  the running fetch is terminated and nothing is registered.
- On success the file is adopted by the transient store exactly once, which
  schedules its first eviction.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse

from app.api.http_utils import get_client_ip, watch_disconnect
from app.core.dependencies import get_runtime, resolve_media_id
from app.core.exceptions import (
    AcquisitionExhaustedException,
    InvalidQualityException,
    MediaNotFoundException,
    MissingSourceException,
)
from app.core.storage import file_size
from app.services.acquisition import AcquisitionFailed, AcquisitionRequest
from app.services.formats import QualityTier, parse_quality
from app.services.runtime import MediaRuntime
from app.utils.templates import render_player

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Playback"])
__all__ = ["router"]


@router.get("/video", summary="Acquire a remote video and redirect to its player")
async def acquire_video(
    request: Request,
    url: Optional[str] = Query(None, description="Remote media URL"),
    quality: Optional[str] = Query(None, description="2160p, 1440p, 1080p, 720p, 480p, 360p, best, worst"),
    runtime: MediaRuntime = Depends(get_runtime),
):
    if not url or not url.strip():
        raise MissingSourceException()
    try:
        tier = parse_quality(quality, default=runtime.settings.DEFAULT_QUALITY)
    except ValueError:
        raise InvalidQualityException(quality=str(quality), allowed=QualityTier.values())

    logger.info("New request url=%s quality=%s ip=%s", url, tier.value, get_client_ip(request))
    acq = AcquisitionRequest.create(url.strip(), tier, runtime.storage)

    async with watch_disconnect(request, poll_interval=runtime.settings.DISCONNECT_POLL_SECONDS) as gone:
        try:
            handle = await runtime.orchestrator.acquire(acq, cancel_event=gone)
        except AcquisitionFailed as e:
            raise AcquisitionExhaustedException(reason=e.reason, attempts=len(e.attempts), details=e.summary())

    runtime.store.adopt(handle.media_id)
    return RedirectResponse(url=f"/play/{handle.media_id}", status_code=status.HTTP_303_SEE_OTHER)


@router.get("/play/{media_id}", response_class=HTMLResponse, summary="Player page")
async def player_page(
    media_id: str = Depends(resolve_media_id),
    runtime: MediaRuntime = Depends(get_runtime),
) -> HTMLResponse:
    if await file_size(runtime.storage.path_for(media_id)) is None:
        raise MediaNotFoundException(media_id=media_id)
    return HTMLResponse(render_player(media_id), headers={"Cache-Control": "no-store"})
