from __future__ import annotations

"""
ReelRelay • Delivery (Range Streaming + Immediate Eviction)
===========================================================

Route Index
-----------
- GET  /videos/{media_id}    → 200 full body / 206 single range / 404 / 416
- POST /cleanup/{media_id}   → cancel pending eviction, delete now; always 200

Lifecycle
---------
- Every successful serve slides the eviction deadline forward by the default
  TTL (`TransientStore.open_media`), which is how active playback keeps a file alive.
- A stream that has started keeps reading its open handle even if the file
  is evicted or cleaned up mid-flight.
- Cleanup is idempotent and never reports whether a file existed.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Response, status

from app.core.dependencies import get_runtime, optional_media_id, resolve_media_id
from app.core.exceptions import MediaNotFoundException, RangeNotSatisfiableException
from app.services.delivery import media_response, parse_range
from app.services.runtime import MediaRuntime

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Delivery"])
__all__ = ["router"]


@router.get("/videos/{media_id}", summary="Stream a stored video (supports Range)")
async def stream_video(
    media_id: str = Depends(resolve_media_id),
    range_header: Optional[str] = Header(None, alias="Range"),
    runtime: MediaRuntime = Depends(get_runtime),
):
    # Opened under the per-id lock; a cleanup after this point cannot cut the body short.
    opened = await runtime.store.open_media(media_id)
    if opened is None:
        raise MediaNotFoundException(media_id=media_id)
    reader, size = opened
    try:
        byte_range = parse_range(range_header, size)
    except RangeNotSatisfiableException:
        await reader.aclose()
        raise
    return media_response(reader, size, byte_range)


@router.post("/cleanup/{media_id}", summary="Evict a stored video immediately")
async def cleanup_video(
    media_id: Optional[str] = Depends(optional_media_id),
    runtime: MediaRuntime = Depends(get_runtime),
) -> Response:
    if media_id is not None:
        await runtime.store.evict_now(media_id)
    return Response(status_code=status.HTTP_200_OK)
