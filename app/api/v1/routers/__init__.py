"""
🧭 ReelRelay • Router Aggregator
================================

Exports the **combined `router`** and each individual sub-router.

The media surface is mounted at the root (`/video`, `/play/{id}`,
`/videos/{id}`, `/cleanup/{id}`) because the player page and browsers'
beacons address those paths directly.

Quick usage
-----------
    from app.api.v1.routers import router
    app.include_router(router)
"""

from fastapi import APIRouter

from .delivery import router as delivery_router
from .playback import router as playback_router


def build_router() -> APIRouter:
    """
    Compose the media surface into a single `APIRouter`.

    Returns
    -------
    fastapi.APIRouter
        Playback (acquire + player page) and delivery (stream + cleanup).
    """
    r = APIRouter()
    r.include_router(playback_router)
    r.include_router(delivery_router)
    return r


router = build_router()


__all__ = [
    "router",
    "build_router",
    "playback_router",
    "delivery_router",
]
