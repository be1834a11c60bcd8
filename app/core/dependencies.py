# app/core/dependencies.py
from __future__ import annotations

"""
Request dependencies · ReelRelay
================================

Routes never reach for module-level singletons: the composition root
(`app.main.create_app`) stores one `MediaRuntime` on `app.state.runtime`
and these helpers hand its parts to handlers.
"""

import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from app.core.exceptions import MediaNotFoundException
from app.services.runtime import MediaRuntime

logger = logging.getLogger(__name__)

__all__ = ["get_runtime", "resolve_media_id", "optional_media_id"]


def get_runtime(request: Request) -> MediaRuntime:
    """Return the process runtime or raise **503** if startup has not completed."""
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service is starting")
    return runtime


def optional_media_id(media_id: str, runtime: MediaRuntime = Depends(get_runtime)) -> Optional[str]:
    """Normalized media id, or ``None`` when the path segment cannot name a stored file."""
    return runtime.storage.normalize_id(media_id)


def resolve_media_id(media_id: str, runtime: MediaRuntime = Depends(get_runtime)) -> str:
    """Normalized media id; **404** when the path segment is not a valid id."""
    normalized = runtime.storage.normalize_id(media_id)
    if normalized is None:
        raise MediaNotFoundException(media_id=media_id)
    return normalized
