# app/core/exceptions.py
from __future__ import annotations

"""
ReelRelay · Application Exceptions
==================================
A small, consistent layer on top of FastAPI/Starlette's `HTTPException` that
lets us attach structured metadata and integrate cleanly with the
problem+json shape from `app.core.exception_handlers`.

Key ideas
---------
- One base `AppException` that carries `code`, `request_id`, `details`, `extra`.
- Domain exceptions inherit from it and set sane defaults.
- Acquisition failures inside the service layer are plain `AcquisitionFailed`
  (see `app.services.acquisition`); routers translate them into
  `AcquisitionExhaustedException` at the HTTP boundary.

Usage
-----
    raise MediaNotFoundException(media_id="video_ab12")
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

__all__ = [
    "AppException",
    "MediaNotFoundException",
    "InvalidQualityException",
    "MissingSourceException",
    "AcquisitionExhaustedException",
    "RangeNotSatisfiableException",
]


# ──────────────────────────────────────────────────────────────
# 📦 Core: AppException
# ──────────────────────────────────────────────────────────────
class AppException(HTTPException):
    """Base application-level exception with optional metadata.

    Attributes
    -----------
    status_code : int
        HTTP status code (e.g., 400/404/416/502).
    message : str
        Human-readable error message (serialized as `detail` as well).
    code : int
        Optional internal/typed error code. Defaults to `status_code`.
    request_id : str | None
        Optional request correlation id.
    details : dict | list | str | None
        Machine-readable details.
    extra : dict | None
        Additional non-sensitive metadata to surface to clients.
    headers : dict | None
        Optional response headers.
    """

    def __init__(
        self,
        *,
        status_code: int,
        message: str,
        code: Optional[int] = None,
        request_id: Optional[str] = None,
        details: Optional[Any] = None,
        extra: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code: int = int(code or status_code)
        self.message: str = message
        self.request_id: Optional[str] = request_id
        self.details: Optional[Any] = details
        self.extra: Dict[str, Any] = extra or {}

    # ── [Helper] Canonical body used by handlers ───────────────────────────
    def to_problem(self, *, fallback_request_id: Optional[str] = None) -> Dict[str, Any]:
        """Return a dict matching our problem-like JSON shape."""
        body: Dict[str, Any] = {
            "error": True,
            "message": self.message,
            "code": self.code,
            "request_id": self.request_id or fallback_request_id or "N/A",
        }
        if self.details is not None:
            body["details"] = self.details
        body.update(self.extra)
        return body


# ──────────────────────────────────────────────────────────────
# 🎞️ Media domain exceptions
# ──────────────────────────────────────────────────────────────
class MediaNotFoundException(AppException):
    """Raised when delivery or the player page targets an unknown id."""

    def __init__(self, *, media_id: str) -> None:
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            message="Video not found",
            details={"media_id": media_id},
        )


class MissingSourceException(AppException):
    def __init__(self) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            message="Missing URL parameter. Use: /video?url=VIDEO_URL&quality=1080p",
        )


class InvalidQualityException(AppException):
    """Raised for a quality tier outside the supported enumeration."""

    def __init__(self, *, quality: str, allowed: list[str]) -> None:
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            message=f"Unsupported quality '{quality}'",
            details={"quality": quality, "allowed": allowed},
        )


class AcquisitionExhaustedException(AppException):
    """HTTP face of `AcquisitionFailed`: every attempt, including direct, failed."""

    def __init__(self, *, reason: str, attempts: int, details: Optional[Any] = None) -> None:
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            message="Download failed after all attempts",
            details=details,
            extra={"reason": reason, "attempts": attempts},
        )


class RangeNotSatisfiableException(AppException):
    def __init__(self, *, size: int) -> None:
        super().__init__(
            status_code=status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE,
            message="Requested range not satisfiable",
            headers={"Content-Range": f"bytes */{size}"},
        )
