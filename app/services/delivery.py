# app/services/delivery.py
from __future__ import annotations

"""
ReelRelay · Range-aware media delivery
======================================

Builds 200/206 streaming responses for a stored file.

- No `Range` header      → 200, whole file.
- `bytes=start-end`      → 206, `end` optional (defaults to last byte),
                            clamped to the file size.
- `bytes=-N`             → 206, last N bytes.
- start at/after EOF     → 416 with `Content-Range: bytes */size`.
- Anything unparseable   → ignored; whole file (best effort).

Only the first range of a multi-range header is honoured.
"""

from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional

from anyio import AsyncFile
from starlette.background import BackgroundTask
from starlette.responses import StreamingResponse

from app.core.exceptions import RangeNotSatisfiableException

__all__ = ["ByteRange", "parse_range", "media_response", "CHUNK_SIZE"]

CHUNK_SIZE = 64 * 1024
NO_CACHE = "no-cache, no-store, must-revalidate"


@dataclass(frozen=True)
class ByteRange:
    start: int
    end: int  # inclusive

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, size: int) -> str:
        return f"bytes {self.start}-{self.end}/{size}"


def _to_int(value: str) -> Optional[int]:
    value = value.strip()
    if not (value.isascii() and value.isdigit()):
        return None
    return int(value)


def parse_range(header: Optional[str], size: int) -> Optional[ByteRange]:
    """
    Parse a single `bytes=` range against a file of `size` bytes.

    Returns ``None`` when the header is absent or unusable (serve the whole
    file). Raises `RangeNotSatisfiableException` when the range starts at or
    beyond the end of the file.
    """
    if not header:
        return None
    unit, _, ranges = header.strip().partition("=")
    if unit.strip().lower() != "bytes" or not ranges:
        return None
    first = ranges.split(",", 1)[0]
    start_raw, sep, end_raw = first.partition("-")
    if not sep:
        return None

    if not start_raw.strip():
        suffix = _to_int(end_raw)
        if suffix is None:
            return None
        if suffix == 0 or size == 0:
            raise RangeNotSatisfiableException(size=size)
        return ByteRange(max(0, size - suffix), size - 1)

    start = _to_int(start_raw)
    if start is None:
        return None
    if start >= size:
        raise RangeNotSatisfiableException(size=size)

    end = _to_int(end_raw) if end_raw.strip() else size - 1
    if end is None or end < start:
        return None
    return ByteRange(start, min(end, size - 1))


async def _iter_file(reader: AsyncFile[bytes], start: int, length: int) -> AsyncIterator[bytes]:
    remaining = length
    async with reader:
        if start:
            await reader.seek(start)
        while remaining > 0:
            chunk = await reader.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


def media_response(
    reader: AsyncFile[bytes],
    size: int,
    byte_range: Optional[ByteRange],
    *,
    media_type: str = "video/mp4",
) -> StreamingResponse:
    """
    Stream from an already-open handle (see `TransientStore.open_media`).

    The handle is closed when the body is exhausted, and again by the
    background task if the client went away before streaming started.
    """
    headers: Dict[str, str] = {
        "Accept-Ranges": "bytes",
        "Cache-Control": NO_CACHE,
    }
    start, length, status_code = 0, size, 200
    if byte_range is not None:
        start, length, status_code = byte_range.start, byte_range.length, 206
        headers["Content-Range"] = byte_range.content_range(size)
    headers["Content-Length"] = str(length)
    return StreamingResponse(
        _iter_file(reader, start, length),
        status_code=status_code,
        headers=headers,
        media_type=media_type,
        background=BackgroundTask(reader.aclose),
    )
