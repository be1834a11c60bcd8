from __future__ import annotations

"""
ReelRelay • Storage Layout & Lifecycle
======================================

Documented on-disk layout (single flat directory, local disk):

    {STORAGE_DIR}/
      {media_id}{MEDIA_EXTENSION}          e.g. video_3f9c…e1.mp4
      {media_id}{MEDIA_EXTENSION}.part     yt-dlp partial download
      {media_id}{MEDIA_EXTENSION}.ytdl     yt-dlp resume state

Lifecycle Guardrails
--------------------
- The directory is created on boot and swept once (every entry removed).
- Stored files are owned by `TransientStore` after acquisition succeeds and
  evicted by it; nothing else deletes them except `evict_now`.
- Media ids are validated against `MEDIA_ID_RE` before any path is built, so
  a request can never address a file outside the directory.
"""

import logging
import re
import shutil
import stat
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import anyio

logger = logging.getLogger(__name__)

MEDIA_ID_PREFIX = "video_"
MEDIA_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
PARTIAL_SUFFIXES: Tuple[str, ...] = (".part", ".ytdl")


class StorageUnavailableError(RuntimeError):
    """Storage directory could not be created, listed or swept (fatal at boot)."""


def new_media_id() -> str:
    """Generate a fresh, URL-safe media id."""
    return f"{MEDIA_ID_PREFIX}{uuid.uuid4().hex}"


@dataclass(frozen=True)
class MediaStorage:
    """Path arithmetic for the flat storage directory."""

    root: Path
    extension: str = ".mp4"

    def normalize_id(self, media_id: str) -> Optional[str]:
        """
        Return a safe media id, or ``None`` when the value cannot name a stored file.

        Accepts the bare id or the id with the media extension appended
        (player links built from filenames keep working).
        """
        candidate = (media_id or "").strip()
        if candidate.lower().endswith(self.extension):
            candidate = candidate[: -len(self.extension)]
        if not MEDIA_ID_RE.fullmatch(candidate):
            return None
        return candidate

    def path_for(self, media_id: str) -> Path:
        return self.root / f"{media_id}{self.extension}"

    def partial_paths(self, media_id: str) -> Tuple[Path, ...]:
        base = self.path_for(media_id)
        return tuple(base.with_name(base.name + s) for s in PARTIAL_SUFFIXES)

    # ── Bootstrap ─────────────────────────────────────────────
    def prepare(self, *, sweep: bool = True) -> int:
        """
        Create the directory and (optionally) remove every entry in it.

        Runs once at startup, before the event loop serves requests, so it is
        synchronous. Returns the number of removed entries.

        Raises
        ------
        StorageUnavailableError
            When the directory cannot be created or listed.
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            entries = list(self.root.iterdir()) if sweep else []
        except OSError as e:
            raise StorageUnavailableError(f"storage directory {self.root} unusable: {e}") from e

        removed = 0
        for entry in entries:
            try:
                if entry.is_dir() and not entry.is_symlink():
                    shutil.rmtree(entry)
                else:
                    entry.unlink()
                removed += 1
                logger.info("Removed old media: %s", entry.name)
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageUnavailableError(f"cannot sweep {entry}: {e}") from e
        return removed


# ─────────────────────────────────────────────────────────────
# Async filesystem helpers (anyio threadpool-backed)
# ─────────────────────────────────────────────────────────────
async def file_size(path: Path) -> Optional[int]:
    """Size of a regular file, or ``None`` if it does not exist."""
    try:
        st = await anyio.Path(path).stat()
    except (FileNotFoundError, NotADirectoryError):
        return None
    if not stat.S_ISREG(st.st_mode):
        return None
    return st.st_size


async def remove_file(path: Path) -> bool:
    """Unlink a file; ``False`` when it was already gone."""
    try:
        await anyio.Path(path).unlink()
        return True
    except FileNotFoundError:
        return False


__all__ = [
    "MediaStorage",
    "StorageUnavailableError",
    "new_media_id",
    "file_size",
    "remove_file",
    "MEDIA_ID_RE",
]
