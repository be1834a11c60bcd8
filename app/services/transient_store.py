# app/services/transient_store.py
from __future__ import annotations

"""
ReelRelay · Transient Store (eviction lifecycle, asyncio)
=========================================================

Registry mapping a media id to its single pending eviction timer. The store
is the only authority allowed to delete a stored file by time; the cleanup
endpoint goes through `evict_now`, which cancels first and deletes second.

Operations
----------
- schedule(id, ttl)   → replace any timer for `id` with a fresh one
- reschedule(id, ttl) → same as schedule (called on every delivery access)
- cancel(id)          → drop the timer and the entry; no-op if absent
- drain_all()         → drop every timer, delete nothing (orderly shutdown)
- adopt(handle)       → one-time handoff from acquisition + first schedule
- open_media(id)      → delivery path: open + reschedule, per-id serialized
- evict_now(id)       → cancel + delete, per-id serialized

Concurrency
-----------
Timer bookkeeping runs on the event loop thread, so the id → entry map is
never mutated concurrently. The async paths that await the filesystem
(expiry delete, `open_media`, `evict_now`) hold a per-id `asyncio.Lock`; ids are
independent of each other. Every timer carries a generation number: a timer
whose entry was replaced or removed fires as a logged no-op.
"""

import asyncio
import itertools
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional, Set, Tuple

import anyio
from anyio import AsyncFile

from app.core.storage import MediaStorage, file_size, remove_file

logger = logging.getLogger(__name__)

__all__ = ["TransientStore", "DEFAULT_TTL_SECONDS"]

DEFAULT_TTL_SECONDS = 5 * 60.0


@dataclass
class _Entry:
    timer: asyncio.TimerHandle
    generation: int

    @property
    def deadline(self) -> float:
        return self.timer.when()


class _KeyedLocks:
    """Per-key asyncio locks, dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class TransientStore:
    def __init__(self, storage: MediaStorage, *, default_ttl: float = DEFAULT_TTL_SECONDS) -> None:
        self.storage = storage
        self.default_ttl = float(default_ttl)
        self._entries: Dict[str, _Entry] = {}
        self._locks = _KeyedLocks()
        self._generations = itertools.count(1)
        self._pending: Set[asyncio.Task] = set()

    # ── Timers ─────────────────────────────────────────────
    def schedule(self, media_id: str, ttl: Optional[float] = None) -> float:
        """Start (or replace) the eviction timer for `media_id`; returns the loop-time deadline."""
        delay = self.default_ttl if ttl is None else float(ttl)
        self._drop(media_id)
        loop = asyncio.get_running_loop()
        generation = next(self._generations)
        timer = loop.call_later(delay, self._on_expire, media_id, generation)
        self._entries[media_id] = _Entry(timer=timer, generation=generation)
        logger.info("Eviction scheduled for %s in %.0fs", media_id, delay)
        return timer.when()

    def reschedule(self, media_id: str, ttl: Optional[float] = None) -> float:
        return self.schedule(media_id, ttl)

    def cancel(self, media_id: str) -> bool:
        dropped = self._drop(media_id)
        if dropped:
            logger.info("Eviction canceled for %s", media_id)
        return dropped

    def drain_all(self) -> int:
        """Cancel every outstanding timer without touching any file."""
        count = len(self._entries)
        for entry in self._entries.values():
            entry.timer.cancel()
        self._entries.clear()
        if count:
            logger.info("Drained %d pending eviction(s)", count)
        return count

    def adopt(self, media_id: str, ttl: Optional[float] = None) -> float:
        """
        Take ownership of a freshly acquired file and schedule its first eviction.

        Raises ``ValueError`` if `media_id` is already tracked: a file is
        handed over exactly once.
        """
        if media_id in self._entries:
            raise ValueError(f"{media_id} already adopted")
        return self.schedule(media_id, ttl)

    # ── Introspection ──────────────────────────────────────
    def deadline(self, media_id: str) -> Optional[float]:
        entry = self._entries.get(media_id)
        return entry.deadline if entry else None

    def __contains__(self, media_id: object) -> bool:
        return media_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    # ── Serialized async paths ─────────────────────────────
    async def open_media(self, media_id: str, ttl: Optional[float] = None) -> Optional[Tuple[AsyncFile[bytes], int]]:
        """
        Delivery hook: open the stored file and slide its eviction window
        forward, or drop any stale entry and return ``None`` when it is gone.

        The file is opened while the per-id lock is held, so an eviction or
        `evict_now` that runs afterwards unlinks the name only; the returned
        handle keeps streaming the bytes. The caller closes the handle.
        """
        async with self._locks.hold(media_id):
            path = self.storage.path_for(media_id)
            size = await file_size(path)
            if size is None:
                self._drop(media_id)
                return None
            try:
                reader = await anyio.open_file(path, "rb")
            except FileNotFoundError:
                self._drop(media_id)
                return None
            self.reschedule(media_id, ttl)
            return reader, size

    async def evict_now(self, media_id: str) -> bool:
        """Cancel any pending timer, then delete the file. Idempotent."""
        async with self._locks.hold(media_id):
            self.cancel(media_id)
            try:
                removed = await remove_file(self.storage.path_for(media_id))
            except OSError as e:
                logger.error("Immediate cleanup of %s failed: %s", media_id, e)
                return False
        if removed:
            logger.info("Immediately cleaned up: %s (client left page)", media_id)
        return removed

    async def wait_idle(self) -> None:
        """Await in-flight expiry deletions (used at shutdown and in tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── Internals ──────────────────────────────────────────
    def _drop(self, media_id: str) -> bool:
        entry = self._entries.pop(media_id, None)
        if entry is None:
            return False
        entry.timer.cancel()
        return True

    def _on_expire(self, media_id: str, generation: int) -> None:
        entry = self._entries.get(media_id)
        if entry is None or entry.generation != generation:
            logger.debug("Stale eviction timer for %s ignored", media_id)
            return
        del self._entries[media_id]
        task = asyncio.get_running_loop().create_task(self._expire(media_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _expire(self, media_id: str) -> None:
        async with self._locks.hold(media_id):
            if media_id in self._entries:
                # re-armed by an access that landed between expiry and this task
                logger.debug("Eviction of %s superseded by a newer timer", media_id)
                return
            try:
                removed = await remove_file(self.storage.path_for(media_id))
            except OSError as e:
                logger.error("Eviction of %s failed: %s", media_id, e)
                return
        if removed:
            logger.info("Cleaned up: %s", media_id)
        else:
            logger.debug("Eviction of %s found no file", media_id)
