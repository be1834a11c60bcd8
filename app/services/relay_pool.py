# app/services/relay_pool.py
from __future__ import annotations

"""
ReelRelay · Relay Pool
======================

Ordered set of outbound relays (HTTP proxies) handed out in strict rotation.
Pure state, no I/O: the list is loaded by `app.services.relay_feed` at boot
and swapped in with `replace()`.

Thread-safety
-------------
`next()` reads and advances the cursor under a lock, so concurrent callers
never skip an entry or advance twice for one call.
"""

import threading
from typing import Iterable, Optional, Tuple

__all__ = ["RelayPool"]


class RelayPool:
    """Round-robin relay rotation.

    - next() -> Optional[str]
    - replace(relays)
    """

    def __init__(self, relays: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._relays: Tuple[str, ...] = tuple(relays)
        self._cursor = 0

    def next(self) -> Optional[str]:
        """Return the relay at the cursor and advance it; ``None`` when empty."""
        with self._lock:
            if not self._relays:
                return None
            relay = self._relays[self._cursor]
            self._cursor = (self._cursor + 1) % len(self._relays)
            return relay

    def replace(self, relays: Iterable[str]) -> None:
        with self._lock:
            self._relays = tuple(relays)
            self._cursor = 0

    def snapshot(self) -> Tuple[str, ...]:
        with self._lock:
            return self._relays

    def __len__(self) -> int:
        with self._lock:
            return len(self._relays)

    def __bool__(self) -> bool:
        return len(self) > 0
