# app/services/runtime.py
from __future__ import annotations

"""
Process-wide media runtime.

Owns the only mutable shared state of the service (relay cursor, id → timer
registry) and wires it into the orchestrator. Built once by the app factory
and reachable from routes through `app.core.dependencies.get_runtime`.
"""

import shlex
from dataclasses import dataclass
from typing import Optional

from app.core.config import Settings
from app.core.storage import MediaStorage
from app.services.acquisition import AcquisitionOrchestrator, FetchRunner, YtDlpRunner
from app.services.relay_pool import RelayPool
from app.services.transient_store import TransientStore

__all__ = ["MediaRuntime", "build_runtime"]


@dataclass
class MediaRuntime:
    settings: Settings
    storage: MediaStorage
    relays: RelayPool
    store: TransientStore
    orchestrator: AcquisitionOrchestrator


def build_runtime(settings: Settings, *, runner: Optional[FetchRunner] = None) -> MediaRuntime:
    storage = MediaStorage(root=settings.STORAGE_DIR, extension=settings.MEDIA_EXTENSION)
    relays = RelayPool()
    if runner is None:
        runner = YtDlpRunner(
            shlex.split(settings.FETCH_BINARY),
            extra_args=settings.fetch_extra_argv,
            timeout=settings.FETCH_TIMEOUT_SECONDS,
        )
    return MediaRuntime(
        settings=settings,
        storage=storage,
        relays=relays,
        store=TransientStore(storage, default_ttl=settings.EVICTION_TTL_SECONDS),
        orchestrator=AcquisitionOrchestrator(relays, runner, max_attempts=settings.MAX_RELAY_ATTEMPTS),
    )
