# app/services/acquisition.py
from __future__ import annotations

"""
ReelRelay · Acquisition (yt-dlp, relay rotation, async)
=======================================================

Drives the external fetch tool for one logical request.

Algorithm
---------
1. Up to `max_attempts` attempts, each through `RelayPool.next()` (or direct
   when the pool is empty).
2. First success wins; remaining attempts are skipped.
3. If every relay-backed attempt failed, exactly one final direct attempt.
4. Success means: process exit code 0 **and** the destination file exists.
   No checksum or duration validation is performed.

Cancellation
------------
- Each fetch runs in its own session; cancel and timeout signal the whole
  process group, so the ffmpeg merger started by yt-dlp goes down with it.
- `cancel_event` (set by the request's disconnect watcher) terminates the
  running process; that attempt is recorded as `CANCELLED` and no further
  attempts start.
- Task cancellation (`asyncio.CancelledError`) kills the process before
  propagating.
- Partial output is removed whenever acquisition does not succeed, so no
  file is left behind that the transient store never adopted.

Usage
-----
    orchestrator = AcquisitionOrchestrator(pool, YtDlpRunner(...), max_attempts=5)
    handle = await orchestrator.acquire(AcquisitionRequest.create(url, tier, storage))
"""

import asyncio
import logging
import os
import signal
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Deque, List, Optional, Protocol, Sequence, Tuple

from app.core.storage import MediaStorage, file_size, new_media_id, remove_file
from app.services.formats import QualityTier, format_selector
from app.services.relay_pool import RelayPool

logger = logging.getLogger(__name__)

__all__ = [
    "AcquisitionRequest",
    "AttemptOutcome",
    "AttemptRecord",
    "StoredFileHandle",
    "AcquisitionFailed",
    "FetchLaunchError",
    "RunResult",
    "FetchRunner",
    "YtDlpRunner",
    "AcquisitionOrchestrator",
]


# ─────────────────────────────────────────────────────────────
# 📦 Value types
# ─────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class AcquisitionRequest:
    source_url: str
    quality: QualityTier
    media_id: str
    destination: Path
    partials: Tuple[Path, ...] = ()

    @classmethod
    def create(cls, source_url: str, quality: QualityTier, storage: MediaStorage) -> "AcquisitionRequest":
        media_id = new_media_id()
        return cls(
            source_url=source_url,
            quality=quality,
            media_id=media_id,
            destination=storage.path_for(media_id),
            partials=storage.partial_paths(media_id),
        )

    @property
    def format_selector(self) -> str:
        return format_selector(self.quality)


class AttemptOutcome(str, Enum):
    OK = "ok"
    EXIT_NONZERO = "exit_nonzero"    # process ran, exit code != 0
    NO_OUTPUT = "no_output"          # exit code 0 but destination missing
    LAUNCH_FAILED = "launch_failed"  # process could not be started
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class AttemptRecord:
    number: int
    relay: Optional[str]
    outcome: AttemptOutcome
    returncode: Optional[int] = None
    detail: str = ""


@dataclass(frozen=True)
class StoredFileHandle:
    """A successfully acquired file, ready to be adopted by the transient store."""

    media_id: str
    size: int
    attempts: Tuple[AttemptRecord, ...] = ()


class AcquisitionFailed(Exception):
    """Every attempt, including the final direct one, failed (or the client left)."""

    def __init__(self, request: AcquisitionRequest, attempts: Sequence[AttemptRecord]) -> None:
        self.request = request
        self.attempts: Tuple[AttemptRecord, ...] = tuple(attempts)
        super().__init__(f"acquisition of {request.source_url} failed after {len(self.attempts)} attempts ({self.reason})")

    @property
    def reason(self) -> str:
        """
        ``"invocation_failed"`` when the tool never ran, ``"cancelled"`` when
        the client went away, ``"no_output"`` when the tool ran without
        producing the destination file.
        """
        if not self.attempts or self.attempts[-1].outcome is AttemptOutcome.CANCELLED:
            return "cancelled"
        if all(a.outcome is AttemptOutcome.LAUNCH_FAILED for a in self.attempts):
            return "invocation_failed"
        return "no_output"

    def summary(self) -> List[dict]:
        return [
            {"attempt": a.number, "relay": a.relay, "outcome": a.outcome.value, "returncode": a.returncode}
            for a in self.attempts
        ]


class FetchLaunchError(RuntimeError):
    """The fetch process could not be spawned (binary missing, permissions, …)."""


@dataclass
class RunResult:
    returncode: Optional[int]
    cancelled: bool = False
    timed_out: bool = False
    tail: List[str] = field(default_factory=list)


class FetchRunner(Protocol):
    async def __call__(
        self,
        request: AcquisitionRequest,
        relay: Optional[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunResult: ...


# ─────────────────────────────────────────────────────────────
# 🛠️ yt-dlp subprocess runner
# ─────────────────────────────────────────────────────────────
class YtDlpRunner:
    """Runs one yt-dlp invocation as a child process and awaits it."""

    def __init__(
        self,
        command: Sequence[str] = ("yt-dlp",),
        *,
        extra_args: Sequence[str] = (),
        timeout: Optional[float] = None,
        kill_grace: float = 3.0,
        tail_lines: int = 20,
    ) -> None:
        self.command = list(command)
        self.extra_args = list(extra_args)
        self.timeout = timeout
        self.kill_grace = kill_grace
        self.tail_lines = tail_lines

    def build_argv(self, request: AcquisitionRequest, relay: Optional[str]) -> List[str]:
        argv = list(self.command)
        if relay:
            argv += ["--proxy", relay]
        argv += self.extra_args
        argv += [
            "--newline",
            "-f", request.format_selector,
            "--merge-output-format", "mp4",
            "-o", str(request.destination),
            request.source_url,
        ]
        return argv

    async def __call__(
        self,
        request: AcquisitionRequest,
        relay: Optional[str],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunResult:
        argv = self.build_argv(request, relay)
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as e:
            raise FetchLaunchError(f"{argv[0]}: {e}") from e

        tail: Deque[str] = deque(maxlen=self.tail_lines)
        pump = asyncio.create_task(self._pump_output(process, request.media_id, tail))
        waiter = asyncio.create_task(process.wait())
        watchers = {waiter}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.create_task(cancel_event.wait())
            watchers.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(watchers, timeout=self.timeout, return_when=asyncio.FIRST_COMPLETED)
            if waiter in done:
                await pump
                return RunResult(returncode=waiter.result(), tail=list(tail))

            cancelled = cancel_waiter is not None and cancel_waiter in done
            logger.info(
                "Terminating fetch pid=%s for %s (%s)",
                process.pid, request.media_id, "client left" if cancelled else "timeout",
            )
            await self._terminate(process)
            return RunResult(returncode=process.returncode, cancelled=cancelled, timed_out=not cancelled, tail=list(tail))
        except asyncio.CancelledError:
            self._signal_group(process, signal.SIGKILL)
            if process.returncode is None:
                await process.wait()
            raise
        finally:
            for task in (waiter, cancel_waiter, pump):
                if task is not None and not task.done():
                    task.cancel()

    @staticmethod
    def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
        """Signal the whole process group (yt-dlp plus its ffmpeg merger)."""
        try:
            os.killpg(process.pid, sig)
        except (ProcessLookupError, PermissionError):
            pass

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        self._signal_group(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.wait(), timeout=self.kill_grace)
        except asyncio.TimeoutError:
            pass
        # stragglers that ignored SIGTERM, or outlived yt-dlp itself
        self._signal_group(process, signal.SIGKILL)
        await process.wait()

    async def _pump_output(self, process: asyncio.subprocess.Process, media_id: str, tail: Deque[str]) -> None:
        if process.stdout is None:
            return
        async for raw in process.stdout:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            tail.append(line)
            if line.startswith("[download]") and "%" in line:
                logger.debug("%s %s", media_id, line)


# ─────────────────────────────────────────────────────────────
# 🔁 Orchestrator
# ─────────────────────────────────────────────────────────────
class AcquisitionOrchestrator:
    """Retry/relay-rotation driver around a `FetchRunner`."""

    def __init__(self, pool: RelayPool, runner: FetchRunner, *, max_attempts: int = 5) -> None:
        if max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        self.pool = pool
        self.runner = runner
        self.max_attempts = max_attempts

    async def acquire(
        self,
        request: AcquisitionRequest,
        *,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> StoredFileHandle:
        """
        Acquire `request.source_url` into `request.destination`.

        Returns
        -------
        StoredFileHandle
            On the first successful attempt.

        Raises
        ------
        AcquisitionFailed
            When all relay-backed attempts and the final direct attempt fail,
            or when `cancel_event` is set.
        """
        attempts: List[AttemptRecord] = []
        total = self.max_attempts + 1
        try:
            for _ in range(self.max_attempts):
                if cancel_event is not None and cancel_event.is_set():
                    break
                record, size = await self._attempt(request, self.pool.next(), len(attempts) + 1, total, cancel_event)
                attempts.append(record)
                if record.outcome is AttemptOutcome.OK:
                    return self._handle(request, size, attempts)
                if record.outcome is AttemptOutcome.CANCELLED:
                    break
            else:
                if cancel_event is None or not cancel_event.is_set():
                    logger.info("Trying direct connection for %s", request.media_id)
                    record, size = await self._attempt(request, None, len(attempts) + 1, total, cancel_event)
                    attempts.append(record)
                    if record.outcome is AttemptOutcome.OK:
                        return self._handle(request, size, attempts)
        except asyncio.CancelledError:
            await self._discard(request)
            raise

        await self._discard(request)
        failure = AcquisitionFailed(request, attempts)
        logger.warning("Acquisition failed for %s: %s", request.media_id, failure.summary())
        raise failure

    async def _attempt(
        self,
        request: AcquisitionRequest,
        relay: Optional[str],
        number: int,
        total: int,
        cancel_event: Optional[asyncio.Event],
    ) -> Tuple[AttemptRecord, int]:
        logger.info(
            "Attempt %d/%d for %s %s",
            number, total, request.media_id, f"with relay {relay}" if relay else "direct",
        )
        try:
            result = await self.runner(request, relay, cancel_event)
        except FetchLaunchError as e:
            logger.error("Attempt %d could not start fetch: %s", number, e)
            return AttemptRecord(number, relay, AttemptOutcome.LAUNCH_FAILED, detail=str(e)), 0

        detail = result.tail[-1] if result.tail else ""
        if result.cancelled:
            return AttemptRecord(number, relay, AttemptOutcome.CANCELLED, result.returncode, detail), 0
        if result.timed_out:
            return AttemptRecord(number, relay, AttemptOutcome.TIMED_OUT, result.returncode, detail), 0

        logger.info("Process exited: %s", result.returncode)
        if result.returncode != 0:
            return AttemptRecord(number, relay, AttemptOutcome.EXIT_NONZERO, result.returncode, detail), 0

        size = await file_size(request.destination)
        if size is None:
            return AttemptRecord(number, relay, AttemptOutcome.NO_OUTPUT, result.returncode, detail), 0
        return AttemptRecord(number, relay, AttemptOutcome.OK, result.returncode, detail), size

    def _handle(self, request: AcquisitionRequest, size: int, attempts: List[AttemptRecord]) -> StoredFileHandle:
        logger.info("Downloaded %s: %.2f MB after %d attempt(s)", request.media_id, size / 1024 / 1024, len(attempts))
        return StoredFileHandle(
            media_id=request.media_id,
            size=size,
            attempts=tuple(attempts),
        )

    async def _discard(self, request: AcquisitionRequest) -> None:
        for path in (request.destination, *request.partials):
            try:
                await remove_file(path)
            except OSError as e:
                logger.warning("Could not remove partial output %s: %s", path, e)
