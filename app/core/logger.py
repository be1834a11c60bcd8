# app/core/logger.py
from __future__ import annotations

"""
ReelRelay · Logging (Loguru)
============================
`configure_logging(settings)` installs the loguru sinks once per process and
routes stdlib loggers (uvicorn, fastapi, starlette and every `app.*` module
logger) into loguru.

Sinks
-----
- stdout: pretty single line, or one JSON object per line with `LOG_JSON=1`
- file (optional, `LOG_TO_FILE=1`): `{LOG_DIR}/{LOG_FILE}`, rotated at `LOG_ROTATION`

Every record carries `request_id` (bound by `RequestIDMiddleware`); records
emitted outside a request show `-`. Any other bound extras (e.g. `media_id`)
are appended to JSON records as top-level keys.
"""

import json
import logging
import sys
from typing import Any, Dict, Iterable

from loguru import logger

from app.core.config import Settings

__all__ = ["configure_logging", "InterceptHandler", "INTERCEPTED_LOGGERS"]

INTERCEPTED_LOGGERS: tuple[str, ...] = (
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
    "starlette",
    "app",
)

_configured = False


# ─────────────────────────────────────────────────────────────
# 🧾 Formatters
# ─────────────────────────────────────────────────────────────
def _pretty(record) -> str:
    rid = record["extra"].get("request_id") or "-"
    record["extra"]["rid"] = rid[:8]
    return (
        "<green>{time:HH:mm:ss.SSS}</green> "
        "<level>{level: <7}</level> "
        "<dim>[{extra[rid]}]</dim> "
        "<cyan>{name}</cyan>:{line} {message}\n{exception}"
    )


def _json(record) -> str:
    extra = record["extra"]
    payload: Dict[str, Any] = {
        "time": record["time"].isoformat(),
        "level": record["level"].name,
        "logger": record["name"],
        "line": record["line"],
        "message": record["message"],
        "request_id": extra.get("request_id"),
    }
    payload.update({k: v for k, v in extra.items() if k not in payload and k not in {"rid", "serialized"}})
    if record["exception"] is not None:
        payload["exception"] = repr(record["exception"].value)
    extra["serialized"] = json.dumps(payload, ensure_ascii=False, default=str)
    return "{extra[serialized]}\n"


# ─────────────────────────────────────────────────────────────
# 🔁 stdlib → Loguru
# ─────────────────────────────────────────────────────────────
class InterceptHandler(logging.Handler):
    """Forward stdlib records to loguru at the caller's frame."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _intercept(names: Iterable[str], level: str) -> None:
    handler = InterceptHandler()
    for name in names:
        std = logging.getLogger(name)
        std.handlers = [handler]
        std.setLevel(level)
        std.propagate = False


# ─────────────────────────────────────────────────────────────
# ⚙️ Setup
# ─────────────────────────────────────────────────────────────
def configure_logging(settings: Settings, *, force: bool = False) -> None:
    """Install sinks and intercepts. Idempotent unless `force` is set."""
    global _configured
    if _configured and not force:
        return

    level = settings.LOG_LEVEL.upper()
    fmt = _json if settings.LOG_JSON else _pretty

    logger.remove()
    logger.add(sys.stdout, level=level, format=fmt, backtrace=settings.APP_DEBUG, diagnose=settings.APP_DEBUG)
    if settings.LOG_TO_FILE:
        settings.LOG_DIR.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(settings.LOG_DIR / settings.LOG_FILE),
            level=level,
            format=fmt,
            rotation=settings.LOG_ROTATION,
            enqueue=True,
        )

    _intercept(INTERCEPTED_LOGGERS, level)
    _configured = True
