# app/core/config.py
from __future__ import annotations

"""
# ReelRelay · Centralized Configuration (Pydantic v2)

Single `settings` object with strongly-typed, environment-driven config.

## Goals
- Safe defaults for local/dev; everything overridable from `.env`.
- CSV → list helpers for relay feed sources.
- Bounded knobs (TTL, attempts) so a typo cannot disable eviction.

## Usage
    from app.core.config import settings
"""

import shlex
from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

load_dotenv()  # harmless in prod; convenient in dev


# ─────────────────────────────────────────────────────────────
# Small helpers
# ─────────────────────────────────────────────────────────────
def _split_csv(v: str | None) -> list[str]:
    """Split a comma-separated string into a trimmed list (empty-safe)."""
    if not v:
        return []
    return [s.strip() for s in str(v).split(",") if s and s.strip()]


DEFAULT_RELAY_SOURCES = [
    "https://raw.githubusercontent.com/TheSpeedX/PROXY-List/master/http.txt",
    "https://raw.githubusercontent.com/ShiftyTR/Proxy-List/master/http.txt",
    "https://raw.githubusercontent.com/monosans/proxy-list/main/proxies/http.txt",
]

DEFAULT_FETCH_EXTRA_ARGS = (
    "--no-check-certificates --extractor-args youtube:player_client=android,web"
)


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────
class Settings(BaseSettings):
    """
    Global application settings sourced from environment.

    Storage:
        - `STORAGE_DIR` is a single flat directory, swept once at startup.

    Acquisition:
        - `MAX_RELAY_ATTEMPTS` relay-backed attempts, then one direct attempt.
        - `FETCH_EXTRA_ARGS` is split with shlex and prepended to every run.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # don't crash on unknown keys
    )

    # ── App meta ──────────────────────────────────────────────
    PROJECT_NAME: str = "ReelRelay"
    VERSION: str = "1.0.0"
    ENABLE_DOCS: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = Field(3000, ge=1, le=65535)

    # ── Storage / eviction ────────────────────────────────────
    STORAGE_DIR: Path = Path("videos")
    MEDIA_EXTENSION: str = ".mp4"
    EVICTION_TTL_SECONDS: float = Field(300.0, gt=0, le=24 * 60 * 60)
    SWEEP_ON_STARTUP: bool = True

    # ── Acquisition ───────────────────────────────────────────
    MAX_RELAY_ATTEMPTS: int = Field(5, ge=0, le=50)
    FETCH_BINARY: str = "yt-dlp"
    FETCH_EXTRA_ARGS: str = DEFAULT_FETCH_EXTRA_ARGS
    FETCH_TIMEOUT_SECONDS: Optional[float] = Field(None, gt=0)
    DEFAULT_QUALITY: str = "best"
    DISCONNECT_POLL_SECONDS: float = Field(0.5, gt=0, le=10)

    # ── Relay feed ────────────────────────────────────────────
    RELAY_FEED_ENABLED: bool = True
    RELAY_SOURCES: Annotated[List[str], NoDecode] = Field(default_factory=lambda: list(DEFAULT_RELAY_SOURCES))
    RELAY_FEED_TIMEOUT_SECONDS: float = Field(10.0, gt=0, le=120)

    # ── Logging ───────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_TO_FILE: bool = False
    LOG_DIR: Path = Path("logs")
    LOG_FILE: str = "reelrelay.log"
    LOG_ROTATION: str = "10 MB"
    APP_DEBUG: bool = False

    # ── Validators / normalizers ──────────────────────────────
    @field_validator("RELAY_SOURCES", mode="before")
    @classmethod
    def _assemble_relay_sources(cls, v: str | List[str]):
        if isinstance(v, str):
            return _split_csv(v)
        return v

    @field_validator("MEDIA_EXTENSION", mode="before")
    @classmethod
    def _normalize_extension(cls, v: str) -> str:
        s = (v or ".mp4").strip().lower()
        return s if s.startswith(".") else f".{s}"

    # ── Derived / convenience properties ─────────────────────
    @property
    def fetch_extra_argv(self) -> List[str]:
        """`FETCH_EXTRA_ARGS` split into argv tokens."""
        return shlex.split(self.FETCH_EXTRA_ARGS or "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


# Singleton instance
settings = get_settings()
