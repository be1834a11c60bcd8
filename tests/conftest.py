# tests/conftest.py
"""
Global test bootstrap
- Keeps logging on stdout only (no log files from test runs)
- Pins the anyio backend to asyncio (timers use loop.call_later)
- Pulls in the shared fixtures (settings, runner, app, async_client)
"""

from __future__ import annotations

import os

import pytest

# ──────────────────────────────────────────────────────────────────────────────
# 🌱 Test env (set BEFORE importing the app so import-time config sees it)
# ──────────────────────────────────────────────────────────────────────────────
os.environ.setdefault("LOG_TO_FILE", "0")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("RELAY_FEED_ENABLED", "false")

# ──────────────────────────────────────────────────────────────────────────────
# 📦 Shared fixtures
# ──────────────────────────────────────────────────────────────────────────────
from tests.fixtures.app import *  # noqa: E402,F401,F403


@pytest.fixture(scope="session", autouse=True)
def anyio_backend():
    return "asyncio"
