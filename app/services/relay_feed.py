# app/services/relay_feed.py
from __future__ import annotations

"""
ReelRelay · Relay Feed Loader
=============================

Fetches plain-text relay lists at startup and turns them into relay URLs.

Rules
-----
- Only `a.b.c.d:port` lines are accepted (IPv4 only); they become
  `http://a.b.c.d:port`.
- Sources are tried in order; the first one yielding at least one relay wins.
- Network/HTTP errors are logged and the next source is tried.
- No relays at all is a valid result: acquisition goes direct-only.
"""

import logging
import re
from typing import Iterable, List, Optional

import httpx

logger = logging.getLogger(__name__)

__all__ = ["parse_relay_lines", "load_relays"]

_RELAY_LINE_RE = re.compile(r"^(\d{1,3}\.){3}\d{1,3}:\d+$")


def parse_relay_lines(text: str) -> List[str]:
    """Extract `http://host:port` relays from a newline-separated list."""
    relays: List[str] = []
    for line in (text or "").splitlines():
        candidate = line.strip()
        if _RELAY_LINE_RE.match(candidate):
            relays.append(f"http://{candidate}")
    return relays


async def load_relays(
    sources: Iterable[str],
    *,
    client: Optional[httpx.AsyncClient] = None,
    timeout: float = 10.0,
) -> List[str]:
    """Return relays from the first source that yields any; ``[]`` otherwise."""
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
    logger.info("Fetching relays...")
    try:
        for source in sources:
            try:
                resp = await http.get(source, timeout=timeout)
                resp.raise_for_status()
            except httpx.HTTPError as e:
                logger.warning("Failed to fetch relays from %s: %s", source, e)
                continue
            relays = parse_relay_lines(resp.text)
            if relays:
                logger.info("Loaded %d relays from %s", len(relays), source)
                return relays
    finally:
        if owns_client:
            await http.aclose()

    logger.info("No relays loaded, using direct connection")
    return []
