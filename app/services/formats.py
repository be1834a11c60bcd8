# app/services/formats.py
from __future__ import annotations

"""
Quality tiers and their yt-dlp format selectors.

Every selector prefers merged mp4 video + m4a audio, then a single combined
mp4 stream, and always ends in an unconditional fallback so yt-dlp never
reports "requested format not available" purely because of the tier.
"""

from enum import Enum
from typing import List

__all__ = ["QualityTier", "format_selector", "parse_quality"]


class QualityTier(str, Enum):
    P2160 = "2160p"
    P1440 = "1440p"
    P1080 = "1080p"
    P720 = "720p"
    P480 = "480p"
    P360 = "360p"
    BEST = "best"
    WORST = "worst"

    @property
    def height(self) -> int | None:
        if self.value.endswith("p"):
            return int(self.value[:-1])
        return None

    @classmethod
    def values(cls) -> List[str]:
        return [t.value for t in cls]


def parse_quality(raw: str | None, default: str = "best") -> QualityTier:
    """Coerce a query-string value (``"720p"``, ``"720"``, ``"BEST"``) into a tier.

    Raises ``ValueError`` for anything outside the enumeration.
    """
    value = (raw or default).strip().lower()
    if value.isdigit():
        value = f"{value}p"
    return QualityTier(value)


def format_selector(tier: QualityTier) -> str:
    """Deterministic tier → yt-dlp ``-f`` expression."""
    if tier is QualityTier.BEST:
        return "bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]/best"
    if tier is QualityTier.WORST:
        return "worst[ext=mp4]/worst"
    h = tier.height
    return (
        f"bestvideo[height<={h}][ext=mp4]+bestaudio[ext=m4a]"
        f"/best[height<={h}][ext=mp4]"
        "/best"
    )
