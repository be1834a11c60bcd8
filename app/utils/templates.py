from __future__ import annotations

"""
ReelRelay · HTML templates
==========================

Jinja2 rendering for the minimal player page. Templates live next to the
package (`app/templates/`) so they ship with the wheel.
"""

from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

TEMPLATE_DIR = Path(__file__).resolve().parent.parent / "templates"

_jinja_env: Optional[Environment] = None


# ──────────────────────────────────────────────────────────────────────────────
# 🧰 Jinja environment
# ──────────────────────────────────────────────────────────────────────────────

def _jinja() -> Environment:
    global _jinja_env
    if _jinja_env is not None:
        return _jinja_env

    _jinja_env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        autoescape=select_autoescape(enabled_extensions=("html", "xml")),
    )
    return _jinja_env


def render_player(media_id: str, *, media_type: str = "video/mp4", title: str = "Video") -> str:
    """Render the full-viewport player for `media_id` with its cleanup hooks."""
    return _jinja().get_template("player.html").render(
        title=title,
        media_type=media_type,
        video_src=f"/videos/{media_id}",
        cleanup_url=f"/cleanup/{media_id}",
    )


__all__ = ["render_player"]
