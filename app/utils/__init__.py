"""Utility helpers for ReelRelay.

Submodules:
- templates: Jinja2 rendering for the player page
"""

__all__: list[str] = []
