"""Configuration package for ProfRater.

Re-exports the settings symbols so that callers can write::

    from profrater.config import get_settings
"""

from __future__ import annotations

from profrater.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
