"""
Static catalogs shipped with the installer.

Loads JSON catalogs from this directory once at first access and caches
them for the lifetime of the registry instance.

Usage::

    from mcp_installer.core.data import DataRegistry

    registry = DataRegistry()
    templates = registry.templates   # list[dict]
"""

from __future__ import annotations

import json
import logging
from functools import cached_property
from pathlib import Path

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).parent


def _load_json(relative_path: str) -> list | dict:
    """Load a JSON file relative to the data directory."""
    path = _DATA_DIR / relative_path
    if not path.exists():
        logger.warning("Data file not found: %s", path)
        return [] if relative_path.endswith("s.json") else {}
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class DataRegistry:
    """Registry for the bundled catalogs."""

    @cached_property
    def templates(self) -> list[dict]:
        """Installable server templates (id, name, url, preferred method, …)."""
        data = _load_json("templates.json")
        logger.debug("Loaded %d server templates", len(data))
        return data
