"""
Installation registry — durable map of installed servers.

Stored as a JSON array of ``ServerEntry`` objects, written atomically
through host services. Every operation re-reads the file under the
per-path lock, so concurrent sessions in one process see each other's
commits.

Append-mostly: ``remove`` marks an entry ``removed`` instead of
dropping it, and re-installing brings it back with the same id.
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from mcp_installer.adapters.base import HostServices, HostServicesError
from mcp_installer.core.domain.paths import pure_path, registry_path
from mcp_installer.core.models.entry import EntryStatus, ServerEntry
from mcp_installer.core.persistence.locks import lock_for

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """The registry file is unreadable or cannot be written, or an id is unknown."""


class InstallationRegistry:
    """Registry of installed servers backed by one JSON file."""

    def __init__(self, host: HostServices, path: str | None = None):
        self.host = host
        self.path = path or registry_path(host.platform(), host.home_dir(), host.env("APPDATA"))

    # ── File I/O ────────────────────────────────────────────────

    def _read(self) -> list[ServerEntry]:
        if not self.host.exists(self.path):
            return []
        try:
            raw = self.host.read_file(self.path)
            data = json.loads(raw) if raw.strip() else []
        except HostServicesError as e:
            raise RegistryError(f"Cannot read registry {self.path}: {e.message}") from e
        except json.JSONDecodeError as e:
            raise RegistryError(f"Registry {self.path} is not valid JSON: {e}") from e

        if not isinstance(data, list):
            raise RegistryError(f"Registry {self.path} must hold a JSON array")
        try:
            return [ServerEntry.model_validate(item) for item in data]
        except ValidationError as e:
            raise RegistryError(f"Registry {self.path} has an invalid entry: {e}") from e

    def _write(self, entries: list[ServerEntry]) -> None:
        content = json.dumps(
            [e.model_dump(mode="json") for e in entries], indent=2, ensure_ascii=False,
        ) + "\n"
        try:
            self.host.ensure_dir(str(pure_path(self.host.platform(), self.path).parent))
            self.host.write_file(self.path, content)
        except HostServicesError as e:
            raise RegistryError(f"Cannot write registry {self.path}: {e.message}") from e
        logger.debug("Registry saved: %d entries", len(entries))

    # ── Operations ──────────────────────────────────────────────

    def get(self, entry_id: str) -> ServerEntry | None:
        with lock_for(self.path):
            for entry in self._read():
                if entry.id == entry_id:
                    return entry
        return None

    def list(self, include_removed: bool = False) -> list[ServerEntry]:
        with lock_for(self.path):
            entries = self._read()
        if include_removed:
            return entries
        return [e for e in entries if e.status == EntryStatus.INSTALLED]

    def upsert(self, entry: ServerEntry) -> ServerEntry:
        """Insert ``entry`` or update the one with the same id in place.

        ``installed_at`` is kept from the first install; ``updated_at`` is
        refreshed on every call.
        """
        with lock_for(self.path):
            entries = self._read()
            stored = entry.model_copy(deep=True)
            stored.status = EntryStatus.INSTALLED
            stored.touch()

            for i, existing in enumerate(entries):
                if existing.id == stored.id:
                    stored.installed_at = existing.installed_at
                    entries[i] = stored
                    logger.info("Registry: updated %s", stored.id)
                    break
            else:
                stored.installed_at = stored.updated_at
                entries.append(stored)
                logger.info("Registry: added %s", stored.id)

            self._write(entries)
            return stored

    def remove(self, entry_id: str) -> ServerEntry:
        """Mark ``entry_id`` as removed.

        Raises:
            RegistryError: No entry with that id.
        """
        with lock_for(self.path):
            entries = self._read()
            for entry in entries:
                if entry.id == entry_id:
                    entry.status = EntryStatus.REMOVED
                    entry.touch()
                    self._write(entries)
                    logger.info("Registry: removed %s", entry_id)
                    return entry
        raise RegistryError(f"No installed server with id '{entry_id}'")
