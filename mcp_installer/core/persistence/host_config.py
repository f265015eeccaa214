"""
Host config reconciler — merge server entries into the host's JSON config.

Document shape::

    {
      "globalShortcut": "Ctrl+Space",
      "theme": "dark",
      "mcpServers": {"<name>": {"enabled": true, "port": 3010, ...extra}}
    }

Rules:
- An absent or unparsable file loads as the default document; nothing is
  written until an operation asks for it.
- Keys are never deleted. A value is replaced only when it fails the
  schema (wrong type, port out of range). Unknown keys stay verbatim.
- Required servers always exist, with stable default ports.
- Output is deterministic (input key order, 2-space indent), so repeating
  an upsert yields a byte-identical file.
- Writes go through the atomic ``write_file`` of host services and hold
  the per-path lock across read-modify-write.
"""

from __future__ import annotations

import copy
import json
import logging
import zlib

from mcp_installer.adapters.base import HostServices, HostServicesError
from mcp_installer.core.domain.classifier import classify
from mcp_installer.core.domain.paths import host_config_path, pure_path
from mcp_installer.core.models.entry import ServerEntry
from mcp_installer.core.models.outcome import ErrorKind
from mcp_installer.core.persistence.locks import lock_for

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT: dict = {
    "globalShortcut": "Ctrl+Space",
    "theme": "dark",
    "mcpServers": {},
}

# Stable name → port mapping; identical on every machine
REQUIRED_SERVERS: dict[str, int] = {
    "filesystem": 3010,
    "memory": 3011,
    "github": 3012,
    "redis": 3013,
    "time": 3014,
    "brave-search": 3015,
}

PORT_RANGE = (3010, 3099)
DERIVED_PORT_RANGE = (3020, 3099)


class ConfigWriteError(Exception):
    """The host config could not be written; the file is unchanged."""

    def __init__(self, path: str, kind: ErrorKind, message: str):
        super().__init__(f"Cannot write {path} ({kind}): {message}")
        self.path = path
        self.kind = kind
        self.message = message


def derived_port(name: str, used: set[int], lo: int = DERIVED_PORT_RANGE[0],
                 hi: int = DERIVED_PORT_RANGE[1]) -> int:
    """Stable port for ``name``: crc32 into ``[lo, hi]``, skipping ports in ``used``.

    Raises ``ValueError`` when every port in the range is taken.

    >>> derived_port("bar", set()) == derived_port("bar", set())
    True
    """
    span = hi - lo + 1
    start = zlib.crc32(name.encode("utf-8")) % span
    for i in range(span):
        port = lo + (start + i) % span
        if port not in used:
            return port
    raise ValueError(f"no free port in {lo}-{hi}")


def render(document: dict) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


class ConfigReconciler:
    """Reads, reconciles and atomically writes the host config.

    Args:
        host: Host services used for all file access.
        path: Config location; the OS-specific default when omitted.
        required_servers: Name → default port of servers that must exist.
        port_range: Inclusive range of valid server ports.
    """

    def __init__(
        self,
        host: HostServices,
        path: str | None = None,
        required_servers: dict[str, int] | None = None,
        port_range: tuple[int, int] = PORT_RANGE,
    ):
        self.host = host
        self.path = path or host_config_path(host.platform(), host.home_dir(), host.env("APPDATA"))
        self.required_servers = dict(REQUIRED_SERVERS if required_servers is None else required_servers)
        self.port_range = port_range

    # ── Schema helpers ──────────────────────────────────────────

    def _valid_port(self, value: object) -> bool:
        lo, hi = self.port_range
        return isinstance(value, int) and not isinstance(value, bool) and lo <= value <= hi

    @staticmethod
    def _used_ports(servers: dict, exclude: str | None = None) -> set[int]:
        return {
            s["port"] for name, s in servers.items()
            if name != exclude and isinstance(s, dict) and isinstance(s.get("port"), int)
        }

    def _default_port(self, name: str, servers: dict, preferred: int | None = None) -> int:
        if name in self.required_servers:
            return self.required_servers[name]
        used = self._used_ports(servers, exclude=name) | set(self.required_servers.values())
        if preferred is not None and self._valid_port(preferred) and preferred not in used:
            return preferred
        try:
            return derived_port(name, used, *self._derived_range())
        except ValueError as e:
            logger.error("Cannot assign a port to %s: %s", name, e)
            raise ConfigWriteError(self.path, ErrorKind.UNKNOWN, f"cannot assign a port to {name}: {e}") from e

    def _derived_range(self) -> tuple[int, int]:
        """Range for derived ports: above the required-server block when it fits."""
        lo, hi = self.port_range
        start = max(lo, DERIVED_PORT_RANGE[0])
        return (start, hi) if start <= hi else (lo, hi)

    def _normalize(self, document: dict) -> None:
        """Fill or repair top-level keys in place."""
        for key in ("globalShortcut", "theme"):
            if not isinstance(document.get(key), str):
                document[key] = DEFAULT_DOCUMENT[key]
        if not isinstance(document.get("mcpServers"), dict):
            document["mcpServers"] = {}

    def _reconcile_entry(self, name: str, servers: dict, preferred_port: int | None = None) -> dict:
        """Make ``servers[name]`` satisfy the entry schema, keeping valid values."""
        entry = servers.get(name)
        if not isinstance(entry, dict):
            entry = servers[name] = {}
        if not isinstance(entry.get("enabled"), bool):
            entry["enabled"] = True
        if not self._valid_port(entry.get("port")):
            entry["port"] = self._default_port(name, servers, preferred_port)
        return entry

    def ensure_required(self, document: dict) -> None:
        self._normalize(document)
        servers = document["mcpServers"]
        for name in self.required_servers:
            self._reconcile_entry(name, servers)

    # ── Load / write ────────────────────────────────────────────

    def _read_raw(self) -> str | None:
        if not self.host.exists(self.path):
            return None
        return self.host.read_file(self.path)

    def _parse(self, raw: str | None) -> dict:
        if raw is None:
            logger.info("No host config at %s, using defaults", self.path)
            return copy.deepcopy(DEFAULT_DOCUMENT)
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Host config %s is not valid JSON (%s), using defaults", self.path, e)
            return copy.deepcopy(DEFAULT_DOCUMENT)
        if not isinstance(document, dict):
            logger.warning("Host config %s is not a JSON object, using defaults", self.path)
            return copy.deepcopy(DEFAULT_DOCUMENT)
        return document

    def load(self) -> dict:
        """Current document, or the default one. Never writes."""
        return self._parse(self._read_raw())

    def _write(self, document: dict, previous: str | None) -> bool:
        content = render(document)
        if content == previous:
            logger.debug("Host config %s unchanged", self.path)
            return False
        try:
            self.host.ensure_dir(str(pure_path(self.host.platform(), self.path).parent))
            self.host.write_file(self.path, content)
        except HostServicesError as e:
            kind = classify(e.message, e.exit_code)
            if kind not in (ErrorKind.PERMISSION, ErrorKind.DISK):
                kind = ErrorKind.UNKNOWN
            raise ConfigWriteError(self.path, kind, e.message) from e
        logger.info("Host config written: %s", self.path)
        return True

    # ── Operations ──────────────────────────────────────────────

    def upsert(self, entry: ServerEntry) -> dict:
        """Insert or complete ``mcpServers[entry.name]`` and write.

        Existing keys win; only missing or invalid required keys are
        filled. Returns the written document.

        Raises:
            ConfigWriteError: The write failed or no port is free; the
                file is unchanged.
        """
        with lock_for(self.path):
            raw = self._read_raw()
            document = self._parse(raw)
            self.ensure_required(document)

            servers = document["mcpServers"]
            server = self._reconcile_entry(entry.name, servers, preferred_port=entry.config.port)
            server.setdefault("installPath", entry.install_path)
            server.setdefault("installMethod", str(entry.install_method))
            server.setdefault("env", dict(entry.config.environment))

            self._write(document, raw)
            return document

    def ensure(self) -> dict:
        """Write the document with all required servers present."""
        with lock_for(self.path):
            raw = self._read_raw()
            document = self._parse(raw)
            self.ensure_required(document)
            self._write(document, raw)
            return document

    def set_enabled(self, name: str, enabled: bool) -> bool:
        """Toggle ``mcpServers[name].enabled``. False when the server is absent."""
        with lock_for(self.path):
            raw = self._read_raw()
            document = self._parse(raw)
            servers = document.get("mcpServers")
            if not isinstance(servers, dict) or not isinstance(servers.get(name), dict):
                return False
            servers[name]["enabled"] = enabled
            self._write(document, raw)
            return True
