"""
ServerEntry — one installed server, as stored in the registry.

``id`` is stable across re-installs of the same source: ``mcp-<repo>``
when a repository name is known, ``mcp-<random hex>`` otherwise.
"""

from __future__ import annotations

import secrets
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from mcp_installer.core.models.analysis import InstallMethod, ServerType
from mcp_installer.core.models.source import GitSource, LocalSource, TemplateSource


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


def derive_entry_id(repo_name: str | None) -> str:
    """Deterministic id from the repository name; random token as fallback."""
    if repo_name:
        return f"mcp-{repo_name}"
    return f"mcp-{secrets.token_hex(4)}"


class EntryStatus(StrEnum):
    INSTALLED = "installed"
    REMOVED = "removed"


class ServerConfig(BaseModel):
    auto_start: bool = False
    port: int = 3000
    environment: dict[str, str] = Field(default_factory=dict)


class ServerEntry(BaseModel):
    """Unit written by the config reconciler and stored in the registry."""

    id: str
    name: str
    type: ServerType = ServerType.UNKNOWN
    install_path: str
    install_method: InstallMethod
    source: GitSource | TemplateSource | LocalSource = Field(discriminator="kind")
    owner: str | None = None
    repo: str | None = None

    installed_at: str = Field(default_factory=_now_iso)
    updated_at: str = Field(default_factory=_now_iso)
    status: EntryStatus = EntryStatus.INSTALLED

    config: ServerConfig = Field(default_factory=ServerConfig)

    def touch(self) -> None:
        """Update the updated_at timestamp."""
        self.updated_at = _now_iso()
