"""
Analysis — what the analyzer learned about a source tree.

Immutable once produced. Discarded together with the plan built from it.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from mcp_installer.core.models.source import GitSource, LocalSource, TemplateSource


class Language(StrEnum):
    JAVASCRIPT = "JavaScript"
    TYPESCRIPT = "TypeScript"
    PYTHON = "Python"
    UNKNOWN = "Unknown"

    @property
    def is_node(self) -> bool:
        return self in (Language.JAVASCRIPT, Language.TYPESCRIPT)


class InstallMethod(StrEnum):
    NPX = "npx"
    UV = "uv"
    PYTHON = "python"
    DOCKER = "docker"


class ServerType(StrEnum):
    """Runtime family of an installed server (``ServerEntry.type``)."""

    NODE = "node"
    PYTHON = "python"
    DOCKER = "docker"
    UNKNOWN = "unknown"

    @classmethod
    def from_language(cls, language: Language, method: InstallMethod | None = None) -> ServerType:
        if method == InstallMethod.DOCKER:
            return cls.DOCKER
        if language.is_node:
            return cls.NODE
        if language == Language.PYTHON:
            return cls.PYTHON
        return cls.UNKNOWN


class Dependency(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    version: str | None = None  # verbatim from the manifest


class Analysis(BaseModel):
    """Result of analyzing one source."""

    model_config = ConfigDict(frozen=True)

    source: GitSource | TemplateSource | LocalSource = Field(discriminator="kind")
    repo_name: str
    owner: str | None = None
    origin: GitSource | None = None     # what to clone (git and template sources)

    language: Language = Language.UNKNOWN
    framework: str | None = None
    declared_dependencies: tuple[Dependency, ...] = ()
    has_container_manifest: bool = False
    config_file_candidates: tuple[str, ...] = ()
    recommended_method: InstallMethod = InstallMethod.NPX
    install_commands_hint: frozenset[str] = frozenset()
    declared_port: int | None = None

    @property
    def server_type(self) -> ServerType:
        return ServerType.from_language(self.language, self.recommended_method)
