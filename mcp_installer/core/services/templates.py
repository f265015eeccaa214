"""
Template catalog — named server templates resolved to git sources.

A template is a curated repository plus an optional preferred install
method. ``template:docker-compose`` therefore installs exactly like the
repository it points at, with ``docker`` forced.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from mcp_installer.core.data import DataRegistry
from mcp_installer.core.models.analysis import InstallMethod
from mcp_installer.core.models.source import GitSource

logger = logging.getLogger(__name__)


class UnknownTemplateError(LookupError):
    """No template with the requested id."""

    def __init__(self, template_id: str, known: list[str]):
        super().__init__(
            f"Unknown template '{template_id}' (available: {', '.join(known)})"
        )
        self.template_id = template_id


class Template(BaseModel):
    id: str
    name: str
    description: str = ""
    url: str
    ref: str | None = None
    method: InstallMethod | None = None
    requirements: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    def to_source(self) -> GitSource:
        return GitSource(url=self.url, ref=self.ref)


class TemplateCatalog:
    """Read-only view over the bundled template catalog."""

    def __init__(self, registry: DataRegistry | None = None):
        self._registry = registry or DataRegistry()
        self._templates: dict[str, Template] | None = None

    def _load(self) -> dict[str, Template]:
        if self._templates is None:
            self._templates = {
                raw["id"]: Template.model_validate(raw)
                for raw in self._registry.templates
            }
        return self._templates

    def ids(self) -> list[str]:
        return list(self._load())

    def all(self) -> list[Template]:
        return list(self._load().values())

    def get(self, template_id: str) -> Template:
        """Look up a template; raise ``UnknownTemplateError`` if absent."""
        templates = self._load()
        if template_id not in templates:
            raise UnknownTemplateError(template_id, list(templates))
        return templates[template_id]
