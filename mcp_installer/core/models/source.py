"""
Source descriptors — where a server comes from.

A discriminated union on ``kind``:

    {"kind": "git", "url": "...", "ref": "main"}
    {"kind": "template", "template_id": "basic-api"}
    {"kind": "local", "path": "/home/me/my-server"}
"""

from __future__ import annotations

import re
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from mcp_installer.core.domain.paths import repo_name_from_url


class GitSource(BaseModel):
    kind: Literal["git"] = "git"
    url: str
    ref: str | None = None

    @property
    def repo_name(self) -> str:
        return repo_name_from_url(self.url)


class TemplateSource(BaseModel):
    kind: Literal["template"] = "template"
    template_id: str

    @property
    def repo_name(self) -> str:
        return self.template_id


class LocalSource(BaseModel):
    kind: Literal["local"] = "local"
    path: str

    @property
    def repo_name(self) -> str:
        parts = [p for p in re.split(r"[\\/]", self.path) if p]
        return parts[-1] if parts else ""


SourceDescriptor = Annotated[
    Union[GitSource, TemplateSource, LocalSource],
    Field(discriminator="kind"),
]

_SOURCE_ADAPTER: TypeAdapter[SourceDescriptor] = TypeAdapter(SourceDescriptor)

_URL_PREFIXES = ("http://", "https://", "ssh://", "git://", "git@")


def source_from_dict(data: dict) -> GitSource | TemplateSource | LocalSource:
    """Validate a plain dict into the matching source model."""
    return _SOURCE_ADAPTER.validate_python(data)


def parse_source(text: str) -> GitSource | TemplateSource | LocalSource:
    """Interpret a user-supplied source string.

    - ``template:<id>``                    → template
    - URLs and ``*.git`` (``#ref`` suffix) → git
    - anything else                        → local path
    """
    text = text.strip()
    if text.startswith("template:"):
        return TemplateSource(template_id=text.split(":", 1)[1])

    if text.startswith(_URL_PREFIXES) or text.endswith(".git") or ".git#" in text:
        url, _, ref = text.partition("#")
        return GitSource(url=url, ref=ref or None)

    return LocalSource(path=text)
