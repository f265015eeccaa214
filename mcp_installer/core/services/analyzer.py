"""
Repository analyzer — what is in a source tree and how to install it.

Looks at a fixed set of root-level files (manifests, container files,
config candidates) and derives an ``Analysis``. The tree is read through
host services only:

    - local sources     → ``list_dir`` / ``read_file`` on the directory
    - GitHub sources    → ``http_get`` on raw.githubusercontent.com
    - other git hosts   → nothing can be read; language is Unknown
    - template sources  → resolved through the catalog to a git source

Missing manifests are not errors. Malformed manifests are logged and
treated as empty. Only I/O failures propagate.
"""

from __future__ import annotations

import json
import logging
import re
import tomllib
from abc import ABC, abstractmethod

from mcp_installer.adapters.base import HostServices, HttpError
from mcp_installer.core.domain.paths import github_slug, join, owner_from_url
from mcp_installer.core.models.analysis import Analysis, Dependency, InstallMethod, Language
from mcp_installer.core.models.source import GitSource, LocalSource, TemplateSource
from mcp_installer.core.services.templates import TemplateCatalog, UnknownTemplateError

logger = logging.getLogger(__name__)

CONTAINER_MANIFESTS = ("Dockerfile", "docker-compose.yml")
CONFIG_FILE_CANDIDATES = ("config.json", ".env", "environment.json", "docker-compose.yml")

# Dependency name → framework label, first hit wins
FRAMEWORKS: list[tuple[str, str]] = [
    ("@modelcontextprotocol/sdk", "MCP SDK"),
    ("express", "Express"),
    ("fastify", "Fastify"),
    ("mcp", "MCP Python SDK"),
    ("fastmcp", "FastMCP"),
    ("fastapi", "FastAPI"),
    ("flask", "Flask"),
]

_REQ_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*(?:\[[^\]]*\])?)\s*(.*)$")


class AnalysisError(Exception):
    """The source cannot be analyzed (unknown template, unreadable tree)."""


# ═══════════════════════════════════════════════════════════════════
#  Source trees
# ═══════════════════════════════════════════════════════════════════


class SourceTree(ABC):
    """Read-only view of the root of a source tree."""

    @abstractmethod
    def read(self, name: str) -> str | None:
        """Content of root-level file ``name``, None when absent."""

    def has(self, name: str) -> bool:
        return self.read(name) is not None


class LocalTree(SourceTree):
    def __init__(self, host: HostServices, root: str):
        self._host = host
        self._root = root
        self._names: set[str] | None = None

    def read(self, name: str) -> str | None:
        if self._names is None:
            self._names = set(self._host.list_dir(self._root))
        if name not in self._names:
            return None
        return self._host.read_file(join(self._host.platform(), self._root, name))


class GitHubTree(SourceTree):
    """Reads individual files of a GitHub repository over HTTPS."""

    RAW_BASE = "https://raw.githubusercontent.com"

    def __init__(self, host: HostServices, owner: str, repo: str, ref: str | None = None):
        self._host = host
        self._base = f"{self.RAW_BASE}/{owner}/{repo}/{ref or 'HEAD'}"
        self._cache: dict[str, str | None] = {}

    def read(self, name: str) -> str | None:
        if name not in self._cache:
            try:
                self._cache[name] = self._host.http_get(f"{self._base}/{name}")
            except HttpError as e:
                if not e.not_found:
                    raise
                self._cache[name] = None
        return self._cache[name]


class OpaqueTree(SourceTree):
    """A tree that cannot be inspected before cloning."""

    def read(self, name: str) -> str | None:
        return None


# ═══════════════════════════════════════════════════════════════════
#  Manifest parsing
# ═══════════════════════════════════════════════════════════════════


def parse_package_json(text: str) -> tuple[list[Dependency], dict[str, str]]:
    """``(dependencies, scripts)`` from package.json text."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Malformed package.json: %s", e)
        return [], {}
    if not isinstance(data, dict):
        return [], {}
    deps = data.get("dependencies") or {}
    scripts = data.get("scripts") or {}
    return (
        [Dependency(name=n, version=str(v)) for n, v in deps.items()],
        {k: str(v) for k, v in scripts.items()} if isinstance(scripts, dict) else {},
    )


def parse_requirement(line: str) -> Dependency | None:
    """One PEP 508-ish requirement; the specifier is kept verbatim.

    >>> parse_requirement("fastapi>=0.110")
    Dependency(name='fastapi', version='>=0.110')
    """
    m = _REQ_NAME.match(line)
    if not m:
        return None
    name, rest = m.group(1), m.group(2).strip()
    return Dependency(name=name, version=rest or None)


def parse_requirements_txt(text: str) -> list[Dependency]:
    deps: list[Dependency] = []
    for raw in text.splitlines():
        line = raw.split("#", 1)[0].strip()
        if not line or line.startswith("-"):
            continue
        dep = parse_requirement(line)
        if dep:
            deps.append(dep)
    return deps


def parse_pyproject(text: str) -> list[Dependency]:
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        logger.warning("Malformed pyproject.toml: %s", e)
        return []
    raw = data.get("project", {}).get("dependencies", [])
    return [d for d in (parse_requirement(r) for r in raw) if d]


def detect_framework(language: Language, deps: list[Dependency]) -> str | None:
    names = {d.name.lower() for d in deps}
    for dep_name, label in FRAMEWORKS:
        if dep_name in names:
            return label
    if language.is_node:
        return "Node.js"
    return None


def declared_port(tree: SourceTree) -> int | None:
    """First port declared by Dockerfile EXPOSE, .env PORT, or config.json port."""
    dockerfile = tree.read("Dockerfile")
    if dockerfile:
        m = re.search(r"^\s*EXPOSE\s+(\d+)", dockerfile, re.MULTILINE | re.IGNORECASE)
        if m:
            return int(m.group(1))

    env = tree.read(".env")
    if env:
        m = re.search(r"^\s*(?:export\s+)?PORT\s*=\s*[\"']?(\d+)", env, re.MULTILINE)
        if m:
            return int(m.group(1))

    config = tree.read("config.json")
    if config:
        try:
            data = json.loads(config)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("port"), int):
            return data["port"]

    return None


# ═══════════════════════════════════════════════════════════════════
#  Analyzer
# ═══════════════════════════════════════════════════════════════════


class RepositoryAnalyzer:
    """Derives an ``Analysis`` from a source descriptor."""

    def __init__(self, host: HostServices, templates: TemplateCatalog | None = None):
        self._host = host
        self._templates = templates or TemplateCatalog()

    def tree_for(self, source: GitSource | LocalSource) -> SourceTree:
        if isinstance(source, LocalSource):
            if not self._host.exists(source.path):
                raise AnalysisError(f"Local source not found: {source.path}")
            return LocalTree(self._host, source.path)
        slug = github_slug(source.url)
        if slug is None:
            logger.info("Cannot inspect %s before cloning", source.url)
            return OpaqueTree()
        return GitHubTree(self._host, *slug, ref=source.ref)

    def analyze(self, source: GitSource | TemplateSource | LocalSource) -> Analysis:
        """Analyze ``source``.

        Raises:
            AnalysisError: Unknown template or missing local directory.
            HostServicesError: The tree could not be read.
        """
        preferred: InstallMethod | None = None
        origin: GitSource | None = None
        target: GitSource | LocalSource

        if isinstance(source, TemplateSource):
            try:
                template = self._templates.get(source.template_id)
            except UnknownTemplateError as e:
                raise AnalysisError(str(e)) from e
            origin = template.to_source()
            target = origin
            preferred = template.method
        elif isinstance(source, GitSource):
            origin = source
            target = source
        else:
            target = source

        tree = self.tree_for(target)
        analysis = self.analyze_tree(
            tree,
            source=source,
            repo_name=source.repo_name,
            owner=owner_from_url(origin.url) if origin else None,
            origin=origin,
            preferred=preferred,
        )
        logger.info(
            "Analyzed %s: language=%s method=%s deps=%d",
            analysis.repo_name, analysis.language,
            analysis.recommended_method, len(analysis.declared_dependencies),
        )
        return analysis

    def analyze_tree(
        self,
        tree: SourceTree,
        *,
        source: GitSource | TemplateSource | LocalSource,
        repo_name: str,
        owner: str | None = None,
        origin: GitSource | None = None,
        preferred: InstallMethod | None = None,
    ) -> Analysis:
        has_container = any(tree.has(n) for n in CONTAINER_MANIFESTS)

        deps: list[Dependency] = []
        hints: set[str] = set()
        package_json = tree.read("package.json")

        if package_json is not None:
            language = Language.TYPESCRIPT if tree.has("tsconfig.json") else Language.JAVASCRIPT
            deps, scripts = parse_package_json(package_json)
            hints.add("npm install")
            if "build" in scripts:
                hints.add("npm run build")
            if "start" in scripts:
                hints.add("npm start")
        else:
            requirements = tree.read("requirements.txt")
            pyproject = tree.read("pyproject.toml")
            if requirements is not None or pyproject is not None:
                language = Language.PYTHON
                if requirements is not None:
                    deps = parse_requirements_txt(requirements)
                    hints.add("pip install -r requirements.txt")
                if pyproject is not None:
                    deps.extend(parse_pyproject(pyproject))
                    hints.add("pip install .")
            else:
                language = Language.UNKNOWN

        if has_container:
            hints.add("docker build")

        if preferred is not None:
            method = preferred
        elif has_container:
            method = InstallMethod.DOCKER
        elif language == Language.PYTHON:
            method = InstallMethod.PYTHON
        else:
            method = InstallMethod.NPX

        return Analysis(
            source=source,
            repo_name=repo_name,
            owner=owner,
            origin=origin,
            language=language,
            framework=detect_framework(language, deps),
            declared_dependencies=tuple(deps),
            has_container_manifest=has_container,
            config_file_candidates=tuple(n for n in CONFIG_FILE_CANDIDATES if tree.has(n)),
            recommended_method=method,
            install_commands_hint=frozenset(hints),
            declared_port=declared_port(tree),
        )
