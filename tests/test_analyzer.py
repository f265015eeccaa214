"""
Tests for the repository analyzer and the template catalog.
"""

import json

import pytest

from mcp_installer.adapters.base import HttpError
from mcp_installer.core.models import GitSource, InstallMethod, Language, LocalSource, TemplateSource
from mcp_installer.core.services.analyzer import (
    AnalysisError,
    RepositoryAnalyzer,
    parse_package_json,
    parse_pyproject,
    parse_requirements_txt,
)
from mcp_installer.core.services.templates import TemplateCatalog, UnknownTemplateError

# ── Manifest parsing ────────────────────────────────────────────


class TestManifestParsing:
    def test_package_json(self):
        deps, scripts = parse_package_json(json.dumps({
            "dependencies": {"express": "^4.0.0"},
            "scripts": {"build": "tsc"},
        }))
        assert [(d.name, d.version) for d in deps] == [("express", "^4.0.0")]
        assert scripts == {"build": "tsc"}

    def test_malformed_package_json_is_empty(self):
        assert parse_package_json("{not json") == ([], {})

    def test_requirements_txt(self):
        deps = parse_requirements_txt(
            "# header\nrequests>=2.0\n\n-e .\nuvicorn[standard]  # server\nmcp\n"
        )
        assert [(d.name, d.version) for d in deps] == [
            ("requests", ">=2.0"),
            ("uvicorn[standard]", None),
            ("mcp", None),
        ]

    def test_pyproject(self):
        text = '[project]\nname = "x"\ndependencies = ["fastmcp>=2.0", "httpx"]\n'
        assert [d.name for d in parse_pyproject(text)] == ["fastmcp", "httpx"]

    def test_malformed_pyproject_is_empty(self):
        assert parse_pyproject("[project\n") == []


# ── Analysis ────────────────────────────────────────────────────


class TestAnalyzeGit:
    def test_javascript_repo(self, host, node_repo):
        analysis = RepositoryAnalyzer(host).analyze(GitSource(url=node_repo))

        assert analysis.repo_name == "foo-mcp"
        assert analysis.owner == "example"
        assert analysis.language == Language.JAVASCRIPT
        assert analysis.framework == "MCP SDK"
        assert analysis.recommended_method == InstallMethod.NPX
        assert analysis.has_container_manifest is False
        assert analysis.config_file_candidates == ("config.json",)
        assert "npm install" in analysis.install_commands_hint
        assert "npm start" in analysis.install_commands_hint
        assert {d.name for d in analysis.declared_dependencies} == {
            "@modelcontextprotocol/sdk", "express",
        }

    def test_typescript_with_build(self, host):
        url = "https://github.com/example/ts-mcp"
        host.add_remote(url, {
            "package.json": json.dumps({"scripts": {"build": "tsc"}}),
            "tsconfig.json": "{}",
        })
        analysis = RepositoryAnalyzer(host).analyze(GitSource(url=url))
        assert analysis.language == Language.TYPESCRIPT
        assert analysis.framework == "Node.js"
        assert "npm run build" in analysis.install_commands_hint

    def test_container_prefers_docker(self, host):
        url = "https://github.com/example/boxed"
        host.add_remote(url, {
            "Dockerfile": "FROM python:3.12\nEXPOSE 8080\n",
            "requirements.txt": "flask\n",
        })
        analysis = RepositoryAnalyzer(host).analyze(GitSource(url=url))
        assert analysis.language == Language.PYTHON
        assert analysis.framework == "Flask"
        assert analysis.has_container_manifest
        assert analysis.recommended_method == InstallMethod.DOCKER
        assert analysis.declared_port == 8080

    def test_python_repo(self, host, python_repo):
        analysis = RepositoryAnalyzer(host).analyze(GitSource(url=python_repo))
        assert analysis.language == Language.PYTHON
        assert analysis.recommended_method == InstallMethod.PYTHON
        assert "pip install -r requirements.txt" in analysis.install_commands_hint
        assert analysis.framework == "MCP Python SDK"

    def test_empty_repo_is_unknown(self, host):
        url = "https://github.com/example/empty"
        host.add_remote(url, {"README.md": "# hi"})
        analysis = RepositoryAnalyzer(host).analyze(GitSource(url=url))
        assert analysis.language == Language.UNKNOWN
        assert analysis.recommended_method == InstallMethod.NPX
        assert analysis.declared_dependencies == ()

    def test_non_github_host_is_opaque(self, host):
        analysis = RepositoryAnalyzer(host).analyze(GitSource(url="https://gitlab.com/a/thing.git"))
        assert analysis.language == Language.UNKNOWN
        assert analysis.repo_name == "thing"
        assert host.http_log == []

    def test_port_from_dotenv(self, host):
        url = "https://github.com/example/envy"
        host.add_remote(url, {"package.json": "{}", ".env": "export PORT=4123\n"})
        analysis = RepositoryAnalyzer(host).analyze(GitSource(url=url))
        assert analysis.declared_port == 4123
        assert analysis.config_file_candidates == (".env",)

    def test_http_failure_propagates(self, host):
        def unavailable(url, timeout_ms=10_000):
            raise HttpError(url, 503, "Service Unavailable")

        host.http_get = unavailable
        with pytest.raises(HttpError):
            RepositoryAnalyzer(host).analyze(GitSource(url="https://github.com/example/down"))


class TestAnalyzeLocal:
    def test_local_directory(self, host):
        host.set_file("/srv/local-mcp/pyproject.toml", '[project]\ndependencies = ["fastapi"]\n')
        analysis = RepositoryAnalyzer(host).analyze(LocalSource(path="/srv/local-mcp"))
        assert analysis.repo_name == "local-mcp"
        assert analysis.origin is None
        assert analysis.language == Language.PYTHON
        assert analysis.framework == "FastAPI"
        assert "pip install ." in analysis.install_commands_hint

    def test_missing_directory(self, host):
        with pytest.raises(AnalysisError):
            RepositoryAnalyzer(host).analyze(LocalSource(path="/nope"))


class TestAnalyzeTemplate:
    def test_template_resolves_to_git_origin(self, host):
        template = TemplateCatalog().get("basic-api")
        host.add_remote(template.url, {"package.json": "{}"})

        analysis = RepositoryAnalyzer(host).analyze(TemplateSource(template_id="basic-api"))
        assert analysis.repo_name == "basic-api"
        assert analysis.origin == GitSource(url=template.url)
        assert analysis.language == Language.JAVASCRIPT

    def test_template_forces_method(self, host):
        analysis = RepositoryAnalyzer(host).analyze(TemplateSource(template_id="docker-compose"))
        assert analysis.recommended_method == InstallMethod.DOCKER

    def test_unknown_template(self, host):
        with pytest.raises(AnalysisError, match="available"):
            RepositoryAnalyzer(host).analyze(TemplateSource(template_id="nope"))


class TestTemplateCatalog:
    def test_bundled_templates(self):
        catalog = TemplateCatalog()
        assert {"basic-api", "full-suite", "memory-optimized", "docker-compose", "developer"} <= set(
            catalog.ids()
        )

    def test_get_unknown(self):
        with pytest.raises(UnknownTemplateError):
            TemplateCatalog().get("missing")

    def test_every_template_has_a_git_url(self):
        for template in TemplateCatalog().all():
            assert template.to_source().url.startswith("https://")
