"""
Engine — post-install verification.

Checks, in order:

    1. the install path exists and is not empty
    2. every config file the plan intended to write exists and parses
    3. docker installs: the ``mcp-<repo>`` container is running
    4. a declared port accepts a TCP connection within 5 s

These four are ``error`` severity. A per-step artifact table adds
``warning`` checks (``.git`` after Clone, ``node_modules`` after
NpmInstall, an inspectable image after DockerBuild).

The verifier reports; it never raises and never aborts an install.
"""

from __future__ import annotations

import json
import logging
from typing import Callable

import yaml

from mcp_installer.adapters.base import HostServices, HostServicesError, RunOptions
from mcp_installer.core.domain.dotenv import DotenvError, parse_dotenv
from mcp_installer.core.domain.paths import join
from mcp_installer.core.models.analysis import InstallMethod
from mcp_installer.core.models.events import Severity, VerificationIssue, VerificationReport
from mcp_installer.core.models.plan import Plan
from mcp_installer.core.models.step import Clone, DockerBuild, NpmInstall, StepKind, WriteConfig

logger = logging.getLogger(__name__)

PORT_TIMEOUT_MS = 5_000

ArtifactCheck = Callable[["Verifier", Plan, object], "str | None"]


def _parse_json(text: str) -> None:
    json.loads(text)


def _parse_yaml(text: str) -> None:
    yaml.safe_load(text)


def _parse_env(text: str) -> None:
    parse_dotenv(text, strict=True)


# File name → parser; raises on malformed content
CONFIG_PARSERS: dict[str, Callable[[str], None]] = {
    "config.json": _parse_json,
    "environment.json": _parse_json,
    ".env": _parse_env,
    "docker-compose.yml": _parse_yaml,
}


# ── Per-step artifacts ──────────────────────────────────────────


def _check_clone(v: Verifier, plan: Plan, step: Clone) -> str | None:
    if not v.host.exists(join(plan.platform, step.target_path, ".git")):
        return f"{step.target_path} is not a git checkout (.git missing)"
    return None


def _check_npm_install(v: Verifier, plan: Plan, step: NpmInstall) -> str | None:
    if not v.host.exists(join(plan.platform, step.cwd, "node_modules")):
        return f"node_modules missing in {step.cwd}"
    return None


def _check_docker_build(v: Verifier, plan: Plan, step: DockerBuild) -> str | None:
    result = v.host.run("docker", ["image", "inspect", step.image_tag], RunOptions(timeout_ms=30_000))
    if not result.ok:
        return f"image {step.image_tag} cannot be inspected: {result.output}"
    return None


ARTIFACT_CHECKS: dict[StepKind, ArtifactCheck | None] = {
    StepKind.PREPARE_DIRECTORY: None,   # covered by the install path check
    StepKind.CLONE: _check_clone,
    StepKind.DETECT_SERVER_TYPE: None,
    StepKind.NPM_INSTALL: _check_npm_install,
    StepKind.PIP_INSTALL: None,
    StepKind.DOCKER_BUILD: _check_docker_build,
    StepKind.DOCKER_RUN: None,          # covered by the running-container check
    StepKind.WRITE_CONFIG: None,        # covered by the config file check
    StepKind.VERIFY: None,
}

if set(ARTIFACT_CHECKS) != set(StepKind):
    raise RuntimeError("artifact table must cover every StepKind")


class Verifier:
    """Runs post-install checks through host services."""

    def __init__(self, host: HostServices):
        self.host = host

    def verify(self, plan: Plan, root: str | None = None) -> VerificationReport:
        root = root or plan.install_path
        issues: list[VerificationIssue] = []

        def error(msg: str) -> None:
            issues.append(VerificationIssue(severity=Severity.ERROR, message=msg))

        def warn(msg: str) -> None:
            issues.append(VerificationIssue(severity=Severity.WARNING, message=msg))

        try:
            # 1. install path
            if not self.host.exists(root):
                error(f"Install path does not exist: {root}")
            elif not self.host.list_dir(root):
                error(f"Install path is empty: {root}")

            # 2. config files
            for name in self._intended_config_files(plan):
                problem = self._check_config_file(plan, root, name)
                if problem:
                    error(problem)

            # 3. container
            if plan.method == InstallMethod.DOCKER:
                for step in plan.steps_of(StepKind.DOCKER_RUN):
                    if not self._container_running(step.container_name):
                        error(f"Container {step.container_name} is not running")

            # 4. port
            if plan.declared_port:
                if not self.host.tcp_connect("localhost", plan.declared_port, PORT_TIMEOUT_MS):
                    error(f"Nothing is listening on localhost:{plan.declared_port}")

            # artifacts
            for step in plan.steps:
                check = ARTIFACT_CHECKS[step.step_kind]
                if check is None:
                    continue
                problem = check(self, plan, step)
                if problem:
                    warn(problem)

        except HostServicesError as e:
            error(f"Verification could not complete: {e.message}")

        errors = [i for i in issues if i.severity == Severity.ERROR]
        if errors:
            message = f"Verification failed with {len(errors)} error(s)"
        elif issues:
            message = f"Installation verified with {len(issues)} warning(s)"
        else:
            message = "Installation verified"

        logger.info("%s: %s", plan.repo_name or root, message)
        return VerificationReport(success=not errors, message=message, issues=issues)

    # ── Helpers ─────────────────────────────────────────────────

    @staticmethod
    def _intended_config_files(plan: Plan) -> list[str]:
        names: list[str] = []
        for step in plan.steps:
            if isinstance(step, WriteConfig):
                names.extend(n for n in step.config_file_candidates if n in CONFIG_PARSERS)
        return names

    def _check_config_file(self, plan: Plan, root: str, name: str) -> str | None:
        path = join(plan.platform, root, name)
        if not self.host.exists(path):
            return f"Config file missing: {name}"
        try:
            CONFIG_PARSERS[name](self.host.read_file(path))
        except (json.JSONDecodeError, yaml.YAMLError, DotenvError) as e:
            return f"Config file {name} does not parse: {e}"
        return None

    def _container_running(self, name: str) -> bool:
        result = self.host.run(
            "docker",
            ["ps", "--filter", f"name=^{name}$", "--format", "{{.Names}}"],
            RunOptions(timeout_ms=30_000),
        )
        return result.ok and name in result.stdout.split()
