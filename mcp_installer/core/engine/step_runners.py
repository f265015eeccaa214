"""
Engine — step runners.

One ``_run_*`` function per step kind, dispatched through ``RUNNERS``.
A runner performs the step's operation through host services and either
returns a short success message or raises:

    - ``StepFailed``         the operation ran and reported failure
    - ``HostServicesError``  the host could not perform the operation

Both carry the raw text the classifier needs. Runners never retry and
never sleep; that is the executor's job.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from pydantic import BaseModel

from mcp_installer.adapters.base import CommandResult, HostServices, RunOptions
from mcp_installer.core.domain.dotenv import append_missing
from mcp_installer.core.domain.paths import join
from mcp_installer.core.models.analysis import InstallMethod, ServerType
from mcp_installer.core.models.events import VerificationReport
from mcp_installer.core.models.plan import Plan
from mcp_installer.core.models.step import (
    Clone,
    DetectServerType,
    DockerBuild,
    DockerRun,
    NpmInstall,
    PipInstall,
    PrepareDirectory,
    StepKind,
    Verify,
    WriteConfig,
)
from mcp_installer.core.services.planner import dependency_step

if TYPE_CHECKING:
    from mcp_installer.core.engine.verifier import Verifier

logger = logging.getLogger(__name__)

JSON_CONFIG_FILES = ("config.json", "environment.json")


class StepFailed(Exception):
    """A step's operation ran but did not succeed."""

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


class StepTimeouts(BaseModel):
    """Per-step command timeouts in milliseconds."""

    clone: int = 600_000
    install: int = 600_000
    docker: int = 600_000
    config: int = 120_000
    default: int = 120_000

    def for_kind(self, kind: StepKind) -> int:
        if kind == StepKind.CLONE:
            return self.clone
        if kind in (StepKind.NPM_INSTALL, StepKind.PIP_INSTALL):
            return self.install
        if kind in (StepKind.DOCKER_BUILD, StepKind.DOCKER_RUN):
            return self.docker
        if kind == StepKind.WRITE_CONFIG:
            return self.config
        return self.default


LogFn = Callable[[str, str], None]   # (level, message)


@dataclass
class StepContext:
    """What a runner may see besides its step."""

    host: HostServices
    plan: Plan
    timeouts: StepTimeouts = field(default_factory=StepTimeouts)
    verifier: Verifier | None = None
    log: LogFn = lambda level, message: None

    # Outputs consulted by later steps and by the session
    server_type: ServerType | None = None
    verification: VerificationReport | None = None


def _command(
    ctx: StepContext,
    kind: StepKind,
    cmd: str,
    args: list[str],
    cwd: str | None = None,
) -> CommandResult:
    """Run a command and raise ``StepFailed`` on non-zero exit."""
    result = ctx.host.run(
        cmd, args, RunOptions(cwd=cwd, timeout_ms=ctx.timeouts.for_kind(kind)),
    )
    if not result.ok:
        raise StepFailed(
            result.output or f"{cmd} exited with code {result.exit_code}",
            exit_code=result.exit_code,
        )
    return result


# ── Filesystem and git ──────────────────────────────────────────


def _run_prepare_directory(step: PrepareDirectory, ctx: StepContext) -> str:
    ctx.host.ensure_dir(step.path)
    return f"Directory ready: {step.path}"


def _run_clone(step: Clone, ctx: StepContext) -> str:
    args = ["clone"]
    if step.ref:
        args += ["--branch", step.ref]
    args += [step.url, step.target_path]
    _command(ctx, StepKind.CLONE, "git", args)
    return f"Cloned {step.url}"


def _run_detect_server_type(step: DetectServerType, ctx: StepContext) -> str:
    names = set(ctx.host.list_dir(step.cwd))
    if "package.json" in names:
        detected = ServerType.NODE
    elif names & {"requirements.txt", "pyproject.toml", "setup.py"}:
        detected = ServerType.PYTHON
    elif names & {"Dockerfile", "docker-compose.yml"}:
        detected = ServerType.DOCKER
    else:
        detected = ServerType.UNKNOWN

    ctx.server_type = detected
    entry = ctx.plan.server_entry
    if entry is not None and entry.type == ServerType.UNKNOWN:
        entry.type = detected

    added = _add_dependency_step(step, detected, ctx.plan)
    if added is not None:
        if entry is not None:
            entry.install_method = ctx.plan.method
        return f"Detected server type: {detected}, added {added.id}"
    return f"Detected server type: {detected}"


def _add_dependency_step(step: DetectServerType, detected: ServerType, plan: Plan):
    """Insert the install step for ``detected`` right after ``step``.

    Docker plans and plans that already install dependencies are left as
    they are. The plan method follows the detected runtime.
    """
    kinds = {s.step_kind for s in plan.steps}
    if plan.method == InstallMethod.DOCKER or kinds & {StepKind.NPM_INSTALL, StepKind.PIP_INSTALL}:
        return None

    if detected == ServerType.NODE:
        plan.method = InstallMethod.NPX
    elif detected == ServerType.PYTHON and plan.method != InstallMethod.UV:
        plan.method = InstallMethod.PYTHON

    added = dependency_step(detected, plan.method, step.cwd)
    if added is None:
        return None
    plan.steps.insert(plan.steps.index(step) + 1, added)
    logger.info("Added %s after detecting a %s server", added.id, detected)
    return added


# ── Dependencies ────────────────────────────────────────────────


def _run_npm_install(step: NpmInstall, ctx: StepContext) -> str:
    pm = step.package_manager
    _command(ctx, StepKind.NPM_INSTALL, pm, ["install"], cwd=step.cwd)
    for script in step.scripts:
        _command(ctx, StepKind.NPM_INSTALL, pm, ["run", script], cwd=step.cwd)
    suffix = f" and ran {', '.join(step.scripts)}" if step.scripts else ""
    return f"Installed dependencies with {pm}{suffix}"


def _run_pip_install(step: PipInstall, ctx: StepContext) -> str:
    platform = ctx.plan.platform
    if ctx.host.exists(join(platform, step.cwd, step.requirements_file)):
        target = ["-r", step.requirements_file]
    elif ctx.host.exists(join(platform, step.cwd, "pyproject.toml")):
        target = ["."]
    else:
        return "No Python requirements to install"

    if step.installer == "uv":
        _command(ctx, StepKind.PIP_INSTALL, "uv", ["pip", "install", *target], cwd=step.cwd)
    else:
        _command(ctx, StepKind.PIP_INSTALL, step.installer, ["install", *target], cwd=step.cwd)
    return f"Installed Python dependencies with {step.installer}"


# ── Containers ──────────────────────────────────────────────────


def _run_docker_build(step: DockerBuild, ctx: StepContext) -> str:
    _command(ctx, StepKind.DOCKER_BUILD, "docker", ["build", "-t", step.image_tag, "."], cwd=step.cwd)
    return f"Built image {step.image_tag}"


def _run_docker_run(step: DockerRun, ctx: StepContext) -> str:
    args = ["run", "-d", "--name", step.container_name]
    for host_port, container_port in step.port_bindings.items():
        args += ["-p", f"{host_port}:{container_port}"]
    for host_path, container_path in step.volume_bindings.items():
        args += ["-v", f"{host_path}:{container_path}"]
    args.append(step.image_tag)
    _command(ctx, StepKind.DOCKER_RUN, "docker", args)
    return f"Started container {step.container_name}"


# ── Configuration ───────────────────────────────────────────────


def desired_config_values(step: WriteConfig) -> dict[str, dict]:
    """Values the installer wants in each config file, keyed by file name."""
    entry = step.server_entry
    env = dict(entry.config.environment)
    return {
        "config.json": {
            "name": entry.name,
            "port": entry.config.port,
            "autoStart": entry.config.auto_start,
            "environment": env,
        },
        "environment.json": env,
        ".env": {"PORT": str(entry.config.port), **env},
    }


def _merge_json(existing: str | None, values: dict, name: str) -> str | None:
    """Add missing top-level keys. Returns None when nothing changes."""
    if existing is None:
        data: dict = {}
    else:
        try:
            data = json.loads(existing)
        except json.JSONDecodeError as e:
            raise StepFailed(f"{name} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise StepFailed(f"{name} must contain a JSON object")

    missing = {k: v for k, v in values.items() if k not in data}
    if existing is not None and not missing:
        return None
    data.update(missing)
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def _run_write_config(step: WriteConfig, ctx: StepContext) -> str:
    host, platform = ctx.host, ctx.plan.platform
    desired = desired_config_values(step)
    written: list[str] = []

    for name in step.config_file_candidates:
        if name not in desired:
            logger.debug("Leaving %s untouched", name)
            continue
        path = join(platform, step.cwd, name)
        existing = host.read_file(path) if host.exists(path) else None

        if name == ".env":
            content = append_missing(existing or "", desired[name])
            if existing is not None and content == existing:
                continue
        else:
            content = _merge_json(existing, desired[name], name)
            if content is None:
                continue

        host.write_file(path, content)
        written.append(name)

    if not written:
        return "Configuration already up to date"
    return f"Wrote {', '.join(written)}"


# ── Verification ────────────────────────────────────────────────


def _run_verify(step: Verify, ctx: StepContext) -> str:
    if ctx.verifier is None:
        return "Verification skipped"
    report = ctx.verifier.verify(ctx.plan, root=step.path)
    ctx.verification = report
    for issue in report.issues:
        ctx.log("warn", f"Verification {issue.severity}: {issue.message}")
    return report.message


RUNNERS: dict[StepKind, Callable] = {
    StepKind.PREPARE_DIRECTORY: _run_prepare_directory,
    StepKind.CLONE: _run_clone,
    StepKind.DETECT_SERVER_TYPE: _run_detect_server_type,
    StepKind.NPM_INSTALL: _run_npm_install,
    StepKind.PIP_INSTALL: _run_pip_install,
    StepKind.DOCKER_BUILD: _run_docker_build,
    StepKind.DOCKER_RUN: _run_docker_run,
    StepKind.WRITE_CONFIG: _run_write_config,
    StepKind.VERIFY: _run_verify,
}

if set(RUNNERS) != set(StepKind):
    raise RuntimeError("every StepKind needs a runner")


def run_step(step, ctx: StepContext) -> str:
    """Dispatch ``step`` to its runner."""
    return RUNNERS[step.step_kind](step, ctx)
