"""
Plan builder — turn an analysis plus user options into an ordered plan.

Pure: the only environment input is the target platform, used for the
default install path. The same (analysis, options, platform) always
yields the same steps in the same order with the same ids.
"""

from __future__ import annotations

import logging

from mcp_installer.core.domain.paths import default_install_path, is_under
from mcp_installer.core.models.analysis import Analysis, InstallMethod, Language, ServerType
from mcp_installer.core.models.entry import ServerConfig, ServerEntry, derive_entry_id
from mcp_installer.core.models.plan import InstallOptions, Plan
from mcp_installer.core.models.source import LocalSource
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

logger = logging.getLogger(__name__)

CONTAINER_PORT = 3000
CONTAINER_DATA_DIR = "/app/data"

_DOCKER_KINDS = {StepKind.DOCKER_BUILD, StepKind.DOCKER_RUN}
_DEPENDENCY_KINDS = {StepKind.NPM_INSTALL, StepKind.PIP_INSTALL}


class PlanError(Exception):
    """A plan violates a structural rule."""

    def __init__(self, problems: list[str]):
        super().__init__("Invalid plan: " + "; ".join(problems))
        self.problems = problems


def container_name(repo_name: str) -> str:
    """Deterministic container name and image tag for a repository."""
    return f"mcp-{repo_name}".lower()


def resolve_install_path(analysis: Analysis, options: InstallOptions, platform: str) -> str:
    if options.install_path:
        return options.install_path
    if isinstance(analysis.source, LocalSource):
        return analysis.source.path
    return default_install_path(platform, analysis.repo_name)


def build_server_entry(
    analysis: Analysis,
    options: InstallOptions,
    method: InstallMethod,
    install_path: str,
) -> ServerEntry:
    return ServerEntry(
        id=derive_entry_id(analysis.repo_name),
        name=options.server_name or analysis.repo_name,
        type=ServerType.from_language(analysis.language, method),
        install_path=install_path,
        install_method=method,
        source=analysis.source,
        owner=analysis.owner,
        repo=analysis.repo_name or None,
        config=ServerConfig(
            auto_start=options.auto_start,
            port=options.port or analysis.declared_port or CONTAINER_PORT,
            environment=dict(options.environment),
        ),
    )


def dependency_step(
    server_type: ServerType,
    method: InstallMethod,
    path: str,
    build: bool = False,
) -> NpmInstall | PipInstall | None:
    """The dependency install step for a runtime family, or None."""
    if server_type == ServerType.NODE:
        return NpmInstall(
            id="npm-install",
            description="Install Node.js dependencies" + (" and build" if build else ""),
            cwd=path,
            working_directory=path,
            scripts=["build"] if build else [],
        )
    if server_type == ServerType.PYTHON:
        return PipInstall(
            id="pip-install",
            description="Install Python dependencies",
            cwd=path,
            working_directory=path,
            requirements_file="requirements.txt",
            installer="uv" if method == InstallMethod.UV else "pip",
        )
    return None


def build_plan(
    analysis: Analysis,
    options: InstallOptions | None = None,
    platform: str = "linux",
) -> Plan:
    """Build the installation plan.

    Order: PrepareDirectory, Clone (git/template), DetectServerType (when
    the language is unknown), the method's install steps, WriteConfig
    (unless opted out), Verify. With an unknown language the dependency
    step is added by DetectServerType once the checkout can be inspected.
    """
    options = options or InstallOptions()
    method = options.method or analysis.recommended_method
    path = resolve_install_path(analysis, options, platform)

    plan = Plan(
        method=method,
        install_path=path,
        source=analysis.source,
        repo_name=analysis.repo_name,
        platform=platform,
    )
    if analysis.declared_port:
        plan.declared_port = options.port or analysis.declared_port
    steps = plan.steps

    steps.append(PrepareDirectory(
        id="prepare-directory",
        description=f"Create installation directory {path}",
        path=path,
    ))

    if analysis.origin is not None and not isinstance(analysis.source, LocalSource):
        steps.append(Clone(
            id="clone",
            description=f"Clone {analysis.origin.url}",
            url=analysis.origin.url,
            target_path=path,
            ref=analysis.origin.ref,
        ))

    if analysis.language == Language.UNKNOWN:
        steps.append(DetectServerType(
            id="detect-server-type",
            description="Detect server type",
            cwd=path,
            working_directory=path,
        ))

    if method == InstallMethod.DOCKER:
        name = container_name(analysis.repo_name)
        container_port = analysis.declared_port or CONTAINER_PORT
        steps.append(DockerBuild(
            id="docker-build",
            description=f"Build container image {name}",
            cwd=path,
            working_directory=path,
            image_tag=name,
        ))
        steps.append(DockerRun(
            id="docker-run",
            description=f"Start container {name}",
            image_tag=name,
            container_name=name,
            port_bindings={options.port or container_port: container_port},
            volume_bindings={path: CONTAINER_DATA_DIR},
        ))
    else:
        dependencies = dependency_step(
            ServerType.from_language(analysis.language), method, path,
            build="npm run build" in analysis.install_commands_hint,
        )
        if dependencies is not None:
            steps.append(dependencies)

    if options.write_config:
        steps.append(WriteConfig(
            id="write-config",
            description="Write server configuration",
            cwd=path,
            config_file_candidates=list(analysis.config_file_candidates),
            server_entry=build_server_entry(analysis, options, method, path),
        ))

    steps.append(Verify(
        id="verify",
        description="Verify installation",
        path=path,
    ))

    validate_plan(plan)
    logger.debug("Built plan for %s: %s", analysis.repo_name, plan.step_ids())
    return plan


def validate_plan(plan: Plan) -> None:
    """Check the structural rules every plan must satisfy.

    Raises:
        PlanError: Listing every violated rule.
    """
    problems: list[str] = []
    ids = plan.step_ids()

    if len(ids) != len(set(ids)):
        problems.append("step ids are not unique")

    if not plan.steps or plan.steps[0].step_kind not in (
        StepKind.PREPARE_DIRECTORY, StepKind.CLONE,
    ):
        problems.append("plan must begin with PrepareDirectory or Clone")

    for step in plan.steps:
        if step.step_kind == StepKind.WRITE_CONFIG:
            continue
        for field_name in step.path_fields():
            value = getattr(step, field_name)
            paths = list(value) if isinstance(value, dict) else [value]
            for p in paths:
                if not is_under(plan.platform, p, plan.install_path):
                    problems.append(f"{step.id}: {p} is outside {plan.install_path}")

    kinds = {s.step_kind for s in plan.steps}
    if plan.method == InstallMethod.DOCKER:
        if not _DOCKER_KINDS <= kinds:
            problems.append("docker plans need DockerBuild and DockerRun")
        if kinds & _DEPENDENCY_KINDS:
            problems.append("docker plans cannot install npm/pip dependencies")
    elif kinds & _DOCKER_KINDS:
        problems.append(f"{plan.method} plans cannot contain docker steps")

    if len(plan.steps_of(StepKind.WRITE_CONFIG)) > 1:
        problems.append("at most one WriteConfig step is allowed")

    if problems:
        raise PlanError(problems)
