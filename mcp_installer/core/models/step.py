"""
Plan steps — a tagged union of typed installation operations.

Every variant carries ``kind`` (a ``StepKind`` value) as discriminator.
Adding a variant means adding a ``StepKind`` member; the executor's
runner table, the recovery table and the verifier's artifact table are
all keyed by ``StepKind`` and check their coverage, so a new variant
cannot be forgotten silently.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from mcp_installer.core.models.entry import ServerEntry


class StepKind(StrEnum):
    PREPARE_DIRECTORY = "prepare_directory"
    CLONE = "clone"
    DETECT_SERVER_TYPE = "detect_server_type"
    NPM_INSTALL = "npm_install"
    PIP_INSTALL = "pip_install"
    DOCKER_BUILD = "docker_build"
    DOCKER_RUN = "docker_run"
    WRITE_CONFIG = "write_config"
    VERIFY = "verify"


class StepBase(BaseModel):
    id: str
    description: str = ""
    working_directory: str | None = None

    @property
    def step_kind(self) -> StepKind:
        return StepKind(getattr(self, "kind"))

    def path_fields(self) -> list[str]:
        """Names of fields holding filesystem paths (patched on relocation)."""
        return []


class PrepareDirectory(StepBase):
    kind: Literal["prepare_directory"] = "prepare_directory"
    path: str

    def path_fields(self) -> list[str]:
        return ["path"]


class Clone(StepBase):
    kind: Literal["clone"] = "clone"
    url: str
    target_path: str
    ref: str | None = None

    def path_fields(self) -> list[str]:
        return ["target_path"]


class DetectServerType(StepBase):
    kind: Literal["detect_server_type"] = "detect_server_type"
    cwd: str

    def path_fields(self) -> list[str]:
        return ["cwd"]


class NpmInstall(StepBase):
    kind: Literal["npm_install"] = "npm_install"
    cwd: str
    scripts: list[str] = Field(default_factory=list)  # e.g. ["build"]
    package_manager: str = "npm"

    def path_fields(self) -> list[str]:
        return ["cwd"]


class PipInstall(StepBase):
    kind: Literal["pip_install"] = "pip_install"
    cwd: str
    requirements_file: str = "requirements.txt"
    installer: str = "pip"  # pip | pip3 | uv

    def path_fields(self) -> list[str]:
        return ["cwd"]


class DockerBuild(StepBase):
    kind: Literal["docker_build"] = "docker_build"
    cwd: str
    image_tag: str

    def path_fields(self) -> list[str]:
        return ["cwd"]


class DockerRun(StepBase):
    kind: Literal["docker_run"] = "docker_run"
    image_tag: str
    container_name: str
    port_bindings: dict[int, int] = Field(default_factory=dict)       # host → container
    volume_bindings: dict[str, str] = Field(default_factory=dict)     # host path → container path

    def path_fields(self) -> list[str]:
        return ["volume_bindings"]


class WriteConfig(StepBase):
    kind: Literal["write_config"] = "write_config"
    cwd: str
    config_file_candidates: list[str] = Field(default_factory=list)
    server_entry: ServerEntry

    def path_fields(self) -> list[str]:
        return ["cwd"]


class Verify(StepBase):
    kind: Literal["verify"] = "verify"
    path: str

    def path_fields(self) -> list[str]:
        return ["path"]


Step = Annotated[
    Union[
        PrepareDirectory,
        Clone,
        DetectServerType,
        NpmInstall,
        PipInstall,
        DockerBuild,
        DockerRun,
        WriteConfig,
        Verify,
    ],
    Field(discriminator="kind"),
]

STEP_TYPES: dict[StepKind, type[StepBase]] = {
    StepKind.PREPARE_DIRECTORY: PrepareDirectory,
    StepKind.CLONE: Clone,
    StepKind.DETECT_SERVER_TYPE: DetectServerType,
    StepKind.NPM_INSTALL: NpmInstall,
    StepKind.PIP_INSTALL: PipInstall,
    StepKind.DOCKER_BUILD: DockerBuild,
    StepKind.DOCKER_RUN: DockerRun,
    StepKind.WRITE_CONFIG: WriteConfig,
    StepKind.VERIFY: Verify,
}

if set(STEP_TYPES) != set(StepKind):
    raise RuntimeError("every StepKind needs a step model")

STEP_ADAPTER: TypeAdapter[Step] = TypeAdapter(Step)
