"""
Plan — the ordered list of typed steps for one installation.

Insertion order is execution order. A plan is built once, executed once,
and kept with its outcome log in the session for diagnostics.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from mcp_installer.core.domain.paths import rebase
from mcp_installer.core.models.analysis import InstallMethod
from mcp_installer.core.models.entry import ServerEntry
from mcp_installer.core.models.source import GitSource, LocalSource, TemplateSource
from mcp_installer.core.models.step import Step, StepKind, WriteConfig

logger = logging.getLogger(__name__)


class InstallOptions(BaseModel):
    """User choices that shape a plan."""

    method: InstallMethod | None = None      # overrides the recommendation
    install_path: str | None = None
    server_name: str | None = None
    port: int | None = None
    environment: dict[str, str] = Field(default_factory=dict)
    auto_start: bool = False
    write_config: bool = True                # opt out of the WriteConfig step
    update_host_config: bool = True          # opt out of host config reconciliation


class Plan(BaseModel):
    method: InstallMethod
    install_path: str
    steps: list[Step] = Field(default_factory=list)
    source: GitSource | TemplateSource | LocalSource = Field(discriminator="kind")
    repo_name: str = ""
    platform: str = "linux"
    declared_port: int | None = None     # host port the server should answer on

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    def step_ids(self) -> list[str]:
        return [s.id for s in self.steps]

    def get_step(self, step_id: str) -> Step | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def steps_of(self, kind: StepKind) -> list[Step]:
        return [s for s in self.steps if s.step_kind == kind]

    @property
    def server_entry(self) -> ServerEntry | None:
        """The entry carried by the WriteConfig step, if any."""
        for step in self.steps:
            if isinstance(step, WriteConfig):
                return step.server_entry
        return None

    def relocate(self, new_path: str) -> None:
        """Move the installation to ``new_path``.

        Rewrites ``install_path`` and every step path that lives under the
        old install path, including the server entry carried by WriteConfig.
        Paths outside the install path are left alone.
        """
        old_path = self.install_path
        if old_path == new_path:
            return

        for step in self.steps:
            for field_name in step.path_fields():
                value = getattr(step, field_name)
                if isinstance(value, dict):
                    patched = {
                        rebase(self.platform, k, old_path, new_path): v
                        for k, v in value.items()
                    }
                else:
                    patched = rebase(self.platform, value, old_path, new_path)
                setattr(step, field_name, patched)
            if step.working_directory:
                step.working_directory = rebase(
                    self.platform, step.working_directory, old_path, new_path
                )
            if isinstance(step, WriteConfig):
                step.server_entry.install_path = rebase(
                    self.platform, step.server_entry.install_path, old_path, new_path
                )

        self.install_path = new_path
        logger.info("Plan relocated: %s → %s", old_path, new_path)
