"""
Install use case — the ``Installation`` session.

Wires every component around one host-services instance and runs the
whole pipeline:

    source → analyze → plan → execute (verify inside) → host config → registry → installed

There is no module-level state: each ``Installation`` owns its executor,
reconciler, registry and event bus, and keeps the last plan and outcome
log for diagnostics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from mcp_installer.adapters.base import HostServices, HostServicesError
from mcp_installer.core.config.loader import InstallerSettings
from mcp_installer.core.domain.classifier import classify
from mcp_installer.core.engine.executor import (
    CancelToken,
    ExecutionReport,
    Executor,
    InstallationAborted,
)
from mcp_installer.core.engine.recovery import RecoveryEngine
from mcp_installer.core.engine.verifier import Verifier
from mcp_installer.core.models.analysis import Analysis, ServerType
from mcp_installer.core.models.entry import ServerEntry
from mcp_installer.core.models.events import FailedEvent, LogEvent
from mcp_installer.core.models.outcome import FailureKind, StepOutcome
from mcp_installer.core.models.plan import InstallOptions, Plan
from mcp_installer.core.models.source import (
    GitSource,
    LocalSource,
    TemplateSource,
    parse_source,
)
from mcp_installer.core.persistence.host_config import ConfigReconciler, ConfigWriteError
from mcp_installer.core.persistence.registry import InstallationRegistry, RegistryError
from mcp_installer.core.services.analyzer import AnalysisError, RepositoryAnalyzer
from mcp_installer.core.services.event_bus import EventBus
from mcp_installer.core.services.planner import PlanError, build_plan, build_server_entry
from mcp_installer.core.services.templates import TemplateCatalog

logger = logging.getLogger(__name__)

Source = GitSource | TemplateSource | LocalSource

# Pseudo step ids for failures outside the plan
ANALYZE_STEP = "analyze"
HOST_CONFIG_STEP = "host-config"
REGISTRY_STEP = "registry"


@dataclass
class InstallResult:
    """Result of one installation."""

    analysis: Analysis | None = None
    plan: Plan | None = None
    report: ExecutionReport | None = None
    entry: ServerEntry | None = None
    outcomes: list[StepOutcome] = field(default_factory=list)
    host_config_updated: bool = False
    error: str | None = None
    error_kind: FailureKind | None = None
    failed_step: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        result: dict = {"ok": self.ok}
        if self.error:
            result["error"] = self.error
            result["error_kind"] = self.error_kind
            result["failed_step"] = self.failed_step
        if self.analysis:
            result["analysis"] = self.analysis.model_dump(mode="json")
        if self.plan:
            result["plan"] = self.plan.model_dump(mode="json")
        result["outcomes"] = [o.model_dump(mode="json") for o in self.outcomes]
        if self.report and self.report.verification:
            result["verification"] = self.report.verification.model_dump(mode="json")
        if self.entry:
            result["entry"] = self.entry.model_dump(mode="json")
        result["host_config_updated"] = self.host_config_updated
        return result


class Installation:
    """One installer session bound to a host.

    Args:
        host: Host services; the only way the pipeline touches the machine.
        settings: Installer settings; defaults when omitted.
        bus: Event bus observers subscribe to; a fresh one when omitted.
        templates: Template catalog; the bundled one when omitted.
    """

    def __init__(
        self,
        host: HostServices,
        settings: InstallerSettings | None = None,
        bus: EventBus | None = None,
        templates: TemplateCatalog | None = None,
    ):
        self.host = host
        self.settings = settings or InstallerSettings()
        self.bus = bus or EventBus()
        self.templates = templates or TemplateCatalog()

        self.analyzer = RepositoryAnalyzer(host, self.templates)
        self.executor = Executor(
            host,
            recovery=RecoveryEngine(),
            bus=self.bus,
            verifier=Verifier(host),
            pacing_ms=self.settings.pacing_ms,
            max_attempts=self.settings.max_attempts,
            timeouts=self.settings.timeouts,
        )
        self.reconciler = ConfigReconciler(
            host,
            path=self.settings.host_config_path,
            required_servers=self.settings.required_servers,
            port_range=self.settings.port_range,
        )
        self.registry = InstallationRegistry(host, path=self.settings.registry_path)

        self.last_plan: Plan | None = None
        self.last_outcomes: list[StepOutcome] = []

    # ── Events ──────────────────────────────────────────────────

    def _log(self, level: str, message: str) -> None:
        self.bus.publish("log", data=LogEvent(level=level, message=message))

    def _fail(self, result: InstallResult, step_id: str, kind: FailureKind, message: str) -> InstallResult:
        result.error = message
        result.error_kind = kind
        result.failed_step = step_id
        self.bus.publish("failed", data=FailedEvent(step_id=step_id, error_kind=kind, message=message))
        logger.error("Installation failed at %s (%s): %s", step_id, kind, message)
        return result

    # ── Pipeline stages ─────────────────────────────────────────

    def analyze(self, source: Source | str) -> Analysis:
        if isinstance(source, str):
            source = parse_source(source)
        return self.analyzer.analyze(source)

    def plan(self, source: Source | str, options: InstallOptions | None = None) -> tuple[Analysis, Plan]:
        """Analyze ``source`` and build its plan without executing it."""
        analysis = self.analyze(source)
        return analysis, build_plan(analysis, options, self.host.platform())

    def run(
        self,
        source: Source | str,
        options: InstallOptions | None = None,
        cancel: CancelToken | None = None,
    ) -> InstallResult:
        """Install ``source`` end to end.

        Failures never raise: they are reported on the result and through
        a ``failed`` event carrying a classified kind.
        """
        options = options or InstallOptions()
        result = InstallResult()

        try:
            result.analysis, result.plan = self.plan(source, options)
        except HostServicesError as e:
            self._log("error", f"Cannot plan installation: {e}")
            kind = classify(e.message, e.exit_code)
            return self._fail(result, ANALYZE_STEP, FailureKind.from_error_kind(kind), str(e))
        except AnalysisError as e:
            self._log("error", f"Cannot plan installation: {e}")
            return self._fail(result, ANALYZE_STEP, FailureKind.from_error_kind(classify(str(e))), str(e))
        except PlanError as e:
            self._log("error", f"Cannot plan installation: {e}")
            return self._fail(result, ANALYZE_STEP, FailureKind.UNKNOWN, str(e))

        plan = result.plan
        self.last_plan = plan
        self._log("info", f"Installing {plan.repo_name} with {plan.method} into {plan.install_path}")

        try:
            result.report = self.executor.execute(plan, options, cancel)
        except InstallationAborted as e:
            self.last_outcomes = result.outcomes = e.outcomes
            result.error = e.message
            result.error_kind = e.kind
            result.failed_step = e.step_id
            return result
        self.last_outcomes = result.outcomes = list(result.report.outcomes)

        entry = plan.server_entry or build_server_entry(
            result.analysis, options, plan.method, plan.install_path,
        )
        entry.install_path = plan.install_path
        if entry.type == ServerType.UNKNOWN and result.report.server_type:
            entry.type = result.report.server_type

        if options.update_host_config:
            try:
                self.reconciler.upsert(entry)
                result.host_config_updated = True
            except ConfigWriteError as e:
                return self._fail(result, HOST_CONFIG_STEP, FailureKind.from_error_kind(e.kind), str(e))

        try:
            result.entry = self.registry.upsert(entry)
        except RegistryError as e:
            return self._fail(result, REGISTRY_STEP, FailureKind.UNKNOWN, str(e))

        self.bus.publish("installed", key=result.entry.id, data=result.entry)
        self._log("success", f"Installed {result.entry.name} ({result.entry.id})")
        return result

    # ── Registry operations ─────────────────────────────────────

    def remove(self, entry_id: str, update_host_config: bool = True) -> ServerEntry:
        """Mark an installation removed and disable it in the host config.

        Files on disk are left in place.

        Raises:
            RegistryError: Unknown id or unwritable registry.
            ConfigWriteError: The host config could not be updated.
        """
        entry = self.registry.remove(entry_id)
        if update_host_config:
            self.reconciler.set_enabled(entry.name, False)
        self._log("info", f"Removed {entry.name} ({entry.id})")
        return entry
