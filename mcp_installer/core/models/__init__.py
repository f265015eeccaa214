"""
Domain models — Pydantic types for the installer.

All models are re-exported here for convenient access:

    from mcp_installer.core.models import Plan, ServerEntry, StepOutcome
"""

from mcp_installer.core.models.analysis import (
    Analysis,
    Dependency,
    InstallMethod,
    Language,
    ServerType,
)
from mcp_installer.core.models.entry import (
    EntryStatus,
    ServerConfig,
    ServerEntry,
    derive_entry_id,
)
from mcp_installer.core.models.events import (
    FailedEvent,
    LogEvent,
    Phase,
    ProgressEvent,
    Severity,
    VerificationIssue,
    VerificationReport,
)
from mcp_installer.core.models.outcome import (
    ErrorKind,
    FailureKind,
    RecoveryResult,
    StepOutcome,
    StepStatus,
)
from mcp_installer.core.models.plan import InstallOptions, Plan
from mcp_installer.core.models.source import (
    GitSource,
    LocalSource,
    SourceDescriptor,
    TemplateSource,
    parse_source,
    source_from_dict,
)
from mcp_installer.core.models.step import (
    STEP_ADAPTER,
    Clone,
    DetectServerType,
    DockerBuild,
    DockerRun,
    NpmInstall,
    PipInstall,
    PrepareDirectory,
    Step,
    StepKind,
    Verify,
    WriteConfig,
)

__all__ = [
    # analysis.py
    "Analysis",
    "Dependency",
    "InstallMethod",
    "Language",
    "ServerType",
    # entry.py
    "EntryStatus",
    "ServerConfig",
    "ServerEntry",
    "derive_entry_id",
    # events.py
    "FailedEvent",
    "LogEvent",
    "Phase",
    "ProgressEvent",
    "Severity",
    "VerificationIssue",
    "VerificationReport",
    # outcome.py
    "ErrorKind",
    "FailureKind",
    "RecoveryResult",
    "StepOutcome",
    "StepStatus",
    # plan.py
    "InstallOptions",
    "Plan",
    # source.py
    "GitSource",
    "LocalSource",
    "SourceDescriptor",
    "TemplateSource",
    "parse_source",
    "source_from_dict",
    # step.py
    "STEP_ADAPTER",
    "Clone",
    "DetectServerType",
    "DockerBuild",
    "DockerRun",
    "NpmInstall",
    "PipInstall",
    "PrepareDirectory",
    "Step",
    "StepKind",
    "Verify",
    "WriteConfig",
]
