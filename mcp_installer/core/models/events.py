"""
Event payloads emitted by the core.

The event bus wraps each payload in an envelope; these models define the
``data`` part. Observers receive JSON-mode dumps, never the live models.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict

from mcp_installer.core.models.outcome import FailureKind


class Phase(StrEnum):
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class ProgressEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    completed_step_count: int
    total_step_count: int
    current_step_description: str
    phase: Phase
    detail: str | None = None   # "canceled" when the run was canceled


LogLevel = Literal["info", "warn", "error", "success"]


class LogEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    level: LogLevel
    message: str
    step_id: str | None = None


class FailedEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    step_id: str
    error_kind: FailureKind
    message: str


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class VerificationIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    severity: Severity
    message: str


class VerificationReport(BaseModel):
    success: bool = True
    message: str = ""
    issues: list[VerificationIssue] = []

    @property
    def errors(self) -> list[VerificationIssue]:
        return [i for i in self.issues if i.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[VerificationIssue]:
        return [i for i in self.issues if i.severity == Severity.WARNING]
