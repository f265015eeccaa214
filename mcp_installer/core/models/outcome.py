"""
Error kinds and step outcomes — the execution record.

``ErrorKind`` is closed: adding a member requires a row in the classifier
table and a row in the recovery table. ``FailureKind`` is what callers
see on ``failed`` events: every ``ErrorKind`` plus ``canceled``.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ErrorKind(StrEnum):
    MISSING = "missing"
    PERMISSION = "permission"
    EXISTS = "exists"
    NETWORK = "network"
    DISK = "disk"
    UNKNOWN = "unknown"


class FailureKind(StrEnum):
    MISSING = "missing"
    PERMISSION = "permission"
    EXISTS = "exists"
    NETWORK = "network"
    DISK = "disk"
    UNKNOWN = "unknown"
    CANCELED = "canceled"

    @classmethod
    def from_error_kind(cls, kind: ErrorKind) -> FailureKind:
        return cls(kind.value)


class StepStatus(StrEnum):
    SUCCEEDED = "succeeded"     # the step's own operation completed
    RECOVERED = "recovered"     # a recovery strategy satisfied the post-condition
    FAILED = "failed"
    SKIPPED = "skipped"


class StepOutcome(BaseModel):
    """Final record of one started step. Never mutated once appended."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    status: StepStatus
    started_at: str = Field(default_factory=_now_iso)
    finished_at: str = Field(default_factory=_now_iso)
    attempts: int = 1
    error_kind: ErrorKind | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status in (StepStatus.SUCCEEDED, StepStatus.RECOVERED)


class RecoveryResult(BaseModel):
    """What a recovery strategy reports back to the executor."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str = ""
    retry: bool = False

    @classmethod
    def retry_step(cls, message: str) -> RecoveryResult:
        return cls(success=True, retry=True, message=message)

    @classmethod
    def satisfied(cls, message: str) -> RecoveryResult:
        return cls(success=True, retry=False, message=message)

    @classmethod
    def give_up(cls, message: str) -> RecoveryResult:
        return cls(success=False, retry=False, message=message)
