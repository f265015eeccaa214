"""
Engine executor — drives a plan step by step.

Per step:

    Pending → Running → Succeeded
                     ↘ Failed → classify → Recovering → Retrying → Running
                                                     ↘ Recovered
                                                     ↘ Aborted

One step runs at a time. Every started step appends exactly one
``StepOutcome``; the log is append-only and in execution order. On abort
the executor publishes ``failed`` and raises ``InstallationAborted``; work
already done stays on disk (no rollback).

Cancellation is cooperative: the token is checked before a step starts
and before every retry, never mid-command.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime

from mcp_installer.adapters.base import HostServices, HostServicesError
from mcp_installer.core.domain.classifier import classify
from mcp_installer.core.engine.recovery import RecoveryContext, RecoveryEngine
from mcp_installer.core.engine.step_runners import (
    StepContext,
    StepFailed,
    StepTimeouts,
    run_step,
)
from mcp_installer.core.engine.verifier import Verifier
from mcp_installer.core.models.analysis import ServerType
from mcp_installer.core.models.events import (
    FailedEvent,
    LogEvent,
    Phase,
    ProgressEvent,
    VerificationReport,
)
from mcp_installer.core.models.outcome import ErrorKind, FailureKind, StepOutcome, StepStatus
from mcp_installer.core.models.plan import InstallOptions, Plan
from mcp_installer.core.services.event_bus import EventBus

logger = logging.getLogger(__name__)

DEFAULT_PACING_MS = 500
DEFAULT_MAX_ATTEMPTS = 4

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class CancelToken:
    """Thread-safe cancellation flag shared between caller and executor."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def canceled(self) -> bool:
        return self._event.is_set()


class InstallationAborted(Exception):
    """Terminal failure of a plan execution."""

    def __init__(
        self,
        step_id: str,
        kind: FailureKind,
        message: str,
        outcomes: list[StepOutcome],
    ):
        super().__init__(f"Step '{step_id}' failed ({kind}): {message}")
        self.step_id = step_id
        self.kind = kind
        self.message = message
        self.outcomes = list(outcomes)


@dataclass
class ExecutionReport:
    """Result of executing a plan to completion."""

    outcomes: list[StepOutcome] = field(default_factory=list)
    server_type: ServerType | None = None
    verification: VerificationReport | None = None

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def recovered(self) -> int:
        return sum(1 for o in self.outcomes if o.status == StepStatus.RECOVERED)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "recovered": self.recovered,
            "server_type": self.server_type,
            "outcomes": [o.model_dump(mode="json") for o in self.outcomes],
            "verification": self.verification.model_dump(mode="json") if self.verification else None,
        }


class Executor:
    """Runs plans through host services.

    Args:
        host: Host services every step goes through.
        recovery: Recovery engine; the default table when omitted.
        bus: Event bus for ``progress``, ``log`` and ``failed`` events.
        verifier: Used by the Verify step; built from ``host`` when omitted.
        pacing_ms: Pause between successful steps (0 disables it).
        max_attempts: Runs per step before giving up.
        timeouts: Per-step command timeouts.
    """

    def __init__(
        self,
        host: HostServices,
        *,
        recovery: RecoveryEngine | None = None,
        bus: EventBus | None = None,
        verifier: Verifier | None = None,
        pacing_ms: int = DEFAULT_PACING_MS,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        timeouts: StepTimeouts | None = None,
    ):
        self.host = host
        self.recovery = recovery or RecoveryEngine()
        self.bus = bus or EventBus()
        self.verifier = verifier or Verifier(host)
        self.pacing_ms = pacing_ms
        self.max_attempts = max_attempts
        self.timeouts = timeouts or StepTimeouts()
        self.outcomes: list[StepOutcome] = []

    # ── Events ──────────────────────────────────────────────────

    def _log(self, level: str, message: str, step_id: str | None = None) -> None:
        logger.log(_LOG_LEVELS[level], "%s%s", f"[{step_id}] " if step_id else "", message)
        self.bus.publish("log", data=LogEvent(level=level, message=message, step_id=step_id))

    def _progress(self, plan: Plan, completed: int, description: str, phase: Phase,
                  detail: str | None = None) -> None:
        self.bus.publish("progress", data=ProgressEvent(
            completed_step_count=completed,
            total_step_count=plan.total_steps,
            current_step_description=description,
            phase=phase,
            detail=detail,
        ))

    # ── Terminal paths ──────────────────────────────────────────

    def _abort(
        self,
        plan: Plan,
        step,
        completed: int,
        kind: FailureKind,
        message: str,
    ) -> InstallationAborted:
        self._progress(plan, completed, step.description, Phase.FAILED,
                       detail="canceled" if kind == FailureKind.CANCELED else None)
        self.bus.publish("failed", data=FailedEvent(step_id=step.id, error_kind=kind, message=message))
        self._log("error", f"{step.description} failed: {message}", step.id)
        return InstallationAborted(step.id, kind, message, self.outcomes)

    # ── Main loop ───────────────────────────────────────────────

    def execute(
        self,
        plan: Plan,
        options: InstallOptions | None = None,
        cancel: CancelToken | None = None,
    ) -> ExecutionReport:
        """Execute every step of ``plan`` in order.

        Raises:
            InstallationAborted: A step could not be completed or recovered,
                or the run was canceled.
        """
        self.outcomes = []
        ctx = StepContext(
            host=self.host,
            plan=plan,
            timeouts=self.timeouts,
            verifier=self.verifier,
        )
        completed = 0

        # plan.steps may grow behind the current step (DetectServerType)
        for index, step in enumerate(plan.steps):
            if cancel is not None and cancel.canceled:
                raise self._abort(plan, step, completed, FailureKind.CANCELED, "canceled")

            ctx.log = lambda level, message, _id=step.id: self._log(level, message, _id)
            started_at = _now_iso()
            attempts = 0
            self._log("info", step.description, step.id)

            while True:
                if attempts > 0 and cancel is not None and cancel.canceled:
                    self._record(step.id, StepStatus.FAILED, started_at, attempts,
                                 message="canceled")
                    raise self._abort(plan, step, completed, FailureKind.CANCELED, "canceled")

                attempts += 1
                try:
                    message = run_step(step, ctx)
                except (StepFailed, HostServicesError) as e:
                    raw, exit_code = e.message, e.exit_code
                else:
                    status = StepStatus.SUCCEEDED
                    error_kind: ErrorKind | None = None
                    break

                error_kind = classify(raw, exit_code)
                self._log("warn", f"{step.description} failed ({error_kind}): {raw}", step.id)

                if attempts >= self.max_attempts:
                    self._record(step.id, StepStatus.FAILED, started_at, attempts,
                                 error_kind=error_kind, message=raw)
                    raise self._abort(plan, step, completed, FailureKind.from_error_kind(error_kind),
                                      f"{raw} (gave up after {attempts} attempts)")

                result = self.recovery.recover(error_kind, step, RecoveryContext(
                    host=self.host, plan=plan, attempts=attempts, message=raw, options=options,
                ))
                if not result.success:
                    self._record(step.id, StepStatus.FAILED, started_at, attempts,
                                 error_kind=error_kind, message=raw)
                    if result.message:
                        self._log("warn", f"Recovery not possible: {result.message}", step.id)
                    raise self._abort(plan, step, completed,
                                      FailureKind.from_error_kind(error_kind), raw)

                self._log("warn", result.message, step.id)
                if not result.retry:
                    status = StepStatus.RECOVERED
                    message = result.message
                    break

            self._record(step.id, status, started_at, attempts,
                         error_kind=error_kind, message=message)
            completed += 1
            self._log("success", message, step.id)
            self._progress(
                plan, completed, step.description,
                Phase.DONE if completed == plan.total_steps else Phase.RUNNING,
            )

            if self.pacing_ms > 0 and index < plan.total_steps - 1:
                self.host.sleep(self.pacing_ms)

        return ExecutionReport(
            outcomes=list(self.outcomes),
            server_type=ctx.server_type,
            verification=ctx.verification,
        )

    def _record(
        self,
        step_id: str,
        status: StepStatus,
        started_at: str,
        attempts: int,
        error_kind: ErrorKind | None = None,
        message: str = "",
    ) -> None:
        self.outcomes.append(StepOutcome(
            step_id=step_id,
            status=status,
            started_at=started_at,
            finished_at=_now_iso(),
            attempts=attempts,
            error_kind=error_kind,
            message=message,
        ))
