"""
Engine — classification-driven recovery.

A single table indexed by ``(ErrorKind, StepKind)`` holds the recovery
strategy for every cell; empty cells are ``None`` and listed explicitly.
A strategy receives the failed step and a ``RecoveryContext`` and returns
a ``RecoveryResult``:

    retry_step(...)   the cause was addressed, run the step again
    satisfied(...)    the step's post-condition already holds
    give_up(...)      nothing more can be done

Strategies only mutate the plan (or the step) when they succeed. The
engine itself never raises: a missing strategy or a crashing strategy
both come back as ``give_up``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from mcp_installer.adapters.base import HostServices, HostServicesError, RunOptions
from mcp_installer.core.domain.paths import (
    is_under,
    join,
    normalize_remote,
    pure_path,
    user_install_root,
)
from mcp_installer.core.models.outcome import ErrorKind, RecoveryResult
from mcp_installer.core.models.plan import InstallOptions, Plan
from mcp_installer.core.models.source import LocalSource
from mcp_installer.core.models.step import (
    Clone,
    DockerRun,
    NpmInstall,
    PipInstall,
    PrepareDirectory,
    StepBase,
    StepKind,
    WriteConfig,
)

logger = logging.getLogger(__name__)

NETWORK_BASE_DELAY_MS = 500
NETWORK_MAX_RETRIES = 3

ALTERNATIVE_NODE_MANAGERS = ("pnpm", "yarn")
ALTERNATIVE_PYTHON_INSTALLERS = ("uv", "pip3")

_CHECK_TIMEOUT_MS = 15_000


@dataclass
class RecoveryContext:
    """Everything a strategy may consult or act through."""

    host: HostServices
    plan: Plan
    attempts: int                  # runs of the failed step so far
    message: str = ""              # raw error text of the last failure
    options: InstallOptions | None = None


Strategy = Callable[[StepBase, RecoveryContext], RecoveryResult]


def backoff_delay_ms(attempts: int) -> int:
    """Delay before the next run: 500 ms, 1 s, 2 s, ..."""
    return NETWORK_BASE_DELAY_MS * 2 ** (attempts - 1)


def _tool_available(host: HostServices, tool: str) -> bool:
    """Whether ``tool --version`` runs."""
    try:
        return host.run(tool, ["--version"], RunOptions(timeout_ms=_CHECK_TIMEOUT_MS)).ok
    except HostServicesError:
        return False


# ── Missing ─────────────────────────────────────────────────────


def _alternative_node_manager(step: NpmInstall, ctx: RecoveryContext) -> RecoveryResult:
    for pm in ALTERNATIVE_NODE_MANAGERS:
        if pm != step.package_manager and _tool_available(ctx.host, pm):
            previous, step.package_manager = step.package_manager, pm
            return RecoveryResult.retry_step(f"{previous} unavailable, retrying with {pm}")
    return RecoveryResult.give_up("No alternative Node.js package manager found")


def _alternative_python_installer(step: PipInstall, ctx: RecoveryContext) -> RecoveryResult:
    for tool in ALTERNATIVE_PYTHON_INSTALLERS:
        if tool != step.installer and _tool_available(ctx.host, tool):
            previous, step.installer = step.installer, tool
            return RecoveryResult.retry_step(f"{previous} unavailable, retrying with {tool}")
    return RecoveryResult.give_up("No alternative Python installer found")


def _create_config_directory(step: WriteConfig, ctx: RecoveryContext) -> RecoveryResult:
    if ctx.host.exists(step.cwd):
        return RecoveryResult.give_up(f"{step.cwd} exists; the missing path is something else")
    ctx.host.ensure_dir(step.cwd)
    return RecoveryResult.retry_step(f"Created {step.cwd}")


# ── Permission ──────────────────────────────────────────────────


def _relocate_to_home(step: PrepareDirectory | Clone, ctx: RecoveryContext) -> RecoveryResult:
    plan = ctx.plan
    if isinstance(plan.source, LocalSource):
        return RecoveryResult.give_up("Local sources are installed in place")

    home = ctx.host.home_dir()
    if is_under(plan.platform, plan.install_path, home):
        return RecoveryResult.give_up(f"{plan.install_path} is already under {home}")

    name = plan.repo_name or pure_path(plan.platform, plan.install_path).name
    new_path = join(plan.platform, user_install_root(plan.platform, home), name)
    old_path = plan.install_path
    plan.relocate(new_path)
    return RecoveryResult.retry_step(f"Relocated installation from {old_path} to {new_path}")


# ── Exists ──────────────────────────────────────────────────────


def _reuse_matching_checkout(step: Clone, ctx: RecoveryContext) -> RecoveryResult:
    result = ctx.host.run(
        "git", ["-C", step.target_path, "remote", "get-url", "origin"],
        RunOptions(timeout_ms=_CHECK_TIMEOUT_MS),
    )
    if not result.ok:
        return RecoveryResult.give_up(f"{step.target_path} exists but is not a usable checkout")

    remote = result.stdout.strip()
    if normalize_remote(remote) != normalize_remote(step.url):
        return RecoveryResult.give_up(
            f"{step.target_path} is a checkout of {remote}, not {step.url}"
        )
    return RecoveryResult.satisfied(f"Existing checkout of {step.url} reused")


def _directory_present(step: PrepareDirectory, ctx: RecoveryContext) -> RecoveryResult:
    if ctx.host.exists(step.path):
        return RecoveryResult.satisfied(f"{step.path} already exists")
    return RecoveryResult.give_up(f"{step.path} reported as existing but is absent")


def _start_existing_container(step: DockerRun, ctx: RecoveryContext) -> RecoveryResult:
    opts = RunOptions(timeout_ms=_CHECK_TIMEOUT_MS)
    result = ctx.host.run(
        "docker", ["inspect", "-f", "{{.Config.Image}}", step.container_name], opts,
    )
    if not result.ok:
        return RecoveryResult.give_up(f"Cannot inspect container {step.container_name}")

    image = result.stdout.strip().removesuffix(":latest")
    if image != step.image_tag.removesuffix(":latest"):
        return RecoveryResult.give_up(
            f"Container {step.container_name} runs {image}, not {step.image_tag}"
        )

    started = ctx.host.run("docker", ["start", step.container_name], opts)
    if not started.ok:
        return RecoveryResult.give_up(f"Cannot start {step.container_name}: {started.output}")
    return RecoveryResult.satisfied(f"Existing container {step.container_name} started")


# ── Network ─────────────────────────────────────────────────────


def _backoff(step: StepBase, ctx: RecoveryContext) -> RecoveryResult:
    if ctx.attempts > NETWORK_MAX_RETRIES:
        return RecoveryResult.give_up(f"Network still failing after {ctx.attempts} attempts")
    delay = backoff_delay_ms(ctx.attempts)
    ctx.host.sleep(delay)
    return RecoveryResult.retry_step(f"Network error, retrying after {delay} ms")


# ── Disk ────────────────────────────────────────────────────────


def _cache_clean_command(step: StepBase) -> tuple[str, list[str]]:
    if isinstance(step, NpmInstall):
        return step.package_manager, ["cache", "clean", "--force"]
    if isinstance(step, PipInstall):
        if step.installer == "uv":
            return "uv", ["cache", "clean"]
        return step.installer, ["cache", "purge"]
    return "docker", ["builder", "prune", "-f"]


def _clean_cache_once(step: StepBase, ctx: RecoveryContext) -> RecoveryResult:
    if ctx.attempts > 1:
        return RecoveryResult.give_up("Disk still full after cleaning the cache")
    cmd, args = _cache_clean_command(step)
    result = ctx.host.run(cmd, args, RunOptions(timeout_ms=120_000))
    if not result.ok:
        return RecoveryResult.give_up(f"Cache clean failed: {result.output}")
    return RecoveryResult.retry_step(f"Cleaned {cmd} cache")


# ═══════════════════════════════════════════════════════════════════
#  Table
# ═══════════════════════════════════════════════════════════════════

RECOVERY_TABLE: dict[ErrorKind, dict[StepKind, Strategy | None]] = {
    ErrorKind.MISSING: {
        StepKind.PREPARE_DIRECTORY: None,
        StepKind.CLONE: None,
        StepKind.DETECT_SERVER_TYPE: None,
        StepKind.NPM_INSTALL: _alternative_node_manager,
        StepKind.PIP_INSTALL: _alternative_python_installer,
        StepKind.DOCKER_BUILD: None,
        StepKind.DOCKER_RUN: None,
        StepKind.WRITE_CONFIG: _create_config_directory,
        StepKind.VERIFY: None,
    },
    ErrorKind.PERMISSION: {
        StepKind.PREPARE_DIRECTORY: _relocate_to_home,
        StepKind.CLONE: _relocate_to_home,
        StepKind.DETECT_SERVER_TYPE: None,
        StepKind.NPM_INSTALL: None,
        StepKind.PIP_INSTALL: None,
        StepKind.DOCKER_BUILD: None,
        StepKind.DOCKER_RUN: None,
        StepKind.WRITE_CONFIG: None,
        StepKind.VERIFY: None,
    },
    ErrorKind.EXISTS: {
        StepKind.PREPARE_DIRECTORY: _directory_present,
        StepKind.CLONE: _reuse_matching_checkout,
        StepKind.DETECT_SERVER_TYPE: None,
        StepKind.NPM_INSTALL: None,
        StepKind.PIP_INSTALL: None,
        StepKind.DOCKER_BUILD: None,
        StepKind.DOCKER_RUN: _start_existing_container,
        StepKind.WRITE_CONFIG: None,
        StepKind.VERIFY: None,
    },
    ErrorKind.NETWORK: {
        StepKind.PREPARE_DIRECTORY: _backoff,
        StepKind.CLONE: _backoff,
        StepKind.DETECT_SERVER_TYPE: _backoff,
        StepKind.NPM_INSTALL: _backoff,
        StepKind.PIP_INSTALL: _backoff,
        StepKind.DOCKER_BUILD: _backoff,
        StepKind.DOCKER_RUN: _backoff,
        StepKind.WRITE_CONFIG: _backoff,
        StepKind.VERIFY: _backoff,
    },
    ErrorKind.DISK: {
        StepKind.PREPARE_DIRECTORY: None,
        StepKind.CLONE: None,
        StepKind.DETECT_SERVER_TYPE: None,
        StepKind.NPM_INSTALL: _clean_cache_once,
        StepKind.PIP_INSTALL: _clean_cache_once,
        StepKind.DOCKER_BUILD: _clean_cache_once,
        StepKind.DOCKER_RUN: None,
        StepKind.WRITE_CONFIG: None,
        StepKind.VERIFY: None,
    },
    ErrorKind.UNKNOWN: {kind: None for kind in StepKind},
}

if set(RECOVERY_TABLE) != set(ErrorKind) or any(
    set(row) != set(StepKind) for row in RECOVERY_TABLE.values()
):
    raise RuntimeError("recovery table must have a cell for every (ErrorKind, StepKind)")


class RecoveryEngine:
    """Looks up and runs the strategy for a classified failure."""

    def __init__(self, table: dict[ErrorKind, dict[StepKind, Strategy | None]] | None = None):
        self._table = table or RECOVERY_TABLE

    def strategy_for(self, kind: ErrorKind, step_kind: StepKind) -> Strategy | None:
        return self._table.get(kind, {}).get(step_kind)

    def recover(self, kind: ErrorKind, step: StepBase, ctx: RecoveryContext) -> RecoveryResult:
        """Attempt recovery. Never raises."""
        strategy = self.strategy_for(kind, step.step_kind)
        if strategy is None:
            return RecoveryResult.give_up(
                f"No recovery strategy for {kind} on {step.step_kind}"
            )
        try:
            result = strategy(step, ctx)
        except Exception as e:
            logger.warning("Recovery for %s (%s) raised: %s", step.id, kind, e)
            return RecoveryResult.give_up(f"recovery failed: {e}")
        logger.info("Recovery for %s (%s): %s", step.id, kind, result.message)
        return result
