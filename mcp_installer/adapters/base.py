"""
Host-services port — the contract between the installer core and the machine.

The core never spawns processes, touches disk, or opens sockets itself.
Every side effect goes through an implementation of ``HostServices``:

    - LocalHostServices  — the real workstation (adapters/local.py)
    - MockHostServices   — in-memory double for tests (adapters/mock.py)

A missing operation is a construction-time error: ``HostServices`` is an
ABC, so an implementation that forgets a method cannot be instantiated.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal

from pydantic import BaseModel, Field

Platform = Literal["windows", "macos", "linux"]


class HostServicesError(Exception):
    """A host operation failed (spawn error, I/O error, HTTP error, ...).

    The message is the raw text the error classifier matches against.
    """

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


class CommandTimeoutError(HostServicesError):
    """A command exceeded its timeout."""

    def __init__(self, command: str, timeout_ms: int):
        super().__init__(f"Command timed out after {timeout_ms} ms: {command}")
        self.command = command
        self.timeout_ms = timeout_ms


class HttpError(HostServicesError):
    """An HTTP request returned a non-2xx status."""

    def __init__(self, url: str, status: int, reason: str = ""):
        super().__init__(f"HTTP {status} for {url}{f': {reason}' if reason else ''}")
        self.url = url
        self.status = status

    @property
    def not_found(self) -> bool:
        return self.status == 404


class CommandResult(BaseModel):
    """Outcome of ``HostServices.run``. Non-zero exits are results, not errors."""

    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Best text for diagnostics: stderr when present, else stdout."""
        return (self.stderr or self.stdout).strip()


class RunOptions(BaseModel):
    """Per-call options for ``HostServices.run``."""

    cwd: str | None = None
    env: dict[str, str] = Field(default_factory=dict)
    timeout_ms: int = 120_000


class HostServices(ABC):
    """Abstract port consumed by the core.

    Implementations raise ``HostServicesError`` (or a subclass) on failure,
    except where a method is documented as never failing.
    """

    # ── Processes ───────────────────────────────────────────────

    @abstractmethod
    def run(
        self,
        cmd: str,
        args: list[str],
        options: RunOptions | None = None,
    ) -> CommandResult:
        """Run ``cmd`` with ``args``.

        Returns the result for any exit code. Raises ``HostServicesError``
        when the command cannot be started and ``CommandTimeoutError`` when
        it outlives ``options.timeout_ms``.
        """

    # ── Files ───────────────────────────────────────────────────

    @abstractmethod
    def read_file(self, path: str) -> str:
        """Return the UTF-8 text of ``path``."""

    @abstractmethod
    def write_file(self, path: str, content: str) -> None:
        """Write ``content`` atomically: ``<path>.tmp``, fsync, rename.

        The target is never left truncated; on failure it keeps its
        previous content.
        """

    @abstractmethod
    def ensure_dir(self, path: str) -> None:
        """Create ``path`` and its parents. Idempotent."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Whether ``path`` exists. Never raises."""

    @abstractmethod
    def remove(self, path: str, recursive: bool = False) -> None:
        """Delete ``path``. A missing path is not an error."""

    @abstractmethod
    def list_dir(self, path: str) -> list[str]:
        """Sorted entry names of directory ``path``."""

    # ── Network ─────────────────────────────────────────────────

    @abstractmethod
    def http_get(self, url: str, timeout_ms: int = 10_000) -> str:
        """GET ``url`` and return the body. Raises ``HttpError`` on non-2xx."""

    @abstractmethod
    def tcp_connect(self, host: str, port: int, timeout_ms: int = 5_000) -> bool:
        """Whether a TCP connection succeeds within the timeout. Never raises."""

    # ── Environment ─────────────────────────────────────────────

    @abstractmethod
    def sleep(self, ms: int) -> None:
        """Block for ``ms`` milliseconds."""

    @abstractmethod
    def platform(self) -> Platform:
        """One of ``windows``, ``macos``, ``linux``."""

    @abstractmethod
    def home_dir(self) -> str:
        """The current user's home directory."""

    @abstractmethod
    def env(self, name: str) -> str | None:
        """Environment variable ``name``, or None."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} platform={self.platform()!r}>"
