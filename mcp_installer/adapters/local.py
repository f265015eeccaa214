"""
Local host services — the real workstation behind the port.

Commands run through ``subprocess.run`` with captured output; files go
through ``pathlib``; HTTP uses ``urllib.request``; reachability checks use
a plain socket connect.
"""

from __future__ import annotations

import errno
import logging
import os
import platform as _platform
import shutil
import socket
import subprocess
import time
import urllib.error
import urllib.request
from pathlib import Path

from mcp_installer.adapters.base import (
    CommandResult,
    CommandTimeoutError,
    HostServices,
    HostServicesError,
    HttpError,
    Platform,
    RunOptions,
)

logger = logging.getLogger(__name__)

_USER_AGENT = "mcp-installer/0.1"


class LocalHostServices(HostServices):
    """Host services backed by the local operating system."""

    # ── Processes ───────────────────────────────────────────────

    def run(
        self,
        cmd: str,
        args: list[str],
        options: RunOptions | None = None,
    ) -> CommandResult:
        options = options or RunOptions()
        command_line = " ".join([cmd, *args])

        env = None
        if options.env:
            env = os.environ.copy()
            env.update(options.env)

        logger.debug("Executing: %s (cwd=%s)", command_line, options.cwd)
        start = time.monotonic()

        try:
            result = subprocess.run(
                [cmd, *args],
                cwd=options.cwd,
                env=env,
                capture_output=True,
                text=True,
                timeout=options.timeout_ms / 1000,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandTimeoutError(command_line, options.timeout_ms) from e
        except FileNotFoundError as e:
            # Either the executable or the cwd is missing
            raise HostServicesError(f"ENOENT: {e}", exit_code=127) from e
        except PermissionError as e:
            raise HostServicesError(f"EACCES: {e}", exit_code=126) from e
        except OSError as e:
            raise HostServicesError(f"Command execution error: {e}") from e

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.debug("Exit %d after %dms: %s", result.returncode, elapsed_ms, command_line)

        return CommandResult(
            exit_code=result.returncode,
            stdout=result.stdout.strip(),
            stderr=result.stderr.strip(),
        )

    # ── Files ───────────────────────────────────────────────────

    def read_file(self, path: str) -> str:
        try:
            return Path(path).read_text(encoding="utf-8")
        except OSError as e:
            raise HostServicesError(_os_error_message(e)) from e

    def write_file(self, path: str, content: str) -> None:
        target = Path(path)
        tmp = target.with_name(target.name + ".tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, target)
            logger.debug("Wrote %d bytes to %s", len(content), target)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise HostServicesError(_os_error_message(e)) from e

    def ensure_dir(self, path: str) -> None:
        try:
            Path(path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise HostServicesError(_os_error_message(e)) from e

    def exists(self, path: str) -> bool:
        try:
            return Path(path).exists()
        except OSError:
            return False

    def remove(self, path: str, recursive: bool = False) -> None:
        target = Path(path)
        try:
            if target.is_dir() and not target.is_symlink():
                if recursive:
                    shutil.rmtree(target)
                else:
                    target.rmdir()
            else:
                target.unlink(missing_ok=True)
        except FileNotFoundError:
            return
        except OSError as e:
            raise HostServicesError(_os_error_message(e)) from e

    def list_dir(self, path: str) -> list[str]:
        target = Path(path)
        if not target.is_dir():
            raise HostServicesError(f"ENOENT: not a directory: {path}")
        try:
            return sorted(p.name for p in target.iterdir())
        except OSError as e:
            raise HostServicesError(_os_error_message(e)) from e

    # ── Network ─────────────────────────────────────────────────

    def http_get(self, url: str, timeout_ms: int = 10_000) -> str:
        req = urllib.request.Request(url, headers={"User-Agent": _USER_AGENT})
        try:
            with urllib.request.urlopen(req, timeout=timeout_ms / 1000) as resp:
                return resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            raise HttpError(url, e.code, str(e.reason)) from e
        except urllib.error.URLError as e:
            raise HostServicesError(f"Network error for {url}: {e.reason}") from e
        except TimeoutError as e:
            raise HostServicesError(f"Network timeout for {url}") from e

    def tcp_connect(self, host: str, port: int, timeout_ms: int = 5_000) -> bool:
        try:
            with socket.create_connection((host, port), timeout=timeout_ms / 1000):
                return True
        except OSError:
            return False

    # ── Environment ─────────────────────────────────────────────

    def sleep(self, ms: int) -> None:
        if ms > 0:
            time.sleep(ms / 1000)

    def platform(self) -> Platform:
        system = _platform.system().lower()
        if system.startswith("win"):
            return "windows"
        if system == "darwin":
            return "macos"
        return "linux"

    def home_dir(self) -> str:
        return str(Path.home())

    def env(self, name: str) -> str | None:
        return os.environ.get(name)


def _os_error_message(e: OSError) -> str:
    """Prefix an OSError with its errno name so the classifier can match it."""
    code = errno.errorcode.get(e.errno, "") if e.errno else ""
    text = e.strerror or str(e)
    target = f": {e.filename}" if e.filename else ""
    return f"{code}: {text}{target}" if code else f"{text}{target}"
