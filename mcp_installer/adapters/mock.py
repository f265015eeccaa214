"""
Mock host services — in-memory test double for the host-services port.

Simulates just enough of a workstation for the installer to run end to
end without touching the machine: a virtual filesystem, fake remote git
repositories, a toy docker daemon, and scripted command responses.

Scripted responses take priority. When none is queued for a command, the
built-in simulation answers (``git clone`` materializes the fake remote,
``npm install`` creates ``node_modules``, ``docker run`` starts a
container, and so on). Sleeps are recorded, never slept.
"""

from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass, field

from mcp_installer.adapters.base import (
    CommandResult,
    HostServices,
    HostServicesError,
    HttpError,
    Platform,
    RunOptions,
)
from mcp_installer.core.domain.paths import github_slug, normalize_remote, pure_path

_DEFAULT_TOOLS = frozenset({"git", "node", "npm", "npx", "python", "pip", "docker"})


@dataclass
class CommandCall:
    """One recorded ``run`` invocation."""

    cmd: str
    args: list[str]
    cwd: str | None = None
    timeout_ms: int = 0

    @property
    def line(self) -> str:
        return " ".join([self.cmd, *self.args])


@dataclass
class FakeRemote:
    """A git repository reachable by URL."""

    url: str
    files: dict[str, str] = field(default_factory=dict)
    ref: str = "HEAD"


class MockHostServices(HostServices):
    """In-memory host services.

    Args:
        platform: Reported platform.
        home: Reported home directory.
        env: Environment variables visible through ``env()``.
        tools: Executables that exist; anything else fails with ENOENT.
    """

    def __init__(
        self,
        platform: Platform = "linux",
        home: str = "/home/user",
        env: dict[str, str] | None = None,
        tools: set[str] | frozenset[str] | None = None,
    ):
        self._platform: Platform = platform
        self._home = home
        self._env = dict(env or {})
        self.tools: set[str] = set(tools if tools is not None else _DEFAULT_TOOLS)

        self.files: dict[str, str] = {}
        self.dirs: set[str] = set()

        self.remotes: dict[str, FakeRemote] = {}
        self.git_origins: dict[str, str] = {}     # checkout path → origin url

        self.images: set[str] = set()
        self.containers: dict[str, str] = {}      # name → image
        self.running: set[str] = set()
        self.open_ports: set[int] = set()

        self.call_log: list[CommandCall] = []
        self.sleeps: list[int] = []
        self.http_log: list[str] = []
        self.writes: list[str] = []

        self._responses: list[tuple[str, deque[CommandResult | Exception]]] = []
        self._write_failures: dict[str, str] = {}
        self._dir_failures: dict[str, deque[str]] = {}

    # ── Test configuration ──────────────────────────────────────

    def on_command(self, prefix: str, *responses: CommandResult | Exception) -> None:
        """Queue responses for commands whose line starts with ``prefix``.

        Each matching call consumes one response; once the queue is empty
        the built-in simulation answers again.
        """
        self._responses.append((prefix, deque(responses)))

    def add_remote(self, url: str, files: dict[str, str], ref: str = "HEAD") -> FakeRemote:
        """Register a fake remote repository (cloneable and raw-fetchable)."""
        remote = FakeRemote(url=url, files=dict(files), ref=ref)
        self.remotes[normalize_remote(url)] = remote
        return remote

    def add_checkout(self, path: str, origin: str, files: dict[str, str] | None = None) -> None:
        """Pretend a git checkout of ``origin`` already exists at ``path``."""
        path = self._norm(path)
        self._materialize(path, files or {})
        self.git_origins[path] = origin

    def fail_write(self, path: str, message: str) -> None:
        """Make every ``write_file`` to ``path`` fail with ``message``."""
        self._write_failures[self._norm(path)] = message

    def fail_ensure_dir(self, path: str, *messages: str) -> None:
        """Make the next ``ensure_dir`` calls on ``path`` fail, one per message."""
        self._dir_failures[self._norm(path)] = deque(messages)

    def set_file(self, path: str, content: str) -> None:
        path = self._norm(path)
        self._add_parents(path)
        self.files[path] = content

    def commands_matching(self, prefix: str) -> list[CommandCall]:
        return [c for c in self.call_log if c.line.startswith(prefix)]

    # ── Processes ───────────────────────────────────────────────

    def run(
        self,
        cmd: str,
        args: list[str],
        options: RunOptions | None = None,
    ) -> CommandResult:
        options = options or RunOptions()
        call = CommandCall(cmd=cmd, args=list(args), cwd=options.cwd, timeout_ms=options.timeout_ms)
        self.call_log.append(call)

        for prefix, queue in self._responses:
            if queue and call.line.startswith(prefix):
                response = queue.popleft()
                if isinstance(response, Exception):
                    raise response
                return response

        if cmd not in self.tools:
            raise HostServicesError(f"spawn {cmd} ENOENT: command not found", exit_code=127)

        if cwd := options.cwd:
            if not self._is_dir(self._norm(cwd)):
                raise HostServicesError(f"spawn {cmd} ENOENT: no such file or directory: {cwd}")

        return self._simulate(call)

    # ── Files ───────────────────────────────────────────────────

    def read_file(self, path: str) -> str:
        path = self._norm(path)
        if path not in self.files:
            raise HostServicesError(f"ENOENT: no such file or directory, open '{path}'")
        return self.files[path]

    def write_file(self, path: str, content: str) -> None:
        path = self._norm(path)
        self.writes.append(path)
        if path in self._write_failures:
            # Atomic contract: the target keeps its previous content
            raise HostServicesError(self._write_failures[path])
        self._add_parents(path)
        self.files[path] = content

    def ensure_dir(self, path: str) -> None:
        path = self._norm(path)
        pending = self._dir_failures.get(path)
        if pending:
            raise HostServicesError(pending.popleft())
        if path in self.files:
            raise HostServicesError(f"EEXIST: file already exists, mkdir '{path}'")
        self._add_dir(path)

    def exists(self, path: str) -> bool:
        path = self._norm(path)
        return path in self.files or path in self.dirs

    def remove(self, path: str, recursive: bool = False) -> None:
        path = self._norm(path)
        self.files.pop(path, None)
        if path in self.dirs:
            children = self._children(path)
            if children and not recursive:
                raise HostServicesError(f"ENOTEMPTY: directory not empty, rmdir '{path}'")
            prefix = path.rstrip("/\\") + self._sep
            for p in [f for f in self.files if f.startswith(prefix)]:
                del self.files[p]
            self.dirs = {d for d in self.dirs if d != path and not d.startswith(prefix)}

    def list_dir(self, path: str) -> list[str]:
        path = self._norm(path)
        if not self._is_dir(path):
            raise HostServicesError(f"ENOENT: no such file or directory, scandir '{path}'")
        return sorted(self._children(path))

    # ── Network ─────────────────────────────────────────────────

    def http_get(self, url: str, timeout_ms: int = 10_000) -> str:
        self.http_log.append(url)
        prefix = "https://raw.githubusercontent.com/"
        if url.startswith(prefix):
            owner, repo, ref, *rest = url[len(prefix):].split("/")
            wanted = (owner.lower(), repo.lower())
            relative = "/".join(rest)
            for remote in self.remotes.values():
                slug = github_slug(remote.url)
                if not slug or (slug[0].lower(), slug[1].lower()) != wanted:
                    continue
                if ref in (remote.ref, "HEAD") and relative in remote.files:
                    return remote.files[relative]
        raise HttpError(url, 404, "Not Found")

    def tcp_connect(self, host: str, port: int, timeout_ms: int = 5_000) -> bool:
        return port in self.open_ports

    # ── Environment ─────────────────────────────────────────────

    def sleep(self, ms: int) -> None:
        self.sleeps.append(ms)

    def platform(self) -> Platform:
        return self._platform

    def home_dir(self) -> str:
        return self._home

    def env(self, name: str) -> str | None:
        return self._env.get(name)

    # ── Simulation ──────────────────────────────────────────────

    def _simulate(self, call: CommandCall) -> CommandResult:
        tokens = [call.cmd, *call.args]

        if "--version" in call.args:
            return CommandResult(stdout=f"{call.cmd} 1.0.0")

        if call.cmd == "git":
            return self._simulate_git(call.args)
        if call.cmd == "docker":
            return self._simulate_docker(call.args)
        if call.cmd in ("npm", "pnpm", "yarn") and call.args[:1] == ["install"]:
            if call.cwd:
                self._add_dir(self._join(self._norm(call.cwd), "node_modules"))
            return CommandResult(stdout=f"added 42 packages ({' '.join(tokens)})")

        return CommandResult(stdout="")

    def _simulate_git(self, args: list[str]) -> CommandResult:
        if args[:1] == ["clone"]:
            positional = [a for a in args[1:] if not a.startswith("-")]
            if "--branch" in args:
                branch = args[args.index("--branch") + 1]
                positional = [p for p in positional if p != branch]
            url, target = positional[0], self._norm(positional[1])
            if self._is_dir(target) and self._children(target):
                name = pure_path(self._platform, target).name
                return CommandResult(
                    exit_code=128,
                    stderr=f"fatal: destination path '{name}' already exists "
                           "and is not an empty directory.",
                )
            remote = self.remotes.get(normalize_remote(url))
            self._materialize(target, remote.files if remote else {})
            self.git_origins[target] = url
            return CommandResult(stderr=f"Cloning into '{target}'...")

        if args[:1] == ["-C"] and args[2:5] == ["remote", "get-url", "origin"]:
            path = self._norm(args[1])
            if path in self.git_origins:
                return CommandResult(stdout=self.git_origins[path])
            return CommandResult(exit_code=2, stderr="error: No such remote 'origin'")

        return CommandResult()

    def _simulate_docker(self, args: list[str]) -> CommandResult:
        sub = args[:1]
        if sub == ["build"]:
            self.images.add(args[args.index("-t") + 1])
            return CommandResult(stdout="Successfully built")
        if sub == ["run"]:
            name = args[args.index("--name") + 1]
            image = args[-1]
            if name in self.containers:
                return CommandResult(
                    exit_code=125,
                    stderr=f'docker: Error response from daemon: Conflict. '
                           f'The container name "/{name}" is already in use.',
                )
            if image not in self.images:
                return CommandResult(exit_code=125, stderr=f"Unable to find image '{image}' locally")
            self.containers[name] = image
            self.running.add(name)
            return CommandResult(stdout="0123456789ab")
        if sub == ["start"]:
            name = args[1]
            if name not in self.containers:
                return CommandResult(exit_code=1, stderr=f"Error: No such container: {name}")
            self.running.add(name)
            return CommandResult(stdout=name)
        if sub == ["ps"]:
            wanted = None
            if "--filter" in args:
                wanted = args[args.index("--filter") + 1].removeprefix("name=").strip("^$")
            names = sorted(n for n in self.running if wanted is None or n == wanted)
            return CommandResult(stdout="\n".join(names))
        if sub == ["inspect"]:
            name = args[-1]
            if name not in self.containers:
                return CommandResult(exit_code=1, stderr=f"Error: No such object: {name}")
            return CommandResult(stdout=self.containers[name])
        if args[:2] == ["image", "inspect"]:
            tag = args[-1]
            if tag not in self.images:
                return CommandResult(exit_code=1, stderr=f"Error: No such image: {tag}")
            return CommandResult(stdout=json.dumps([{"RepoTags": [tag]}]))
        return CommandResult()

    # ── Virtual filesystem helpers ──────────────────────────────

    @property
    def _sep(self) -> str:
        return "\\" if self._platform == "windows" else "/"

    def _norm(self, path: str) -> str:
        return str(pure_path(self._platform, path))

    def _join(self, *parts: str) -> str:
        return str(pure_path(self._platform, *parts))

    def _is_dir(self, path: str) -> bool:
        return path in self.dirs

    def _add_dir(self, path: str) -> None:
        p = pure_path(self._platform, path)
        for parent in [p, *p.parents]:
            self.dirs.add(str(parent))

    def _add_parents(self, path: str) -> None:
        self._add_dir(str(pure_path(self._platform, path).parent))

    def _children(self, path: str) -> set[str]:
        base = pure_path(self._platform, path)
        names: set[str] = set()
        for entry in [*self.files, *self.dirs]:
            p = pure_path(self._platform, entry)
            if p.parent == base and p != base:
                names.add(p.name)
        return names

    def _materialize(self, root: str, files: dict[str, str]) -> None:
        self._add_dir(root)
        self._add_dir(self._join(root, ".git"))
        for relative, content in files.items():
            self.set_file(self._join(root, relative), content)
