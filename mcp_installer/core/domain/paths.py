"""
Domain — platform-aware path and repository-name helpers (pure).

Paths are computed for the *target* platform reported by host services,
not for the interpreter's own OS, so a plan built for ``windows`` uses
backslashes even when the tests run on Linux.
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath, PureWindowsPath, PurePath

_WINDOWS = "windows"

_SCP_URL = re.compile(r"^[\w.-]+@([\w.-]+):(.+)$")


def pure_path(platform: str, *parts: str) -> PurePath:
    """Build a pure path of the right flavour for ``platform``."""
    cls = PureWindowsPath if platform == _WINDOWS else PurePosixPath
    return cls(*parts)


def join(platform: str, *parts: str) -> str:
    """Join path parts using the separator of ``platform``."""
    return str(pure_path(platform, *parts))


def is_under(platform: str, path: str, root: str) -> bool:
    """Whether ``path`` is ``root`` or lives below it."""
    p = pure_path(platform, path)
    r = pure_path(platform, root)
    return p == r or r in p.parents


def rebase(platform: str, path: str, old_root: str, new_root: str) -> str:
    """Move ``path`` from under ``old_root`` to the same place under ``new_root``.

    Paths outside ``old_root`` are returned unchanged.
    """
    if not is_under(platform, path, old_root):
        return path
    relative = pure_path(platform, path).relative_to(pure_path(platform, old_root))
    if str(relative) == ".":
        return new_root
    return str(pure_path(platform, new_root) / relative)


# ── Repository URLs ──────────────────────────────────────────────


def _url_path(url: str) -> str:
    """The path part of an https or scp-style git URL."""
    url = url.strip()
    m = _SCP_URL.match(url)
    if m:
        return m.group(2)
    url = re.sub(r"^[a-z+]+://", "", url, flags=re.IGNORECASE)
    _, _, path = url.partition("/")
    return path


def repo_name_from_url(url: str) -> str:
    """Last path segment of a git URL, without ``.git``.

    >>> repo_name_from_url("https://github.com/example/foo-mcp.git")
    'foo-mcp'
    """
    segments = [s for s in _url_path(url).split("/") if s]
    if not segments:
        return ""
    name = segments[-1]
    if name.endswith(".git"):
        name = name[:-4]
    return name


def owner_from_url(url: str) -> str | None:
    """Second-to-last path segment of a git URL (the owner), if any."""
    segments = [s for s in _url_path(url).split("/") if s]
    if len(segments) < 2:
        return None
    return segments[-2]


def github_slug(url: str) -> tuple[str, str] | None:
    """``(owner, repo)`` for GitHub URLs, None for any other host."""
    text = url.strip().lower()
    if "github.com" not in text:
        return None
    owner = owner_from_url(url)
    repo = repo_name_from_url(url)
    if not owner or not repo:
        return None
    return owner, repo


def normalize_remote(url: str) -> str:
    """Canonical form of a remote URL for equality checks.

    ``git@github.com:a/b.git``, ``https://github.com/a/b`` and
    ``https://GitHub.com/a/b/`` all normalize to ``github.com/a/b``.
    """
    text = url.strip()
    m = _SCP_URL.match(text)
    if m:
        host, path = m.group(1), m.group(2)
    else:
        text = re.sub(r"^[a-z+]+://", "", text, flags=re.IGNORECASE)
        text = re.sub(r"^[^@/]+@", "", text)
        host, _, path = text.partition("/")
    path = path.strip("/")
    if path.endswith(".git"):
        path = path[:-4]
    return f"{host.lower()}/{path}"


# ── Default locations ────────────────────────────────────────────


def default_install_root(platform: str) -> str:
    """Machine-wide root under which servers are installed."""
    if platform == _WINDOWS:
        return "C:\\MCP\\Servers"
    return "/opt/mcp/servers"


def default_install_path(platform: str, repo: str) -> str:
    """``C:\\MCP\\Servers\\<repo>`` on Windows, ``/opt/mcp/servers/<repo>`` otherwise."""
    return join(platform, default_install_root(platform), repo)


def user_install_root(platform: str, home: str) -> str:
    """User-owned fallback root used when the machine-wide root is not writable."""
    if platform == _WINDOWS:
        return join(platform, home, "MCP", "Servers")
    return join(platform, home, ".local", "mcp", "servers")


def host_config_path(platform: str, home: str, appdata: str | None = None) -> str:
    """Location of the host application's JSON configuration."""
    if platform == _WINDOWS:
        base = appdata or join(platform, home, "AppData", "Roaming")
        return join(platform, base, "Claude", "config.json")
    if platform == "macos":
        return join(platform, home, "Library", "Application Support", "Claude", "config.json")
    return join(platform, home, ".config", "claude", "config.json")


def registry_path(platform: str, home: str, appdata: str | None = None) -> str:
    """Location of the installation registry file."""
    if platform == _WINDOWS:
        base = appdata or join(platform, home, "AppData", "Roaming")
        return join(platform, base, "mcp-installer", "registry.json")
    if platform == "macos":
        return join(
            platform, home, "Library", "Application Support", "mcp-installer", "registry.json"
        )
    return join(platform, home, ".local", "share", "mcp-installer", "registry.json")
