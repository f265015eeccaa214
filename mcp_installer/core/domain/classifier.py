"""
Domain — Error classification (pure).

Maps a raw failure (message, exit code) onto the closed ``ErrorKind`` set.
Matching is a case-insensitive pattern search over the message; the first
matching row wins, in table order. No I/O, never raises.
"""

from __future__ import annotations

import re

from mcp_installer.core.models.outcome import ErrorKind

# Order matters: first match wins.
CLASSIFICATION_TABLE: list[tuple[ErrorKind, tuple[str, ...]]] = [
    (ErrorKind.MISSING, (
        r"enoent",
        r"not found",
        r"no such file",
    )),
    (ErrorKind.PERMISSION, (
        r"permission",
        r"eacces",
        r"access is denied",
    )),
    (ErrorKind.EXISTS, (
        r"already exists",
        r"eexist",
        r"destination path .* exists",
        r"already in use",
    )),
    (ErrorKind.NETWORK, (
        r"network",
        r"timeout",
        r"timed out",
        r"econnrefused",
        r"etimedout",
        r"getaddrinfo",
        r"could not resolve",
        r"unable to access",
        r"connection reset",
    )),
    (ErrorKind.DISK, (
        r"disk",
        r"no space",
        r"enospc",
    )),
]

# Shell conventions, consulted only when no message pattern matched
_EXIT_CODE_KINDS: dict[int, ErrorKind] = {
    127: ErrorKind.MISSING,      # command not found
    126: ErrorKind.PERMISSION,   # found but not executable
}

_COMPILED = [
    (kind, [re.compile(p, re.IGNORECASE) for p in patterns])
    for kind, patterns in CLASSIFICATION_TABLE
]


def classify(message: str | None, exit_code: int | None = None) -> ErrorKind:
    """Classify a failure.

    Args:
        message: Raw error text (stderr, exception message, ...).
        exit_code: Process exit code, if the failure came from a command.

    Returns:
        The first matching ``ErrorKind``; ``UNKNOWN`` when nothing matches.

    Examples:
        >>> classify("fatal: destination path 'foo' already exists")
        <ErrorKind.EXISTS: 'exists'>
        >>> classify("fatal: unable to access: Could not resolve host")
        <ErrorKind.NETWORK: 'network'>
    """
    text = message or ""
    for kind, patterns in _COMPILED:
        if any(p.search(text) for p in patterns):
            return kind

    if exit_code is not None:
        return _EXIT_CODE_KINDS.get(exit_code, ErrorKind.UNKNOWN)

    return ErrorKind.UNKNOWN


if {kind for kind, _ in CLASSIFICATION_TABLE} | {ErrorKind.UNKNOWN} != set(ErrorKind):
    raise RuntimeError("classification table must cover every ErrorKind")
