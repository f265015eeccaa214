"""Adapters — host-services implementations.

Public re-exports for convenient access.
"""

from mcp_installer.adapters.base import (
    CommandResult,
    CommandTimeoutError,
    HostServices,
    HostServicesError,
    HttpError,
    RunOptions,
)
from mcp_installer.adapters.local import LocalHostServices
from mcp_installer.adapters.mock import MockHostServices

__all__ = [
    "CommandResult",
    "CommandTimeoutError",
    "HostServices",
    "HostServicesError",
    "HttpError",
    "LocalHostServices",
    "MockHostServices",
    "RunOptions",
]
