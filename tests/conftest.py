"""
Shared test fixtures and configuration.
"""

import json

import pytest

from mcp_installer.adapters.mock import MockHostServices
from mcp_installer.core.config.loader import InstallerSettings
from mcp_installer.core.services.event_bus import EventBus
from mcp_installer.core.use_cases.install import Installation

NODE_FILES = {
    "package.json": json.dumps({
        "name": "foo-mcp",
        "dependencies": {"@modelcontextprotocol/sdk": "^1.0.0", "express": "^4.18.0"},
        "scripts": {"start": "node index.js"},
    }),
    "config.json": json.dumps({"name": "foo"}),
    "index.js": "console.log('hi')\n",
}

DOCKER_FILES = {
    "Dockerfile": "FROM node:20\nCOPY . /app\nCMD [\"node\", \"index.js\"]\n",
    "package.json": json.dumps({"name": "foo-mcp"}),
}

PYTHON_FILES = {
    "requirements.txt": "mcp>=1.0\nfastapi==0.110.0  # api\n",
    "server.py": "print('hi')\n",
}


class EventLog:
    """Captures every event published on a bus."""

    def __init__(self, bus: EventBus):
        self.events: list[dict] = []
        bus.add_listener(self.events.append)

    def of(self, event_type: str) -> list[dict]:
        return [e for e in self.events if e["type"] == event_type]

    def logs(self, level: str | None = None) -> list[str]:
        return [
            e["data"]["message"] for e in self.of("log")
            if level is None or e["data"]["level"] == level
        ]


@pytest.fixture
def host() -> MockHostServices:
    """A fresh in-memory Linux host."""
    return MockHostServices()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def events(bus: EventBus) -> EventLog:
    return EventLog(bus)


@pytest.fixture
def settings() -> InstallerSettings:
    """Settings with pacing disabled so sleeps only come from recovery."""
    return InstallerSettings(pacing_ms=0)


@pytest.fixture
def installation(host, settings, bus) -> Installation:
    return Installation(host, settings, bus=bus)


@pytest.fixture
def node_repo(host) -> str:
    """A JavaScript server on GitHub; returns its URL."""
    url = "https://github.com/example/foo-mcp"
    host.add_remote(url, NODE_FILES)
    return url


@pytest.fixture
def docker_repo(host) -> str:
    """A server shipping a Dockerfile; returns its URL."""
    url = "https://github.com/example/foo-mcp"
    host.add_remote(url, DOCKER_FILES)
    return url


@pytest.fixture
def python_repo(host) -> str:
    """A Python server with requirements.txt; returns its URL."""
    url = "https://github.com/example/py-mcp"
    host.add_remote(url, PYTHON_FILES)
    return url
