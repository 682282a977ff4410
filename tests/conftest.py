"""
Pytest configuration for the mcp-bare tests.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

import pytest

from mcp_bare.server import MCPServer

# Configure pytest-asyncio mode
pytest_plugins = ["pytest_asyncio"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )


class NotificationSink:
    """Collects (method, params, targets) triples passed to a delivery callback."""

    def __init__(self) -> None:
        self.received: list[tuple[str, dict[str, Any], frozenset[str] | None]] = []

    def __call__(
        self, method: str, params: dict[str, Any], targets: frozenset[str] | None
    ) -> None:
        self.received.append((method, params, targets))


@pytest.fixture
def sink_factory() -> type[NotificationSink]:
    """The NotificationSink class, for tests that need several sinks."""
    return NotificationSink


@pytest.fixture
def server() -> MCPServer:
    """A fresh server with default identity."""
    return MCPServer(name="test-server", version="1.2.3")


@pytest.fixture
def sink(server: MCPServer) -> NotificationSink:
    """A notification sink installed on the server fixture."""
    collector = NotificationSink()
    server.set_notification_callback(collector)
    return collector


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    """Leave the mcp_bare logger as found after each test."""
    yield
    logger = logging.getLogger("mcp_bare")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
