"""
Pytest configuration for the Assuan client tests.
"""

from __future__ import annotations

import asyncio
import contextlib
import tempfile
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from pathlib import Path

import pytest

# Configure pytest-asyncio mode
pytest_plugins = ["pytest_asyncio"]

AgentHandler = Callable[[asyncio.StreamReader, asyncio.StreamWriter], Awaitable[None]]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )


@pytest.fixture
def socket_path() -> Iterator[str]:
    """A socket path in a short temporary directory (AF_UNIX paths are limited)."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield str(Path(tmpdir) / "S.agent")


@pytest.fixture
async def start_agent(
    socket_path: str,
) -> AsyncIterator[Callable[[AgentHandler], Awaitable[asyncio.Server]]]:
    """Start an in-process mock agent on socket_path with the given handler."""
    servers: list[asyncio.Server] = []

    async def _start(handler: AgentHandler) -> asyncio.Server:
        server = await asyncio.start_unix_server(handler, path=socket_path)
        servers.append(server)
        return server

    yield _start

    for server in servers:
        server.close()
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(server.wait_closed(), timeout=1.0)
