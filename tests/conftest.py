"""Shared test fixtures."""

import io
import socket

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from hping.config import Settings
from hping.rendering import make_console


@pytest.fixture
def settings_factory():
    def make(**overrides) -> Settings:
        values = {
            "interval": 0.01,
            "timeout": 1000,
            "max_run_time": 0.05,
            "use_colors": False,
            "stats_for_last": 10,
            "show_stats_for_last": 10,
        }
        values.update(overrides)
        return Settings(**values)

    return make


@pytest.fixture
def console_output():
    """A (console, buffer) pair; the console writes plain text into the buffer."""
    buffer = io.StringIO()
    return make_console(file=buffer), buffer


@pytest.fixture
def unused_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def hping_home(tmp_path, monkeypatch):
    home = tmp_path / ".hping"
    monkeypatch.setenv("HPING_HOME_DIR", str(home))
    return home


@pytest_asyncio.fixture
async def http_server():
    """Factory starting a local aiohttp server that routes every request to `handler`."""
    servers: list[TestServer] = []

    async def start(handler) -> str:
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", handler)
        server = TestServer(app, host="127.0.0.1")
        await server.start_server()
        servers.append(server)
        return str(server.make_url("/"))

    yield start

    for server in servers:
        await server.close()
