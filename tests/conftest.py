"""
Shared fixtures: clean scenario environment, metric sink, and an in-process
reference target served by uvicorn.
"""

import asyncio
import socket

import pytest
import pytest_asyncio
import uvicorn

from wsload.metrics.sink import MetricSink
from wsload.models.config import ScenarioConfig
from wsload.target.app import create_app

TICK_INTERVAL = 0.2


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture(autouse=True)
def clean_scenario_env(monkeypatch):
    """Keep the developer's shell from leaking into ScenarioConfig."""
    for name in ScenarioConfig.model_fields:
        monkeypatch.delenv(name.upper(), raising=False)
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def sink():
    return MetricSink()


@pytest.fixture
def refused_url():
    """A ws:// URL on a port nobody listens on."""
    return f"ws://127.0.0.1:{free_port()}/ws"


@pytest_asyncio.fixture
async def target_url():
    """Start the reference target for one test and yield its WebSocket URL."""
    port = free_port()
    config = uvicorn.Config(
        create_app(tick_interval=TICK_INTERVAL),
        host="127.0.0.1",
        port=port,
        log_level="warning",
    )
    server = uvicorn.Server(config)
    task = asyncio.create_task(server.serve())

    for _ in range(500):
        if server.started:
            break
        await asyncio.sleep(0.01)
    assert server.started, "target server did not start"

    yield f"ws://127.0.0.1:{port}/ws"

    server.should_exit = True
    await asyncio.wait_for(task, timeout=10)
