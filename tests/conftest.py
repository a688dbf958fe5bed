"""Pytest configuration and shared fixtures"""

import socket
from typing import AsyncGenerator, Generator

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.api.main import build_server, create_app
from src.plugins.base import AppContext, ServerBuilder


@pytest.fixture
def test_app() -> FastAPI:
    """Create a test FastAPI application"""
    return create_app()


@pytest.fixture
def builder(test_app) -> ServerBuilder:
    """Builder with the default plugins queued"""
    return build_server(test_app)


@pytest.fixture
async def ready_context(builder) -> AsyncGenerator[AppContext, None]:
    """Context after every default plugin has been registered"""
    context = await builder.ready()
    yield context
    await context.close()


@pytest.fixture
async def async_client(ready_context) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client for the registered application"""
    transport = ASGITransport(app=ready_context.app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def occupied_port() -> Generator[int, None, None]:
    """A localhost port that already has a listener on it"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(1)
    yield sock.getsockname()[1]
    sock.close()


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Mock environment variables for testing"""
    env_vars = {
        "ENVIRONMENT": "testing",
        "DEBUG": "true",
        "LOG_LEVEL": "debug",
        "MONGODB_URL": "mongodb://elsewhere:27018/other_database",
    }

    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)

    return env_vars
