"""Fixtures running the API app in-process over a seeded control plane."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from queue_ops.api import create_app


@pytest.fixture
def app(seeded_plane):
    return create_app(control_plane=seeded_plane)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the app lifespan started."""
    async with LifespanManager(app) as manager:
        async with AsyncClient(
            transport=ASGITransport(app=manager.app), base_url="http://test"
        ) as http:
            yield http


async def trip(breaker, failures: int = 3) -> None:
    """Open ``breaker`` by failing ``failures`` calls through it."""

    async def boom() -> None:
        raise RuntimeError("backend down")

    for _ in range(failures):
        with pytest.raises(RuntimeError):
            await breaker.execute(boom)


@pytest.fixture
def trip_circuit():
    return trip
