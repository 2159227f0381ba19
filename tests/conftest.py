"""Pytest configuration and fixtures."""
from datetime import datetime

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from hourbook.clock import FrozenClock
from hourbook.database import get_repository
from hourbook.main import app
from hourbook.repositories.memory import InMemoryTimerRepository


@pytest.fixture
def repository():
    """Fresh in-memory repository."""
    return InMemoryTimerRepository()


@pytest.fixture
def clock():
    """Clock frozen at a fixed point; tests move it with clock.advance()."""
    return FrozenClock(datetime(2025, 9, 1, 9, 0, 0))


@pytest_asyncio.fixture
async def app_client(repository):
    """
    Create a test client backed by an in-memory repository.

    This fixture:
    - Overrides the repository dependency
    - Yields an async HTTP client for testing
    - Removes the override after each test
    """
    app.dependency_overrides[get_repository] = lambda: repository

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client_id(repository):
    """A stored client that timers and entries can reference."""
    record = await repository.create_record("clients", {"name": "Acme Corp", "hourly_rate": 50.0})
    return record["_id"]


@pytest_asyncio.fixture
async def other_client_id(repository):
    """A second stored client."""
    record = await repository.create_record("clients", {"name": "Globex", "hourly_rate": 80.0})
    return record["_id"]
