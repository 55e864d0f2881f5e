# tests/conftest.py
import os

# no background expiry loop and no Mongo during tests
os.environ.setdefault("RUN_EXPIRY_JOB", "false")
os.environ.setdefault("USE_MONGO", "false")

import pytest
from httpx import AsyncClient, ASGITransport
from asgi_lifespan import LifespanManager

from hopelink.deps import get_repo
from hopelink.main import app
from hopelink.repos.inmemory import InMemoryRepo

@pytest.fixture(scope="session")
def anyio_backend():
    # keep AnyIO on asyncio for the whole test session
    return "asyncio"

@pytest.fixture
def repo():
    return InMemoryRepo()

@pytest.fixture
async def test_client(repo):
    app.dependency_overrides[get_repo] = lambda: repo
    async with LifespanManager(app):
        transport = ASGITransport(app=app, raise_app_exceptions=True)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    app.dependency_overrides.clear()
