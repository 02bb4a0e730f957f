import asyncio
import os
from datetime import datetime, timedelta, timezone

# Settings are read at import time; fix them before the app is imported
os.environ["STORE_BACKEND"] = "memory"
os.environ["SEED_DEMO_DATA"] = "0"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "0"
os.environ["JWT_SECRET"] = "test-secret"

import pytest
from fastapi.testclient import TestClient

from crm_admin.core import timeutils
from crm_admin.core.store.dependencies import get_store
from crm_admin.core.store.memory import MemoryStore
from crm_admin.core.store.sql import SQLStore
from crm_admin.features.auth.tokens import TokenRegistry, get_token_registry
from crm_admin.features.members.fixtures import seed_demo_data
from crm_admin.features.members.service import MemberService
from crm_admin.features.versions.fixtures import seed_release_data
from crm_admin.features.versions.service import VersionService
from crm_admin.main import app


ADMIN = ("admin@company.com", "admin123")
DEPT_ADMIN = ("lisi@company.com", "password123")
DEVELOPER = ("zhangsan@company.com", "password123")


@pytest.fixture(params=["memory", "sql"])
async def store(request):
    """Empty store, once per backend."""
    if request.param == "memory":
        store = MemoryStore()
    else:
        store = await SQLStore.connect("sqlite+aiosqlite://")
    yield store
    await store.close()


@pytest.fixture
async def seeded(store):
    await seed_demo_data(store)
    return store


@pytest.fixture
async def service(seeded):
    return MemberService(seeded)


@pytest.fixture
async def releases(store):
    """Version service over the demo versions and deployments, once per backend."""
    await seed_release_data(store)
    return VersionService(store)


@pytest.fixture
async def memory_service():
    store = MemoryStore()
    await seed_demo_data(store)
    return MemberService(store)


@pytest.fixture
def clock(monkeypatch):
    """Patch utcnow to advance one second per call."""
    state = {"now": datetime(2024, 1, 1, tzinfo=timezone.utc)}

    def tick():
        state["now"] += timedelta(seconds=1)
        return state["now"]

    monkeypatch.setattr(timeutils, "utcnow", tick)
    return state


@pytest.fixture
def client():
    store = MemoryStore()
    asyncio.run(seed_demo_data(store))
    asyncio.run(seed_release_data(store))
    registry = TokenRegistry()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_token_registry] = lambda: registry
    with TestClient(app) as test_client:
        test_client.store = store
        test_client.registry = registry
        yield test_client
    app.dependency_overrides.clear()


def login(client: TestClient, username: str, password: str) -> dict:
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    token = response.json()["data"]["token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def login_as(client):
    """Log in through the API and return the Authorization header."""
    return lambda username, password: login(client, username, password)


@pytest.fixture
def admin_headers(client):
    return login(client, *ADMIN)


@pytest.fixture
def dept_admin_headers(client):
    return login(client, *DEPT_ADMIN)


@pytest.fixture
def developer_headers(client):
    return login(client, *DEVELOPER)
