"""
Pytest configuration for the todo service tests.

DATABASE_URL must be set before any todo_app imports because
todo_app/database.py builds the engine at module level.
"""

import os
import sys
from pathlib import Path

# --- Environment setup (before ANY todo_app imports) ---
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

# Add project root so `from todo_app.xxx import ...` works without installing
sys.path.insert(0, str(Path(__file__).parent.parent))
# Add tests dir so `from factories import ...` works
sys.path.insert(0, str(Path(__file__).parent))

import httpx
import pytest

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from todo_app.config import get_settings
from todo_app.database import Base, get_db
from todo_app.main import app
from todo_app.client import TodoApiClient

API = get_settings().api_prefix

# ---------------------------------------------------------------------------
# Test engine: SQLite in-memory with StaticPool so all threads/connections
# share the same database (required for TestClient which runs in a thread).
# ---------------------------------------------------------------------------
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a fresh SQLAlchemy session for CRUD tests."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def override_db():
    def override_get_db():
        session = TestSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def client(override_db):
    """FastAPI TestClient with database dependency override."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth_client(client):
    """TestClient holding a logged-in session for user alice."""
    client.post(f"{API}/register", json={"username": "alice", "password": "pw123"})
    resp = client.post(f"{API}/login", json={"username": "alice", "password": "pw123"})
    assert resp.status_code == 200
    return client


@pytest.fixture
async def api(override_db):
    """Async API client talking to the app in-process over ASGI."""
    transport = httpx.ASGITransport(app=app)
    async with TodoApiClient(
        client=httpx.AsyncClient(transport=transport, base_url=f"http://testserver{API}")
    ) as api_client:
        yield api_client


@pytest.fixture
async def logged_in_api(api):
    await api.register("alice", "pw123")
    await api.login("alice", "pw123")
    return api
