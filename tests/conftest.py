"""
Pytest configuration and shared fixtures.

Every test gets its own in-memory SQLite database.
"""

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from matchchat.auth import create_access_token
from matchchat.database import build_engine, build_session_factory, create_tables
from matchchat.main import create_app
from matchchat.repositories.message_repository import MessageStore

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def store():
    engine = build_engine(TEST_DATABASE_URL, echo=False)
    await create_tables(engine)
    yield MessageStore(build_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def client():
    """Test client with a fresh database, lifespan included."""
    with TestClient(create_app(TEST_DATABASE_URL)) as test_client:
        yield test_client


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


def ws_url(user_id: str) -> str:
    return f"/api/v1/ws/chat?token={create_access_token(user_id)}"
