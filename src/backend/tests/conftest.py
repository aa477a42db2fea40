"""
Pytest fixtures for Message Pulse backend tests.
"""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("ENABLE_MAINTENANCE_JOBS", "false")


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
def store() -> Any:
    """Fresh in-memory document store per test."""
    from db.store import InMemoryDocumentStore

    return InMemoryDocumentStore()


async def _add_message(store: Any, message_id: str, rank: str, status: str = "active") -> Any:
    from models.documents import MessageDocument
    from repositories.message_repository import MessageRepository

    message = MessageDocument(
        id=message_id,
        slogan=f"Slogan for {message_id}",
        status=status,
        rank=rank,
    )
    return await MessageRepository(store).create(message)


@pytest.fixture
def add_message() -> Any:
    """Factory inserting a message into any store."""
    return _add_message


@pytest.fixture
async def seeded_messages(store: Any) -> dict[str, Any]:
    """Two active messages, one draft and one archived."""
    return {
        "m1": await _add_message(store, "m1", "h"),
        "m2": await _add_message(store, "m2", "p"),
        "draft": await _add_message(store, "draft", "t", status="draft"),
        "archived": await _add_message(store, "archived", "w", status="archived"),
    }


@pytest.fixture
async def app(store: Any) -> AsyncGenerator[Any, None]:
    """FastAPI application wired to the per-test in-memory store."""
    from api.deps import get_store
    from main import app as fastapi_app

    fastapi_app.dependency_overrides[get_store] = lambda: store
    yield fastapi_app
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"Origin": "http://localhost:3000"},
    ) as ac:
        yield ac


def make_token(
    sub: str,
    is_admin: bool = False,
    token_type: str = "access",
    expires_in: timedelta = timedelta(minutes=15),
) -> str:
    """Issue a token the way the authentication service does."""
    from jose import jwt

    from core.config import settings
    from core.security import TOKEN_AUDIENCE, TOKEN_ISSUER

    payload = {
        "sub": sub,
        "type": token_type,
        "is_admin": is_admin,
        "iss": TOKEN_ISSUER,
        "aud": TOKEN_AUDIENCE,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def token_factory() -> Any:
    """Expose token issuing to tests that need unusual tokens."""
    return make_token


@pytest.fixture
def user_headers() -> dict[str, str]:
    """Authentication headers for a regular voter."""
    return {"Authorization": f"Bearer {make_token('user-123')}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    """Authentication headers for an admin."""
    return {"Authorization": f"Bearer {make_token('admin-1', is_admin=True)}"}
