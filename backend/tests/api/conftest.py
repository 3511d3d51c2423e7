"""Shared fixtures for API tests."""
from collections.abc import AsyncGenerator, Generator
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from api.main import app
from core.auth import ACCESS_TOKEN_COOKIE
from core.config import get_settings
from core.security import create_access_token
from db.session import get_async_session
from models.user import User
from services.url_scraper import PageMetadata

# Constant for non-existent entity ID
FAKE_UUID = "00000000-0000-0000-0000-000000000000"

FETCHED_METADATA = PageMetadata(
    title="Fetched Title",
    description="Fetched description",
    image="https://example.com/og.png",
    site_name="Example",
    type="website",
)


@pytest.fixture(autouse=True)
def mock_fetch_metadata() -> Generator[AsyncMock]:
    """
    Auto-mock metadata fetching for all API tests to avoid real network calls.

    Returns FETCHED_METADATA by default. Tests that need a failed fetch can set
    `mock_fetch_metadata.return_value = PageMetadata()`.
    """
    with patch(
        "services.bookmark_service.fetch_metadata",
        new_callable=AsyncMock,
        return_value=FETCHED_METADATA,
    ) as mock:
        yield mock


@asynccontextmanager
async def create_user_client(
    db_session: AsyncSession,
    user: User,
) -> AsyncGenerator[AsyncClient]:
    """
    Create an AsyncClient authenticated as `user` via the access token cookie.

    Overrides the session dependency so requests share the test transaction.
    Cleans up dependency overrides on exit.
    """
    get_settings.cache_clear()
    token = create_access_token(user.id, get_settings())

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_async_session

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            cookies={ACCESS_TOKEN_COOKIE: token},
        ) as user_client:
            yield user_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
async def client(
    db_session: AsyncSession,
    test_user: User,
) -> AsyncGenerator[AsyncClient]:
    """Client authenticated as test_user."""
    async with create_user_client(db_session, test_user) as test_client:
        yield test_client


@pytest.fixture
async def other_client(
    client: AsyncClient,  # noqa: ARG001 - installs the session override
    other_user: User,
) -> AsyncGenerator[AsyncClient]:
    """Client authenticated as other_user, for ownership isolation tests."""
    token = create_access_token(other_user.id, get_settings())
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        cookies={ACCESS_TOKEN_COOKIE: token},
    ) as user_client:
        yield user_client
