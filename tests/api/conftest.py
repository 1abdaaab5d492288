"""Fixtures for API tests."""
import time
from collections.abc import AsyncGenerator, Callable

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.main import create_app, install_services
from core.change_feed import LocalChangeFeed
from core.config import Settings, get_settings


@pytest.fixture
async def client(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncClient]:
    """
    Test client with the service graph installed directly.

    ASGITransport does not run the lifespan, so services are attached to app.state
    here instead of in startup.
    """
    app = create_app()
    install_services(app, settings, session_factory, LocalChangeFeed())
    app.dependency_overrides[get_settings] = lambda: settings

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(settings: Settings) -> Callable[..., dict[str, str]]:
    """Build an Authorization header for a subject."""

    def _auth_headers(
        subject_id: str,
        authenticated_ago: int = 60,
        expires_in: int = 3600,
        secret: str | None = None,
    ) -> dict[str, str]:
        now = int(time.time())
        token = jwt.encode(
            {
                "sub": subject_id,
                "iat": now,
                "auth_time": now - authenticated_ago,
                "exp": now + expires_in,
            },
            secret or settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
