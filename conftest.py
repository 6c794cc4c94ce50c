from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from libs.common.config import get_settings
from services.checkout_service.app.main import app

# Clear cached settings so tests never pick up a developer's cached instance
get_settings.cache_clear()
settings = get_settings()


@pytest_asyncio.fixture
async def client(checkout_sessions, geo_directory, address_book) -> AsyncGenerator[AsyncClient, None]:
    """
    Yield an AsyncClient bound to the checkout app with collaborators overridden.

    ``checkout_sessions``, ``geo_directory`` and ``address_book`` come from
    tests/conftest.py and are backed by in-memory fakes, so no request leaves
    the process.
    """
    from services.checkout_service.routers.checkout import get_address_book
    from services.checkout_service.services.address_resolver import get_geo_directory
    from services.checkout_service.services.sessions import get_sessions

    app.dependency_overrides[get_sessions] = lambda: checkout_sessions
    app.dependency_overrides[get_geo_directory] = lambda: geo_directory
    app.dependency_overrides[get_address_book] = lambda: address_book

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    """
    Headers carrying a bearer token; tests override ``get_optional_user``
    rather than minting real JWTs.
    """
    return {"Authorization": "Bearer mock-token"}
