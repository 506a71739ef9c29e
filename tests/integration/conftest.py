"""
Fixtures for HTTP-level tests.

The app runs through httpx's ASGITransport (no lifespan, no real Redis);
the tenant auth service dependency is overridden with the in-memory one.
"""

from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tenant_auth_service.domain.services.tenant_auth_service import get_tenant_auth_service
from tenant_auth_service.main import app


@pytest_asyncio.fixture
async def client(service, organization, other_organization) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with the service dependency overridden."""
    app.dependency_overrides[get_tenant_auth_service] = lambda: service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await service.drain()
    app.dependency_overrides.clear()
