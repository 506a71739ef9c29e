"""
Pytest configuration and fixtures for tenant authentication tests.

Provides fixtures for:
- In-memory async Redis
- Settings
- Wired tenant auth service and its collaborators
- Test organizations and registered users
"""

import fnmatch
from typing import Dict, List, Optional, Set

import pytest
import pytest_asyncio

from tenant_auth_service.config.settings import Settings
from tenant_auth_service.domain.services.tenant_auth_service import build_tenant_auth_service

PASSWORD = "Sup3rSecret!"


class FakeRedis:
    """In-memory stand-in for redis.asyncio.Redis (decode_responses=True)

    Covers the commands used by the stores and collaborators. TTLs are
    recorded but never enforced.
    """

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.sets: Dict[str, Set[str]] = {}
        self.lists: Dict[str, List[str]] = {}
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.ttls: Dict[str, int] = {}

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def set(self, key: str, value, nx: bool = False) -> Optional[bool]:
        if nx and key in self.values:
            return None
        self.values[key] = str(value)
        self.ttls.pop(key, None)
        return True

    async def setex(self, key: str, ttl: int, value) -> bool:
        self.values[key] = str(value)
        self.ttls[key] = ttl
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            for store in (self.values, self.sets, self.lists, self.hashes):
                if key in store:
                    del store[key]
                    removed += 1
            self.ttls.pop(key, None)
        return removed

    async def exists(self, *keys: str) -> int:
        stores = (self.values, self.sets, self.lists, self.hashes)
        return sum(1 for key in keys if any(key in store for store in stores))

    async def expire(self, key: str, ttl: int) -> bool:
        self.ttls[key] = ttl
        return True

    async def sadd(self, key: str, *members) -> int:
        bucket = self.sets.setdefault(key, set())
        before = len(bucket)
        bucket.update(str(m) for m in members)
        return len(bucket) - before

    async def srem(self, key: str, *members) -> int:
        bucket = self.sets.get(key, set())
        removed = len([m for m in members if m in bucket])
        bucket.difference_update(members)
        return removed

    async def smembers(self, key: str) -> Set[str]:
        return set(self.sets.get(key, set()))

    async def scard(self, key: str) -> int:
        return len(self.sets.get(key, set()))

    async def rpush(self, key: str, *values) -> int:
        bucket = self.lists.setdefault(key, [])
        bucket.extend(str(v) for v in values)
        return len(bucket)

    async def lrange(self, key: str, start: int, end: int) -> List[str]:
        bucket = self.lists.get(key, [])
        end = len(bucket) if end == -1 else end + 1
        return bucket[start:end]

    async def hset(self, key: str, field: str, value) -> int:
        bucket = self.hashes.setdefault(key, {})
        added = 0 if field in bucket else 1
        bucket[field] = str(value)
        return added

    async def hincrby(self, key: str, field: str, amount: int = 1) -> int:
        bucket = self.hashes.setdefault(key, {})
        bucket[field] = str(int(bucket.get(field, 0)) + amount)
        return int(bucket[field])

    async def hgetall(self, key: str) -> Dict[str, str]:
        return dict(self.hashes.get(key, {}))

    async def aclose(self) -> None:
        pass

    def keys_matching(self, pattern: str) -> List[str]:
        return [key for key in self.values if fnmatch.fnmatch(key, pattern)]


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def settings() -> Settings:
    """Production-like settings without email verification"""
    return Settings(
        environment="test",
        jwt_secret_key="test-secret-key",
        tenant_require_email_verification=False,
        platform_url="https://app.example.com",
    )


@pytest.fixture
def service(fake_redis, settings):
    """TenantAuthService wired onto the in-memory Redis"""
    return build_tenant_auth_service(fake_redis, settings)


@pytest_asyncio.fixture
async def organization(service):
    """Active professional-tier organization restricted to acme.com"""
    return await service.organization_service.create_organization(
        name="Acme",
        organization_id="org-1",
        allowed_domains=["acme.com"],
        subscription={"tier": "professional", "status": "active"},
        contact={"support_email": "help@acme.com"},
    )


@pytest_asyncio.fixture
async def other_organization(service):
    """Second organization with no domain restriction"""
    return await service.organization_service.create_organization(
        name="Globex",
        organization_id="org-2",
        subscription={"tier": "enterprise", "status": "active"},
        features={"api_access": {"enabled": True}},
    )


@pytest_asyncio.fixture
async def registered_user(service, organization):
    """alice@acme.com registered into org-1, side effects drained"""
    result = await service.register_tenant_user(
        {
            "email": "alice@acme.com",
            "password": PASSWORD,
            "first_name": "Alice",
            "last_name": "Anders",
            "job_title": "Engineer",
        },
        organization.organization_id,
        {"ip": "10.0.0.1", "user_agent": "pytest"},
    )
    await service.drain()
    return result.user
