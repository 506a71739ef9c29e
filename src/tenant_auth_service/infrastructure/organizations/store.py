"""Organization Storage

Redis persistence for organization (tenant) records.

Storage Schema:
- tenant:org:{organization_id} -> {organization_json}
- tenant:org_slug:{slug} -> {organization_id}
"""

import json
import logging
from typing import Optional

from redis.asyncio import Redis

from tenant_auth_service.domain.models import Organization

logger = logging.getLogger(__name__)


class OrganizationStore:
    """Redis-backed organization records"""

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

        # Redis key patterns
        self.org_key_pattern = "tenant:org:{}"
        self.slug_key_pattern = "tenant:org_slug:{}"

    async def get(self, organization_id: str) -> Optional[Organization]:
        if not organization_id:
            return None
        data = await self.redis.get(self.org_key_pattern.format(organization_id))
        if not data:
            return None
        return Organization.from_dict(json.loads(data))

    async def get_by_slug(self, slug: str) -> Optional[Organization]:
        organization_id = await self.redis.get(self.slug_key_pattern.format(slug.lower()))
        return await self.get(organization_id) if organization_id else None

    async def save(self, organization: Organization) -> Organization:
        await self.redis.set(
            self.org_key_pattern.format(organization.organization_id),
            json.dumps(organization.to_dict()),
        )
        if organization.slug:
            await self.redis.set(
                self.slug_key_pattern.format(organization.slug.lower()),
                organization.organization_id,
            )
        logger.debug(f"Saved organization {organization.organization_id}")
        return organization
