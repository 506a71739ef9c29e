"""Onboarding Service

Creates and tracks per-user onboarding checklists.

Storage Schema:
- tenant:onboarding:{organization_id}:{user_id} -> {onboarding_json}
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

ONBOARDING_STEPS = {
    "tenant_user": ["verify_email", "complete_profile", "join_team", "platform_tour"],
}


class OnboardingService:
    """Onboarding checklist records"""

    def __init__(self, redis_client: Redis):
        self.redis = redis_client
        self.onboarding_key_pattern = "tenant:onboarding:{}:{}"

    async def create_onboarding(self, user_id: str, organization_id: str, type: str = "tenant_user") -> Dict[str, Any]:
        """Create the onboarding record for a new member"""
        steps = ONBOARDING_STEPS.get(type, ONBOARDING_STEPS["tenant_user"])
        onboarding = {
            "onboarding_id": str(uuid.uuid4()),
            "user_id": user_id,
            "organization_id": organization_id,
            "type": type,
            "steps": [{"step": step, "completed": False} for step in steps],
            "progress": 0,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        await self.redis.set(self.onboarding_key_pattern.format(organization_id, user_id), json.dumps(onboarding))

        logger.info(f"Initialized onboarding for user {user_id} in organization {organization_id}")
        return onboarding

    async def get_onboarding(self, user_id: str, organization_id: str) -> Optional[Dict[str, Any]]:
        data = await self.redis.get(self.onboarding_key_pattern.format(organization_id, user_id))
        return json.loads(data) if data else None
