"""Tenant User Service

Tenant-scoped user profiles, preferences and login activity.

Storage Schema:
- tenant:profile:{organization_id}:{user_id} -> {profile_json}
- tenant:preferences:{organization_id}:{user_id} -> {preferences_json}

Login activity lives in the identity store (tenant:user_activity:{user_id}).
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from redis.asyncio import Redis

from tenant_auth_service.domain.errors import ErrorCode, NotFoundError
from tenant_auth_service.domain.models import TenantUser
from tenant_auth_service.infrastructure.auth.user_store import TenantUserStore

logger = logging.getLogger(__name__)

# Fields counted towards profile completion
PROFILE_FIELDS = ("first_name", "last_name", "phone_number", "job_title")

DEFAULT_PREFERENCES = {
    "language": "en",
    "timezone": "UTC",
    "notifications": {"email": True, "in_app": True},
}


class TenantUserService:
    """Profile and activity operations for tenant users"""

    def __init__(self, redis_client: Redis, user_store: TenantUserStore):
        self.redis = redis_client
        self.user_store = user_store

        # Redis key patterns
        self.profile_key_pattern = "tenant:profile:{}:{}"
        self.preferences_key_pattern = "tenant:preferences:{}:{}"

    async def create_tenant_user_profile(
        self,
        user_id: str,
        organization_id: str,
        registration_source: Optional[str] = None,
        invited_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create the tenant-scoped profile record for a new member"""
        profile = {
            "user_id": user_id,
            "organization_id": organization_id,
            "registration_source": registration_source or "direct",
            "invited_by": invited_by,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        await self.redis.set(self.profile_key_pattern.format(organization_id, user_id), json.dumps(profile))

        logger.info(f"Created tenant profile for user {user_id} in organization {organization_id}")
        return profile

    async def get_tenant_user_profile(self, user_id: str, organization_id: str) -> Dict[str, Any]:
        """Get the tenant profile with completion status

        Raises:
            NotFoundError: If the profile or the user does not exist
        """
        data = await self.redis.get(self.profile_key_pattern.format(organization_id, user_id))
        user = await self.user_store.get_user(user_id)
        if not data or not user:
            raise NotFoundError("Tenant user profile not found", ErrorCode.USER_NOT_FOUND)

        profile = json.loads(data)
        missing_fields = self._missing_profile_fields(user, organization_id)
        filled = len(PROFILE_FIELDS) - len(missing_fields)

        profile["missing_fields"] = missing_fields
        profile["completion_percentage"] = round(100 * filled / len(PROFILE_FIELDS))
        return profile

    async def get_user_preferences(self, user_id: str, organization_id: str) -> Dict[str, Any]:
        """Get organization-scoped preferences merged over the defaults"""
        data = await self.redis.get(self.preferences_key_pattern.format(organization_id, user_id))
        preferences = json.loads(json.dumps(DEFAULT_PREFERENCES))
        if data:
            preferences.update(json.loads(data))
        return preferences

    async def update_user_preferences(
        self, user_id: str, organization_id: str, preferences: Dict[str, Any]
    ) -> Dict[str, Any]:
        current = await self.get_user_preferences(user_id, organization_id)
        current.update(preferences)
        await self.redis.set(self.preferences_key_pattern.format(organization_id, user_id), json.dumps(current))
        return current

    async def update_last_login(self, user_id: str) -> int:
        """Stamp last login time and bump the login counter

        Returns:
            Login count after this login

        Raises:
            NotFoundError: If the user does not exist
        """
        await self.get_user_by_id(user_id)
        login_count = await self.user_store.record_login(user_id, datetime.now(timezone.utc))

        logger.debug(f"Updated last login for user {user_id} (login #{login_count})")
        return login_count

    async def get_login_activity(self, user_id: str) -> Dict[str, Any]:
        """Get last_login_at and login_count (empty before the first login)"""
        return await self.user_store.get_login_activity(user_id)

    async def get_user_by_id(self, user_id: str) -> TenantUser:
        user = await self.user_store.get_user(user_id)
        if not user:
            raise NotFoundError("User not found", ErrorCode.USER_NOT_FOUND)
        return user

    def _missing_profile_fields(self, user: TenantUser, organization_id: str) -> list:
        membership = user.get_membership(organization_id)
        values = dict(user.profile)
        values["job_title"] = membership.job_title if membership else None
        return [name for name in PROFILE_FIELDS if not values.get(name)]
