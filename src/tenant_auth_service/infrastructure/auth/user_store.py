"""Tenant User Storage

Purpose: Handle user document storage and retrieval operations

This module is the identity store for the Tenant Auth Service. It
persists user documents (including their organization memberships)
in Redis and maintains the secondary indexes used by the auth core.

Key Features:
- Email uniqueness
- User document creation and updates
- Password reset / email verification token indexes (with TTL)

Storage Schema:
- tenant:user:{user_id} -> {user_json}
- tenant:email:{email} -> {user_id}
- tenant:reset_token:{token_hash} -> {user_id}
- tenant:verify_token:{token_hash} -> {user_id}
- tenant:user_list -> {user_id, ...}
- tenant:user_activity:{user_id} -> {last_login_at, login_count}   (hash)
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from redis.asyncio import Redis

from tenant_auth_service.domain.models import TenantUser

logger = logging.getLogger(__name__)


class TenantUserStore:
    """Redis-backed identity store

    Read failures are logged and re-raised: a storage outage must never
    look like a missing user to the auth core.
    """

    def __init__(self, redis_client: Redis):
        """Initialize user store

        Args:
            redis_client: Redis connection for user storage
        """
        self.redis = redis_client

        # Redis key patterns
        self.user_key_pattern = "tenant:user:{}"
        self.email_key_pattern = "tenant:email:{}"
        self.reset_token_pattern = "tenant:reset_token:{}"
        self.verify_token_pattern = "tenant:verify_token:{}"
        self.activity_key_pattern = "tenant:user_activity:{}"
        self.user_list_key = "tenant:user_list"

    async def get_user(self, user_id: str) -> Optional[TenantUser]:
        """Get user by ID

        Args:
            user_id: User identifier

        Returns:
            TenantUser if found, None otherwise
        """
        if not user_id:
            return None

        user_data = await self._redis_get(self.user_key_pattern.format(user_id))
        if not user_data:
            return None

        return TenantUser.from_dict(json.loads(user_data))

    async def get_user_by_email(self, email: str) -> Optional[TenantUser]:
        """Get user by email address

        Args:
            email: Email address to search for

        Returns:
            TenantUser if found, None otherwise
        """
        if not email:
            return None

        user_id = await self._redis_get(self.email_key_pattern.format(email.strip().lower()))
        if not user_id:
            return None

        return await self.get_user(user_id)

    async def create_user(self, user: TenantUser) -> TenantUser:
        """Persist a new user document

        Args:
            user: Fully built user document

        Returns:
            Stored TenantUser

        Raises:
            ValueError: If the email is already registered
        """
        user.email = user.email.strip().lower()
        if not await self._claim_email(user.email, user.user_id):
            raise ValueError(f"Email '{user.email}' already exists")

        await self._redis_set(self.user_key_pattern.format(user.user_id), json.dumps(user.to_dict()))
        await self._redis_sadd(self.user_list_key, user.user_id)

        logger.info(f"Created user {user.user_id} ({user.email})")
        return user

    async def update_user(self, user: TenantUser) -> TenantUser:
        """Update existing user document

        Args:
            user: TenantUser with updated information

        Returns:
            Updated TenantUser

        Raises:
            ValueError: If user not found or the new email is taken
        """
        existing_user = await self.get_user(user.user_id)
        if not existing_user:
            raise ValueError(f"User {user.user_id} not found")

        user.email = user.email.strip().lower()
        email_changed = user.email != existing_user.email
        if email_changed and not await self._claim_email(user.email, user.user_id):
            raise ValueError(f"Email '{user.email}' already exists")

        user.updated_at = datetime.now(timezone.utc)
        await self._redis_set(self.user_key_pattern.format(user.user_id), json.dumps(user.to_dict()))

        if email_changed:
            await self._redis_delete(self.email_key_pattern.format(existing_user.email))

        logger.debug(f"Updated user {user.user_id}")
        return user

    async def record_login(self, user_id: str, at: datetime) -> int:
        """Record a successful login outside the user document

        The user document is not touched, so membership changes written
        while a login is in flight stay in place.

        Returns:
            Login count after this login
        """
        key = self.activity_key_pattern.format(user_id)
        try:
            await self.redis.hset(key, "last_login_at", at.isoformat())
            return int(await self.redis.hincrby(key, "login_count", 1))
        except Exception as e:
            logger.error(f"Redis HSET/HINCRBY failed for key {key}: {e}")
            raise

    async def get_login_activity(self, user_id: str) -> Dict[str, Any]:
        """Get last_login_at and login_count recorded by record_login"""
        key = self.activity_key_pattern.format(user_id)
        try:
            activity = await self.redis.hgetall(key)
        except Exception as e:
            logger.error(f"Redis HGETALL failed for key {key}: {e}")
            raise

        if not activity:
            return {}
        return {
            "last_login_at": activity.get("last_login_at"),
            "login_count": int(activity.get("login_count", 0)),
        }

    async def index_reset_token(self, token_hash: str, user_id: str, ttl_seconds: int) -> None:
        """Map a password reset token hash to its user"""
        await self._redis_set(self.reset_token_pattern.format(token_hash), user_id, ttl_seconds)

    async def find_by_reset_token(self, token_hash: str) -> Optional[TenantUser]:
        """Find the user owning an unexpired password reset token"""
        user_id = await self._redis_get(self.reset_token_pattern.format(token_hash))
        return await self.get_user(user_id) if user_id else None

    async def clear_reset_token(self, token_hash: str) -> None:
        await self._redis_delete(self.reset_token_pattern.format(token_hash))

    async def index_verification_token(self, token_hash: str, user_id: str, ttl_seconds: int) -> None:
        """Map an email verification token hash to its user"""
        await self._redis_set(self.verify_token_pattern.format(token_hash), user_id, ttl_seconds)

    async def find_by_verification_token(self, token_hash: str) -> Optional[TenantUser]:
        """Find the user owning an unexpired email verification token"""
        user_id = await self._redis_get(self.verify_token_pattern.format(token_hash))
        return await self.get_user(user_id) if user_id else None

    async def clear_verification_token(self, token_hash: str) -> None:
        await self._redis_delete(self.verify_token_pattern.format(token_hash))

    async def list_users(self, limit: int = 100, offset: int = 0) -> List[TenantUser]:
        """List users with pagination

        Args:
            limit: Maximum number of users to return
            offset: Number of users to skip

        Returns:
            List of TenantUser objects
        """
        user_ids = sorted(await self._redis_smembers(self.user_list_key))

        users = []
        for user_id in user_ids[offset : offset + limit]:
            user = await self.get_user(user_id)
            if user:
                users.append(user)
        return users

    async def count_users(self) -> int:
        """Get total number of users"""
        return await self.redis.scard(self.user_list_key)

    async def _claim_email(self, email: str, user_id: str) -> bool:
        """Atomically take the email index entry (SET NX)"""
        key = self.email_key_pattern.format(email)
        try:
            return bool(await self.redis.set(key, user_id, nx=True))
        except Exception as e:
            logger.error(f"Redis SET NX failed for key {key}: {e}")
            raise

    # Redis async wrapper methods
    async def _redis_set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Set Redis key (optionally with expiry)"""
        try:
            if ttl_seconds:
                await self.redis.setex(key, ttl_seconds, value)
            else:
                await self.redis.set(key, value)
        except Exception as e:
            logger.error(f"Redis SET failed for key {key}: {e}")
            raise

    async def _redis_get(self, key: str) -> Optional[str]:
        """Get Redis key value"""
        try:
            result = await self.redis.get(key)
            return result if result else None
        except Exception as e:
            logger.error(f"Redis GET failed for key {key}: {e}")
            raise

    async def _redis_delete(self, key: str) -> None:
        """Delete Redis key"""
        try:
            await self.redis.delete(key)
        except Exception as e:
            logger.error(f"Redis DELETE failed for key {key}: {e}")
            raise

    async def _redis_sadd(self, key: str, value: str) -> None:
        """Add to Redis set"""
        try:
            await self.redis.sadd(key, value)
        except Exception as e:
            logger.error(f"Redis SADD failed for key {key}: {e}")
            raise

    async def _redis_smembers(self, key: str) -> List[str]:
        """Get Redis set members"""
        try:
            members = await self.redis.smembers(key)
            return [str(member) for member in members]
        except Exception as e:
            logger.error(f"Redis SMEMBERS failed for key {key}: {e}")
            raise
