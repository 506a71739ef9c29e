"""Session and Token Revocation Storage

Purpose: Handle login session lifecycle and token revocation

Sessions are created by the auth core on register and login and
terminated on logout. Revoked access tokens and refresh token ids are
kept in Redis until they would have expired anyway.

Storage Schema:
- tenant:session:{session_id} -> {session_json}            (TTL = session timeout)
- tenant:user_sessions:{user_id} -> {session_id, ...}
- tenant:blacklist:{sha256(token)} -> "1"                  (TTL = token lifetime)
- tenant:revoked_refresh:{jti} -> "1"                      (TTL = refresh lifetime)
"""

import hashlib
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from redis.asyncio import Redis

from tenant_auth_service.domain.models import AuthSession

logger = logging.getLogger(__name__)


class SessionStore:
    """Redis-backed login sessions"""

    def __init__(self, redis_client: Redis, session_timeout_seconds: int = 24 * 60 * 60):
        """Initialize session store

        Args:
            redis_client: Redis connection for session storage
            session_timeout_seconds: Session lifetime
        """
        self.redis = redis_client
        self.session_timeout_seconds = session_timeout_seconds

        # Redis key patterns
        self.session_key_pattern = "tenant:session:{}"
        self.user_sessions_pattern = "tenant:user_sessions:{}"

    async def create_session(
        self,
        user_id: str,
        tenant_id: Optional[str],
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        device_fingerprint: Optional[str] = None,
    ) -> AuthSession:
        """Create and store a new session

        Returns:
            Created AuthSession
        """
        now = datetime.now(timezone.utc)
        session = AuthSession(
            session_id=str(uuid.uuid4()),
            user_id=user_id,
            tenant_id=tenant_id,
            created_at=now,
            expires_at=now + timedelta(seconds=self.session_timeout_seconds),
            ip=ip,
            user_agent=user_agent,
            device_fingerprint=device_fingerprint,
        )

        user_sessions_key = self.user_sessions_pattern.format(user_id)
        await self.redis.setex(
            self.session_key_pattern.format(session.session_id),
            self.session_timeout_seconds,
            json.dumps(session.to_dict()),
        )
        await self.redis.sadd(user_sessions_key, session.session_id)
        await self.redis.expire(user_sessions_key, self.session_timeout_seconds)

        logger.info(f"Created session {session.session_id} for user {user_id}")
        return session

    async def get_session(self, session_id: str) -> Optional[AuthSession]:
        """Get an unexpired session"""
        data = await self.redis.get(self.session_key_pattern.format(session_id))
        if not data:
            return None
        return AuthSession.from_dict(json.loads(data))

    async def terminate_session(self, session_id: str) -> bool:
        """Terminate a single session

        Returns:
            True if the session existed
        """
        session = await self.get_session(session_id)
        if not session:
            return False

        await self.redis.delete(self.session_key_pattern.format(session_id))
        await self.redis.srem(self.user_sessions_pattern.format(session.user_id), session_id)

        logger.info(f"Terminated session {session_id} for user {session.user_id}")
        return True

    async def terminate_user_sessions(self, user_id: str) -> int:
        """Terminate all sessions of a user

        Returns:
            Number of sessions terminated
        """
        user_sessions_key = self.user_sessions_pattern.format(user_id)
        session_ids = await self.redis.smembers(user_sessions_key)

        for session_id in session_ids:
            await self.redis.delete(self.session_key_pattern.format(session_id))
        await self.redis.delete(user_sessions_key)

        logger.info(f"Terminated {len(session_ids)} sessions for user {user_id}")
        return len(session_ids)


class TokenBlacklist:
    """Revoked access tokens and refresh token ids"""

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

        # Redis key patterns
        self.blacklist_pattern = "tenant:blacklist:{}"
        self.revoked_refresh_pattern = "tenant:revoked_refresh:{}"

    async def add_token(self, token: str, ttl_seconds: int) -> None:
        """Blacklist an access token until it expires"""
        if ttl_seconds <= 0:
            return
        await self.redis.setex(self.blacklist_pattern.format(self._hash_token(token)), ttl_seconds, "1")
        logger.debug(f"Token blacklisted (TTL: {ttl_seconds}s)")

    async def is_blacklisted(self, token: str) -> bool:
        return await self.redis.exists(self.blacklist_pattern.format(self._hash_token(token))) > 0

    async def revoke_refresh_token(self, token_id: str, ttl_seconds: int) -> None:
        """Revoke a refresh token by its jti"""
        if ttl_seconds <= 0:
            return
        await self.redis.setex(self.revoked_refresh_pattern.format(token_id), ttl_seconds, "1")
        logger.debug(f"Refresh token {token_id} revoked")

    async def is_refresh_token_revoked(self, token_id: str) -> bool:
        return await self.redis.exists(self.revoked_refresh_pattern.format(token_id)) > 0

    def _hash_token(self, token: str) -> str:
        """Generate SHA-256 hash of token"""
        return hashlib.sha256(token.encode()).hexdigest()
