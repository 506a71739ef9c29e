"""JWT Token Service

Issues and verifies the access, refresh and MFA temp tokens used by the
auth core. Tokens are scoped to the tenant they were issued against via
the org_id claim.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from tenant_auth_service.domain.errors import AuthenticationError, ErrorCode
from tenant_auth_service.domain.models import AuthTokens, TenantUser

logger = logging.getLogger(__name__)

ACCESS = "access"
REFRESH = "refresh"
MFA_PENDING = "mfa_pending"


class TokenService:
    """JWT creation and verification

    Configuration:
        JWT_SECRET_KEY=<your-secret-key>
        JWT_ALGORITHM=HS256 (default)
        ACCESS_TOKEN_EXPIRE_MINUTES=60 (default)
        REFRESH_TOKEN_EXPIRE_DAYS=7 (default)
    """

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_expire_minutes: int = 60,
        refresh_token_expire_days: int = 7,
        temp_token_expire_minutes: int = 5,
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire = timedelta(minutes=access_token_expire_minutes)
        self.refresh_token_expire = timedelta(days=refresh_token_expire_days)
        self.temp_token_expire = timedelta(minutes=temp_token_expire_minutes)

        if secret_key == "dev-secret-change-in-production":
            logger.warning(
                "Using default JWT_SECRET_KEY! "
                "Set JWT_SECRET_KEY environment variable in production!"
            )

    def generate_tokens(self, user: TenantUser, tenant_id: Optional[str]) -> AuthTokens:
        """Issue an access/refresh token pair"""
        return AuthTokens(
            access_token=self.create_access_token(user, tenant_id),
            refresh_token=self.create_refresh_token(user, tenant_id),
            expires_in=int(self.access_token_expire.total_seconds()),
        )

    def create_access_token(self, user: TenantUser, tenant_id: Optional[str]) -> str:
        return self._encode(
            {"sub": user.user_id, "email": user.email, "org_id": tenant_id},
            ACCESS,
            self.access_token_expire,
        )

    def create_refresh_token(self, user: TenantUser, tenant_id: Optional[str]) -> str:
        return self._encode({"sub": user.user_id, "org_id": tenant_id}, REFRESH, self.refresh_token_expire)

    def create_temp_token(self, user: TenantUser, tenant_id: Optional[str]) -> str:
        """Short-lived token identifying a login waiting for its second factor"""
        return self._encode({"sub": user.user_id, "org_id": tenant_id}, MFA_PENDING, self.temp_token_expire)

    def verify_token(self, token: str, expected_type: str) -> dict:
        """Decode a token and check its type

        Raises:
            AuthenticationError: If the token is invalid, expired or of the wrong type
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            logger.warning(f"Token validation failed: {e}")
            raise AuthenticationError(f"Invalid token: {e}", ErrorCode.INVALID_TOKEN)

        if payload.get("type") != expected_type or not payload.get("sub"):
            raise AuthenticationError("Invalid token type", ErrorCode.INVALID_TOKEN)
        return payload

    def decode_unverified(self, token: str) -> Optional[dict]:
        """Decode a signed token without checking expiry (None when malformed)"""
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            return None

    def remaining_lifetime(self, token: str) -> int:
        """Seconds until the token expires (0 when expired or malformed)"""
        payload = self.decode_unverified(token)
        if not payload:
            return 0
        exp = payload.get("exp")
        if not exp:
            return 0
        return max(0, int(exp - datetime.now(timezone.utc).timestamp()))

    def _encode(self, claims: dict, token_type: str, lifetime: timedelta) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "type": token_type,
            "iat": now,
            "exp": now + lifetime,
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
