"""Authentication Data Models

Purpose: Define data structures returned by the generic auth core

Key Components:
- AuthTokens: Access/refresh token pair issued on register and login
- AuthSession: Server-side session created on register and login
- AuthResult: Successful register/login envelope
- MFAChallenge: Pass-through state when a second factor is required
"""

from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


def parse_utc_timestamp(timestamp_str: str) -> datetime:
    """Parse UTC timestamp string to datetime object"""
    if isinstance(timestamp_str, datetime):
        return timestamp_str
    return datetime.fromisoformat(timestamp_str.replace('Z', '+00:00'))


def parse_optional_timestamp(value) -> Optional[datetime]:
    """Parse timestamp if present"""
    return parse_utc_timestamp(value) if value else None


def to_json_compatible(value):
    """Convert datetimes, enums, dataclasses and containers to JSON-compatible values"""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        if hasattr(value, "to_dict"):
            return value.to_dict()
        return {f.name: to_json_compatible(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {k: to_json_compatible(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_compatible(v) for v in value]
    return value


@dataclass
class AuthTokens:
    """Token pair issued by the auth core"""
    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "Bearer"

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": self.expires_in,
        }


@dataclass
class AuthSession:
    """Server-side login session

    Attributes:
        session_id: Unique session identifier
        user_id: Owning user
        tenant_id: Organization the session was opened against
        created_at: Session creation timestamp
        expires_at: Session expiry timestamp
        ip: Client IP address (optional)
        user_agent: Client user agent (optional)
        device_fingerprint: Client device fingerprint (optional)
    """
    session_id: str
    user_id: str
    tenant_id: Optional[str]
    created_at: datetime
    expires_at: datetime
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    device_fingerprint: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "user_id": self.user_id,
            "tenant_id": self.tenant_id,
            "created_at": to_json_compatible(self.created_at),
            "expires_at": to_json_compatible(self.expires_at),
            "ip": self.ip,
            "user_agent": self.user_agent,
            "device_fingerprint": self.device_fingerprint,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AuthSession':
        return cls(
            session_id=data["session_id"],
            user_id=data["user_id"],
            tenant_id=data.get("tenant_id"),
            created_at=parse_utc_timestamp(data["created_at"]),
            expires_at=parse_utc_timestamp(data["expires_at"]),
            ip=data.get("ip"),
            user_agent=data.get("user_agent"),
            device_fingerprint=data.get("device_fingerprint"),
        )


@dataclass
class AuthResult:
    """Successful register/login result from the auth core

    The user field always holds the sanitized representation.
    """
    user: Dict[str, Any]
    tokens: AuthTokens
    session: AuthSession
    user_type: str = "customer"
    requires_email_verification: bool = False
    verification_token: Optional[str] = None
    requires_password_change: bool = False

    requires_mfa = False

    def to_dict(self) -> dict:
        return to_json_compatible({
            "user": self.user,
            "tokens": self.tokens,
            "session": self.session,
            "user_type": self.user_type,
            "requires_email_verification": self.requires_email_verification,
            "requires_password_change": self.requires_password_change,
        })


@dataclass
class MFAChallenge:
    """Second-factor challenge returned instead of an AuthResult

    The caller completes the login with a second call carrying the MFA code.
    """
    user_id: str
    temp_token: str
    mfa_methods: List[Dict[str, Any]] = field(default_factory=list)
    preferred_method: Optional[str] = None

    requires_mfa = True

    def to_dict(self) -> dict:
        return {
            "requires_mfa": True,
            "user_id": self.user_id,
            "temp_token": self.temp_token,
            "mfa_methods": self.mfa_methods,
            "preferred_method": self.preferred_method,
        }
