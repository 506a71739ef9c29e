"""Tenant User Data Models

Purpose: Define the persisted user document and its organization memberships

A tenant user holds one or more organization memberships. Membership
entries are never physically removed; they move between states
(active, inactive, pending, removed) so audit history is preserved.

Key Components:
- MembershipStatus / AccountStatus: state enums
- OrganizationMembership: per-organization membership with roles
- TenantUser: the user document owned by the identity store
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from tenant_auth_service.domain.models.auth import (
    parse_optional_timestamp,
    parse_utc_timestamp,
    to_json_compatible,
)


def _utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class MembershipStatus(str, Enum):
    """Organization membership state"""
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"
    REMOVED = "removed"


class AccountStatus(str, Enum):
    """Account-level status checked on every login"""
    ACTIVE = "active"
    PENDING_VERIFICATION = "pending_verification"
    PENDING_APPROVAL = "pending_approval"
    SUSPENDED = "suspended"
    LOCKED = "locked"
    DELETED = "deleted"
    BANNED = "banned"
    INACTIVE = "inactive"


class TenantUserRole(str, Enum):
    """Roles a user can hold within an organization"""
    OWNER = "owner"
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"
    VIEWER = "viewer"
    GUEST = "guest"


@dataclass
class RoleAssignment:
    """Role held within an organization"""
    role_name: str
    assigned_at: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict:
        return {"role_name": self.role_name, "assigned_at": to_json_compatible(self.assigned_at)}

    @classmethod
    def from_dict(cls, data: dict) -> 'RoleAssignment':
        return cls(role_name=data["role_name"], assigned_at=parse_utc_timestamp(data["assigned_at"]))


@dataclass
class OrganizationMembership:
    """Membership of a user in one organization

    Attributes:
        organization_id: Organization (tenant) identifier
        roles: Roles held in the organization
        is_primary: Whether this is the user's primary organization
        joined_at: Membership creation timestamp
        status: Membership state (see MembershipStatus)
        invited_by: Inviting user id (optional)
        job_title: Job title within the organization (optional)
        department_id: Department identifier (optional)
        team_ids: Teams the user belongs to
        status_changed_at: Last status transition timestamp
    """
    organization_id: str
    roles: List[RoleAssignment] = field(default_factory=list)
    is_primary: bool = False
    joined_at: datetime = field(default_factory=_utc_now)
    status: MembershipStatus = MembershipStatus.ACTIVE
    invited_by: Optional[str] = None
    job_title: Optional[str] = None
    department_id: Optional[str] = None
    team_ids: List[str] = field(default_factory=list)
    status_changed_at: Optional[datetime] = None

    def __post_init__(self):
        # Rejects anything outside active|inactive|pending|removed
        self.status = MembershipStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.status == MembershipStatus.ACTIVE

    @property
    def role_names(self) -> List[str]:
        return [role.role_name for role in self.roles]

    def transition_to(self, status) -> None:
        """Move the membership to a new state (never deleted)"""
        self.status = MembershipStatus(status)
        self.status_changed_at = _utc_now()

    def to_dict(self) -> dict:
        return {
            "organization_id": self.organization_id,
            "roles": [role.to_dict() for role in self.roles],
            "is_primary": self.is_primary,
            "joined_at": to_json_compatible(self.joined_at),
            "status": self.status.value,
            "invited_by": self.invited_by,
            "job_title": self.job_title,
            "department_id": self.department_id,
            "team_ids": list(self.team_ids),
            "status_changed_at": to_json_compatible(self.status_changed_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'OrganizationMembership':
        return cls(
            organization_id=data["organization_id"],
            roles=[RoleAssignment.from_dict(r) for r in data.get("roles", [])],
            is_primary=data.get("is_primary", False),
            joined_at=parse_utc_timestamp(data["joined_at"]),
            status=data.get("status", MembershipStatus.ACTIVE.value),
            invited_by=data.get("invited_by"),
            job_title=data.get("job_title"),
            department_id=data.get("department_id"),
            team_ids=data.get("team_ids", []),
            status_changed_at=parse_optional_timestamp(data.get("status_changed_at")),
        )


@dataclass
class MFAMethod:
    """A configured second factor

    secret holds the TOTP shared secret; code_hash and code_expires hold a
    pending one-time code for email-delivered factors and setup verification.
    """
    type: str
    enabled: bool = False
    secret: Optional[str] = None
    code_hash: Optional[str] = None
    code_expires: Optional[datetime] = None
    verified_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "enabled": self.enabled,
            "secret": self.secret,
            "code_hash": self.code_hash,
            "code_expires": to_json_compatible(self.code_expires),
            "verified_at": to_json_compatible(self.verified_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'MFAMethod':
        return cls(
            type=data["type"],
            enabled=data.get("enabled", False),
            secret=data.get("secret"),
            code_hash=data.get("code_hash"),
            code_expires=parse_optional_timestamp(data.get("code_expires")),
            verified_at=parse_optional_timestamp(data.get("verified_at")),
        )


@dataclass
class MFASettings:
    """Second-factor configuration for a user"""
    enabled: bool = False
    methods: List[MFAMethod] = field(default_factory=list)
    preferred_method: Optional[str] = None

    def get_method(self, method_type: str, enabled: Optional[bool] = None) -> Optional[MFAMethod]:
        for method in self.methods:
            if method.type == method_type and (enabled is None or method.enabled == enabled):
                return method
        return None

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "methods": [m.to_dict() for m in self.methods],
            "preferred_method": self.preferred_method,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'MFASettings':
        return cls(
            enabled=data.get("enabled", False),
            methods=[MFAMethod.from_dict(m) for m in data.get("methods", [])],
            preferred_method=data.get("preferred_method"),
        )


@dataclass
class SecurityState:
    """Login attempt tracking, lockout and password reset state"""
    failed_login_count: int = 0
    last_failed_login_at: Optional[datetime] = None
    lock_until: Optional[datetime] = None
    password_reset_token_hash: Optional[str] = None
    password_reset_expires: Optional[datetime] = None
    trusted_devices: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "failed_login_count": self.failed_login_count,
            "last_failed_login_at": to_json_compatible(self.last_failed_login_at),
            "lock_until": to_json_compatible(self.lock_until),
            "password_reset_token_hash": self.password_reset_token_hash,
            "password_reset_expires": to_json_compatible(self.password_reset_expires),
            "trusted_devices": list(self.trusted_devices),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SecurityState':
        return cls(
            failed_login_count=data.get("failed_login_count", 0),
            last_failed_login_at=parse_optional_timestamp(data.get("last_failed_login_at")),
            lock_until=parse_optional_timestamp(data.get("lock_until")),
            password_reset_token_hash=data.get("password_reset_token_hash"),
            password_reset_expires=parse_optional_timestamp(data.get("password_reset_expires")),
            trusted_devices=data.get("trusted_devices", []),
        )


@dataclass
class EmailVerification:
    """Email verification state"""
    verified: bool = False
    token_hash: Optional[str] = None
    token_expires: Optional[datetime] = None
    verified_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "verified": self.verified,
            "token_hash": self.token_hash,
            "token_expires": to_json_compatible(self.token_expires),
            "verified_at": to_json_compatible(self.verified_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'EmailVerification':
        return cls(
            verified=data.get("verified", False),
            token_hash=data.get("token_hash"),
            token_expires=parse_optional_timestamp(data.get("token_expires")),
            verified_at=parse_optional_timestamp(data.get("verified_at")),
        )


@dataclass
class TenantUser:
    """User document

    Represents a user in the identity store. Credential material
    (password, password_history, security, verification, MFA secrets)
    must only leave the service through a sanitizer.

    Attributes:
        user_id: Unique identifier (UUID format)
        email: Lower-cased email address (unique)
        password: bcrypt password hash
        username: Optional username
        profile: Profile fields (first_name, last_name, phone_number)
        account_status: Account status (see AccountStatus)
        password_history: Previous password hashes
        security: Login attempt and reset state
        verification: Email verification state
        mfa: Second-factor configuration
        metadata: Free-form registration metadata
        activity: Login activity (last_login_at, login_count)
        organizations: Organization memberships
        created_at: Account creation timestamp
        updated_at: Last update timestamp
    """
    user_id: str
    email: str
    password: str
    username: Optional[str] = None
    profile: Dict[str, Any] = field(default_factory=dict)
    account_status: AccountStatus = AccountStatus.ACTIVE
    password_history: List[str] = field(default_factory=list)
    security: SecurityState = field(default_factory=SecurityState)
    verification: EmailVerification = field(default_factory=EmailVerification)
    mfa: MFASettings = field(default_factory=MFASettings)
    metadata: Dict[str, Any] = field(default_factory=dict)
    activity: Dict[str, Any] = field(default_factory=dict)
    organizations: List[OrganizationMembership] = field(default_factory=list)
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    def __post_init__(self):
        self.account_status = AccountStatus(self.account_status)

    def get_membership(self, organization_id: str) -> Optional[OrganizationMembership]:
        """Find the membership entry for an organization"""
        if organization_id is None:
            return None
        for membership in self.organizations:
            if str(membership.organization_id) == str(organization_id):
                return membership
        return None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "user_id": self.user_id,
            "email": self.email,
            "password": self.password,
            "username": self.username,
            "profile": dict(self.profile),
            "account_status": self.account_status.value,
            "password_history": list(self.password_history),
            "security": self.security.to_dict(),
            "verification": self.verification.to_dict(),
            "mfa": self.mfa.to_dict(),
            "metadata": to_json_compatible(self.metadata),
            "activity": to_json_compatible(self.activity),
            "organizations": [m.to_dict() for m in self.organizations],
            "created_at": to_json_compatible(self.created_at),
            "updated_at": to_json_compatible(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'TenantUser':
        """Create from dictionary (JSON deserialization)"""
        return cls(
            user_id=data["user_id"],
            email=data["email"],
            password=data["password"],
            username=data.get("username"),
            profile=data.get("profile", {}),
            account_status=data.get("account_status", AccountStatus.ACTIVE.value),
            password_history=data.get("password_history", []),
            security=SecurityState.from_dict(data.get("security", {})),
            verification=EmailVerification.from_dict(data.get("verification", {})),
            mfa=MFASettings.from_dict(data.get("mfa", {})),
            metadata=data.get("metadata", {}),
            activity=data.get("activity", {}),
            organizations=[OrganizationMembership.from_dict(m) for m in data.get("organizations", [])],
            created_at=parse_utc_timestamp(data["created_at"]),
            updated_at=parse_utc_timestamp(data.get("updated_at", data["created_at"])),
        )
