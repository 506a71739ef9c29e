"""Tenant Response Envelopes

Per-call envelopes assembled by the tenant orchestrator on top of the
auth core result. They are built fresh for every request and never
persisted.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from tenant_auth_service.domain.models.auth import (
    AuthSession,
    AuthTokens,
    to_json_compatible,
)
from tenant_auth_service.domain.models.tenant import OrganizationMembership, TenantUser, TenantUserRole

# Roles allowed to manage memberships
ADMIN_ROLES = frozenset({TenantUserRole.OWNER.value, TenantUserRole.ADMIN.value})


@dataclass
class NextStep:
    """Follow-up action suggested after registration"""
    step: str
    title: str
    description: str
    required: bool = False


@dataclass
class ProfileStatus:
    """Tenant profile completion"""
    is_complete: bool = False
    completion_percentage: int = 0
    missing_fields: List[str] = field(default_factory=list)


@dataclass
class FeatureFlags:
    """Features available to the user in the organization"""
    has_project_access: bool = True
    has_reporting: bool = False
    has_api_access: bool = False
    has_advanced_features: bool = False
    user_role: str = "member"


@dataclass
class OrganizationContext:
    """Organization the login was performed against"""
    id: str
    membership: Optional[OrganizationMembership]
    roles: List[str] = field(default_factory=list)


@dataclass
class TenantRegistrationResult:
    """Registration envelope

    Carries the auth core fields plus onboarding, next steps and the
    organization portal URL.
    """
    user: Dict[str, Any]
    tokens: AuthTokens
    session: AuthSession
    user_type: str
    requires_email_verification: bool
    verification_token: Optional[str]
    onboarding: Optional[Dict[str, Any]]
    next_steps: List[NextStep]
    organization_portal_url: str

    requires_mfa = False

    def to_dict(self) -> dict:
        return to_json_compatible({
            "user": self.user,
            "tokens": self.tokens,
            "session": self.session,
            "user_type": self.user_type,
            "requires_email_verification": self.requires_email_verification,
            "onboarding": self.onboarding,
            "next_steps": self.next_steps,
            "organization_portal_url": self.organization_portal_url,
        })


@dataclass
class TenantLoginResult:
    """Login envelope enriched with tenant-scoped data"""
    user: Dict[str, Any]
    tokens: AuthTokens
    session: AuthSession
    user_type: str
    requires_password_change: bool
    organization: OrganizationContext
    profile_status: ProfileStatus
    preferences: Dict[str, Any]
    pending_notifications: List[Dict[str, Any]]
    features: Union[FeatureFlags, Dict[str, Any]]
    organization_portal_url: str

    requires_mfa = False

    def to_dict(self) -> dict:
        return to_json_compatible({
            "user": self.user,
            "tokens": self.tokens,
            "session": self.session,
            "user_type": self.user_type,
            "requires_password_change": self.requires_password_change,
            "organization": self.organization,
            "profile_status": self.profile_status,
            "preferences": self.preferences,
            "pending_notifications": self.pending_notifications,
            "features": self.features,
            "organization_portal_url": self.organization_portal_url,
        })


@dataclass
class AuthenticatedMember:
    """Caller resolved from a bearer access token for one organization

    membership is None only when authentication skipped the membership
    check (logout).
    """
    user: TenantUser
    membership: Optional[OrganizationMembership]
    claims: Dict[str, Any]

    @property
    def user_id(self) -> str:
        return self.user.user_id

    @property
    def roles(self) -> List[str]:
        return self.membership.role_names if self.membership else []

    @property
    def is_admin(self) -> bool:
        return bool(ADMIN_ROLES.intersection(self.roles))

    @property
    def is_owner(self) -> bool:
        return TenantUserRole.OWNER.value in self.roles
