"""Domain models for Tenant Auth Service"""

from tenant_auth_service.domain.models.api_auth import (
    ChangePasswordRequest,
    DisableMFARequest,
    EnableMFARequest,
    ErrorResponse,
    LogoutRequest,
    LogoutResponse,
    MemberRolesRequest,
    MemberStatusRequest,
    PasswordResetConfirmRequest,
    PasswordResetRequest,
    RefreshTokenRequest,
    ResendVerificationRequest,
    TenantLoginRequest,
    TenantRegisterRequest,
    VerifyEmailRequest,
    VerifyMFARequest,
)
from tenant_auth_service.domain.models.auth import (
    AuthResult,
    AuthSession,
    AuthTokens,
    MFAChallenge,
    parse_utc_timestamp,
    to_json_compatible,
)
from tenant_auth_service.domain.models.organization import (
    AcceptanceResult,
    Organization,
    OrganizationValidation,
    UsageCounter,
)
from tenant_auth_service.domain.models.results import (
    ADMIN_ROLES,
    AuthenticatedMember,
    FeatureFlags,
    NextStep,
    OrganizationContext,
    ProfileStatus,
    TenantLoginResult,
    TenantRegistrationResult,
)
from tenant_auth_service.domain.models.tenant import (
    AccountStatus,
    EmailVerification,
    MembershipStatus,
    MFAMethod,
    MFASettings,
    OrganizationMembership,
    RoleAssignment,
    SecurityState,
    TenantUser,
    TenantUserRole,
)

__all__ = [
    # Auth core models
    "AuthResult",
    "AuthSession",
    "AuthTokens",
    "MFAChallenge",
    "parse_utc_timestamp",
    "to_json_compatible",
    # Tenant user models
    "AccountStatus",
    "EmailVerification",
    "MembershipStatus",
    "MFAMethod",
    "MFASettings",
    "OrganizationMembership",
    "RoleAssignment",
    "SecurityState",
    "TenantUser",
    "TenantUserRole",
    # Organization models
    "AcceptanceResult",
    "Organization",
    "OrganizationValidation",
    "UsageCounter",
    # Tenant envelopes
    "ADMIN_ROLES",
    "AuthenticatedMember",
    "FeatureFlags",
    "NextStep",
    "OrganizationContext",
    "ProfileStatus",
    "TenantLoginResult",
    "TenantRegistrationResult",
    # API models
    "ChangePasswordRequest",
    "DisableMFARequest",
    "EnableMFARequest",
    "ErrorResponse",
    "LogoutRequest",
    "LogoutResponse",
    "MemberRolesRequest",
    "MemberStatusRequest",
    "PasswordResetConfirmRequest",
    "PasswordResetRequest",
    "RefreshTokenRequest",
    "ResendVerificationRequest",
    "TenantLoginRequest",
    "TenantRegisterRequest",
    "VerifyEmailRequest",
    "VerifyMFARequest",
]
