"""Tenant Authentication Routes

Purpose: FastAPI routes for authentication against a tenant organization

Every route is scoped to the organization in the path. Business errors
raised by the orchestrator (AppError subclasses) are rendered by the
application-level handler in main.py.

Key Endpoints:
- POST /register: Register a user into the organization
- POST /login: Authenticate (may answer with an MFA challenge)
- POST /logout: Terminate the caller's session and revoke tokens (bearer)
- POST /refresh: Rotate the token pair
- POST /password-reset, /password-reset/confirm
- POST /password/change (bearer)
- POST /verify-email, /verify-email/resend
- POST /mfa/enable, /mfa/verify, /mfa/disable (bearer)
- PUT /members/{user_id}/status, /members/{user_id}/roles (owner/admin bearer)
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, Response

from tenant_auth_service.domain.errors import (
    AuthenticationError,
    ErrorCode,
    ForbiddenError,
)
from tenant_auth_service.domain.models import (
    AuthenticatedMember,
    ChangePasswordRequest,
    DisableMFARequest,
    EnableMFARequest,
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
    to_json_compatible,
)
from tenant_auth_service.domain.services.tenant_auth_service import (
    TenantAuthService,
    get_tenant_auth_service,
)

# Initialize router and logger
router = APIRouter(prefix="/api/v1/tenants/{organization_id}/auth", tags=["tenant-authentication"])
logger = logging.getLogger(__name__)


async def extract_bearer_token(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> Optional[str]:
    """Extract Bearer token from Authorization header"""
    if not authorization or not authorization.startswith("Bearer "):
        return None

    token = authorization[7:].strip()
    return token or None


async def require_authentication(
    organization_id: str,
    request: Request,
    token: Optional[str] = Depends(extract_bearer_token),
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> AuthenticatedMember:
    """Require a valid access token held by an active member of the organization

    Raises:
        AuthenticationError: No token, invalid or revoked token (401)
        ForbiddenError: Token for another organization, inactive account
            or membership (403)
    """
    if not token:
        logger.warning(f"Unauthenticated request to {request.url.path}")
        raise AuthenticationError("Authentication required", ErrorCode.AUTHENTICATION_REQUIRED)
    return await service.authenticate(token, organization_id)


async def require_token_holder(
    organization_id: str,
    request: Request,
    token: Optional[str] = Depends(extract_bearer_token),
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> AuthenticatedMember:
    """Like require_authentication, minus the account and membership checks

    Used by logout so suspended or deactivated members can still end
    their sessions.
    """
    if not token:
        logger.warning(f"Unauthenticated request to {request.url.path}")
        raise AuthenticationError("Authentication required", ErrorCode.AUTHENTICATION_REQUIRED)
    return await service.authenticate(token, organization_id, require_active_membership=False)


async def require_organization_admin(
    member: AuthenticatedMember = Depends(require_authentication),
) -> AuthenticatedMember:
    """Require an owner or admin of the organization"""
    if not member.is_admin:
        logger.warning(f"User {member.user_id} with roles {member.roles} denied membership management")
        raise ForbiddenError("Organization admin role required", ErrorCode.INSUFFICIENT_PERMISSIONS)
    return member


def request_context(request: Request) -> dict:
    """Client details forwarded to the auth core for session tracking"""
    return {
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


@router.post("/register", status_code=201)
async def register(
    organization_id: str,
    body: TenantRegisterRequest,
    request: Request,
    response: Response,
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> dict:
    """Register a new user as a member of the organization"""
    correlation_id = str(uuid.uuid4())
    response.headers["X-Correlation-Id"] = correlation_id

    result = await service.register_tenant_user(
        body.user_data(),
        organization_id,
        {**request_context(request), **body.options()},
    )

    logger.info(
        f"Registration successful for user {result.user['user_id']} (correlation: {correlation_id})"
    )
    return result.to_dict()


@router.post("/login")
async def login(
    organization_id: str,
    body: TenantLoginRequest,
    request: Request,
    response: Response,
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> dict:
    """Authenticate against the organization

    Answers with the tenant login envelope, or with
    {"requires_mfa": true, "temp_token": ...} when a second factor is needed.
    """
    correlation_id = str(uuid.uuid4())
    response.headers["X-Correlation-Id"] = correlation_id

    credentials = body.model_dump(include={"email", "password", "mfa_code", "mfa_method"}, exclude_none=True)
    options = request_context(request)
    options["device_fingerprint"] = body.device_fingerprint

    result = await service.login_tenant_user(credentials, organization_id, options)

    logger.info(f"Login handled for {body.email} requires_mfa={result.requires_mfa} (correlation: {correlation_id})")
    return result.to_dict()


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    organization_id: str,
    body: LogoutRequest,
    request: Request,
    token: Optional[str] = Depends(extract_bearer_token),
    caller: AuthenticatedMember = Depends(require_token_holder),
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> LogoutResponse:
    """Terminate the caller's session and revoke the presented tokens"""
    result = await service.logout_tenant_user(
        caller.user_id,
        body.session_id,
        organization_id,
        {
            **request_context(request),
            "access_token": token,
            "refresh_token": body.refresh_token,
            "logout_all": body.logout_all,
        },
    )
    return LogoutResponse(**result)


@router.post("/refresh")
async def refresh(
    organization_id: str,
    body: RefreshTokenRequest,
    request: Request,
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> dict:
    """Exchange a refresh token for a new token pair"""
    result = await service.refresh_token(body.refresh_token, organization_id, request_context(request))
    return to_json_compatible(result)


@router.post("/password-reset")
async def request_password_reset(
    organization_id: str,
    body: PasswordResetRequest,
    request: Request,
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> dict:
    """Request a password reset email

    Always answers with the same message whether or not the email exists.
    """
    return await service.request_password_reset(body.email, organization_id, request_context(request))


@router.post("/password-reset/confirm")
async def confirm_password_reset(
    organization_id: str,
    body: PasswordResetConfirmRequest,
    request: Request,
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> dict:
    return await service.reset_password(body.token, body.new_password, organization_id, request_context(request))


@router.post("/password/change")
async def change_password(
    organization_id: str,
    body: ChangePasswordRequest,
    request: Request,
    caller: AuthenticatedMember = Depends(require_authentication),
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> dict:
    """Change the caller's password (current password required)"""
    return await service.change_password(
        caller.user_id, body.current_password, body.new_password, organization_id, request_context(request)
    )


@router.post("/verify-email")
async def verify_email(
    organization_id: str,
    body: VerifyEmailRequest,
    request: Request,
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> dict:
    return await service.verify_email(body.token, organization_id, request_context(request))


@router.post("/verify-email/resend")
async def resend_email_verification(
    organization_id: str,
    body: ResendVerificationRequest,
    request: Request,
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> dict:
    """Send a fresh verification link (same answer for unknown emails)"""
    return await service.resend_email_verification(body.email, organization_id, request_context(request))


@router.post("/mfa/enable")
async def enable_mfa(
    organization_id: str,
    body: EnableMFARequest,
    request: Request,
    caller: AuthenticatedMember = Depends(require_authentication),
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> dict:
    """Start MFA setup (totp or email) for the caller"""
    return await service.enable_mfa(caller.user_id, body.method, organization_id, request_context(request))


@router.post("/mfa/verify")
async def verify_mfa(
    organization_id: str,
    body: VerifyMFARequest,
    request: Request,
    caller: AuthenticatedMember = Depends(require_authentication),
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> dict:
    """Complete the caller's MFA setup with the first code"""
    return await service.verify_and_complete_mfa(
        caller.user_id, body.method, body.code, organization_id, request_context(request)
    )


@router.post("/mfa/disable")
async def disable_mfa(
    organization_id: str,
    body: DisableMFARequest,
    request: Request,
    caller: AuthenticatedMember = Depends(require_authentication),
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> dict:
    """Remove one of the caller's second factors (password required)"""
    return await service.disable_mfa(
        caller.user_id, body.method, body.password, organization_id, request_context(request)
    )


@router.put("/members/{user_id}/status")
async def change_member_status(
    organization_id: str,
    user_id: str,
    body: MemberStatusRequest,
    admin: AuthenticatedMember = Depends(require_organization_admin),
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> dict:
    membership = await service.change_member_status(user_id, organization_id, body.status)
    logger.info(f"Membership status of {user_id} set to {body.status} by {admin.user_id}")
    return membership.to_dict()


@router.put("/members/{user_id}/roles")
async def update_member_roles(
    organization_id: str,
    user_id: str,
    body: MemberRolesRequest,
    admin: AuthenticatedMember = Depends(require_organization_admin),
    service: TenantAuthService = Depends(get_tenant_auth_service),
) -> dict:
    if "owner" in body.roles and not admin.is_owner:
        raise ForbiddenError("Only owners can grant the owner role", ErrorCode.INSUFFICIENT_PERMISSIONS)

    membership = await service.update_member_roles(user_id, organization_id, body.roles)
    logger.info(f"Roles of {user_id} set to {membership.role_names} by {admin.user_id}")
    return membership.to_dict()
