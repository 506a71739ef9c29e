"""Generic authentication core.

Register/login/logout/refresh, password reset, email verification and
MFA primitives shared by every user context. Context-specific behavior
(tenancy, membership checks, response shaping) is plugged in through
AuthHooks and a UserStructure descriptor rather than subclasses.
"""

import hmac
import logging
import re
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple, Union

from tenant_auth_service.core.auth import mfa
from tenant_auth_service.core.auth.hooks import AuthHooks, UserStructure
from tenant_auth_service.domain.errors import (
    AppError,
    AuthenticationError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from tenant_auth_service.domain.models import (
    AccountStatus,
    AuthResult,
    MFAChallenge,
    MFAMethod,
    MembershipStatus,
    OrganizationMembership,
    RoleAssignment,
    TenantUser,
    parse_utc_timestamp,
)
from tenant_auth_service.infrastructure.auth.passwords import PasswordService, hash_token
from tenant_auth_service.infrastructure.auth.session_store import SessionStore, TokenBlacklist
from tenant_auth_service.infrastructure.auth.token_service import ACCESS, REFRESH, TokenService
from tenant_auth_service.infrastructure.auth.user_store import TenantUserStore

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSWORD_RESET_MESSAGE = "If the email exists, a reset link has been sent"
RESEND_VERIFICATION_MESSAGE = "If the email exists and is unverified, a verification link has been sent"
PASSWORD_HISTORY_SIZE = 5
SUPPORTED_MFA_METHODS = ("totp", "email")


@dataclass
class AuthConfig:
    """Auth core behavior for one user context

    Attributes:
        context: Name used in log messages (tenant, customer, ...)
        require_email_verification: New accounts start pending_verification
        enable_mfa: Allow users to set up second factors
        max_login_attempts: Failed passwords before the account locks
        lockout_duration_seconds: Lock period
        password_reset_expire_seconds: Reset token lifetime
        email_verification_expire_seconds: Verification token lifetime
        mfa_code_expire_seconds: Emailed MFA setup code lifetime
        max_password_age_days: Password age that triggers requires_password_change
        default_role: Role given when no membership data is supplied
        issuer: Issuer shown in authenticator apps
        tracking_fields: Request options copied into user metadata at registration
    """
    context: str = "default"
    require_email_verification: bool = True
    enable_mfa: bool = True
    max_login_attempts: int = 5
    lockout_duration_seconds: int = 30 * 60
    password_reset_expire_seconds: int = 60 * 60
    email_verification_expire_seconds: int = 24 * 60 * 60
    mfa_code_expire_seconds: int = 10 * 60
    max_password_age_days: int = 90
    default_role: str = "member"
    issuer: str = "Tenant Auth"
    tracking_fields: Tuple[str, ...] = field(default=("ip", "user_agent", "device_fingerprint"))


def default_sanitize_user(user: TenantUser) -> Dict[str, Any]:
    """External representation of a user with credential material removed"""
    data = user.to_dict()
    for key in ("password", "password_history", "security", "verification"):
        data.pop(key, None)
    data.get("mfa", {}).pop("methods", None)
    return data


class AuthService:
    """Authentication engine parameterized by hooks and a user structure"""

    def __init__(
        self,
        user_store: TenantUserStore,
        session_store: SessionStore,
        token_blacklist: TokenBlacklist,
        token_service: TokenService,
        password_service: PasswordService,
        config: Optional[AuthConfig] = None,
        user_structure: Optional[UserStructure] = None,
        hooks: Optional[AuthHooks] = None,
    ):
        self.user_store = user_store
        self.session_store = session_store
        self.token_blacklist = token_blacklist
        self.token_service = token_service
        self.password_service = password_service
        self.config = config or AuthConfig()
        self.user_structure = user_structure or UserStructure()
        self.hooks = hooks or AuthHooks()

    # ============= REGISTRATION / LOGIN =============

    async def register(
        self,
        user_data: Dict[str, Any],
        tenant_id: Optional[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> AuthResult:
        """Create a user, issue tokens and open a session.

        Args:
            user_data: email, password and profile fields
            tenant_id: Organization the user registers against
            options: ip, user_agent, device_fingerprint, organization_data,
                role_config, metadata, user_type, source

        Raises:
            ValidationError: INVALID_EMAIL or INVALID_PASSWORD
            ConflictError: USER_EXISTS
        """
        options = options or {}
        email = (user_data.get("email") or "").strip().lower()

        try:
            if self.hooks.before_register:
                await self.hooks.before_register(user_data, tenant_id, options)

            if not EMAIL_PATTERN.match(email):
                raise ValidationError("Invalid email format", ErrorCode.INVALID_EMAIL)

            if await self.user_store.get_user_by_email(email):
                raise ConflictError("User already exists with this email", ErrorCode.USER_EXISTS)

            password = user_data.get("password") or ""
            validation = self.password_service.validate(password)
            if not validation.valid:
                raise ValidationError(
                    f"Password validation failed: {', '.join(validation.errors)}",
                    ErrorCode.INVALID_PASSWORD,
                )

            user = self._build_user_document(user_data, email, self.password_service.hash(password), tenant_id, options)

            # Runs before the write so hook mutations are persisted
            if self.hooks.enrich_user_data:
                await self.hooks.enrich_user_data(user, options)

            try:
                await self.user_store.create_user(user)
            except ValueError as e:
                raise ConflictError(str(e), ErrorCode.USER_EXISTS)

            verification_token = None
            if self.config.require_email_verification:
                verification_token = await self._issue_verification_token(user)

            tokens = self.token_service.generate_tokens(user, tenant_id)
            session = await self.session_store.create_session(
                user_id=user.user_id,
                tenant_id=tenant_id,
                ip=options.get("ip"),
                user_agent=options.get("user_agent"),
                device_fingerprint=options.get("device_fingerprint"),
            )

            if self.hooks.after_register:
                await self.hooks.after_register(user, tokens, session, options)

            logger.info(f"User registered: {user.user_id} ({email}) tenant={tenant_id} context={self.config.context}")

            return AuthResult(
                user=await self.sanitize(user, options),
                tokens=tokens,
                session=session,
                user_type=options.get("user_type", "customer"),
                requires_email_verification=self.config.require_email_verification,
                verification_token=verification_token,
            )

        except AppError as e:
            logger.warning(f"Registration failed for {email} tenant={tenant_id}: {e.error_code} {e.message}")
            raise

    async def login(
        self,
        credentials: Dict[str, Any],
        tenant_id: Optional[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> Union[AuthResult, MFAChallenge]:
        """Authenticate with email/password (and MFA code when enabled).

        Returns:
            AuthResult, or MFAChallenge when a second factor is required
            and no code was supplied

        Raises:
            AuthenticationError: INVALID_CREDENTIALS or INVALID_MFA_CODE
            ForbiddenError: account status or validate_user hook rejection
        """
        options = options or {}
        email = (credentials.get("email") or "").strip().lower()

        try:
            if self.hooks.before_login:
                await self.hooks.before_login(credentials, tenant_id, options)

            user = await self.user_store.get_user_by_email(email)
            if not user:
                raise AuthenticationError("Invalid credentials", ErrorCode.INVALID_CREDENTIALS)

            await self._validate_user_status(user, options)

            if not self.password_service.verify(credentials.get("password"), user.password):
                await self._handle_failed_login(user, options)
                raise AuthenticationError("Invalid credentials", ErrorCode.INVALID_CREDENTIALS)

            mfa_code = credentials.get("mfa_code")
            if user.mfa.enabled and not mfa_code:
                logger.info(f"MFA challenge issued for user {user.user_id}")
                return MFAChallenge(
                    user_id=user.user_id,
                    temp_token=self.token_service.create_temp_token(user, tenant_id),
                    mfa_methods=[
                        {"type": m.type, "is_preferred": m.type == user.mfa.preferred_method}
                        for m in user.mfa.methods
                        if m.enabled
                    ],
                    preferred_method=user.mfa.preferred_method,
                )

            if user.mfa.enabled and not self._verify_mfa_code(user, mfa_code, credentials.get("mfa_method")):
                logger.warning(f"Invalid MFA code for user {user.user_id} ip={options.get('ip')}")
                raise AuthenticationError("Invalid MFA code", ErrorCode.INVALID_MFA_CODE)

            tokens = self.token_service.generate_tokens(user, tenant_id)
            session = await self.session_store.create_session(
                user_id=user.user_id,
                tenant_id=tenant_id,
                ip=options.get("ip"),
                user_agent=options.get("user_agent"),
                device_fingerprint=options.get("device_fingerprint"),
            )

            await self._record_successful_login(user, options)

            if self.hooks.after_login:
                await self.hooks.after_login(user, tokens, session, options)

            logger.info(f"User logged in: {user.user_id} tenant={tenant_id} context={self.config.context}")

            return AuthResult(
                user=await self.sanitize(user, options),
                tokens=tokens,
                session=session,
                user_type=options.get("user_type") or user.metadata.get("user_type", "customer"),
                requires_password_change=self._requires_password_change(user),
            )

        except AppError as e:
            logger.warning(f"Login failed for {email} tenant={tenant_id}: {e.error_code} {e.message}")
            raise

    async def logout(
        self,
        user_id: str,
        session_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Terminate the session and revoke the supplied tokens.

        Options:
            access_token: Blacklisted until it expires
            refresh_token: Revoked by jti when issued to user_id
            logout_all: Terminate every session of the user

        Raises:
            NotFoundError: SESSION_NOT_FOUND when the session belongs to another user
        """
        options = options or {}

        if self.hooks.before_logout:
            await self.hooks.before_logout(user_id, session_id, options)

        if session_id:
            session = await self.session_store.get_session(session_id)
            if session and session.user_id != user_id:
                logger.warning(f"Logout of session {session_id} rejected: not owned by user {user_id}")
                raise NotFoundError("Session not found", ErrorCode.SESSION_NOT_FOUND)
            await self.session_store.terminate_session(session_id)

        access_token = options.get("access_token")
        if access_token:
            await self.token_blacklist.add_token(access_token, self.token_service.remaining_lifetime(access_token))

        refresh_token = options.get("refresh_token")
        if refresh_token:
            claims = self.token_service.decode_unverified(refresh_token)
            if claims and claims.get("jti") and claims.get("sub") == user_id:
                await self.token_blacklist.revoke_refresh_token(
                    claims["jti"], self.token_service.remaining_lifetime(refresh_token)
                )

        if options.get("logout_all"):
            await self.session_store.terminate_user_sessions(user_id)

        if self.hooks.after_logout:
            await self.hooks.after_logout(user_id, session_id, options)

        logger.info(f"User logged out: {user_id} session={session_id} logout_all={bool(options.get('logout_all'))}")
        return {"success": True, "message": "Logged out successfully"}

    async def refresh_token(
        self,
        refresh_token: str,
        tenant_id: Optional[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Rotate a refresh token into a new token pair.

        Raises:
            AuthenticationError: INVALID_TOKEN or TOKEN_REVOKED
            NotFoundError: USER_NOT_FOUND
        """
        options = options or {}
        payload = self.token_service.verify_token(refresh_token, REFRESH)

        if await self.token_blacklist.is_refresh_token_revoked(payload["jti"]):
            raise AuthenticationError("Token has been revoked", ErrorCode.TOKEN_REVOKED)

        user = await self.user_store.get_user(payload["sub"])
        if not user:
            raise NotFoundError("User not found", ErrorCode.USER_NOT_FOUND)

        await self._validate_user_status(user, options)

        tokens = self.token_service.generate_tokens(user, tenant_id or payload.get("org_id"))
        await self.token_blacklist.revoke_refresh_token(
            payload["jti"], self.token_service.remaining_lifetime(refresh_token)
        )

        logger.info(f"Token refreshed for user {user.user_id}")
        return {"tokens": tokens, "user": await self.sanitize(user, options)}

    async def authenticate_token(
        self,
        access_token: str,
        options: Optional[Dict[str, Any]] = None,
        validate: bool = True,
    ) -> Tuple[TenantUser, Dict[str, Any]]:
        """Resolve a bearer access token to its user and claims.

        Logged-out (blacklisted) tokens are rejected. With `validate` the
        account status checks and the validate_user hook run as on login.

        Raises:
            AuthenticationError: INVALID_TOKEN or TOKEN_REVOKED
            ForbiddenError: account status or validate_user hook rejection
        """
        options = options or {}
        claims = self.token_service.verify_token(access_token, ACCESS)

        if await self.token_blacklist.is_blacklisted(access_token):
            raise AuthenticationError("Token has been revoked", ErrorCode.TOKEN_REVOKED)

        user = await self.user_store.get_user(claims["sub"])
        if not user:
            raise AuthenticationError("Invalid token: unknown subject", ErrorCode.INVALID_TOKEN)

        if validate:
            await self._validate_user_status(user, options)

        return user, claims

    # ============= MFA =============

    async def enable_mfa(
        self,
        user_id: str,
        method: str,
        tenant_id: Optional[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Start second-factor setup; completed by verify_and_complete_mfa.

        For the email method the result carries `verification_code` so the
        caller can deliver it; it must not be returned to clients.

        Raises:
            ValidationError: MFA_DISABLED or UNSUPPORTED_MFA_METHOD
            NotFoundError: USER_NOT_FOUND
        """
        if not self.config.enable_mfa:
            raise ValidationError("MFA is disabled", ErrorCode.MFA_DISABLED)

        method = (method or "").lower()
        if method not in SUPPORTED_MFA_METHODS:
            raise ValidationError(f"Unsupported MFA method: {method}", ErrorCode.UNSUPPORTED_MFA_METHOD)

        user = await self._get_user_or_raise(user_id)

        # A new setup replaces any unfinished setup of the same type
        user.mfa.methods = [m for m in user.mfa.methods if m.type != method or m.enabled]

        if method == "totp":
            secret = mfa.generate_totp_secret()
            user.mfa.methods.append(MFAMethod(type="totp", secret=secret))
            setup = {
                "method": "totp",
                "secret": secret,
                "otpauth_uri": mfa.build_otpauth_uri(secret, user.email, self.config.issuer),
                "instructions": "Add the secret to your authenticator app",
            }
        else:
            code = mfa.generate_numeric_code()
            expires = datetime.now(timezone.utc) + timedelta(seconds=self.config.mfa_code_expire_seconds)
            user.mfa.methods.append(MFAMethod(type="email", code_hash=hash_token(code), code_expires=expires))
            setup = {
                "method": "email",
                "email": mfa.mask_email(user.email),
                "code_expires": expires.isoformat(),
                "verification_code": code,
                "instructions": "A verification code has been sent to your email",
            }

        await self.user_store.update_user(user)

        logger.info(f"MFA setup initiated: user={user_id} method={method} tenant={tenant_id}")
        return {"success": True, **setup, "next_step": "verify_mfa_code"}

    async def verify_and_complete_mfa(
        self,
        user_id: str,
        method: str,
        code: str,
        tenant_id: Optional[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Confirm a pending second factor and enable it.

        Raises:
            NotFoundError: USER_NOT_FOUND or MFA_METHOD_NOT_FOUND
            ValidationError: CODE_EXPIRED
            AuthenticationError: INVALID_CODE
        """
        user = await self._get_user_or_raise(user_id)

        pending = user.mfa.get_method(method, enabled=False)
        if not pending:
            raise NotFoundError("MFA method not found or already enabled", ErrorCode.MFA_METHOD_NOT_FOUND)

        if pending.type == "totp":
            valid = mfa.verify_totp(pending.secret, code)
        else:
            if not pending.code_expires or datetime.now(timezone.utc) > pending.code_expires:
                raise ValidationError("Verification code expired", ErrorCode.CODE_EXPIRED)
            valid = bool(code) and hmac.compare_digest(hash_token(code), pending.code_hash or "")

        if not valid:
            raise AuthenticationError("Invalid verification code", ErrorCode.INVALID_CODE)

        pending.enabled = True
        pending.verified_at = datetime.now(timezone.utc)
        pending.code_hash = None
        pending.code_expires = None
        user.mfa.enabled = True
        if not user.mfa.preferred_method:
            user.mfa.preferred_method = pending.type

        await self.user_store.update_user(user)

        logger.info(f"MFA enabled: user={user_id} method={pending.type} tenant={tenant_id}")
        return {"success": True, "method": pending.type, "message": "MFA enabled successfully"}

    async def disable_mfa(
        self,
        user_id: str,
        method: str,
        password: str,
        tenant_id: Optional[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Remove a second factor after re-checking the password.

        MFA stays enabled while other enabled methods remain.

        Raises:
            NotFoundError: USER_NOT_FOUND or MFA_METHOD_NOT_FOUND
            AuthenticationError: INVALID_PASSWORD
        """
        user = await self._get_user_or_raise(user_id)

        if not self.password_service.verify(password, user.password):
            logger.warning(f"MFA disable rejected for user {user_id}: wrong password")
            raise AuthenticationError("Invalid password", ErrorCode.INVALID_PASSWORD)

        method = (method or "").lower()
        if not any(m.type == method for m in user.mfa.methods):
            raise NotFoundError("MFA method not found", ErrorCode.MFA_METHOD_NOT_FOUND)

        user.mfa.methods = [m for m in user.mfa.methods if m.type != method]
        if not any(m.enabled for m in user.mfa.methods):
            user.mfa.enabled = False
            user.mfa.preferred_method = None
        elif user.mfa.preferred_method == method:
            user.mfa.preferred_method = next(m.type for m in user.mfa.methods if m.enabled)

        await self.user_store.update_user(user)

        logger.info(f"MFA disabled: user={user_id} method={method} tenant={tenant_id}")
        return {
            "success": True,
            "message": "MFA disabled successfully",
            "mfa_enabled": user.mfa.enabled,
            "remaining_methods": [m.type for m in user.mfa.methods],
        }

    # ============= PASSWORD RESET / EMAIL VERIFICATION =============

    async def request_password_reset(
        self,
        email: str,
        tenant_id: Optional[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Issue a password reset token.

        The response is identical whether or not the email exists. When it
        does, `reset_token` carries the raw token for delivery; callers
        only pass it on to clients in development.
        """
        options = options or {}
        response = {"success": True, "message": PASSWORD_RESET_MESSAGE}

        user = await self.user_store.get_user_by_email(email)
        if not user:
            logger.warning(f"Password reset requested for unknown email {email} tenant={tenant_id}")
            return response

        token = secrets.token_hex(32)
        token_hash = hash_token(token)
        user.security.password_reset_token_hash = token_hash
        user.security.password_reset_expires = datetime.now(timezone.utc) + timedelta(
            seconds=self.config.password_reset_expire_seconds
        )
        await self.user_store.update_user(user)
        await self.user_store.index_reset_token(token_hash, user.user_id, self.config.password_reset_expire_seconds)

        logger.info(f"Password reset token issued for user {user.user_id} ip={options.get('ip')}")
        response["reset_token"] = token
        return response

    async def reset_password(
        self,
        token: str,
        new_password: str,
        tenant_id: Optional[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Set a new password with a reset token and end all sessions.

        Raises:
            ValidationError: INVALID_RESET_TOKEN or INVALID_PASSWORD
        """
        token_hash = hash_token(token or "")
        user = await self.user_store.find_by_reset_token(token_hash)
        if (
            not user
            or user.security.password_reset_token_hash != token_hash
            or not user.security.password_reset_expires
            or datetime.now(timezone.utc) > user.security.password_reset_expires
        ):
            raise ValidationError("Invalid or expired reset token", ErrorCode.INVALID_RESET_TOKEN)

        validation = self.password_service.validate(new_password)
        if not validation.valid:
            raise ValidationError(
                f"Password validation failed: {', '.join(validation.errors)}",
                ErrorCode.INVALID_PASSWORD,
            )

        user.password_history = ([user.password] + user.password_history)[:PASSWORD_HISTORY_SIZE]
        user.password = self.password_service.hash(new_password)
        user.security.password_reset_token_hash = None
        user.security.password_reset_expires = None
        user.activity["last_password_change_at"] = datetime.now(timezone.utc).isoformat()
        await self.user_store.update_user(user)
        await self.user_store.clear_reset_token(token_hash)

        await self.session_store.terminate_user_sessions(user.user_id)

        logger.info(f"Password reset for user {user.user_id} tenant={tenant_id}")
        return {"success": True, "message": "Password reset successfully. Please login with your new password."}

    async def change_password(
        self,
        user_id: str,
        current_password: str,
        new_password: str,
        tenant_id: Optional[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Change the password of a signed-in user.

        The new password must differ from the current one and from the
        last PASSWORD_HISTORY_SIZE passwords.

        Raises:
            NotFoundError: USER_NOT_FOUND
            AuthenticationError: INVALID_PASSWORD (wrong current password)
            ValidationError: INVALID_PASSWORD or PASSWORD_REUSED
        """
        user = await self._get_user_or_raise(user_id)

        if not self.password_service.verify(current_password, user.password):
            logger.warning(f"Password change rejected for user {user_id}: wrong current password")
            raise AuthenticationError("Current password is incorrect", ErrorCode.INVALID_PASSWORD)

        validation = self.password_service.validate(new_password)
        if not validation.valid:
            raise ValidationError(
                f"Password validation failed: {', '.join(validation.errors)}",
                ErrorCode.INVALID_PASSWORD,
            )

        if any(self.password_service.verify(new_password, old) for old in [user.password] + user.password_history):
            raise ValidationError("Password was used recently", ErrorCode.PASSWORD_REUSED)

        user.password_history = ([user.password] + user.password_history)[:PASSWORD_HISTORY_SIZE]
        user.password = self.password_service.hash(new_password)
        user.activity["last_password_change_at"] = datetime.now(timezone.utc).isoformat()
        await self.user_store.update_user(user)

        logger.info(f"Password changed for user {user_id} tenant={tenant_id}")
        return {"success": True, "message": "Password changed successfully"}

    async def verify_email(
        self,
        token: str,
        tenant_id: Optional[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Mark the email verified and activate a pending account.

        Raises:
            ValidationError: INVALID_TOKEN
        """
        token_hash = hash_token(token or "")
        user = await self.user_store.find_by_verification_token(token_hash)
        if not user or user.verification.token_hash != token_hash:
            raise ValidationError("Invalid or expired verification token", ErrorCode.INVALID_TOKEN)

        user.verification.verified = True
        user.verification.verified_at = datetime.now(timezone.utc)
        user.verification.token_hash = None
        user.verification.token_expires = None
        if user.account_status == AccountStatus.PENDING_VERIFICATION:
            user.account_status = AccountStatus.ACTIVE

        await self.user_store.update_user(user)
        await self.user_store.clear_verification_token(token_hash)

        logger.info(f"Email verified for user {user.user_id} tenant={tenant_id}")
        return {
            "success": True,
            "message": "Email verified successfully",
            "account_status": user.account_status.value,
        }

    async def resend_email_verification(
        self,
        email: str,
        tenant_id: Optional[str],
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Issue a fresh email verification token.

        Unknown and already verified emails get the same response. When a
        token is issued `verification_token` carries it for delivery.
        """
        response = {"success": True, "message": RESEND_VERIFICATION_MESSAGE}

        user = await self.user_store.get_user_by_email(email)
        if not user or user.verification.verified:
            logger.info(f"Verification resend skipped for {email} tenant={tenant_id}")
            return response

        if user.verification.token_hash:
            await self.user_store.clear_verification_token(user.verification.token_hash)

        response["verification_token"] = await self._issue_verification_token(user)

        logger.info(f"Verification token reissued for user {user.user_id} tenant={tenant_id}")
        return response

    async def sanitize(self, user: TenantUser, options: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """External user representation (hook or default sanitizer)"""
        if self.hooks.sanitize_user_data:
            return await self.hooks.sanitize_user_data(user, options or {})
        return default_sanitize_user(user)

    # ============= INTERNALS =============

    def _build_user_document(
        self,
        user_data: Dict[str, Any],
        email: str,
        hashed_password: str,
        tenant_id: Optional[str],
        options: Dict[str, Any],
    ) -> TenantUser:
        organizations = []
        if self.user_structure.organization_field and tenant_id:
            organizations = options.get("organization_data") or [self._default_membership(tenant_id, options)]

        metadata = {
            "user_type": options.get("user_type", "customer"),
            "source": options.get("source", "web"),
            "context": self.config.context,
            **(options.get("metadata") or {}),
        }
        for name in self.config.tracking_fields:
            if options.get(name) is not None:
                metadata[name] = options[name]

        return TenantUser(
            user_id=str(uuid.uuid4()),
            email=email,
            password=hashed_password,
            username=user_data.get("username"),
            profile=self.user_structure.extract_profile(user_data),
            account_status=(
                AccountStatus.PENDING_VERIFICATION
                if self.config.require_email_verification
                else AccountStatus.ACTIVE
            ),
            metadata=metadata,
            organizations=organizations,
        )

    def _default_membership(self, tenant_id: str, options: Dict[str, Any]) -> OrganizationMembership:
        role_config = options.get("role_config") or {}
        roles = role_config.get("roles") or [role_config.get("default_role") or self.config.default_role]
        return OrganizationMembership(
            organization_id=tenant_id,
            roles=[RoleAssignment(role_name=role) for role in roles],
            is_primary=True,
            status=MembershipStatus.ACTIVE,
        )

    async def _issue_verification_token(self, user: TenantUser) -> str:
        token = secrets.token_hex(32)
        token_hash = hash_token(token)
        user.verification.token_hash = token_hash
        user.verification.token_expires = datetime.now(timezone.utc) + timedelta(
            seconds=self.config.email_verification_expire_seconds
        )
        await self.user_store.update_user(user)
        await self.user_store.index_verification_token(
            token_hash, user.user_id, self.config.email_verification_expire_seconds
        )
        return token

    async def _get_user_or_raise(self, user_id: str) -> TenantUser:
        user = await self.user_store.get_user(user_id)
        if not user:
            raise NotFoundError("User not found", ErrorCode.USER_NOT_FOUND)
        return user

    async def _validate_user_status(self, user: TenantUser, options: Dict[str, Any]) -> None:
        """Reject logins for non-active accounts, then run the validate_user hook"""
        status = user.account_status

        if status == AccountStatus.PENDING_VERIFICATION:
            raise ForbiddenError("Email verification required", ErrorCode.EMAIL_VERIFICATION_REQUIRED)
        if status == AccountStatus.PENDING_APPROVAL:
            raise ForbiddenError("Account pending approval", ErrorCode.PENDING_APPROVAL)
        if status == AccountStatus.SUSPENDED:
            raise ForbiddenError("Account suspended", ErrorCode.ACCOUNT_SUSPENDED)
        if status == AccountStatus.LOCKED:
            lock_until = user.security.lock_until
            now = datetime.now(timezone.utc)
            if lock_until and now < lock_until:
                remaining = -(-int((lock_until - now).total_seconds()) // 60)
                raise ForbiddenError(f"Account locked. Try again in {remaining} minutes", ErrorCode.ACCOUNT_LOCKED)
            # Lock expired
            user.account_status = AccountStatus.ACTIVE
            user.security.lock_until = None
            user.security.failed_login_count = 0
            await self.user_store.update_user(user)
            logger.info(f"Account {user.user_id} unlocked after lockout expiry")
        elif status == AccountStatus.DELETED:
            raise NotFoundError("Account not found", ErrorCode.ACCOUNT_NOT_FOUND)
        elif status == AccountStatus.BANNED:
            raise ForbiddenError("Account banned", ErrorCode.ACCOUNT_BANNED)
        elif status == AccountStatus.INACTIVE:
            raise ForbiddenError("Account inactive", ErrorCode.ACCOUNT_INACTIVE)
        elif status != AccountStatus.ACTIVE:
            raise ForbiddenError("Invalid account status", ErrorCode.INVALID_STATUS)

        if self.hooks.validate_user:
            await self.hooks.validate_user(user, options)

    async def _handle_failed_login(self, user: TenantUser, options: Dict[str, Any]) -> None:
        """Count a failed password; lock the account at max_login_attempts"""
        now = datetime.now(timezone.utc)
        user.security.failed_login_count += 1
        user.security.last_failed_login_at = now

        if user.security.failed_login_count >= self.config.max_login_attempts:
            user.account_status = AccountStatus.LOCKED
            user.security.lock_until = now + timedelta(seconds=self.config.lockout_duration_seconds)
            await self.user_store.update_user(user)
            logger.warning(
                f"Account {user.user_id} locked after {user.security.failed_login_count} "
                f"failed attempts ip={options.get('ip')}"
            )
            raise ForbiddenError("Account locked due to too many failed attempts", ErrorCode.ACCOUNT_LOCKED)

        await self.user_store.update_user(user)

    async def _record_successful_login(self, user: TenantUser, options: Dict[str, Any]) -> None:
        user.security.failed_login_count = 0
        user.security.last_failed_login_at = None
        user.activity["last_activity_at"] = datetime.now(timezone.utc).isoformat()
        user.activity["last_login_ip"] = options.get("ip")
        await self.user_store.update_user(user)

    def _verify_mfa_code(self, user: TenantUser, code: str, method: Optional[str] = None) -> bool:
        """Login-time second factor check (TOTP)"""
        method_type = method or user.mfa.preferred_method
        configured = user.mfa.get_method(method_type, enabled=True) if method_type else None
        if not configured or configured.type != "totp":
            return False
        return mfa.verify_totp(configured.secret, code)

    def _requires_password_change(self, user: TenantUser) -> bool:
        last_change = user.activity.get("last_password_change_at")
        if not last_change:
            return False
        changed_at = parse_utc_timestamp(last_change)
        return datetime.now(timezone.utc) - changed_at > timedelta(days=self.config.max_password_age_days)
