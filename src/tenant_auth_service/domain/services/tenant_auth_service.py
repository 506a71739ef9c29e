"""Tenant Authentication Service

Purpose: Authentication orchestration for users of hosted tenant organizations

Wires the generic AuthService to tenant semantics through hooks:
- Organization acceptance, email-domain and invitation checks before registration
- Membership validation during login (USER_NOT_MEMBER / MEMBERSHIP_INACTIVE)
- Tenant-scoped enrichment of login results (roles, profile, features)
- Best-effort side effects (usage counter, profile, welcome email, analytics)

Authorization failures are raised to the caller. Side-effect failures are
logged and never change the primary result; nothing is retried.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from redis.asyncio import Redis

from tenant_auth_service.config.settings import Settings, get_settings
from tenant_auth_service.core.auth import (
    AuthConfig,
    AuthHooks,
    AuthService,
    UserStructure,
    default_sanitize_user,
)
from tenant_auth_service.core.tasks import BackgroundTaskRunner
from tenant_auth_service.domain.errors import (
    ErrorCode,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from tenant_auth_service.domain.models import (
    AuthenticatedMember,
    FeatureFlags,
    MembershipStatus,
    MFAChallenge,
    NextStep,
    Organization,
    OrganizationContext,
    OrganizationMembership,
    ProfileStatus,
    RoleAssignment,
    TenantLoginResult,
    TenantRegistrationResult,
    TenantUser,
    TenantUserRole,
)
from tenant_auth_service.domain.services.analytics_service import AnalyticsService
from tenant_auth_service.domain.services.notification_service import NotificationService
from tenant_auth_service.domain.services.onboarding_service import OnboardingService
from tenant_auth_service.domain.services.organization_service import OrganizationService
from tenant_auth_service.domain.services.tenant_user_service import TenantUserService
from tenant_auth_service.infrastructure.auth.passwords import PasswordService
from tenant_auth_service.infrastructure.auth.session_store import SessionStore, TokenBlacklist
from tenant_auth_service.infrastructure.auth.token_service import TokenService
from tenant_auth_service.infrastructure.auth.user_store import TenantUserStore
from tenant_auth_service.infrastructure.organizations.store import OrganizationStore

logger = logging.getLogger(__name__)

TENANT_USER_STRUCTURE = UserStructure(
    identity_fields=["email", "username"],
    profile_fields=["first_name", "last_name", "phone_number"],
    organization_field="organizations",
)

# Request options forwarded to the auth core
REQUEST_OPTIONS = ("ip", "user_agent", "device_fingerprint")


@dataclass
class TenantAuthConfig:
    """Tenant orchestration settings, read once at construction"""
    require_email_verification: bool = True
    enable_mfa: bool = True
    max_login_attempts: int = 5
    lockout_duration_seconds: int = 30 * 60
    password_reset_expire_seconds: int = 60 * 60
    email_verification_expire_seconds: int = 24 * 60 * 60
    default_role: str = TenantUserRole.MEMBER.value
    enable_welcome_email: bool = True
    enable_onboarding: bool = True
    enable_analytics: bool = True
    require_profile_completion: bool = False
    platform_url: str = "https://yourplatform.com"
    support_email: str = "support@yourplatform.com"
    expose_debug_tokens: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> 'TenantAuthConfig':
        return cls(
            require_email_verification=settings.tenant_require_email_verification,
            enable_mfa=settings.tenant_enable_mfa,
            max_login_attempts=settings.tenant_max_login_attempts,
            lockout_duration_seconds=settings.tenant_lockout_duration_seconds,
            password_reset_expire_seconds=settings.password_reset_expire_seconds,
            email_verification_expire_seconds=settings.email_verification_expire_seconds,
            default_role=settings.tenant_default_role,
            enable_welcome_email=settings.tenant_welcome_email,
            enable_onboarding=settings.tenant_onboarding,
            enable_analytics=settings.tenant_analytics,
            require_profile_completion=settings.tenant_require_profile_completion,
            platform_url=settings.platform_url.rstrip("/"),
            support_email=settings.support_email,
            expose_debug_tokens=settings.is_development,
        )

    def auth_config(self) -> AuthConfig:
        return AuthConfig(
            context="tenant_organization",
            require_email_verification=self.require_email_verification,
            enable_mfa=self.enable_mfa,
            max_login_attempts=self.max_login_attempts,
            lockout_duration_seconds=self.lockout_duration_seconds,
            password_reset_expire_seconds=self.password_reset_expire_seconds,
            email_verification_expire_seconds=self.email_verification_expire_seconds,
            default_role=self.default_role,
        )


class TenantAuthService:
    """Authentication orchestrator for tenant organization users"""

    def __init__(
        self,
        user_store: TenantUserStore,
        session_store: SessionStore,
        token_blacklist: TokenBlacklist,
        token_service: TokenService,
        password_service: PasswordService,
        organization_service: OrganizationService,
        tenant_user_service: TenantUserService,
        notification_service: NotificationService,
        analytics_service: AnalyticsService,
        onboarding_service: OnboardingService,
        config: Optional[TenantAuthConfig] = None,
        tasks: Optional[BackgroundTaskRunner] = None,
    ):
        self.config = config or TenantAuthConfig()
        self.tasks = tasks or BackgroundTaskRunner()

        self.organization_service = organization_service
        self.tenant_user_service = tenant_user_service
        self.notification_service = notification_service
        self.analytics_service = analytics_service
        self.onboarding_service = onboarding_service

        self.auth_service = AuthService(
            user_store=user_store,
            session_store=session_store,
            token_blacklist=token_blacklist,
            token_service=token_service,
            password_service=password_service,
            config=self.config.auth_config(),
            user_structure=TENANT_USER_STRUCTURE,
            hooks=AuthHooks(
                before_register=self._before_register_hook,
                after_register=self._after_register_hook,
                before_login=self._before_login_hook,
                after_login=self._after_login_hook,
                enrich_user_data=self._enrich_user_data_hook,
                sanitize_user_data=self._sanitize_user_data_hook,
                validate_user=self._validate_user_hook,
            ),
        )

    # ============= REGISTRATION =============

    async def register_tenant_user(
        self,
        user_data: Dict[str, Any],
        organization_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> TenantRegistrationResult:
        """Register a new user as a member of an organization

        Args:
            user_data: email, password, username, profile fields, job_title
            organization_id: Target organization
            options: ip, user_agent, device_fingerprint, registration_source.
                Trusted callers only (invitation acceptance, admin tooling):
                roles, role, invitation_code, require_invitation, invited_by,
                department_id, team_ids. The organization's own
                require_invitation setting always applies.

        Raises:
            NotFoundError: ORG_NOT_FOUND
            ForbiddenError: Organization cannot accept users (reason/code verbatim)
            ValidationError: DOMAIN_NOT_ALLOWED, INVITATION_REQUIRED or INVALID_ROLE
        """
        options = options or {}
        try:
            organization = await self._validate_organization_can_accept_users(organization_id)
            self._validate_tenant_user_registration(user_data, organization, options)

            roles = self._determine_user_roles(options)
            membership = OrganizationMembership(
                organization_id=organization_id,
                roles=roles,
                is_primary=True,
                status=MembershipStatus.ACTIVE,
                invited_by=options.get("invited_by"),
                job_title=user_data.get("job_title"),
                department_id=options.get("department_id"),
                team_ids=list(options.get("team_ids") or []),
            )

            auth_result = await self.auth_service.register(
                self._enrich_tenant_user_data(user_data, options),
                organization_id,
                {
                    **{key: options.get(key) for key in REQUEST_OPTIONS},
                    "organization_id": organization_id,
                    "user_type": "tenant_user",
                    "source": "tenant_portal",
                    "organization_data": [membership],
                    "role_config": {
                        "roles": [role.role_name for role in roles],
                        "default_role": self.config.default_role,
                    },
                    "metadata": {
                        "tenant_context": True,
                        "organization_name": organization.name,
                        "registration_source": options.get("registration_source") or "direct",
                        "invitation_code": options.get("invitation_code"),
                    },
                },
            )
            user = auth_result.user
            user_id = user["user_id"]

            # Not compensated: a failure here leaves the users counter one short
            try:
                await self.organization_service.increment_usage(organization_id, "users")
            except Exception as e:
                logger.error(
                    f"Failed to increment user usage for organization {organization_id} "
                    f"after registering {user_id}: {e}"
                )

            self._execute_post_registration_workflows(user, organization, options)

            if auth_result.verification_token:
                self.tasks.spawn(
                    self._send_verification_email(user["email"], auth_result.verification_token, organization_id),
                    "verification_email",
                    user_id=user_id,
                    organization_id=organization_id,
                )

            onboarding = None
            if self.config.enable_onboarding:
                onboarding = await self._initialize_onboarding(user_id, organization_id)

            logger.info(f"Tenant user registered: {user_id} ({user['email']}) organization={organization_id}")

            return TenantRegistrationResult(
                user=user,
                tokens=auth_result.tokens,
                session=auth_result.session,
                user_type=auth_result.user_type,
                requires_email_verification=auth_result.requires_email_verification,
                verification_token=auth_result.verification_token,
                onboarding=onboarding,
                next_steps=self._get_registration_next_steps(auth_result.requires_email_verification),
                organization_portal_url=self._get_organization_portal_url(organization_id),
            )

        except Exception as e:
            logger.error(
                f"Tenant user registration failed for {user_data.get('email')} "
                f"organization={organization_id}: {e}"
            )
            raise

    # ============= LOGIN =============

    async def login_tenant_user(
        self,
        credentials: Dict[str, Any],
        organization_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Union[TenantLoginResult, MFAChallenge]:
        """Authenticate a user against one organization

        Returns:
            TenantLoginResult, or the auth core's MFAChallenge unchanged

        Raises:
            ForbiddenError: Organization unusable (reason/code verbatim),
                USER_NOT_MEMBER or MEMBERSHIP_INACTIVE
            AuthenticationError: Invalid credentials or MFA code
        """
        options = options or {}
        try:
            organization = await self._validate_organization_for_login(organization_id)

            login_result = await self.auth_service.login(
                credentials,
                organization_id,
                {
                    **{key: options.get(key) for key in REQUEST_OPTIONS},
                    "organization_id": organization_id,
                    "user_type": "tenant_user",
                },
            )

            if login_result.requires_mfa:
                return login_result

            user = login_result.user
            user_id = user["user_id"]

            # validate_user guarantees an active membership at this point
            membership = self._get_organization_membership(user, organization_id)

            profile_status = await self._check_profile_completion_status(user_id, organization_id)
            preferences = await self._load_user_preferences(user_id, organization_id)
            pending_notifications = await self._get_pending_notifications(user_id, organization_id)
            features = self._get_available_features(organization, membership, user_id)

            logger.info(f"Tenant user logged in: {user_id} organization={organization_id}")

            return TenantLoginResult(
                user=user,
                tokens=login_result.tokens,
                session=login_result.session,
                user_type=login_result.user_type,
                requires_password_change=login_result.requires_password_change,
                organization=OrganizationContext(
                    id=organization_id,
                    membership=membership,
                    roles=membership.role_names if membership else [],
                ),
                profile_status=profile_status,
                preferences=preferences,
                pending_notifications=pending_notifications,
                features=features,
                organization_portal_url=self._get_organization_portal_url(organization_id),
            )

        except Exception as e:
            logger.error(
                f"Tenant user login failed for {credentials.get('email')} "
                f"organization={organization_id}: {e}"
            )
            raise

    # ============= AUTHENTICATED CALLERS =============

    async def authenticate(
        self,
        access_token: str,
        organization_id: str,
        require_active_membership: bool = True,
    ) -> AuthenticatedMember:
        """Resolve a bearer access token to a caller within one organization

        Args:
            access_token: Access token from the Authorization header
            organization_id: Organization addressed by the request
            require_active_membership: Run account status and membership
                checks (skipped only for logout)

        Raises:
            AuthenticationError: INVALID_TOKEN or TOKEN_REVOKED
            ForbiddenError: ORGANIZATION_MISMATCH, account status,
                USER_NOT_MEMBER or MEMBERSHIP_INACTIVE
        """
        user, claims = await self.auth_service.authenticate_token(
            access_token,
            {"organization_id": organization_id},
            validate=require_active_membership,
        )

        if claims.get("org_id") != organization_id:
            logger.warning(
                f"Token for organization {claims.get('org_id')} used against {organization_id} by {user.user_id}"
            )
            raise ForbiddenError("Token was issued for another organization", ErrorCode.ORGANIZATION_MISMATCH)

        return AuthenticatedMember(user=user, membership=user.get_membership(organization_id), claims=claims)

    # ============= ACCOUNT OPERATIONS =============

    async def logout_tenant_user(
        self,
        user_id: str,
        session_id: str,
        organization_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        options = dict(options or {}, organization_id=organization_id)
        result = await self.auth_service.logout(user_id, session_id, options)
        logger.info(f"Tenant user logged out: {user_id} session={session_id} organization={organization_id}")
        return result

    async def refresh_token(
        self,
        refresh_token: str,
        organization_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        options = dict(options or {}, organization_id=organization_id)
        return await self.auth_service.refresh_token(refresh_token, organization_id, options)

    async def request_password_reset(
        self,
        email: str,
        organization_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Request a password reset and send an organization-branded email

        The raw token is only included in the result in development.
        """
        result = await self.auth_service.request_password_reset(email, organization_id, options)

        reset_token = result.pop("reset_token", None)
        if reset_token:
            self.tasks.spawn(
                self._send_password_reset_email(email, reset_token, organization_id),
                "password_reset_email",
                organization_id=organization_id,
            )
            if self.config.expose_debug_tokens:
                result["reset_token"] = reset_token

        logger.info(f"Password reset request processed for {email} organization={organization_id}")
        return result

    async def reset_password(
        self,
        token: str,
        new_password: str,
        organization_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return await self.auth_service.reset_password(token, new_password, organization_id, options)

    async def change_password(
        self,
        user_id: str,
        current_password: str,
        new_password: str,
        organization_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Change the password of an active member and notify them by email"""
        user = await self._get_active_member(user_id, organization_id)
        result = await self.auth_service.change_password(
            user_id, current_password, new_password, organization_id, options
        )

        self.tasks.spawn(
            self.notification_service.send_email(
                user.email,
                "tenant-password-changed",
                {"support_email": self.config.support_email},
            ),
            "password_changed_email",
            user_id=user_id,
            organization_id=organization_id,
        )

        logger.info(f"Password changed: user={user_id} organization={organization_id}")
        return result

    async def verify_email(
        self,
        token: str,
        organization_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        return await self.auth_service.verify_email(token, organization_id, options)

    async def resend_email_verification(
        self,
        email: str,
        organization_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a fresh verification link

        The raw token is only included in the result in development.
        """
        result = await self.auth_service.resend_email_verification(email, organization_id, options)

        verification_token = result.pop("verification_token", None)
        if verification_token:
            self.tasks.spawn(
                self._send_verification_email(email, verification_token, organization_id),
                "verification_email",
                organization_id=organization_id,
            )
            if self.config.expose_debug_tokens:
                result["verification_token"] = verification_token

        return result

    async def enable_mfa(
        self,
        user_id: str,
        method: str,
        organization_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Start MFA setup and send setup instructions

        An emailed verification code is delivered through the
        instructions email and never returned to the caller.
        """
        await self._get_active_member(user_id, organization_id)
        result = await self.auth_service.enable_mfa(user_id, method, organization_id, options)
        verification_code = result.pop("verification_code", None)

        self.tasks.spawn(
            self._send_mfa_setup_instructions(user_id, method, result, verification_code, organization_id),
            "mfa_setup_email",
            user_id=user_id,
            organization_id=organization_id,
        )

        logger.info(f"MFA setup initiated: user={user_id} method={method} organization={organization_id}")
        return {
            **result,
            "support_url": self._get_mfa_support_url(organization_id),
            "video_tutorial": self._get_mfa_video_tutorial_url(method),
        }

    async def verify_and_complete_mfa(
        self,
        user_id: str,
        method: str,
        code: str,
        organization_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        await self._get_active_member(user_id, organization_id)
        return await self.auth_service.verify_and_complete_mfa(user_id, method, code, organization_id, options)

    async def disable_mfa(
        self,
        user_id: str,
        method: str,
        password: str,
        organization_id: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        await self._get_active_member(user_id, organization_id)
        result = await self.auth_service.disable_mfa(user_id, method, password, organization_id, options)
        logger.info(f"MFA disabled: user={user_id} method={method} organization={organization_id}")
        return result

    # ============= MEMBERSHIP MANAGEMENT =============

    async def change_member_status(self, user_id: str, organization_id: str, status: str) -> OrganizationMembership:
        """Move a membership to a new state (removal is status=removed)

        Raises:
            NotFoundError: USER_NOT_FOUND or MEMBERSHIP_NOT_FOUND
            ValidationError: INVALID_STATUS
        """
        try:
            new_status = MembershipStatus(status)
        except ValueError:
            raise ValidationError(f"Invalid membership status: {status}", ErrorCode.INVALID_STATUS)

        user, membership = await self._get_member(user_id, organization_id)
        was_active = membership.is_active
        membership.transition_to(new_status)
        await self.auth_service.user_store.update_user(user)

        if was_active != membership.is_active:
            await self._adjust_user_usage(organization_id, increment=membership.is_active)

        logger.info(f"Membership of {user_id} in {organization_id} is now {new_status.value}")
        return membership

    async def update_member_roles(self, user_id: str, organization_id: str, roles: List[str]) -> OrganizationMembership:
        """Replace the roles held in an organization

        Raises:
            NotFoundError: USER_NOT_FOUND or MEMBERSHIP_NOT_FOUND
            ValidationError: INVALID_ROLE
        """
        valid_roles = {role.value for role in TenantUserRole}
        if not roles or any(role not in valid_roles for role in roles):
            raise ValidationError(f"Invalid roles: {roles}", ErrorCode.INVALID_ROLE)

        user, membership = await self._get_member(user_id, organization_id)
        existing = {role.role_name: role for role in membership.roles}
        membership.roles = [existing.get(name) or RoleAssignment(role_name=name) for name in dict.fromkeys(roles)]
        await self.auth_service.user_store.update_user(user)

        logger.info(f"Roles of {user_id} in {organization_id} set to {membership.role_names}")
        return membership

    async def drain(self) -> None:
        """Wait for in-flight side-effect tasks"""
        await self.tasks.drain()

    # ============= HOOK IMPLEMENTATIONS =============

    async def _before_register_hook(self, user_data, tenant_id, options):
        logger.debug(f"Before register hook: {user_data.get('email')} organization={tenant_id}")

    async def _after_register_hook(self, user, tokens, session, options):
        logger.debug(f"After register hook: {user.user_id} organization={options.get('organization_id')}")

    async def _before_login_hook(self, credentials, tenant_id, options):
        logger.debug(f"Before login hook: {credentials.get('email')} organization={tenant_id}")

    async def _after_login_hook(self, user, tokens, session, options):
        self.tasks.spawn(
            self.tenant_user_service.update_last_login(user.user_id),
            "update_last_login",
            user_id=user.user_id,
            organization_id=options.get("organization_id"),
        )
        logger.debug(f"After login hook: {user.user_id}")

    async def _enrich_user_data_hook(self, user: TenantUser, options):
        user.metadata["tenant_context"] = True
        user.metadata["organization_id"] = options.get("organization_id")
        logger.debug("User data enriched for tenant context")

    async def _sanitize_user_data_hook(self, user: TenantUser, options) -> Dict[str, Any]:
        return default_sanitize_user(user)

    async def _validate_user_hook(self, user: TenantUser, options):
        """Login authorization gate: active membership in the requested organization"""
        organization_id = options.get("organization_id")
        membership = user.get_membership(organization_id)

        if not membership:
            raise ForbiddenError("User does not belong to this organization", ErrorCode.USER_NOT_MEMBER)

        if not membership.is_active:
            raise ForbiddenError(
                f"Organization membership is {membership.status.value}",
                ErrorCode.MEMBERSHIP_INACTIVE,
                details={"status": membership.status.value},
            )

    # ============= VALIDATION =============

    async def _validate_organization_can_accept_users(self, organization_id: str) -> Organization:
        try:
            organization = await self.organization_service.get_organization(organization_id)
            acceptance = organization.can_accept_new_users()
            if not acceptance.allowed:
                raise ForbiddenError(acceptance.reason, acceptance.code)
            return organization
        except Exception as e:
            logger.error(f"Organization validation failed for {organization_id}: {e}")
            raise

    async def _validate_organization_for_login(self, organization_id: str) -> Organization:
        validation = await self.organization_service.validate_organization(organization_id)
        if not validation.valid:
            logger.error(f"Organization login validation failed for {organization_id}: {validation.reason}")
            raise ForbiddenError(validation.reason, validation.code)
        return validation.organization

    def _validate_tenant_user_registration(
        self, user_data: Dict[str, Any], organization: Organization, options: Dict[str, Any]
    ) -> None:
        if not organization.is_domain_allowed(user_data.get("email") or ""):
            raise ValidationError("Email domain not allowed for this organization", ErrorCode.DOMAIN_NOT_ALLOWED)

        require_invitation = organization.require_invitation or options.get("require_invitation")
        if require_invitation and not options.get("invitation_code"):
            raise ValidationError("Invitation code required", ErrorCode.INVITATION_REQUIRED)

    # ============= ENRICHMENT =============

    def _enrich_tenant_user_data(self, user_data: Dict[str, Any], options: Dict[str, Any]) -> Dict[str, Any]:
        enriched = dict(user_data)
        enriched["tenant_context"] = True
        enriched["registration_source"] = options.get("registration_source") or "direct"
        if options.get("invitation_code"):
            enriched["invitation_code"] = options["invitation_code"]
        return enriched

    def _determine_user_roles(self, options: Dict[str, Any]) -> List[RoleAssignment]:
        """Roles from trusted callers (invitations, admin tooling); default otherwise

        Raises:
            ValidationError: INVALID_ROLE
        """
        roles = options.get("roles") or [options.get("role") or self.config.default_role]
        valid_roles = {role.value for role in TenantUserRole}
        invalid = [role for role in roles if role not in valid_roles]
        if invalid:
            raise ValidationError(f"Invalid roles: {invalid}", ErrorCode.INVALID_ROLE)
        return [RoleAssignment(role_name=role) for role in dict.fromkeys(roles)]

    def _get_registration_next_steps(self, requires_email_verification: bool) -> List[NextStep]:
        steps = []
        if requires_email_verification:
            steps.append(NextStep(
                step="verify_email",
                title="Verify your email",
                description="Check your inbox for a verification link",
                required=True,
            ))
        if self.config.require_profile_completion:
            steps.append(NextStep(
                step="complete_profile",
                title="Complete your profile",
                description="Add additional information to your account",
            ))
        if self.config.enable_onboarding:
            steps.append(NextStep(
                step="onboarding_tour",
                title="Take a quick tour",
                description="Learn about the platform features",
            ))
        return steps

    @staticmethod
    def _get_organization_membership(user: Dict[str, Any], organization_id: str) -> Optional[OrganizationMembership]:
        for entry in user.get("organizations", []):
            if str(entry["organization_id"]) == str(organization_id):
                return OrganizationMembership.from_dict(entry)
        return None

    async def _check_profile_completion_status(self, user_id: str, organization_id: str) -> ProfileStatus:
        try:
            profile = await self.tenant_user_service.get_tenant_user_profile(user_id, organization_id)
            completion = profile.get("completion_percentage") or 0
            return ProfileStatus(
                is_complete=completion == 100,
                completion_percentage=completion,
                missing_fields=profile.get("missing_fields") or [],
            )
        except Exception as e:
            logger.error(f"Failed to check profile completion for {user_id} organization={organization_id}: {e}")
            return ProfileStatus(is_complete=False, completion_percentage=0)

    async def _load_user_preferences(self, user_id: str, organization_id: str) -> Dict[str, Any]:
        try:
            return await self.tenant_user_service.get_user_preferences(user_id, organization_id)
        except Exception as e:
            logger.error(f"Failed to load preferences for {user_id} organization={organization_id}: {e}")
            return {}

    async def _get_pending_notifications(self, user_id: str, organization_id: str) -> List[Dict[str, Any]]:
        try:
            return await self.notification_service.get_pending_notifications(user_id, organization_id)
        except Exception as e:
            logger.error(f"Failed to get pending notifications for {user_id} organization={organization_id}: {e}")
            return []

    def _get_available_features(
        self,
        organization: Organization,
        membership: Optional[OrganizationMembership],
        user_id: str,
    ) -> Union[FeatureFlags, Dict[str, Any]]:
        try:
            api_access = organization.features.get("api_access") or {}
            return FeatureFlags(
                has_project_access=True,
                has_reporting=organization.tier != "free",
                has_api_access=bool(api_access.get("enabled")),
                has_advanced_features=organization.tier == "enterprise",
                user_role=(membership.role_names[0] if membership and membership.roles else "member"),
            )
        except Exception as e:
            logger.error(f"Failed to compute features for {user_id} organization={organization.organization_id}: {e}")
            return {}

    # ============= SIDE EFFECTS =============

    def _execute_post_registration_workflows(
        self, user: Dict[str, Any], organization: Organization, options: Dict[str, Any]
    ) -> None:
        """Spawn profile creation, welcome email and analytics independently"""
        user_id = user["user_id"]
        organization_id = organization.organization_id
        context = {"user_id": user_id, "organization_id": organization_id}

        self.tasks.spawn(
            self.tenant_user_service.create_tenant_user_profile(
                user_id,
                organization_id,
                registration_source=options.get("registration_source"),
                invited_by=options.get("invited_by"),
            ),
            "create_tenant_user_profile",
            **context,
        )

        if self.config.enable_welcome_email:
            self.tasks.spawn(self._send_welcome_email(user, organization), "welcome_email", **context)

        if self.config.enable_analytics:
            self.tasks.spawn(
                self.analytics_service.track(
                    "tenant_user_registered",
                    user_id,
                    {
                        "email": user["email"],
                        "organization_id": organization_id,
                        "source": options.get("registration_source"),
                        "invited_by": options.get("invited_by"),
                    },
                ),
                "track_registration",
                **context,
            )

    async def _initialize_onboarding(self, user_id: str, organization_id: str) -> Optional[Dict[str, Any]]:
        try:
            return await self.onboarding_service.create_onboarding(user_id, organization_id, type="tenant_user")
        except Exception as e:
            logger.error(f"Failed to initialize onboarding for {user_id} organization={organization_id}: {e}")
            return None

    async def _adjust_user_usage(self, organization_id: str, increment: bool) -> None:
        try:
            if increment:
                await self.organization_service.increment_usage(organization_id, "users")
            else:
                await self.organization_service.decrement_usage(organization_id, "users")
        except Exception as e:
            logger.error(f"Failed to adjust user usage for organization {organization_id}: {e}")

    async def _send_welcome_email(self, user: Dict[str, Any], organization: Organization) -> None:
        await self.notification_service.send_email(
            user["email"],
            "tenant-user-welcome",
            {
                "first_name": (user.get("profile") or {}).get("first_name") or user["email"],
                "organization_name": organization.name,
                "portal_url": self._get_organization_portal_url(organization.organization_id),
                "support_email": organization.contact.get("support_email") or self.config.support_email,
            },
        )

    async def _send_verification_email(self, email: str, token: str, organization_id: str) -> None:
        await self.notification_service.send_email(
            email,
            "tenant-email-verification",
            {
                "verify_url": f"{self._get_organization_portal_url(organization_id)}/verify-email?token={token}",
                "expiry_hours": max(1, self.config.email_verification_expire_seconds // 3600),
            },
        )

    async def _send_password_reset_email(self, email: str, reset_token: str, organization_id: str) -> None:
        await self.notification_service.send_email(
            email,
            "tenant-password-reset",
            {
                "reset_url": self._get_password_reset_url(reset_token, organization_id),
                "expiry_hours": max(1, self.config.password_reset_expire_seconds // 3600),
            },
        )

    async def _send_mfa_setup_instructions(
        self,
        user_id: str,
        method: str,
        mfa_result: Dict[str, Any],
        verification_code: Optional[str],
        organization_id: str,
    ) -> None:
        user = await self.tenant_user_service.get_user_by_id(user_id)
        data = {
            "method": method,
            "instructions": mfa_result.get("instructions"),
            "support_url": self._get_mfa_support_url(organization_id),
        }
        if verification_code:
            data["verification_code"] = verification_code
        await self.notification_service.send_email(user.email, "tenant-mfa-setup", data)

    async def _get_member(self, user_id: str, organization_id: str):
        user = await self.auth_service.user_store.get_user(user_id)
        if not user:
            raise NotFoundError("User not found", ErrorCode.USER_NOT_FOUND)
        membership = user.get_membership(organization_id)
        if not membership:
            raise NotFoundError("Membership not found", ErrorCode.MEMBERSHIP_NOT_FOUND)
        return user, membership

    async def _get_active_member(self, user_id: str, organization_id: str) -> TenantUser:
        """User with an active membership in organization_id

        Raises:
            NotFoundError: USER_NOT_FOUND
            ForbiddenError: USER_NOT_MEMBER or MEMBERSHIP_INACTIVE
        """
        user = await self.auth_service.user_store.get_user(user_id)
        if not user:
            raise NotFoundError("User not found", ErrorCode.USER_NOT_FOUND)
        await self._validate_user_hook(user, {"organization_id": organization_id})
        return user

    # ============= URL HELPERS =============

    def _get_organization_portal_url(self, organization_id: str) -> str:
        return f"{self.config.platform_url}/org/{organization_id}"

    def _get_password_reset_url(self, reset_token: str, organization_id: str) -> str:
        return f"{self._get_organization_portal_url(organization_id)}/reset-password?token={reset_token}"

    def _get_mfa_support_url(self, organization_id: str) -> str:
        return f"{self._get_organization_portal_url(organization_id)}/support/mfa"

    def _get_mfa_video_tutorial_url(self, method: str) -> str:
        return f"{self.config.platform_url}/tutorials/mfa/{method}"


# Global orchestrator instance
_tenant_auth_service: Optional[TenantAuthService] = None


def build_tenant_auth_service(redis_client: Redis, settings: Optional[Settings] = None) -> TenantAuthService:
    """Wire the orchestrator and its collaborators onto one Redis connection"""
    settings = settings or get_settings()
    user_store = TenantUserStore(redis_client)

    return TenantAuthService(
        user_store=user_store,
        session_store=SessionStore(redis_client, settings.tenant_session_timeout_seconds),
        token_blacklist=TokenBlacklist(redis_client),
        token_service=TokenService(
            secret_key=settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
            access_token_expire_minutes=settings.access_token_expire_minutes,
            refresh_token_expire_days=settings.refresh_token_expire_days,
            temp_token_expire_minutes=settings.mfa_temp_token_expire_minutes,
        ),
        password_service=PasswordService(min_length=settings.password_min_length),
        organization_service=OrganizationService(OrganizationStore(redis_client)),
        tenant_user_service=TenantUserService(redis_client, user_store),
        notification_service=NotificationService(redis_client),
        analytics_service=AnalyticsService(redis_client),
        onboarding_service=OnboardingService(redis_client),
        config=TenantAuthConfig.from_settings(settings),
    )


def initialize_tenant_auth_service(redis_client: Redis, settings: Optional[Settings] = None) -> TenantAuthService:
    """Initialize the global tenant auth service

    Returns:
        Initialized TenantAuthService instance
    """
    global _tenant_auth_service
    _tenant_auth_service = build_tenant_auth_service(redis_client, settings)
    return _tenant_auth_service


def get_tenant_auth_service() -> TenantAuthService:
    """Get the global tenant auth service instance

    Raises:
        RuntimeError: If not initialized
    """
    if _tenant_auth_service is None:
        raise RuntimeError(
            "TenantAuthService not initialized. "
            "Call initialize_tenant_auth_service() first."
        )
    return _tenant_auth_service


def reset_tenant_auth_service() -> None:
    """Reset the global instance (for testing)"""
    global _tenant_auth_service
    _tenant_auth_service = None
