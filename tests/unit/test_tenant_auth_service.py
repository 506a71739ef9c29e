"""Unit tests for TenantAuthService

Exercises registration and login orchestration against in-memory Redis:
organization acceptance, domain and invitation rules, membership gating,
MFA pass-through, sanitization and best-effort side effects.
"""

import json
from unittest.mock import AsyncMock

import pytest

from tenant_auth_service.core.auth import mfa
from tenant_auth_service.domain.errors import (
    AuthenticationError,
    ConflictError,
    ErrorCode,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from tenant_auth_service.domain.models import (
    FeatureFlags,
    MFAChallenge,
    MembershipStatus,
    TenantLoginResult,
)
from tenant_auth_service.domain.services.tenant_auth_service import (
    TenantAuthConfig,
    build_tenant_auth_service,
)

PASSWORD = "Sup3rSecret!"

CREDENTIAL_KEYS = ("password", "password_history", "security", "verification")


def assert_sanitized(user: dict):
    for key in CREDENTIAL_KEYS:
        assert key not in user
    assert "methods" not in user.get("mfa", {})


def outbox(fake_redis):
    return [json.loads(item) for item in fake_redis.lists.get("tenant:email_outbox", [])]


async def login(service, organization_id="org-1", **credentials):
    credentials.setdefault("email", "alice@acme.com")
    credentials.setdefault("password", PASSWORD)
    return await service.login_tenant_user(credentials, organization_id, {"ip": "10.0.0.1"})


@pytest.mark.unit
class TestRegisterTenantUser:
    """Registration preconditions and postconditions"""

    @pytest.mark.asyncio
    async def test_register_creates_single_primary_active_membership(self, service, organization):
        result = await service.register_tenant_user(
            {"email": "alice@acme.com", "password": PASSWORD},
            "org-1",
        )

        memberships = result.user["organizations"]
        assert len(memberships) == 1
        assert memberships[0]["organization_id"] == "org-1"
        assert memberships[0]["is_primary"] is True
        assert memberships[0]["status"] == "active"
        assert [r["role_name"] for r in memberships[0]["roles"]] == ["member"]
        assert result.user_type == "tenant_user"

    @pytest.mark.asyncio
    async def test_register_stamps_tenant_metadata(self, service, organization):
        result = await service.register_tenant_user(
            {"email": "alice@acme.com", "password": PASSWORD},
            "org-1",
            {"registration_source": "invitation", "invitation_code": "INV-1", "ip": "10.0.0.9"},
        )

        metadata = result.user["metadata"]
        assert metadata["tenant_context"] is True
        assert metadata["organization_id"] == "org-1"
        assert metadata["source"] == "tenant_portal"
        assert metadata["registration_source"] == "invitation"
        assert metadata["invitation_code"] == "INV-1"
        assert metadata["ip"] == "10.0.0.9"

    @pytest.mark.asyncio
    async def test_register_uses_roles_from_options(self, service, organization):
        result = await service.register_tenant_user(
            {"email": "bob@acme.com", "password": PASSWORD},
            "org-1",
            {"roles": ["admin", "manager"], "invited_by": "user-0"},
        )

        membership = result.user["organizations"][0]
        assert [r["role_name"] for r in membership["roles"]] == ["admin", "manager"]
        assert membership["invited_by"] == "user-0"

    @pytest.mark.asyncio
    async def test_register_increments_user_usage(self, service, organization):
        await service.register_tenant_user({"email": "alice@acme.com", "password": PASSWORD}, "org-1")

        assert await service.organization_service.get_user_count("org-1") == 1

    @pytest.mark.asyncio
    async def test_register_result_is_sanitized(self, service, organization):
        result = await service.register_tenant_user({"email": "alice@acme.com", "password": PASSWORD}, "org-1")

        assert_sanitized(result.user)
        assert_sanitized(result.to_dict()["user"])

    @pytest.mark.asyncio
    async def test_register_next_steps_and_portal_url(self, fake_redis, settings, organization):
        settings.tenant_require_email_verification = True
        settings.tenant_require_profile_completion = True
        service = build_tenant_auth_service(fake_redis, settings)
        result = await service.register_tenant_user({"email": "carol@acme.com", "password": PASSWORD}, "org-1")

        assert [s.step for s in result.next_steps] == ["verify_email", "complete_profile", "onboarding_tour"]
        assert result.next_steps[0].required is True
        assert result.requires_email_verification is True
        assert result.verification_token
        assert result.organization_portal_url == "https://app.example.com/org/org-1"

    @pytest.mark.asyncio
    async def test_register_initializes_onboarding(self, service, organization):
        result = await service.register_tenant_user({"email": "alice@acme.com", "password": PASSWORD}, "org-1")

        assert result.onboarding is not None
        assert result.onboarding["type"] == "tenant_user"
        assert result.onboarding["progress"] == 0

    @pytest.mark.asyncio
    async def test_register_onboarding_failure_returns_none(self, service, organization):
        service.onboarding_service.create_onboarding = AsyncMock(side_effect=RuntimeError("onboarding down"))

        result = await service.register_tenant_user({"email": "alice@acme.com", "password": PASSWORD}, "org-1")

        assert result.onboarding is None
        assert result.user["email"] == "alice@acme.com"

    @pytest.mark.asyncio
    async def test_register_onboarding_disabled(self, service, organization):
        service.config.enable_onboarding = False

        result = await service.register_tenant_user({"email": "alice@acme.com", "password": PASSWORD}, "org-1")

        assert result.onboarding is None
        assert [s.step for s in result.next_steps] == []


@pytest.mark.unit
class TestRegisterPreconditions:
    """Fail-fast checks run before any write"""

    @pytest.mark.asyncio
    async def test_missing_organization_raises_not_found(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            await service.register_tenant_user({"email": "alice@acme.com", "password": PASSWORD}, "missing")

        assert exc_info.value.error_code == ErrorCode.ORG_NOT_FOUND

    @pytest.mark.asyncio
    async def test_suspended_organization_rejects_with_passthrough_reason(self, service):
        await service.organization_service.create_organization(
            name="Initech", organization_id="org-3", status="suspended"
        )

        with pytest.raises(ForbiddenError) as exc_info:
            await service.register_tenant_user({"email": "alice@initech.com", "password": PASSWORD}, "org-3")

        assert exc_info.value.error_code == ErrorCode.ORG_NOT_ACTIVE
        assert exc_info.value.message == "Organization is suspended"
        assert await service.auth_service.user_store.get_user_by_email("alice@initech.com") is None

    @pytest.mark.asyncio
    async def test_seat_limit_rejects_and_creates_nothing(self, service, organization):
        organization.max_users = 1
        await service.organization_service.store.save(organization)
        await service.register_tenant_user({"email": "first@acme.com", "password": PASSWORD}, "org-1")

        with pytest.raises(ForbiddenError) as exc_info:
            await service.register_tenant_user({"email": "second@acme.com", "password": PASSWORD}, "org-1")

        assert exc_info.value.error_code == ErrorCode.USER_LIMIT_REACHED
        assert exc_info.value.message == "User limit reached"
        assert await service.auth_service.user_store.get_user_by_email("second@acme.com") is None
        assert await service.auth_service.user_store.count_users() == 1

    @pytest.mark.asyncio
    async def test_domain_not_on_allow_list(self, service, organization, fake_redis):
        with pytest.raises(ValidationError) as exc_info:
            await service.register_tenant_user({"email": "alice@other.com", "password": PASSWORD}, "org-1")

        assert exc_info.value.error_code == ErrorCode.DOMAIN_NOT_ALLOWED
        assert fake_redis.keys_matching("tenant:user:*") == []

    @pytest.mark.asyncio
    async def test_domain_on_allow_list_defaults_to_member(self, service, organization):
        result = await service.register_tenant_user({"email": "alice@acme.com", "password": PASSWORD}, "org-1")

        assert result.user["organizations"][0]["roles"][0]["role_name"] == "member"

    @pytest.mark.asyncio
    async def test_invitation_required_without_code(self, service, organization):
        with pytest.raises(ValidationError) as exc_info:
            await service.register_tenant_user(
                {"email": "alice@acme.com", "password": PASSWORD},
                "org-1",
                {"require_invitation": True},
            )

        assert exc_info.value.error_code == ErrorCode.INVITATION_REQUIRED

    @pytest.mark.asyncio
    async def test_invitation_required_with_code(self, service, organization):
        result = await service.register_tenant_user(
            {"email": "alice@acme.com", "password": PASSWORD},
            "org-1",
            {"require_invitation": True, "invitation_code": "INV-42"},
        )

        assert result.user["metadata"]["invitation_code"] == "INV-42"

    @pytest.mark.asyncio
    async def test_organization_requires_invitation(self, service):
        await service.organization_service.create_organization(
            name="Initech", organization_id="org-3", require_invitation=True
        )

        with pytest.raises(ValidationError) as exc_info:
            await service.register_tenant_user(
                {"email": "peter@initech.com", "password": PASSWORD},
                "org-3",
                {"require_invitation": False},
            )
        assert exc_info.value.error_code == ErrorCode.INVITATION_REQUIRED

        result = await service.register_tenant_user(
            {"email": "peter@initech.com", "password": PASSWORD}, "org-3", {"invitation_code": "INV-7"}
        )
        assert result.user["organizations"][0]["organization_id"] == "org-3"

    @pytest.mark.asyncio
    async def test_unknown_role_rejected_at_registration(self, service, organization, fake_redis):
        with pytest.raises(ValidationError) as exc_info:
            await service.register_tenant_user(
                {"email": "alice@acme.com", "password": PASSWORD}, "org-1", {"roles": ["owner", "superuser"]}
            )

        assert exc_info.value.error_code == ErrorCode.INVALID_ROLE
        assert fake_redis.keys_matching("tenant:user:*") == []

    @pytest.mark.asyncio
    async def test_auth_core_errors_propagate_unchanged(self, service, organization, registered_user):
        with pytest.raises(ConflictError) as exc_info:
            await service.register_tenant_user({"email": "alice@acme.com", "password": PASSWORD}, "org-1")

        assert exc_info.value.error_code == ErrorCode.USER_EXISTS
        assert exc_info.value.status_code == 409


@pytest.mark.unit
class TestPostRegistrationSideEffects:
    """Best-effort workflows never fail registration"""

    @pytest.mark.asyncio
    async def test_side_effects_run_in_background(self, service, organization, fake_redis):
        result = await service.register_tenant_user(
            {"email": "alice@acme.com", "password": PASSWORD, "first_name": "Alice"},
            "org-1",
            {"registration_source": "import"},
        )
        await service.drain()

        user_id = result.user["user_id"]
        profile = json.loads(fake_redis.values[f"tenant:profile:org-1:{user_id}"])
        assert profile["registration_source"] == "import"

        welcome = [m for m in outbox(fake_redis) if m["template"] == "tenant-user-welcome"]
        assert len(welcome) == 1
        assert welcome[0]["data"]["first_name"] == "Alice"
        assert welcome[0]["data"]["organization_name"] == "Acme"
        assert welcome[0]["data"]["support_email"] == "help@acme.com"

        events = [json.loads(e) for e in fake_redis.lists["tenant:analytics_events"]]
        assert events[0]["event"] == "tenant_user_registered"
        assert events[0]["properties"]["organization_id"] == "org-1"

    @pytest.mark.asyncio
    async def test_welcome_email_failure_does_not_fail_registration(self, service, organization, fake_redis, caplog):
        service.notification_service.send_email = AsyncMock(side_effect=RuntimeError("smtp down"))

        result = await service.register_tenant_user({"email": "alice@acme.com", "password": PASSWORD}, "org-1")
        await service.drain()

        assert result.user["email"] == "alice@acme.com"
        assert_sanitized(result.user)
        # Other workflows still ran
        assert f"tenant:profile:org-1:{result.user['user_id']}" in fake_redis.values
        assert "tenant:analytics_events" in fake_redis.lists
        assert any("welcome_email" in r.getMessage() for r in caplog.records if r.levelname == "ERROR")

    @pytest.mark.asyncio
    async def test_usage_increment_failure_keeps_registration(self, service, organization):
        service.organization_service.increment_usage = AsyncMock(side_effect=RuntimeError("write conflict"))

        result = await service.register_tenant_user({"email": "alice@acme.com", "password": PASSWORD}, "org-1")

        assert result.user["email"] == "alice@acme.com"
        assert await service.auth_service.user_store.get_user_by_email("alice@acme.com") is not None

    @pytest.mark.asyncio
    async def test_toggles_disable_welcome_and_analytics(self, service, organization, fake_redis):
        service.config.enable_welcome_email = False
        service.config.enable_analytics = False

        await service.register_tenant_user({"email": "alice@acme.com", "password": PASSWORD}, "org-1")
        await service.drain()

        assert outbox(fake_redis) == []
        assert "tenant:analytics_events" not in fake_redis.lists


@pytest.mark.unit
class TestLoginTenantUser:
    """Login gating and enrichment"""

    @pytest.mark.asyncio
    async def test_login_enriches_result(self, service, registered_user):
        result = await login(service)

        assert isinstance(result, TenantLoginResult)
        assert result.organization.id == "org-1"
        assert result.organization.roles == ["member"]
        assert result.organization.membership.is_active
        assert result.organization_portal_url == "https://app.example.com/org/org-1"
        assert result.preferences["language"] == "en"
        assert result.pending_notifications == []
        assert result.profile_status.completion_percentage == 75
        assert result.profile_status.missing_fields == ["phone_number"]
        assert result.profile_status.is_complete is False

    @pytest.mark.asyncio
    async def test_login_feature_flags_follow_tier(self, service, registered_user):
        result = await login(service)

        assert result.features == FeatureFlags(
            has_project_access=True,
            has_reporting=True,
            has_api_access=False,
            has_advanced_features=False,
            user_role="member",
        )

    @pytest.mark.asyncio
    async def test_login_result_is_sanitized(self, service, registered_user):
        result = await login(service)

        assert_sanitized(result.user)
        assert_sanitized(result.to_dict()["user"])

    @pytest.mark.asyncio
    async def test_non_member_rejected_even_with_correct_password(self, service, registered_user, other_organization):
        with pytest.raises(ForbiddenError) as exc_info:
            await login(service, "org-2")

        assert exc_info.value.error_code == ErrorCode.USER_NOT_MEMBER

    @pytest.mark.asyncio
    async def test_non_member_rejected_with_wrong_password(self, service, registered_user, other_organization):
        with pytest.raises(ForbiddenError) as exc_info:
            await login(service, "org-2", password="wrong-password-1")

        assert exc_info.value.error_code == ErrorCode.USER_NOT_MEMBER

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["inactive", "pending", "removed"])
    async def test_inactive_membership_carries_status(self, service, registered_user, status):
        await service.change_member_status(registered_user["user_id"], "org-1", status)

        with pytest.raises(ForbiddenError) as exc_info:
            await login(service)

        assert exc_info.value.error_code == ErrorCode.MEMBERSHIP_INACTIVE
        assert exc_info.value.details == {"status": status}
        assert exc_info.value.to_dict()["details"]["status"] == status

    @pytest.mark.asyncio
    async def test_unusable_organization_rejected_at_login(self, service, registered_user, organization):
        organization.status = "suspended"
        await service.organization_service.store.save(organization)

        with pytest.raises(ForbiddenError) as exc_info:
            await login(service)

        assert exc_info.value.error_code == ErrorCode.ORG_NOT_ACTIVE
        assert exc_info.value.message == "Organization is suspended"

    @pytest.mark.asyncio
    async def test_missing_organization_rejected_at_login(self, service, registered_user):
        with pytest.raises(ForbiddenError) as exc_info:
            await login(service, "org-404")

        assert exc_info.value.error_code == ErrorCode.ORG_NOT_FOUND

    @pytest.mark.asyncio
    async def test_invalid_credentials_propagate(self, service, registered_user):
        with pytest.raises(AuthenticationError) as exc_info:
            await login(service, password="wrong-password-1")

        assert exc_info.value.error_code == ErrorCode.INVALID_CREDENTIALS

    @pytest.mark.asyncio
    async def test_profile_lookup_failure_degrades(self, service, registered_user):
        service.tenant_user_service.get_tenant_user_profile = AsyncMock(side_effect=RuntimeError("profiles down"))
        service.notification_service.get_pending_notifications = AsyncMock(side_effect=RuntimeError("down"))

        result = await login(service)

        assert result.profile_status.is_complete is False
        assert result.profile_status.completion_percentage == 0
        assert result.pending_notifications == []

    @pytest.mark.asyncio
    async def test_login_updates_last_login_in_background(self, service, registered_user):
        await login(service)
        await service.drain()

        activity = await service.tenant_user_service.get_login_activity(registered_user["user_id"])
        assert activity["login_count"] == 1
        assert activity["last_login_at"]

    @pytest.mark.asyncio
    async def test_last_login_failure_never_surfaces(self, service, registered_user):
        service.tenant_user_service.update_last_login = AsyncMock(side_effect=RuntimeError("down"))

        result = await login(service)
        await service.drain()

        assert isinstance(result, TenantLoginResult)


@pytest.mark.unit
class TestMFAPassThrough:
    """MFA challenge is returned unchanged"""

    async def _enable_totp(self, service, user_id):
        setup = await service.enable_mfa(user_id, "totp", "org-1")
        await service.verify_and_complete_mfa(user_id, "totp", mfa.generate_totp(setup["secret"]), "org-1")
        await service.drain()
        return setup["secret"]

    @pytest.mark.asyncio
    async def test_challenge_returned_without_enrichment(self, service, registered_user):
        await self._enable_totp(service, registered_user["user_id"])

        result = await login(service)

        assert isinstance(result, MFAChallenge)
        body = result.to_dict()
        assert body["requires_mfa"] is True
        assert body["temp_token"]
        assert body["mfa_methods"] == [{"type": "totp", "is_preferred": True}]
        for key in ("organization", "preferences", "features", "tokens", "user"):
            assert key not in body

    @pytest.mark.asyncio
    async def test_challenge_has_no_side_effects(self, service, registered_user):
        await self._enable_totp(service, registered_user["user_id"])
        service.tenant_user_service.update_last_login = AsyncMock()

        await login(service)
        await service.drain()

        service.tenant_user_service.update_last_login.assert_not_called()

    @pytest.mark.asyncio
    async def test_login_with_totp_code(self, service, registered_user):
        secret = await self._enable_totp(service, registered_user["user_id"])

        result = await login(service, mfa_code=mfa.generate_totp(secret))

        assert isinstance(result, TenantLoginResult)
        assert_sanitized(result.user)
        assert result.user["mfa"]["enabled"] is True

    @pytest.mark.asyncio
    async def test_enable_mfa_adds_support_links(self, service, registered_user, fake_redis):
        result = await service.enable_mfa(registered_user["user_id"], "totp", "org-1")
        await service.drain()

        assert result["support_url"] == "https://app.example.com/org/org-1/support/mfa"
        assert result["video_tutorial"] == "https://app.example.com/tutorials/mfa/totp"
        assert [m["template"] for m in outbox(fake_redis)][-1] == "tenant-mfa-setup"

    @pytest.mark.asyncio
    async def test_email_mfa_code_is_emailed_not_returned(self, service, registered_user, fake_redis):
        result = await service.enable_mfa(registered_user["user_id"], "email", "org-1")
        await service.drain()

        assert "verification_code" not in result
        setup_email = [m for m in outbox(fake_redis) if m["template"] == "tenant-mfa-setup"][-1]
        code = setup_email["data"]["verification_code"]

        completed = await service.verify_and_complete_mfa(registered_user["user_id"], "email", code, "org-1")
        assert completed["success"] is True

    @pytest.mark.asyncio
    async def test_mfa_setup_requires_membership(self, service, registered_user, other_organization):
        with pytest.raises(ForbiddenError) as exc_info:
            await service.enable_mfa(registered_user["user_id"], "totp", "org-2")
        assert exc_info.value.error_code == ErrorCode.USER_NOT_MEMBER

        with pytest.raises(ForbiddenError) as exc_info:
            await service.verify_and_complete_mfa(registered_user["user_id"], "totp", "123456", "org-2")
        assert exc_info.value.error_code == ErrorCode.USER_NOT_MEMBER

    @pytest.mark.asyncio
    async def test_mfa_setup_requires_active_membership(self, service, registered_user):
        await service.change_member_status(registered_user["user_id"], "org-1", "inactive")

        with pytest.raises(ForbiddenError) as exc_info:
            await service.enable_mfa(registered_user["user_id"], "totp", "org-1")
        assert exc_info.value.error_code == ErrorCode.MEMBERSHIP_INACTIVE

    @pytest.mark.asyncio
    async def test_disable_mfa(self, service, registered_user):
        await self._enable_totp(service, registered_user["user_id"])

        result = await service.disable_mfa(registered_user["user_id"], "totp", PASSWORD, "org-1")

        assert result["mfa_enabled"] is False
        assert isinstance(await login(service), TenantLoginResult)


@pytest.mark.unit
class TestAccountOperations:
    """Logout, refresh and password reset pass-throughs"""

    @pytest.mark.asyncio
    async def test_password_reset_hides_token_outside_development(self, service, registered_user, fake_redis):
        result = await service.request_password_reset("alice@acme.com", "org-1")
        await service.drain()

        assert "reset_token" not in result
        reset_email = [m for m in outbox(fake_redis) if m["template"] == "tenant-password-reset"][-1]
        assert reset_email["data"]["reset_url"].startswith(
            "https://app.example.com/org/org-1/reset-password?token="
        )
        assert reset_email["data"]["expiry_hours"] == 1

    @pytest.mark.asyncio
    async def test_password_reset_exposes_token_in_development(self, service, registered_user):
        service.config.expose_debug_tokens = True

        result = await service.request_password_reset("alice@acme.com", "org-1")

        assert result["reset_token"]
        reset = await service.reset_password(result["reset_token"], "N3wPassword!", "org-1")
        assert reset["success"] is True
        assert isinstance(await login(service, password="N3wPassword!"), TenantLoginResult)

    @pytest.mark.asyncio
    async def test_password_reset_unknown_email_is_generic(self, service, organization, fake_redis):
        result = await service.request_password_reset("nobody@acme.com", "org-1")
        await service.drain()

        assert result == {"success": True, "message": "If the email exists, a reset link has been sent"}
        assert outbox(fake_redis) == []

    @pytest.mark.asyncio
    async def test_logout_revokes_tokens(self, service, registered_user):
        result = await login(service)

        await service.logout_tenant_user(
            registered_user["user_id"],
            result.session.session_id,
            "org-1",
            {"access_token": result.tokens.access_token, "refresh_token": result.tokens.refresh_token},
        )

        assert await service.auth_service.token_blacklist.is_blacklisted(result.tokens.access_token)
        with pytest.raises(AuthenticationError) as exc_info:
            await service.refresh_token(result.tokens.refresh_token, "org-1")
        assert exc_info.value.error_code == ErrorCode.TOKEN_REVOKED

    @pytest.mark.asyncio
    async def test_logout_scopes_options_to_organization(self, service, registered_user):
        service.auth_service.logout = AsyncMock(return_value={"success": True, "message": "Logged out successfully"})

        await service.logout_tenant_user(registered_user["user_id"], "session-1", "org-1", {"logout_all": True})

        service.auth_service.logout.assert_awaited_once_with(
            registered_user["user_id"], "session-1", {"logout_all": True, "organization_id": "org-1"}
        )

    @pytest.mark.asyncio
    async def test_change_password_sends_notice(self, service, registered_user, fake_redis):
        result = await service.change_password(registered_user["user_id"], PASSWORD, "N3wPassword!", "org-1")
        await service.drain()

        assert result == {"success": True, "message": "Password changed successfully"}
        notice = [m for m in outbox(fake_redis) if m["template"] == "tenant-password-changed"][-1]
        assert notice["to"] == "alice@acme.com"
        assert isinstance(await login(service, password="N3wPassword!"), TenantLoginResult)

    @pytest.mark.asyncio
    async def test_change_password_requires_membership(self, service, registered_user, other_organization):
        with pytest.raises(ForbiddenError) as exc_info:
            await service.change_password(registered_user["user_id"], PASSWORD, "N3wPassword!", "org-2")

        assert exc_info.value.error_code == ErrorCode.USER_NOT_MEMBER

    @pytest.mark.asyncio
    async def test_resend_verification_emails_new_link(self, fake_redis, settings, organization):
        settings.tenant_require_email_verification = True
        service = build_tenant_auth_service(fake_redis, settings)
        await service.register_tenant_user({"email": "alice@acme.com", "password": PASSWORD}, "org-1")
        await service.drain()

        result = await service.resend_email_verification("alice@acme.com", "org-1")
        await service.drain()

        assert "verification_token" not in result
        links = [m for m in outbox(fake_redis) if m["template"] == "tenant-email-verification"]
        assert len(links) == 2
        token = links[-1]["data"]["verify_url"].split("token=")[1]
        assert (await service.verify_email(token, "org-1"))["account_status"] == "active"

    @pytest.mark.asyncio
    async def test_resend_verification_unknown_email(self, service, organization, fake_redis):
        result = await service.resend_email_verification("nobody@acme.com", "org-1")
        await service.drain()

        assert result == {
            "success": True,
            "message": "If the email exists and is unverified, a verification link has been sent",
        }
        assert outbox(fake_redis) == []

    @pytest.mark.asyncio
    async def test_refresh_checks_membership(self, service, registered_user):
        result = await login(service)
        await service.change_member_status(registered_user["user_id"], "org-1", "inactive")

        with pytest.raises(ForbiddenError) as exc_info:
            await service.refresh_token(result.tokens.refresh_token, "org-1")

        assert exc_info.value.error_code == ErrorCode.MEMBERSHIP_INACTIVE


@pytest.mark.unit
class TestAuthenticate:
    """Bearer access tokens resolved to a caller within an organization"""

    @pytest.mark.asyncio
    async def test_member_resolved_from_token(self, service, registered_user):
        result = await login(service)

        caller = await service.authenticate(result.tokens.access_token, "org-1")

        assert caller.user_id == registered_user["user_id"]
        assert caller.roles == ["member"]
        assert caller.is_admin is False

    @pytest.mark.asyncio
    async def test_admin_role_reported(self, service, registered_user):
        await service.update_member_roles(registered_user["user_id"], "org-1", ["admin"])
        result = await login(service)

        caller = await service.authenticate(result.tokens.access_token, "org-1")

        assert caller.is_admin is True
        assert caller.is_owner is False

    @pytest.mark.asyncio
    async def test_token_from_other_organization_rejected(self, service, registered_user, other_organization):
        result = await login(service)

        with pytest.raises(ForbiddenError) as exc_info:
            await service.authenticate(result.tokens.access_token, "org-2", require_active_membership=False)

        assert exc_info.value.error_code == ErrorCode.ORGANIZATION_MISMATCH

    @pytest.mark.asyncio
    async def test_inactive_membership_rejected(self, service, registered_user):
        result = await login(service)
        await service.change_member_status(registered_user["user_id"], "org-1", "inactive")

        with pytest.raises(ForbiddenError) as exc_info:
            await service.authenticate(result.tokens.access_token, "org-1")
        assert exc_info.value.error_code == ErrorCode.MEMBERSHIP_INACTIVE

        # Logout still resolves the caller
        caller = await service.authenticate(result.tokens.access_token, "org-1", require_active_membership=False)
        assert caller.user_id == registered_user["user_id"]

    @pytest.mark.asyncio
    async def test_logged_out_token_rejected(self, service, registered_user):
        result = await login(service)
        await service.logout_tenant_user(
            registered_user["user_id"],
            result.session.session_id,
            "org-1",
            {"access_token": result.tokens.access_token},
        )

        with pytest.raises(AuthenticationError) as exc_info:
            await service.authenticate(result.tokens.access_token, "org-1")

        assert exc_info.value.error_code == ErrorCode.TOKEN_REVOKED


@pytest.mark.unit
class TestMembershipManagement:
    """Soft membership states and role updates"""

    @pytest.mark.asyncio
    async def test_status_change_keeps_membership_entry(self, service, registered_user):
        membership = await service.change_member_status(registered_user["user_id"], "org-1", "removed")

        user = await service.auth_service.user_store.get_user(registered_user["user_id"])
        assert membership.status == MembershipStatus.REMOVED
        assert len(user.organizations) == 1
        assert user.organizations[0].status == MembershipStatus.REMOVED
        assert user.organizations[0].status_changed_at is not None

    @pytest.mark.asyncio
    async def test_status_change_adjusts_usage(self, service, registered_user):
        await service.change_member_status(registered_user["user_id"], "org-1", "inactive")
        assert await service.organization_service.get_user_count("org-1") == 0

        await service.change_member_status(registered_user["user_id"], "org-1", "active")
        assert await service.organization_service.get_user_count("org-1") == 1

    @pytest.mark.asyncio
    async def test_invalid_status_rejected(self, service, registered_user):
        with pytest.raises(ValidationError) as exc_info:
            await service.change_member_status(registered_user["user_id"], "org-1", "deleted")

        assert exc_info.value.error_code == ErrorCode.INVALID_STATUS

    @pytest.mark.asyncio
    async def test_unknown_membership(self, service, registered_user, other_organization):
        with pytest.raises(NotFoundError) as exc_info:
            await service.change_member_status(registered_user["user_id"], "org-2", "inactive")

        assert exc_info.value.error_code == ErrorCode.MEMBERSHIP_NOT_FOUND

    @pytest.mark.asyncio
    async def test_update_roles_preserves_existing_assignment(self, service, registered_user):
        user = await service.auth_service.user_store.get_user(registered_user["user_id"])
        assigned_at = user.organizations[0].roles[0].assigned_at

        membership = await service.update_member_roles(registered_user["user_id"], "org-1", ["member", "admin"])

        assert membership.role_names == ["member", "admin"]
        assert membership.roles[0].assigned_at == assigned_at
        result = await login(service)
        assert result.organization.roles == ["member", "admin"]

    @pytest.mark.asyncio
    async def test_update_roles_rejects_unknown_role(self, service, registered_user):
        with pytest.raises(ValidationError) as exc_info:
            await service.update_member_roles(registered_user["user_id"], "org-1", ["superuser"])

        assert exc_info.value.error_code == ErrorCode.INVALID_ROLE


@pytest.mark.unit
class TestTenantAuthConfig:
    """Configuration is read once from settings"""

    def test_from_settings(self, settings):
        settings.tenant_default_role = "viewer"
        settings.tenant_max_login_attempts = 3

        config = TenantAuthConfig.from_settings(settings)
        auth_config = config.auth_config()

        assert config.expose_debug_tokens is False
        assert auth_config.context == "tenant_organization"
        assert auth_config.default_role == "viewer"
        assert auth_config.max_login_attempts == 3
        assert auth_config.require_email_verification is False

    def test_development_exposes_reset_token(self, settings):
        settings.environment = "development"

        assert TenantAuthConfig.from_settings(settings).expose_debug_tokens is True
