"""Tenant Authentication API Models

Purpose: Request/response models for tenant authentication endpoints

Key Components:
- TenantRegisterRequest: Registration input validation
- TenantLoginRequest: Credential input (optional MFA code)
- LogoutRequest / PasswordResetRequest / EnableMFARequest / ChangePasswordRequest
- ErrorResponse: Structured error body
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class TenantRegisterRequest(BaseModel):
    """Request model for tenant user registration"""

    email: EmailStr = Field(..., examples=["alice@acme.com"])
    password: str = Field(..., min_length=8, max_length=128)
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    phone_number: Optional[str] = Field(None, max_length=32)
    job_title: Optional[str] = Field(None, max_length=100)

    invitation_code: Optional[str] = None
    invited_by: Optional[str] = None
    registration_source: Optional[str] = Field(None, examples=["invitation"])
    department_id: Optional[str] = None
    team_ids: List[str] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        """Store emails in lowercase for consistency"""
        return v.lower()

    def user_data(self) -> Dict[str, Any]:
        """Fields passed to the auth core as user data"""
        return self.model_dump(
            include={"email", "password", "username", "first_name", "last_name", "phone_number", "job_title"},
            exclude_none=True,
        )

    def options(self) -> Dict[str, Any]:
        """Fields passed to the orchestrator as options"""
        return self.model_dump(
            include={
                "invitation_code", "invited_by", "registration_source",
                "department_id", "team_ids",
            },
            exclude_none=True,
        )


class TenantLoginRequest(BaseModel):
    """Request model for tenant user login"""

    email: EmailStr
    password: str = Field(..., min_length=1)
    mfa_code: Optional[str] = Field(None, min_length=6, max_length=8)
    mfa_method: Optional[str] = None
    device_fingerprint: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()


class LogoutRequest(BaseModel):
    """Request model for logout (the user comes from the bearer token)"""

    session_id: str
    refresh_token: Optional[str] = None
    logout_all: bool = False


class LogoutResponse(BaseModel):
    """Response model for logout"""

    success: bool = True
    message: str = "Logged out successfully"


class PasswordResetRequest(BaseModel):
    """Request model for password reset"""

    email: EmailStr


class EnableMFARequest(BaseModel):
    """Request model for MFA setup"""

    method: str = Field(..., examples=["totp", "email"])


class ErrorResponse(BaseModel):
    """Structured error response"""

    error: Optional[str] = Field(None, description="Error code", examples=["USER_NOT_MEMBER"])
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class PasswordResetConfirmRequest(BaseModel):
    """Request model for completing a password reset"""

    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class VerifyEmailRequest(BaseModel):
    """Request model for email verification"""

    token: str = Field(..., min_length=1)


class VerifyMFARequest(BaseModel):
    """Request model for completing MFA setup"""

    method: str
    code: str = Field(..., min_length=6, max_length=8)


class RefreshTokenRequest(BaseModel):
    """Request model for token refresh"""

    refresh_token: str = Field(..., min_length=1)


class MemberStatusRequest(BaseModel):
    """Request model for membership status changes"""

    status: str = Field(..., examples=["inactive", "removed"])


class MemberRolesRequest(BaseModel):
    """Request model for replacing membership roles"""

    roles: List[str] = Field(..., min_length=1)


class ChangePasswordRequest(BaseModel):
    """Request model for changing the caller's password"""

    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class DisableMFARequest(BaseModel):
    """Request model for removing a second factor"""

    method: str = Field(..., examples=["totp", "email"])
    password: str = Field(..., min_length=1)


class ResendVerificationRequest(BaseModel):
    """Request model for resending the verification email"""

    email: EmailStr

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        return v.lower()
