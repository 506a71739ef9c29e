"""Application Errors

Typed errors carrying an HTTP-style status code and a machine-readable
error code. Raised by the auth core, the organization service and the
tenant orchestrator; translated into JSON responses by the API layer.
"""

from typing import Any, Dict, Optional


class ErrorCode:
    """Error codes surfaced to API clients"""

    # Organization
    ORG_NOT_FOUND = "ORG_NOT_FOUND"
    ORG_NOT_ACTIVE = "ORG_NOT_ACTIVE"
    TRIAL_EXPIRED = "TRIAL_EXPIRED"
    USER_LIMIT_REACHED = "USER_LIMIT_REACHED"

    # Tenant registration
    DOMAIN_NOT_ALLOWED = "DOMAIN_NOT_ALLOWED"
    INVITATION_REQUIRED = "INVITATION_REQUIRED"

    # Tenant membership
    USER_NOT_MEMBER = "USER_NOT_MEMBER"
    MEMBERSHIP_INACTIVE = "MEMBERSHIP_INACTIVE"
    MEMBERSHIP_NOT_FOUND = "MEMBERSHIP_NOT_FOUND"
    INVALID_ROLE = "INVALID_ROLE"
    ORGANIZATION_MISMATCH = "ORGANIZATION_MISMATCH"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"

    # Generic auth core
    INVALID_EMAIL = "INVALID_EMAIL"
    USER_EXISTS = "USER_EXISTS"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_MFA_CODE = "INVALID_MFA_CODE"
    UNSUPPORTED_MFA_METHOD = "UNSUPPORTED_MFA_METHOD"
    MFA_METHOD_NOT_FOUND = "MFA_METHOD_NOT_FOUND"
    INVALID_CODE = "INVALID_CODE"
    CODE_EXPIRED = "CODE_EXPIRED"
    MFA_DISABLED = "MFA_DISABLED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    INVALID_RESET_TOKEN = "INVALID_RESET_TOKEN"
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    PASSWORD_REUSED = "PASSWORD_REUSED"

    # Account status
    EMAIL_VERIFICATION_REQUIRED = "EMAIL_VERIFICATION_REQUIRED"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    ACCOUNT_SUSPENDED = "ACCOUNT_SUSPENDED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    ACCOUNT_BANNED = "ACCOUNT_BANNED"
    ACCOUNT_INACTIVE = "ACCOUNT_INACTIVE"
    INVALID_STATUS = "INVALID_STATUS"


class AppError(Exception):
    """Application error with status and code

    Attributes:
        message: Human-readable description
        status_code: HTTP-style status code
        error_code: Machine-readable error code (see ErrorCode)
        details: Optional structured context (e.g. membership status)
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert to response body"""
        body = {"error": self.error_code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.status_code}, {self.error_code!r}, {self.message!r})"


class ValidationError(AppError):
    """Request failed a business validation rule (400)"""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, 400, error_code, details)


class AuthenticationError(AppError):
    """Authentication failed (401)"""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, 401, error_code, details)


class ForbiddenError(AppError):
    """Caller is not allowed to perform the operation (403)"""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, 403, error_code, details)


class NotFoundError(AppError):
    """Resource does not exist (404)"""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, 404, error_code, details)


class ConflictError(AppError):
    """Resource already exists (409)"""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, 409, error_code, details)
