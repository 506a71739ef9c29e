"""Generic authentication core.

A single AuthService shared by every user context, specialized through:
- AuthHooks: optional lifecycle callbacks (strategy object)
- UserStructure: which user-data fields become part of the document
- AuthConfig: lockout, verification and MFA behavior
"""

from .hooks import AuthHooks, UserStructure
from .service import AuthConfig, AuthService, default_sanitize_user

__all__ = [
    "AuthConfig",
    "AuthHooks",
    "AuthService",
    "UserStructure",
    "default_sanitize_user",
]
