"""Auth Core Extension Points

The generic AuthService is specialized by passing an AuthHooks instance
(explicit set of optional async callables) and a UserStructure
descriptor, instead of subclassing.

Hook signatures:
    before_register(user_data, tenant_id, options)
    after_register(user, tokens, session, options)
    before_login(credentials, tenant_id, options)
    after_login(user, tokens, session, options)
    before_logout(user_id, session_id, options)
    after_logout(user_id, session_id, options)
    enrich_user_data(user, options)           mutates the document before the write
    sanitize_user_data(user, options) -> dict
    validate_user(user, options)              raises to reject a login
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

Hook = Callable[..., Awaitable[Any]]


@dataclass
class AuthHooks:
    """Optional lifecycle callbacks invoked by AuthService"""
    before_register: Optional[Hook] = None
    after_register: Optional[Hook] = None
    before_login: Optional[Hook] = None
    after_login: Optional[Hook] = None
    before_logout: Optional[Hook] = None
    after_logout: Optional[Hook] = None
    enrich_user_data: Optional[Hook] = None
    sanitize_user_data: Optional[Hook] = None
    validate_user: Optional[Hook] = None


@dataclass
class UserStructure:
    """Which user-data fields the auth core copies into the document

    Attributes:
        identity_fields: Top-level identity fields
        profile_fields: Fields copied into user.profile when present
        organization_field: Document field holding memberships (None = no tenancy)
    """
    identity_fields: List[str] = field(default_factory=lambda: ["email", "username"])
    profile_fields: List[str] = field(
        default_factory=lambda: ["first_name", "last_name", "display_name", "phone_number"]
    )
    organization_field: Optional[str] = "organizations"

    def extract_profile(self, user_data: Dict[str, Any]) -> Dict[str, Any]:
        return {name: user_data[name] for name in self.profile_fields if user_data.get(name) is not None}
