"""Organization (Tenant) Data Models

Each organization represents a separate tenant/customer with its own
acceptance rules, domain allow-list, subscription tier, feature flags
and usage counters.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from tenant_auth_service.domain.errors import ErrorCode
from tenant_auth_service.domain.models.auth import (
    parse_optional_timestamp,
    parse_utc_timestamp,
    to_json_compatible,
)

# Statuses that allow logins and new members
USABLE_STATUSES = ("active", "trial")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AcceptanceResult:
    """Outcome of an organization acceptance check

    reason and code are operator-facing and passed through verbatim.
    """
    allowed: bool
    reason: Optional[str] = None
    code: Optional[str] = None


@dataclass
class UsageCounter:
    """Usage counter for one metric (users, customers, ...)"""
    current: int = 0
    peak: int = 0
    last_updated: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "current": self.current,
            "peak": self.peak,
            "last_updated": to_json_compatible(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'UsageCounter':
        return cls(
            current=data.get("current", 0),
            peak=data.get("peak", 0),
            last_updated=parse_optional_timestamp(data.get("last_updated")),
        )


@dataclass
class Organization:
    """Organization (Tenant)

    Attributes:
        organization_id: Unique identifier
        name: Display name
        slug: URL-safe unique name
        status: active, trial, suspended, expired, cancelled or pending
        trial_ends_at: End of the trial period (trial organizations only)
        subscription: Subscription info ({"tier": ..., "status": ...})
        features: Feature flags ({"api_access": {"enabled": True}})
        allowed_domains: Email domains allowed to sign up (empty = any)
        require_invitation: Self-registration needs an invitation code
        max_users: Seat limit (None or 0 = unlimited)
        max_customers: Customer limit (None or 0 = unlimited)
        usage: Usage counters by metric
        contact: Contact details ({"support_email": ...})
    """
    organization_id: str
    name: str
    slug: Optional[str] = None
    status: str = "active"
    trial_ends_at: Optional[datetime] = None
    subscription: Dict[str, Any] = field(default_factory=lambda: {"tier": "free", "status": "active"})
    features: Dict[str, Any] = field(default_factory=dict)
    allowed_domains: List[str] = field(default_factory=list)
    require_invitation: bool = False
    max_users: Optional[int] = None
    max_customers: Optional[int] = None
    usage: Dict[str, UsageCounter] = field(default_factory=dict)
    contact: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utc_now)

    @property
    def tier(self) -> Optional[str]:
        return (self.subscription or {}).get("tier")

    @property
    def is_trial_expired(self) -> bool:
        """Trial organizations expire once trial_ends_at has passed"""
        return (
            self.status == "trial"
            and self.trial_ends_at is not None
            and _utc_now() > self.trial_ends_at
        )

    def get_usage(self, metric: str) -> UsageCounter:
        if metric not in self.usage:
            self.usage[metric] = UsageCounter()
        return self.usage[metric]

    def can_accept_new_users(self) -> AcceptanceResult:
        """Check whether a new user may join this organization"""
        if self.status not in USABLE_STATUSES:
            return AcceptanceResult(
                allowed=False,
                reason=f"Organization is {self.status}",
                code=ErrorCode.ORG_NOT_ACTIVE,
            )

        if self.max_users and self.get_usage("users").current >= self.max_users:
            return AcceptanceResult(
                allowed=False,
                reason="User limit reached",
                code=ErrorCode.USER_LIMIT_REACHED,
            )

        return AcceptanceResult(allowed=True)

    def is_domain_allowed(self, email: str) -> bool:
        """Check an email against the domain allow-list (empty list allows all)"""
        if not self.allowed_domains:
            return True
        domain = email.rsplit("@", 1)[-1].lower() if "@" in email else ""
        return domain in {d.lower() for d in self.allowed_domains}

    def increment_usage(self, metric: str, amount: int = 1) -> None:
        counter = self.get_usage(metric)
        counter.current += amount
        counter.last_updated = _utc_now()
        if counter.current > counter.peak:
            counter.peak = counter.current

    def decrement_usage(self, metric: str, amount: int = 1) -> None:
        counter = self.get_usage(metric)
        counter.current = max(0, counter.current - amount)
        counter.last_updated = _utc_now()

    def to_dict(self) -> dict:
        return {
            "organization_id": self.organization_id,
            "name": self.name,
            "slug": self.slug,
            "status": self.status,
            "trial_ends_at": to_json_compatible(self.trial_ends_at),
            "subscription": dict(self.subscription),
            "features": dict(self.features),
            "allowed_domains": list(self.allowed_domains),
            "require_invitation": self.require_invitation,
            "max_users": self.max_users,
            "max_customers": self.max_customers,
            "usage": {metric: counter.to_dict() for metric, counter in self.usage.items()},
            "contact": dict(self.contact),
            "created_at": to_json_compatible(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Organization':
        return cls(
            organization_id=data["organization_id"],
            name=data["name"],
            slug=data.get("slug"),
            status=data.get("status", "active"),
            trial_ends_at=parse_optional_timestamp(data.get("trial_ends_at")),
            subscription=data.get("subscription", {"tier": "free", "status": "active"}),
            features=data.get("features", {}),
            allowed_domains=data.get("allowed_domains", []),
            require_invitation=data.get("require_invitation", False),
            max_users=data.get("max_users"),
            max_customers=data.get("max_customers"),
            usage={m: UsageCounter.from_dict(c) for m, c in data.get("usage", {}).items()},
            contact=data.get("contact", {}),
            created_at=parse_utc_timestamp(data["created_at"]) if data.get("created_at") else _utc_now(),
        )


@dataclass
class OrganizationValidation:
    """Result of validating an organization for login"""
    valid: bool
    reason: Optional[str] = None
    code: Optional[str] = None
    organization: Optional[Organization] = None
