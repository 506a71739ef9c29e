"""Organization Service

Purpose: Tenant existence, acceptance and usage checks

Exposes the organization operations the tenant orchestrator relies on:
lookup, login validation, new-user acceptance and usage counters.
Reasons and codes returned here are surfaced to callers verbatim.
"""

import logging
import uuid
from typing import Optional

from tenant_auth_service.domain.errors import AppError, ErrorCode, NotFoundError, ValidationError
from tenant_auth_service.domain.models import (
    AcceptanceResult,
    Organization,
    OrganizationValidation,
)
from tenant_auth_service.domain.models.organization import USABLE_STATUSES
from tenant_auth_service.infrastructure.organizations.store import OrganizationStore

logger = logging.getLogger(__name__)


class OrganizationService:
    """Organization (tenant) operations backed by OrganizationStore"""

    def __init__(self, store: OrganizationStore):
        self.store = store

    async def get_organization(self, organization_id: str) -> Organization:
        """Get organization by ID

        Raises:
            NotFoundError: ORG_NOT_FOUND if the organization does not exist
        """
        organization = await self.store.get(organization_id)
        if not organization:
            raise NotFoundError("Organization not found", ErrorCode.ORG_NOT_FOUND)

        logger.debug(f"Organization retrieved: {organization.organization_id} ({organization.name})")
        return organization

    async def create_organization(
        self,
        name: str,
        slug: Optional[str] = None,
        organization_id: Optional[str] = None,
        **attributes,
    ) -> Organization:
        """Create a new organization

        Raises:
            ValidationError: If the slug is already taken
        """
        slug = (slug or name).strip().lower().replace(" ", "-")
        if await self.store.get_by_slug(slug):
            raise ValidationError(f"Organization slug '{slug}' already exists", "ORG_SLUG_EXISTS")

        organization = Organization(
            organization_id=organization_id or str(uuid.uuid4()),
            name=name,
            slug=slug,
            **attributes,
        )
        await self.store.save(organization)

        logger.info(f"Created organization {organization.organization_id} ({name})")
        return organization

    async def can_accept_new_users(self, organization_id: str) -> AcceptanceResult:
        organization = await self.get_organization(organization_id)
        return organization.can_accept_new_users()

    async def validate_organization(self, organization_id: str) -> OrganizationValidation:
        """Validate organization exists and is usable for login

        Never raises for application errors; a missing organization is
        reported as an invalid result carrying the not-found reason/code.
        """
        try:
            organization = await self.get_organization(organization_id)
        except AppError as e:
            return OrganizationValidation(valid=False, reason=e.message, code=e.error_code)

        if organization.status not in USABLE_STATUSES:
            return OrganizationValidation(
                valid=False,
                reason=f"Organization is {organization.status}",
                code=ErrorCode.ORG_NOT_ACTIVE,
                organization=organization,
            )

        if organization.is_trial_expired:
            return OrganizationValidation(
                valid=False,
                reason="Trial period has expired",
                code=ErrorCode.TRIAL_EXPIRED,
                organization=organization,
            )

        return OrganizationValidation(valid=True, organization=organization)

    async def increment_usage(self, organization_id: str, metric: str, amount: int = 1) -> Organization:
        """Increment a usage counter (users, customers, ...)"""
        organization = await self.get_organization(organization_id)
        organization.increment_usage(metric, amount)
        await self.store.save(organization)

        logger.debug(f"Organization usage incremented: {organization_id} {metric} +{amount}")
        return organization

    async def decrement_usage(self, organization_id: str, metric: str, amount: int = 1) -> Organization:
        """Decrement a usage counter (floored at zero)"""
        organization = await self.get_organization(organization_id)
        organization.decrement_usage(metric, amount)
        await self.store.save(organization)

        logger.debug(f"Organization usage decremented: {organization_id} {metric} -{amount}")
        return organization

    async def get_user_count(self, organization_id: str) -> int:
        organization = await self.get_organization(organization_id)
        return organization.get_usage("users").current
