"""
Organization records, aggregate scan counters and delegation settings.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select, update

from shareaudit.adapters.delegation import ServiceAccountConfig, VerificationResult
from shareaudit.core.plans import get_plan
from shareaudit.exceptions import ConfigurationError, ConflictError, NotFoundError
from shareaudit.models import Organization
from shareaudit.services.base import BaseService


class OrganizationService(BaseService):
    """Organization lookups and counters."""

    async def create(self, name: str, domain: str, plan: str = "free") -> Organization:
        get_plan(plan)
        domain = domain.lower()
        async with self.session() as session:
            existing = await session.execute(
                select(Organization.id).where(Organization.domain == domain)
            )
            if existing.scalar() is not None:
                raise ConflictError(f"Organization for {domain} already exists")
            org = Organization(name=name, domain=domain, plan=plan)
            session.add(org)
            await session.flush()
            self._log_info("Created organization", organization_id=str(org.id), domain=domain)
            return org

    async def get(self, organization_id: UUID) -> Organization:
        async with self.session() as session:
            return await self._get_or_404(session, Organization, organization_id, "Organization")

    async def get_by_domain(self, domain: str) -> Organization:
        async with self.session() as session:
            result = await session.execute(
                select(Organization).where(Organization.domain == domain.lower())
            )
            org = result.scalar_one_or_none()
            if org is None:
                raise NotFoundError(
                    "Organization not found",
                    resource_type="Organization",
                    resource_id=domain,
                )
            return org

    async def increment_scan_stats(
        self,
        organization_id: UUID,
        files_scanned: int,
        scans: int = 1,
    ) -> None:
        """Add to the running totals. Applied as one atomic UPDATE."""
        async with self.session() as session:
            await session.execute(
                update(Organization)
                .where(Organization.id == organization_id)
                .values(
                    total_scans=Organization.total_scans + scans,
                    total_files_scanned=Organization.total_files_scanned + files_scanned,
                    last_scan_at=datetime.now(timezone.utc),
                )
            )
        self._log_debug(
            "Incremented organization scan stats",
            organization_id=str(organization_id),
            files_scanned=files_scanned,
        )

    # =========================================================================
    # Delegation
    # =========================================================================

    async def save_delegation_config(
        self,
        organization_id: UUID,
        config: ServiceAccountConfig,
        admin_email: str,
    ) -> Organization:
        """Store service-account credentials; they start unverified."""
        async with self.session() as session:
            org = await self._get_or_404(session, Organization, organization_id, "Organization")
            org.delegation_client_email = config.client_email
            org.delegation_private_key = config.private_key
            org.delegation_client_id = config.client_id
            org.delegation_admin_email = admin_email
            org.delegation_status = "pending"
            org.delegation_error = None
            org.delegation_verified_at = None
            return org

    async def record_delegation_verification(
        self,
        organization_id: UUID,
        result: VerificationResult,
    ) -> Organization:
        async with self.session() as session:
            org = await self._get_or_404(session, Organization, organization_id, "Organization")
            if result.success:
                org.delegation_status = "verified"
                org.delegation_error = None
                org.delegation_verified_at = datetime.now(timezone.utc)
            else:
                org.delegation_status = "failed"
                org.delegation_error = result.error
            return org

    async def get_delegation_config(
        self,
        organization_id: UUID,
        require_verified: bool = True,
    ) -> tuple[Organization, ServiceAccountConfig]:
        """
        Load the organization with its delegation credentials.

        Raises:
            ConfigurationError: No credentials stored, or not yet verified
                when require_verified is set
        """
        org = await self.get(organization_id)
        if not org.delegation_client_email or not org.delegation_private_key:
            raise ConfigurationError(
                "Domain-wide delegation is not configured for this organization",
                details={"organization_id": str(organization_id)},
            )
        if require_verified and org.delegation_status != "verified":
            raise ConfigurationError(
                "Domain-wide delegation has not been verified",
                details={
                    "organization_id": str(organization_id),
                    "status": org.delegation_status,
                },
            )
        config = ServiceAccountConfig(
            client_email=org.delegation_client_email,
            private_key=org.delegation_private_key,
            client_id=org.delegation_client_id,
        )
        return org, config

    async def list_all(self) -> list[Organization]:
        async with self.session() as session:
            result = await session.execute(select(Organization).order_by(Organization.created_at))
            return list(result.scalars().all())

    async def set_plan(self, organization_id: UUID, plan: str) -> Organization:
        get_plan(plan)
        async with self.session() as session:
            org = await self._get_or_404(session, Organization, organization_id, "Organization")
            org.plan = plan
            return org
