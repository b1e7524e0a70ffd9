"""Tests for organizations, scan counters and delegation settings."""

import pytest

from shareaudit.adapters.delegation import ServiceAccountConfig, VerificationResult
from shareaudit.exceptions import ConfigurationError, ConflictError, NotFoundError, ValidationError
from shareaudit.services.organization_service import OrganizationService

CONFIG = ServiceAccountConfig(
    client_email="scanner@project.iam.gserviceaccount.com",
    private_key="key",
    client_id="42",
)


class TestOrganizations:

    @pytest.mark.asyncio
    async def test_create_and_lookup(self, memory_db, settings):
        async with memory_db() as session_factory:
            organizations = OrganizationService(session_factory, settings)

            org = await organizations.create("Acme", "Example.COM", plan="basic")

            assert org.domain == "example.com"
            assert org.total_scans == 0
            assert (await organizations.get_by_domain("EXAMPLE.com")).id == org.id
            assert [o.id for o in await organizations.list_all()] == [org.id]

    @pytest.mark.asyncio
    async def test_duplicate_domain(self, memory_db, settings):
        async with memory_db() as session_factory:
            organizations = OrganizationService(session_factory, settings)
            await organizations.create("Acme", "example.com")

            with pytest.raises(ConflictError):
                await organizations.create("Acme 2", "example.com")

    @pytest.mark.asyncio
    async def test_unknown_plan(self, memory_db, settings):
        async with memory_db() as session_factory:
            organizations = OrganizationService(session_factory, settings)

            with pytest.raises(ValidationError):
                await organizations.create("Acme", "example.com", plan="platinum")

            org = await organizations.create("Acme", "example.com")
            with pytest.raises(ValidationError):
                await organizations.set_plan(org.id, "platinum")
            assert (await organizations.set_plan(org.id, "pro")).plan == "pro"

    @pytest.mark.asyncio
    async def test_missing_domain(self, memory_db, settings):
        async with memory_db() as session_factory:
            with pytest.raises(NotFoundError):
                await OrganizationService(session_factory, settings).get_by_domain("nowhere.org")

    @pytest.mark.asyncio
    async def test_increment_scan_stats(self, memory_db, settings):
        async with memory_db() as session_factory:
            organizations = OrganizationService(session_factory, settings)
            org = await organizations.create("Acme", "example.com")

            await organizations.increment_scan_stats(org.id, 120)
            await organizations.increment_scan_stats(org.id, 30, scans=3)

            org = await organizations.get(org.id)
            assert org.total_scans == 4
            assert org.total_files_scanned == 150
            assert org.last_scan_at is not None


class TestDelegationConfig:

    @pytest.mark.asyncio
    async def test_not_configured(self, memory_db, settings):
        async with memory_db() as session_factory:
            organizations = OrganizationService(session_factory, settings)
            org = await organizations.create("Acme", "example.com")

            with pytest.raises(ConfigurationError):
                await organizations.get_delegation_config(org.id, require_verified=False)

    @pytest.mark.asyncio
    async def test_verification_flow(self, memory_db, settings):
        async with memory_db() as session_factory:
            organizations = OrganizationService(session_factory, settings)
            org = await organizations.create("Acme", "example.com")

            org = await organizations.save_delegation_config(org.id, CONFIG, "admin@example.com")
            assert org.delegation_status == "pending"

            with pytest.raises(ConfigurationError):
                await organizations.get_delegation_config(org.id)
            _, config = await organizations.get_delegation_config(org.id, require_verified=False)
            assert config == CONFIG

            org = await organizations.record_delegation_verification(
                org.id, VerificationResult(success=False, error="Not authorized", reason="access_denied")
            )
            assert org.delegation_status == "failed"
            assert org.delegation_error == "Not authorized"

            org = await organizations.record_delegation_verification(
                org.id, VerificationResult(success=True, user_count=1)
            )
            assert org.delegation_status == "verified"
            assert org.delegation_error is None
            assert org.delegation_verified_at is not None

            org, config = await organizations.get_delegation_config(org.id)
            assert org.delegation_admin_email == "admin@example.com"
            assert config.client_id == "42"

    @pytest.mark.asyncio
    async def test_saving_new_credentials_resets_verification(self, memory_db, settings):
        async with memory_db() as session_factory:
            organizations = OrganizationService(session_factory, settings)
            org = await organizations.create("Acme", "example.com")
            await organizations.save_delegation_config(org.id, CONFIG, "admin@example.com")
            await organizations.record_delegation_verification(org.id, VerificationResult(success=True))

            org = await organizations.save_delegation_config(org.id, CONFIG, "other@example.com")

            assert org.delegation_status == "pending"
            assert org.delegation_verified_at is None
