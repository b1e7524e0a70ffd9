"""Tests for folder summary storage and listing."""

import pytest

from shareaudit.exceptions import ValidationError
from shareaudit.services.folder_service import FolderSummaryService
from shareaudit.services.organization_service import OrganizationService
from shareaudit.services.scan_service import ScanService


def row(folder_id, level, total_score):
    return {
        "folder_id": folder_id,
        "name": folder_id.title(),
        "file_count": 1,
        "risky_summary": {"critical": 0, "high": 0, "medium": 0, "low": 0, level: 1},
        "highest_risk_level": level,
        "total_risk_score": total_score,
        "internal_stats": {},
        "external_stats": {},
    }


async def scan_with_folders(session_factory, settings, rows):
    org = await OrganizationService(session_factory, settings).create("Acme", "example.com")
    scan = await ScanService(session_factory, settings).create(org.id, "owner@example.com")
    folders = FolderSummaryService(session_factory, settings)
    await folders.replace_for_scan(scan.id, rows)
    return scan, folders


class TestFolderSummaryService:

    @pytest.mark.asyncio
    async def test_riskiest_first(self, memory_db, settings):
        async with memory_db() as session_factory:
            scan, folders = await scan_with_folders(session_factory, settings, [
                row("alpha", "low", 30),
                row("beta", "critical", 85),
                row("gamma", "high", 70),
                row("delta", "high", 140),
            ])

            listed, total = await folders.list_folders(scan.id)

            assert total == 4
            assert [f.folder_id for f in listed] == ["beta", "delta", "gamma", "alpha"]

    @pytest.mark.asyncio
    async def test_min_risk_level(self, memory_db, settings):
        async with memory_db() as session_factory:
            scan, folders = await scan_with_folders(session_factory, settings, [
                row("alpha", "low", 30),
                row("beta", "medium", 45),
                row("gamma", "high", 70),
            ])

            listed, total = await folders.list_folders(scan.id, min_risk_level="medium")

            assert total == 2
            assert {f.folder_id for f in listed} == {"beta", "gamma"}

            with pytest.raises(ValidationError):
                await folders.list_folders(scan.id, min_risk_level="extreme")

    @pytest.mark.asyncio
    async def test_replace_swaps_all_rows(self, memory_db, settings):
        async with memory_db() as session_factory:
            scan, folders = await scan_with_folders(session_factory, settings, [
                row("alpha", "low", 30),
                row("beta", "medium", 45),
            ])

            await folders.replace_for_scan(scan.id, [row("gamma", "high", 60)])

            listed, total = await folders.list_folders(scan.id)
            assert total == 1
            assert listed[0].folder_id == "gamma"
