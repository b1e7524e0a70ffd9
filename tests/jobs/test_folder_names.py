"""Tests for bounded-concurrency folder name resolution."""

import asyncio

import pytest

from shareaudit.jobs.folders import resolve_folder_names


class CountingClient:
    """Tracks how many lookups run at the same time."""

    def __init__(self):
        self.active = 0
        self.peak = 0
        self.calls = []

    async def get_folder_name(self, folder_id):
        self.calls.append(folder_id)
        self.active += 1
        self.peak = max(self.peak, self.active)
        await asyncio.sleep(0)
        self.active -= 1
        return folder_id.upper()


class TestResolveFolderNames:

    @pytest.mark.asyncio
    async def test_deduplicates_and_skips_empty_ids(self, fake_drive):
        client = fake_drive(folder_names={"a": "Finance", "b": "HR"})

        names = await resolve_folder_names(client, ["a", "b", "a", "", None])

        assert names == {"a": "Finance", "b": "HR"}

    @pytest.mark.asyncio
    async def test_failed_lookup_gives_empty_name(self, fake_drive):
        client = fake_drive(folder_names={"a": "Finance"}, failing_folders={"secret"})

        names = await resolve_folder_names(client, ["a", "secret"])

        assert names == {"a": "Finance", "secret": ""}

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        client = CountingClient()
        ids = [f"folder-{i}" for i in range(45)]

        names = await resolve_folder_names(client, ids, concurrency=20)

        assert len(names) == 45
        assert client.peak <= 20
        assert sorted(client.calls) == sorted(ids)

    @pytest.mark.asyncio
    async def test_no_ids(self, fake_drive):
        assert await resolve_folder_names(fake_drive(), []) == {}
