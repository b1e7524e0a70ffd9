"""
Parent folder name resolution with bounded concurrency.
"""

import asyncio
import logging
from typing import Dict, Iterable

from shareaudit.adapters.base import DirectoryClient
from shareaudit.exceptions import ShareAuditError

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 20


async def _lookup(client: DirectoryClient, folder_id: str) -> str:
    try:
        return await client.get_folder_name(folder_id)
    except ShareAuditError as e:
        # Access denied, deleted or otherwise unresolvable
        logger.debug("Could not resolve folder %s: %s", folder_id, e)
        return ""


async def resolve_folder_names(
    client: DirectoryClient,
    folder_ids: Iterable[str],
    concurrency: int = DEFAULT_CONCURRENCY,
) -> Dict[str, str]:
    """
    Resolve folder ids to names.

    Ids are deduplicated (first-seen order) and looked up in windows of
    `concurrency` parallel calls. A failed lookup yields an empty name; the
    batch as a whole never fails on a provider error.

    Returns:
        Mapping of every distinct non-empty id to its name ("" if unresolved)
    """
    unique = list(dict.fromkeys(fid for fid in folder_ids if fid))
    names: Dict[str, str] = {}

    for start in range(0, len(unique), concurrency):
        window = unique[start:start + concurrency]
        resolved = await asyncio.gather(*(_lookup(client, fid) for fid in window))
        names.update(zip(window, resolved))

    unresolved = sum(1 for name in names.values() if not name)
    logger.debug("Resolved %d folder names (%d unresolved)", len(names), unresolved)
    return names
