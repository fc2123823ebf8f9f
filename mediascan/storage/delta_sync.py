"""
Delta Synchronization

Reconciles a site's local media items with the external index by content
hash. Local state is authoritative: external failures are logged and
reported as zero progress, never raised.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, List

from mediascan.core.base import ExternalIndex, MediaItem
from mediascan.core.logging import get_logger, logging_manager

DEFAULT_DRIFT_TOLERANCE = 0.1


@dataclass
class Delta:
    """Difference between two item sets"""
    added_items: List[MediaItem]
    deleted_hashes: List[str]

    @property
    def added_hashes(self) -> List[str]:
        return [item.content_hash for item in self.added_items]

    @property
    def is_empty(self) -> bool:
        return not self.added_items and not self.deleted_hashes


@dataclass
class SyncResult:
    """Counts reported by the external index"""
    added: int = 0
    deleted: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class SyncCheck:
    """Outcome of drift reconciliation"""
    synced: bool
    count: int


def compute_delta(old_items: Iterable[MediaItem], new_items: Iterable[MediaItem]) -> Delta:
    """
    added = new hashes not in old, deleted = old hashes not in new.

    Both lists keep input order and contain each hash once.
    """
    old_items = list(old_items)
    new_items = list(new_items)
    old_hashes = {item.content_hash for item in old_items}
    new_hashes = {item.content_hash for item in new_items}

    added: List[MediaItem] = []
    seen = set()
    for item in new_items:
        if item.content_hash not in old_hashes and item.content_hash not in seen:
            added.append(item)
            seen.add(item.content_hash)

    deleted = list(dict.fromkeys(
        item.content_hash for item in old_items if item.content_hash not in new_hashes
    ))
    return Delta(added_items=added, deleted_hashes=deleted)


class DeltaSynchronizer:
    """
    Pushes item-set differences to an external index

    Args:
        index_client: External index implementation
        drift_tolerance: Relative count difference that triggers a full
            resync in sync_if_needed()
    """

    def __init__(self, index_client: ExternalIndex, drift_tolerance: float = DEFAULT_DRIFT_TOLERANCE):
        self.logger = get_logger()
        self.index_client = index_client
        self.drift_tolerance = drift_tolerance

    async def sync_delta(self, old_items: Iterable[MediaItem], new_items: Iterable[MediaItem],
                         site_key: str) -> SyncResult:
        """
        Submit additions and deletions concurrently

        Returns:
            SyncResult with the counts the backend reported; a failed side
            counts as zero and its error is recorded
        """
        delta = compute_delta(old_items, new_items)
        if delta.is_empty:
            self.logger.info(f"No changes to sync for {site_key}")
            return SyncResult()

        self.logger.info(
            f"Syncing {site_key}: +{len(delta.added_items)} items, -{len(delta.deleted_hashes)} items"
        )

        result = SyncResult()
        added, deleted = await asyncio.gather(
            self._guarded(self.index_client.index_batch(delta.added_items, site_key),
                          'index', site_key, result) if delta.added_items else _zero(),
            self._guarded(self.index_client.delete_batch(delta.deleted_hashes, site_key),
                          'delete', site_key, result) if delta.deleted_hashes else _zero(),
        )
        result.added = added
        result.deleted = deleted
        return result

    async def sync_if_needed(self, local_items: Iterable[MediaItem], site_key: str) -> SyncCheck:
        """
        Full resync when the external count is zero or drifted

        The external index is resynced when it reports no items or its
        count differs from the local count by more than the tolerance.
        """
        local_items = list({item.content_hash: item for item in local_items}.values())
        if not local_items:
            return SyncCheck(synced=False, count=0)

        result = SyncResult()
        external_count = await self._guarded(self.index_client.get_count(site_key), 'count', site_key, result)
        local_count = len(local_items)

        needs_sync = (external_count == 0
                      or abs(external_count - local_count) > local_count * self.drift_tolerance)
        if not needs_sync:
            self.logger.info(f"External index for {site_key} in sync ({external_count}/{local_count})")
            return SyncCheck(synced=False, count=external_count)

        self.logger.info(f"External index drift for {site_key}: {external_count} vs {local_count} local, resyncing")
        indexed = await self._guarded(self.index_client.index_batch(local_items, site_key), 'index', site_key, result)
        return SyncCheck(synced=True, count=indexed)

    async def clear_site(self, site_key: str) -> bool:
        try:
            return bool(await self.index_client.clear_site(site_key))
        except Exception as e:
            logging_manager.log_warning("External clear failed", {"site_key": site_key, "error": repr(e)})
            return False

    async def _guarded(self, call, operation: str, site_key: str, result: SyncResult) -> int:
        try:
            return int(await call)
        except Exception as e:
            logging_manager.log_warning(f"External {operation} failed", {"site_key": site_key, "error": repr(e)})
            result.errors.append(f"{operation}: {e}")
            return 0


async def _zero() -> int:
    return 0
