"""
Scanner Orchestrator Implementation

Drives page extraction over a bounded work queue and coordinates the
per-site incremental flow: change detection, scanning, persistence,
index maintenance and external synchronization.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from mediascan.core.base import (
    BaseComponent,
    MediaItem,
    PageDescriptor,
    PageScanResult,
    ScanMetadata,
    ScanReport,
    SiteStore,
)
from mediascan.core.change_detector import (
    build_scan_metadata,
    merge_scan_metadata,
    select_changed_pages,
)
from mediascan.core.logging import get_logger, logging_manager
from mediascan.core.queue import BoundedWorkQueue, DEFAULT_MAX_CONCURRENT
from mediascan.index.builder import IndexBuilder, MediaIndex, ProgressCallback
from mediascan.processors.extractor import PageExtractor
from mediascan.storage.delta_sync import DeltaSynchronizer, SyncResult
from mediascan.utils.url import get_site_key

ScanProgressCallback = Callable[[int, int, int], None]


class MediaScanner:
    """
    Scans a page list with bounded concurrency.

    Pages unchanged since the previous scan are skipped. Page failures
    are isolated: a failed page contributes no items, still counts as
    completed, and is not retried within the same call.
    """

    def __init__(self, extractor: PageExtractor, max_concurrent: int = DEFAULT_MAX_CONCURRENT):
        self.logger = get_logger()
        self.extractor = extractor
        self.max_concurrent = max_concurrent

    async def scan(self, pages: Iterable[PageDescriptor],
                   on_progress: Optional[ScanProgressCallback] = None,
                   previous_metadata: Optional[ScanMetadata] = None) -> List[MediaItem]:
        """
        Scan pages and return every extracted item

        Args:
            pages: Pages to consider
            on_progress: Called as (completed, selected_total, items_found_so_far)
                once per selected page, in completion order
            previous_metadata: Metadata of the previous scan, None on first scan

        Returns:
            Items of all successfully scanned pages
        """
        report = await self.scan_with_report(pages, on_progress, previous_metadata)
        return report.items

    async def scan_with_report(self, pages: Iterable[PageDescriptor],
                               on_progress: Optional[ScanProgressCallback] = None,
                               previous_metadata: Optional[ScanMetadata] = None) -> ScanReport:
        """Like scan(), but also reports skipped and failed pages"""
        start_time = time.monotonic()
        pages = list(pages)
        selected = select_changed_pages(pages, previous_metadata)
        skipped = len(pages) - len(selected)
        total = len(selected)

        if skipped:
            self.logger.info(f"Skipping {skipped} unchanged pages")
        self.logger.info(f"Scanning {total} pages with max_concurrent={self.max_concurrent}")

        items: List[MediaItem] = []
        failed: List[str] = []
        completed = 0

        def page_done(location: str, result: Optional[PageScanResult]) -> None:
            nonlocal completed
            completed += 1
            if result is None or result.failed:
                failed.append(location)
            else:
                items.extend(result.items)
            logging_manager.log_progress(completed, total, location)
            self._report_progress(on_progress, completed, total, len(items))

        async def process(page: PageDescriptor) -> None:
            result = await self.extractor.scan_page(page)
            page_done(page.location, result)

        def on_error(page: PageDescriptor, error: BaseException) -> None:
            logging_manager.log_error(error, {"page": page.location})
            page_done(page.location, None)

        queue = BoundedWorkQueue(process, self.max_concurrent, on_error)
        await queue.run(selected)

        duration_ms = int((time.monotonic() - start_time) * 1000)
        self.logger.info(
            f"Scan finished: {total - len(failed)}/{total} pages, {len(items)} items, "
            f"{len(failed)} failed, {duration_ms} ms"
        )
        return ScanReport(
            items=items,
            selected=total,
            skipped=skipped,
            failed_locations=failed,
            duration_ms=duration_ms,
        )

    def _report_progress(self, on_progress: Optional[ScanProgressCallback],
                         completed: int, total: int, found: int) -> None:
        if on_progress is None:
            return
        try:
            on_progress(completed, total, found)
        except Exception as e:
            self.logger.warning(f"Progress callback failed: {e}")


@dataclass
class SiteScanResult:
    """Outcome of an incremental site scan"""
    site_key: str
    report: ScanReport
    items: List[MediaItem]
    metadata: ScanMetadata
    index: MediaIndex
    sync: Optional[SyncResult] = None


def merge_site_items(previous: List[MediaItem], scanned: List[MediaItem],
                     rescanned_locations: Iterable[str]) -> List[MediaItem]:
    """
    Combine stored items with freshly scanned ones.

    Items of successfully re-scanned pages are replaced; items of every
    other page are kept. Occurrences seen before keep their first_seen_at.
    """
    rescanned = set(rescanned_locations)
    previous_by_hash = {item.content_hash: item for item in previous}

    merged: Dict[str, MediaItem] = {}
    for item in previous:
        if item.source_document not in rescanned:
            merged.setdefault(item.content_hash, item)

    for item in scanned:
        if item.content_hash in merged:
            continue
        earlier = previous_by_hash.get(item.content_hash)
        if earlier is not None and earlier.first_seen_at is not None:
            if item.first_seen_at is None or earlier.first_seen_at < item.first_seen_at:
                item.first_seen_at = earlier.first_seen_at
        merged[item.content_hash] = item

    return list(merged.values())


class SiteScanService:
    """
    Incremental scan of a site, backed by a SiteStore.

    Keeps one index builder and index per site key; call get_index()
    for queries.
    """

    def __init__(self, scanner: MediaScanner, store: SiteStore,
                 synchronizer: Optional[DeltaSynchronizer] = None,
                 index_builder_factory: Optional[Callable[[], IndexBuilder]] = None):
        self.logger = get_logger()
        self.scanner = scanner
        self.store = store
        self.synchronizer = synchronizer
        self.index_builder_factory = index_builder_factory or IndexBuilder
        self._builders: Dict[str, IndexBuilder] = {}
        self._indexes: Dict[str, MediaIndex] = {}
        self.components: Dict[str, BaseComponent] = {}

    def register_component(self, name: str, component: BaseComponent) -> None:
        """Register a component whose lifecycle this service manages"""
        self.components[name] = component

    async def initialize(self) -> None:
        """Initialize all registered components"""
        for component in self.components.values():
            if not component.is_initialized():
                await component.initialize()
        self.logger.info(f"Scan service initialized with {len(self.components)} components")

    async def cleanup(self) -> None:
        """Clean up all registered components, in reverse order"""
        for name, component in reversed(list(self.components.items())):
            try:
                await component.cleanup()
            except Exception as e:
                logging_manager.log_error(e, {"component": name})

    async def __aenter__(self) -> "SiteScanService":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cleanup()

    def builder_for(self, site_key: str) -> IndexBuilder:
        """Index builder owned by one site, so cached indexes are never shared"""
        builder = self._builders.get(site_key)
        if builder is None:
            builder = self.index_builder_factory()
            self._builders[site_key] = builder
        return builder

    async def scan_site(self, site_key: str, pages: Iterable[PageDescriptor],
                        on_progress: Optional[ScanProgressCallback] = None,
                        on_index_progress: Optional[ProgressCallback] = None) -> SiteScanResult:
        """
        Scan changed pages of a site and bring store, index and external
        index up to date

        Args:
            site_key: Site identifier
            pages: Current page list of the site
            on_progress: Per-page scan progress callback
            on_index_progress: Index build progress callback (percent)

        Returns:
            SiteScanResult with the merged item set
        """
        pages = list(pages)
        previous_items = await self.store.load(site_key)
        previous_metadata = await self.store.load_metadata(site_key)

        report = await self.scanner.scan_with_report(pages, on_progress, previous_metadata)

        failed = set(report.failed_locations)
        selected = select_changed_pages(pages, previous_metadata)
        rescanned = [page.location for page in selected if page.location not in failed]

        items = merge_site_items(previous_items, report.items, rescanned)
        await self.store.save(site_key, items)

        metadata = merge_scan_metadata(
            previous_metadata,
            build_scan_metadata(pages, report.failed_locations, report.duration_ms)
        )
        await self.store.save_metadata(site_key, metadata)

        index = await self._update_index(site_key, previous_items, items, rescanned, on_index_progress)

        sync = None
        if self.synchronizer is not None:
            sync = await self.synchronizer.sync_delta(previous_items, items, site_key)

        logging_manager.generate_summary_report({
            'site_key': site_key,
            'duration_ms': report.duration_ms,
            'total_pages': len(pages),
            'scanned_pages': report.selected - len(report.failed_locations),
            'skipped_pages': report.skipped,
            'failed_pages': len(report.failed_locations),
            'failed_locations': report.failed_locations,
            'items_found': len(report.items),
            'total_items': len(items),
            'synced_added': sync.added if sync else 0,
            'synced_deleted': sync.deleted if sync else 0,
            'category_stats': _category_counts(items),
        })

        return SiteScanResult(
            site_key=site_key,
            report=report,
            items=items,
            metadata=metadata,
            index=index,
            sync=sync,
        )

    async def scan_pages(self, pages: Iterable[PageDescriptor],
                         on_progress: Optional[ScanProgressCallback] = None,
                         on_index_progress: Optional[ProgressCallback] = None) -> SiteScanResult:
        """
        Scan a page list under the site key of its first page

        Raises:
            ValueError: If the page list is empty or has no usable host
        """
        pages = list(pages)
        if not pages:
            raise ValueError("Cannot derive a site key from an empty page list")
        site_key = get_site_key(pages[0].location)
        if not site_key:
            raise ValueError(f"Cannot derive a site key from {pages[0].location!r}")
        return await self.scan_site(site_key, pages, on_progress, on_index_progress)

    async def remove_pages(self, site_key: str, locations: Iterable[str]) -> int:
        """
        Forget pages that no longer exist

        Returns:
            Number of items removed
        """
        locations = set(locations)
        previous_items = await self.store.load(site_key)
        remaining = [item for item in previous_items if item.source_document not in locations]
        removed = [item.content_hash for item in previous_items if item.source_document in locations]

        await self.store.save(site_key, remaining)

        metadata = await self.store.load_metadata(site_key)
        if metadata is not None:
            for location in locations:
                metadata.page_last_modified.pop(location, None)
            await self.store.save_metadata(site_key, metadata)

        index = self._indexes.get(site_key)
        if index is not None:
            self.builder_for(site_key).remove(removed, index)

        if self.synchronizer is not None:
            await self.synchronizer.sync_delta(previous_items, remaining, site_key)

        self.logger.info(f"Removed {len(removed)} items of {len(locations)} deleted pages from {site_key}")
        return len(removed)

    async def clear_site(self, site_key: str) -> None:
        """Delete all stored and indexed data of a site"""
        await self.store.delete_site(site_key)
        self._indexes.pop(site_key, None)
        builder = self._builders.pop(site_key, None)
        if builder is not None:
            builder.invalidate()
        if self.synchronizer is not None:
            await self.synchronizer.clear_site(site_key)
        self.logger.info(f"Cleared site {site_key}")

    async def get_index(self, site_key: str) -> MediaIndex:
        """Index of a site, built from the store on first use"""
        index = self._indexes.get(site_key)
        if index is None:
            items = await self.store.load(site_key)
            index = await self.builder_for(site_key).build(items)
            self._indexes[site_key] = index
        return index

    async def ensure_synced(self, site_key: str):
        """Run drift reconciliation against the external index"""
        if self.synchronizer is None:
            return None
        items = await self.store.load(site_key)
        return await self.synchronizer.sync_if_needed(items, site_key)

    async def _update_index(self, site_key: str, previous_items: List[MediaItem],
                            items: List[MediaItem],
                            rescanned_locations: Iterable[str],
                            on_progress: Optional[ProgressCallback]) -> MediaIndex:
        builder = self.builder_for(site_key)
        index = self._indexes.get(site_key)
        if index is None:
            index = await builder.build(items, on_progress)
        else:
            # items of re-scanned pages may keep their hash but change context or category
            rescanned = set(rescanned_locations)
            current = {item.content_hash for item in items}
            stale = {item.content_hash for item in previous_items if item.content_hash not in current}
            stale.update(item.content_hash for item in items if item.source_document in rescanned)
            builder.remove(stale, index)
            fresh = [item for item in items if item.content_hash not in index]
            index = await builder.merge_new(fresh, index, on_progress)
        self._indexes[site_key] = index
        return index


def _category_counts(items: List[MediaItem]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for item in items:
        if item.category:
            counts[item.category] = counts.get(item.category, 0) + 1
    return counts
