"""
Change Detection

Selects the pages that need re-scanning by comparing their reported
modification timestamps with the ones recorded by the previous scan, and
maintains the per-site scan metadata.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from mediascan.core.base import PageDescriptor, ScanMetadata


def select_changed_pages(pages: Iterable[PageDescriptor],
                         previous_metadata: Optional[ScanMetadata]) -> List[PageDescriptor]:
    """
    Pages that changed since the previous scan.

    A page is selected when there is no previous metadata at all, when
    nothing was recorded for it, when it reports no timestamp, or when
    its timestamp differs from the recorded one. Timestamps are compared
    as literal strings.
    """
    pages = list(pages)
    if previous_metadata is None:
        return pages

    recorded = previous_metadata.page_last_modified
    changed = []
    for page in pages:
        previous = recorded.get(page.location)
        if not previous or not page.last_modified or page.last_modified != previous:
            changed.append(page)
    return changed


def build_scan_metadata(pages: Iterable[PageDescriptor], failed_locations: Iterable[str] = (),
                        duration_ms: int = 0) -> ScanMetadata:
    """
    Metadata for a completed scan.

    Failed pages are not recorded, so the next scan selects them again.
    """
    pages = list(pages)
    failed = set(failed_locations)
    page_last_modified = {
        page.location: page.last_modified
        for page in pages
        if page.last_modified and page.location not in failed
    }
    return ScanMetadata(
        total_pages=len(pages),
        page_last_modified=page_last_modified,
        scan_duration_ms=duration_ms,
        scanned_at=datetime.now(timezone.utc).isoformat(),
    )


def merge_scan_metadata(previous: Optional[ScanMetadata], current: ScanMetadata) -> ScanMetadata:
    """Union of both timestamp maps; current entries win"""
    if previous is None:
        return current

    merged = dict(previous.page_last_modified)
    merged.update(current.page_last_modified)
    return ScanMetadata(
        total_pages=current.total_pages,
        page_last_modified=merged,
        scan_duration_ms=current.scan_duration_ms,
        scanned_at=current.scanned_at,
    )
