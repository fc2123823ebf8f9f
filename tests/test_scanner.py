"""
Tests for the scanner orchestrator

Tests bounded page scanning, progress reporting, failure isolation and
the incremental per-site flow backed by the JSON site store.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from bs4 import BeautifulSoup

from mediascan.core.base import DocumentFetcher, FetchError, PageDescriptor, ScanMetadata
from mediascan.core.orchestrator import MediaScanner, SiteScanService, merge_site_items
from mediascan.index.builder import IndexBuilder
from mediascan.index.filters import FilterRegistry, MediaFilter
from mediascan.processors.categorizer import Categorizer, CategoryPattern
from mediascan.processors.extractor import PageExtractor
from mediascan.storage.delta_sync import DeltaSynchronizer, SyncCheck, SyncResult
from mediascan.storage.site_store import JsonSiteStore

HOME = 'https://example.com/'
BLOG = 'https://example.com/blog/post'
BROKEN = 'https://example.com/broken'
ABOUT = 'https://example.com/about'

HOME_HTML = '<body><div class="hero-section"><img src="/images/hero.jpg" alt="Hero"></div></body>'
BLOG_HTML_V1 = """
<body>
  <img src="/images/banner.jpg?v=2" alt="Banner">
  <a href="/files/report.pdf">Report</a>
</body>
"""
BLOG_HTML_V2 = """
<body>
  <img src="/images/chart.png" alt="Sales chart">
  <a href="/files/report.pdf">Report</a>
</body>
"""
ABOUT_HTML = '<body><p>Quarterly results overview</p><img src="/images/group.jpg" alt="Mountain view"></body>'
ABOUT_HTML_TEAM = '<body><div class="our-team leadership"><img src="/images/group.jpg" alt="Mountain view"></div></body>'


class FakeFetcher(DocumentFetcher):
    """Serves canned HTML and records fetches"""

    def __init__(self, pages, delay=0):
        super().__init__({})
        self.pages = dict(pages)
        self.delay = delay
        self.fetched = []
        self.in_flight = 0
        self.peak = 0

    async def initialize(self) -> None:
        self._initialized = True

    async def cleanup(self) -> None:
        self._initialized = False

    async def fetch_and_parse(self, location: str) -> BeautifulSoup:
        self.fetched.append(location)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if location not in self.pages:
                raise FetchError(f"HTTP 500 for {location}", status_code=500)
            return BeautifulSoup(self.pages[location], 'html.parser')
        finally:
            self.in_flight -= 1


class TestMediaScanner:
    """Test cases for MediaScanner"""

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self):
        pages = {f'https://example.com/p{i}': f'<img src="/img/{i}.jpg">' for i in range(12)}
        fetcher = FakeFetcher(pages, delay=0.01)
        scanner = MediaScanner(PageExtractor(fetcher), max_concurrent=4)

        items = await scanner.scan([PageDescriptor(location) for location in pages])

        assert len(items) == 12
        assert fetcher.peak == 4

    @pytest.mark.asyncio
    async def test_progress_reports_every_page(self):
        fetcher = FakeFetcher({HOME: HOME_HTML, BLOG: BLOG_HTML_V1})
        scanner = MediaScanner(PageExtractor(fetcher), max_concurrent=1)
        progress = []

        await scanner.scan([PageDescriptor(HOME), PageDescriptor(BLOG)],
                           on_progress=lambda *args: progress.append(args))

        assert progress == [(1, 2, 1), (2, 2, 3)]

    @pytest.mark.asyncio
    async def test_failed_page_is_isolated(self):
        fetcher = FakeFetcher({HOME: HOME_HTML, BLOG: BLOG_HTML_V1})
        scanner = MediaScanner(PageExtractor(fetcher), max_concurrent=2)
        progress = []

        report = await scanner.scan_with_report(
            [PageDescriptor(HOME), PageDescriptor(BROKEN), PageDescriptor(BLOG)],
            on_progress=lambda *args: progress.append(args)
        )

        assert len(report.items) == 3
        assert report.failed_locations == [BROKEN]
        assert report.selected == 3
        assert len(progress) == 3
        assert progress[-1][:2] == (3, 3)
        assert fetcher.fetched.count(BROKEN) == 1

    @pytest.mark.asyncio
    async def test_failing_progress_callback_is_ignored(self):
        fetcher = FakeFetcher({HOME: HOME_HTML})
        scanner = MediaScanner(PageExtractor(fetcher))

        def explode(*args):
            raise RuntimeError("ui went away")

        items = await scanner.scan([PageDescriptor(HOME)], on_progress=explode)
        assert len(items) == 1

    @pytest.mark.asyncio
    async def test_unchanged_pages_skipped(self):
        fetcher = FakeFetcher({HOME: HOME_HTML, BLOG: BLOG_HTML_V1})
        scanner = MediaScanner(PageExtractor(fetcher))
        previous = ScanMetadata(page_last_modified={HOME: 't1', BLOG: 't1'})

        report = await scanner.scan_with_report(
            [PageDescriptor(HOME, 't1'), PageDescriptor(BLOG, 't2')], previous_metadata=previous
        )

        assert fetcher.fetched == [BLOG]
        assert report.skipped == 1
        assert report.selected == 1

    @pytest.mark.asyncio
    async def test_empty_page_list(self):
        scanner = MediaScanner(PageExtractor(FakeFetcher({})))
        progress = []

        items = await scanner.scan([], on_progress=lambda *args: progress.append(args))

        assert items == []
        assert progress == []


class TestMergeSiteItems:
    """Test cases for merge_site_items"""

    def test_keeps_items_of_pages_not_rescanned(self, make_item):
        kept = make_item(source_document=HOME)
        replaced = make_item(url='https://example.com/img/old.jpg', source_document=BLOG)
        fresh = make_item(url='https://example.com/img/new.jpg', source_document=BLOG)

        merged = merge_site_items([kept, replaced], [fresh], [BLOG])

        assert merged == [kept, fresh]

    def test_preserves_first_seen(self, make_item):
        earlier = datetime(2024, 1, 1, tzinfo=timezone.utc)
        later = datetime(2024, 2, 1, tzinfo=timezone.utc)
        before = make_item(source_document=BLOG, first_seen_at=earlier, last_seen_at=earlier)
        again = make_item(source_document=BLOG, first_seen_at=later, last_seen_at=later)

        merged = merge_site_items([before], [again], [BLOG])

        assert merged[0].first_seen_at == earlier
        assert merged[0].last_seen_at == later


class TestSiteScanService:
    """Test cases for the incremental site flow"""

    @pytest.fixture
    def fetcher(self):
        return FakeFetcher({HOME: HOME_HTML, BLOG: BLOG_HTML_V1})

    @pytest.fixture
    def store(self, tmp_path):
        return JsonSiteStore({'base_path': str(tmp_path / 'sites')})

    @pytest.fixture
    def synchronizer(self):
        synchronizer = AsyncMock()
        synchronizer.sync_delta.return_value = SyncResult(added=1, deleted=1)
        synchronizer.sync_if_needed.return_value = SyncCheck(synced=False, count=3)
        synchronizer.clear_site.return_value = True
        return synchronizer

    @pytest.fixture
    def service(self, fetcher, store, synchronizer):
        scanner = MediaScanner(PageExtractor(fetcher), max_concurrent=2)
        return SiteScanService(scanner, store, synchronizer=synchronizer)

    @pytest.mark.asyncio
    async def test_incremental_rescan(self, service, fetcher, store, synchronizer):
        first = await service.scan_site('example.com', [
            PageDescriptor(HOME, '2024-01-01T00:00:00Z'),
            PageDescriptor(BLOG, '2024-01-01T00:00:00Z'),
        ])
        assert len(first.items) == 3
        assert len(first.index) == 3

        fetcher.pages[BLOG] = BLOG_HTML_V2
        fetcher.fetched.clear()

        second = await service.scan_site('example.com', [
            PageDescriptor(HOME, '2024-01-01T00:00:00Z'),
            PageDescriptor(BLOG, '2024-02-01T00:00:00Z'),
        ])

        assert fetcher.fetched == [BLOG]
        assert second.report.skipped == 1
        assert sorted(item.name for item in second.items) == ['chart.png', 'hero.jpg', 'report.pdf']

        report = next(item for item in second.items if item.name == 'report.pdf')
        assert report.first_seen_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert report.last_seen_at == datetime(2024, 2, 1, tzinfo=timezone.utc)

        index = await service.get_index('example.com')
        assert index is second.index
        assert sorted(item.name for item in index.items) == ['chart.png', 'hero.jpg', 'report.pdf']
        assert index.search('banner') == []
        assert index.filter_count(MediaFilter.IMAGES) == 2

        stored = await store.load('example.com')
        assert {item.content_hash for item in stored} == {item.content_hash for item in second.items}

        metadata = await store.load_metadata('example.com')
        assert metadata.page_last_modified[BLOG] == '2024-02-01T00:00:00Z'

        assert synchronizer.sync_delta.await_count == 2
        old_items, new_items, site_key = synchronizer.sync_delta.await_args.args
        assert len(old_items) == 3
        assert new_items == second.items
        assert site_key == 'example.com'

    @pytest.mark.asyncio
    async def test_failed_page_retried_next_scan(self, service, fetcher):
        pages = [PageDescriptor(HOME, 't1'), PageDescriptor(BROKEN, 't1')]

        first = await service.scan_site('example.com', pages)
        assert first.report.failed_locations == [BROKEN]
        assert BROKEN not in first.metadata.page_last_modified

        fetcher.pages[BROKEN] = '<img src="/img/fixed.jpg" alt="Fixed">'
        fetcher.fetched.clear()

        second = await service.scan_site('example.com', pages)

        assert fetcher.fetched == [BROKEN]
        assert sorted(item.name for item in second.items) == ['fixed.jpg', 'hero.jpg']

    @pytest.mark.asyncio
    async def test_failed_rescan_keeps_previous_items(self, service, fetcher):
        await service.scan_site('example.com', [PageDescriptor(BLOG, 't1')])

        del fetcher.pages[BLOG]
        result = await service.scan_site('example.com', [PageDescriptor(BLOG, 't2')])

        assert result.report.failed_locations == [BLOG]
        assert sorted(item.name for item in result.items) == ['banner.jpg', 'report.pdf']

    @pytest.mark.asyncio
    async def test_remove_pages(self, service, store, synchronizer):
        await service.scan_site('example.com', [PageDescriptor(HOME, 't1'), PageDescriptor(BLOG, 't1')])

        removed = await service.remove_pages('example.com', [BLOG])

        assert removed == 2
        assert [item.name for item in await store.load('example.com')] == ['hero.jpg']
        metadata = await store.load_metadata('example.com')
        assert BLOG not in metadata.page_last_modified
        index = await service.get_index('example.com')
        assert [item.name for item in index.items] == ['hero.jpg']

    @pytest.mark.asyncio
    async def test_clear_site(self, service, store, synchronizer):
        await service.scan_site('example.com', [PageDescriptor(HOME, 't1')])

        await service.clear_site('example.com')

        assert await store.load('example.com') == []
        synchronizer.clear_site.assert_awaited_once_with('example.com')
        assert len(await service.get_index('example.com')) == 0

    @pytest.mark.asyncio
    async def test_sites_have_separate_indexes(self, service):
        await service.scan_site('example.com', [PageDescriptor(HOME, 't1')])
        await service.scan_site('example.org', [])

        first = await service.get_index('example.com')
        second = await service.get_index('example.org')

        assert first is not second
        assert len(first) == 1
        assert len(second) == 0

    @pytest.mark.asyncio
    async def test_ensure_synced(self, service, synchronizer):
        await service.scan_site('example.com', [PageDescriptor(HOME, 't1')])

        check = await service.ensure_synced('example.com')

        assert check == SyncCheck(synced=False, count=3)
        items, site_key = synchronizer.sync_if_needed.await_args.args
        assert len(items) == 1
        assert site_key == 'example.com'

    @pytest.mark.asyncio
    async def test_without_synchronizer(self, fetcher, store):
        service = SiteScanService(MediaScanner(PageExtractor(fetcher)), store)

        result = await service.scan_site('example.com', [PageDescriptor(HOME, 't1')])

        assert result.sync is None
        assert await service.ensure_synced('example.com') is None

    @pytest.mark.asyncio
    async def test_component_lifecycle(self, service, fetcher, store):
        service.register_component('fetcher', fetcher)
        service.register_component('store', store)

        async with service:
            assert fetcher.is_initialized()
            assert store.is_initialized()

        assert not fetcher.is_initialized()
        assert not store.is_initialized()

    @pytest.mark.asyncio
    async def test_only_changed_page_is_fetched(self, service, fetcher, store):
        fetcher.pages[ABOUT] = ABOUT_HTML
        pages = [
            PageDescriptor(HOME, '2024-01-01T00:00:00Z'),
            PageDescriptor(BLOG, '2024-01-01T00:00:00Z'),
            PageDescriptor(ABOUT, '2024-01-01T00:00:00Z'),
        ]
        await service.scan_site('example.com', pages)
        fetcher.fetched.clear()

        pages[1] = PageDescriptor(BLOG, '2024-03-01T00:00:00Z')
        result = await service.scan_site('example.com', pages)

        assert fetcher.fetched == [BLOG]
        assert result.report.skipped == 2
        metadata = await store.load_metadata('example.com')
        assert metadata.page_last_modified == {
            HOME: '2024-01-01T00:00:00Z',
            BLOG: '2024-03-01T00:00:00Z',
            ABOUT: '2024-01-01T00:00:00Z',
        }
        assert sorted(item.name for item in result.items) == ['banner.jpg', 'group.jpg', 'hero.jpg', 'report.pdf']

    @pytest.mark.asyncio
    async def test_rescan_replaces_index_entries_with_same_hash(self, store):
        fetcher = FakeFetcher({ABOUT: ABOUT_HTML})
        categorizer = Categorizer(
            {'team-photos': CategoryPattern(keywords={'context': ['our-team']},
                                            confidence={'high': 2, 'medium': 1, 'low': 0.5})},
            detection_order=['team-photos'],
        )
        service = SiteScanService(
            MediaScanner(PageExtractor(fetcher, categorizer=categorizer)), store,
            index_builder_factory=lambda: IndexBuilder(FilterRegistry(['team-photos', 'other'])),
        )

        first = await service.scan_site('example.com', [PageDescriptor(ABOUT, '2024-01-01T00:00:00Z')])
        content_hash = first.items[0].content_hash
        assert first.index.get(content_hash).category == 'other'

        fetcher.pages[ABOUT] = ABOUT_HTML_TEAM
        second = await service.scan_site('example.com', [PageDescriptor(ABOUT, '2024-02-01T00:00:00Z')])

        assert second.items[0].content_hash == content_hash
        index = await service.get_index('example.com')
        item = index.get(content_hash)
        assert item.category == 'team-photos'
        assert item.category_confidence == 'high'
        assert item.context == 'img > In div: our-team leadership'
        assert item.first_seen_at == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert item.last_seen_at == datetime(2024, 2, 1, tzinfo=timezone.utc)
        assert index.filter_count('category:team-photos') == 1
        assert index.filter_count('category:other') == 0
        assert index.search('quarterly') == []
        assert [found.content_hash for found in index.search('leadership')] == [content_hash]

    @pytest.mark.asyncio
    async def test_unreachable_index_backend_does_not_fail_scan(self, fetcher, store):
        client = AsyncMock()
        client.index_batch.side_effect = ConnectionError("index unreachable")
        service = SiteScanService(MediaScanner(PageExtractor(fetcher)), store,
                                  synchronizer=DeltaSynchronizer(client))

        result = await service.scan_site('example.com', [PageDescriptor(HOME, 't1')])

        assert result.sync.added == 0
        assert result.sync.errors == ['index: index unreachable']
        assert [item.name for item in await store.load('example.com')] == ['hero.jpg']
        assert len(result.index) == 1

    @pytest.mark.asyncio
    async def test_scan_pages_derives_site_key(self, service, store):
        result = await service.scan_pages([PageDescriptor(HOME, 't1')])

        assert result.site_key == 'example.com'
        assert [item.name for item in await store.load('example.com')] == ['hero.jpg']

    @pytest.mark.asyncio
    async def test_scan_pages_requires_pages(self, service):
        with pytest.raises(ValueError):
            await service.scan_pages([])
