"""
Tests for the JSON site store
"""

from datetime import datetime, timezone

import pytest

from mediascan.core.base import ScanMetadata, StorageError
from mediascan.storage.site_store import JsonSiteStore


class TestJsonSiteStore:
    """Test cases for JsonSiteStore"""

    @pytest.fixture
    def store(self, tmp_path):
        return JsonSiteStore({'base_path': str(tmp_path / 'sites')})

    @pytest.mark.asyncio
    async def test_unknown_site_is_empty(self, store):
        assert await store.load('example.com') == []
        assert await store.load_metadata('example.com') is None

    @pytest.mark.asyncio
    async def test_items_persist(self, store, make_item):
        seen = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)
        items = [
            make_item(first_seen_at=seen, last_seen_at=seen, category='logos', width=64, height=64),
            make_item(url='https://example.com/files/guide.pdf', alt_text=None, media_kind='link'),
        ]

        await store.initialize()
        await store.save('example.com', items)
        loaded = await store.load('example.com')

        assert loaded == items
        assert loaded[0].first_seen_at == seen
        assert loaded[1].alt_text is None

    @pytest.mark.asyncio
    async def test_metadata_persists(self, store):
        metadata = ScanMetadata(total_pages=2, page_last_modified={'https://example.com/a': 't1'},
                                scan_duration_ms=120, scanned_at='2024-05-01T10:00:00+00:00')

        await store.save_metadata('example.com', metadata)

        assert await store.load_metadata('example.com') == metadata

    @pytest.mark.asyncio
    async def test_sites_are_isolated(self, store, make_item):
        await store.save('example.com', [make_item()])
        await store.save('other.org', [])

        assert len(await store.load('example.com')) == 1
        assert await store.load('other.org') == []
        assert await store.list_sites() == ['example.com', 'other.org']

    @pytest.mark.asyncio
    async def test_delete_site(self, store, make_item):
        await store.save('example.com', [make_item()])
        await store.save_metadata('example.com', ScanMetadata())

        await store.delete_site('example.com')

        assert await store.load('example.com') == []
        assert await store.load_metadata('example.com') is None
        assert await store.list_sites() == []

    @pytest.mark.asyncio
    async def test_corrupt_file_raises(self, store):
        site_dir = store.site_dir('example.com')
        site_dir.mkdir(parents=True)
        (site_dir / 'media.json').write_text('{not json', encoding='utf-8')

        with pytest.raises(StorageError):
            await store.load('example.com')

    def test_site_key_sanitized(self, store):
        assert store.site_dir('Example.com:8080/../x').name == 'example.com_8080_.._x'

    def test_empty_site_key_rejected(self, store):
        with pytest.raises(StorageError):
            store.site_dir('///')
