"""
Shared fixtures for the media scanner tests
"""

import pytest

from mediascan.core.base import MediaItem
from mediascan.core.logging import setup_logging
from mediascan.utils.url import content_hash, get_file_extension, get_filename


@pytest.fixture(autouse=True)
def test_logging(tmp_path):
    """Route log output into the test's temporary directory"""
    setup_logging(level="DEBUG", log_file=str(tmp_path / "logs" / "test_mediascan.log"))


@pytest.fixture
def make_item():
    """Factory for media items with a consistent content hash"""
    def _make(url='https://example.com/images/photo.jpg', alt_text='A photo',
              source_document='https://example.com/page', media_kind='img', **overrides):
        subtype = overrides.pop('subtype', get_file_extension(url))
        context = overrides.pop('context', media_kind)
        return MediaItem(
            url=url,
            name=get_filename(url),
            alt_text=alt_text,
            media_kind=media_kind,
            subtype=subtype,
            source_document=source_document,
            context=context,
            content_hash=content_hash(url, alt_text, source_document),
            **overrides
        )
    return _make
