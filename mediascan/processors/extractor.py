"""
Page Extractor Implementation

Turns one fetched page into media items: images (with lazy-load
fallbacks), videos, video sources and links to media files, each with
a short structural context used for categorization.
"""

from typing import List, Optional

from bs4 import BeautifulSoup, Tag

from mediascan.core.base import (
    DocumentFetcher,
    MediaItem,
    MediaKind,
    PageDescriptor,
    PageScanResult,
    CategoryResult,
    Confidence,
    parse_timestamp,
)
from mediascan.core.logging import get_logger, logging_manager
from mediascan.processors.analysis import ImageAnalyzer
from mediascan.processors.categorizer import Categorizer, FALLBACK_CATEGORY, FALLBACK_SOURCE
from mediascan.utils.url import (
    content_hash,
    fix_localhost_url,
    get_file_extension,
    get_filename,
    is_media_file,
    resolve_url,
)

LAZY_LOAD_ATTRIBUTES = [
    'data-src',
    'data-lazy-src',
    'data-original',
    'data-sling-src',
    'data-responsive-src',
]

CONTAINER_TAGS = {'div', 'main', 'section', 'article'}
GENERIC_CLASSES = {'style', 'content', 'div', 'span', 'p', 'a', 'img'}
STRUCTURAL_VOCABULARY = [
    'section', 'container', 'metadata', 'wrapper', 'block', 'main',
    'header', 'footer', 'nav', 'article', 'aside',
]
NEARBY_VOCABULARY = ['section', 'container', 'metadata', 'content', 'wrapper', 'block', 'main']
BOILERPLATE_WORDS = {'style', 'content', 'div', 'span', 'p', 'a', 'img', 'button', 'input'}
MAX_CONTEXT_LENGTH = 100
MAX_CONTEXT_FRAGMENTS = 3
TEXT_ANCESTOR_DEPTH = 3


def _classes(element: Tag) -> List[str]:
    value = element.get('class') or []
    if isinstance(value, str):
        value = value.split()
    return [cls for cls in value if cls.strip()]


def _is_structural_class(cls: str) -> bool:
    if cls.lower() in GENERIC_CLASSES:
        return False
    return len(cls) > 3 or any(word in cls for word in STRUCTURAL_VOCABULARY)


def _is_nearby_class(cls: str) -> bool:
    return len(cls) > 4 or any(word in cls for word in NEARBY_VOCABULARY)


def _element_children(element: Optional[Tag]) -> List[Tag]:
    if element is None:
        return []
    return [child for child in element.children if isinstance(child, Tag)]


def _containers(element: Tag):
    """The element and its ancestors up to (not including) <body>"""
    current = element
    while isinstance(current, Tag) and current.name not in ('body', 'html', '[document]'):
        yield current
        current = current.parent


def _container_classes(element: Tag, accept) -> Optional[str]:
    if element.name not in CONTAINER_TAGS:
        return None
    matching = [cls for cls in _classes(element) if accept(cls)]
    return ' '.join(matching) if matching else None


def find_meaningful_container(element: Tag) -> Optional[str]:
    """
    Class names of the closest semantically named container.

    Ancestors are searched for structural class tokens first, then a
    looser pass checks ancestors, siblings and the parent's siblings.
    """
    for current in _containers(element):
        found = _container_classes(current, _is_structural_class)
        if found:
            return found
    return find_nearby_container(element)


def find_nearby_container(element: Tag) -> Optional[str]:
    for current in _containers(element):
        found = _container_classes(current, _is_nearby_class)
        if found:
            return found

    parent = element.parent
    if not isinstance(parent, Tag):
        return None

    for sibling in _element_children(parent):
        found = _container_classes(sibling, _is_nearby_class)
        if found:
            return found

    grandparent = parent.parent if isinstance(parent.parent, Tag) else None
    for sibling in _element_children(grandparent):
        found = _container_classes(sibling, _is_nearby_class)
        if found:
            return found

    return None


def is_meaningful_text(text: Optional[str]) -> bool:
    """Reject empty, very short and boilerplate-only text"""
    if not text or len(text) < 5:
        return False
    words = text.lower().split()
    meaningful = [word for word in words if len(word) > 2 and word not in BOILERPLATE_WORDS]
    return bool(meaningful) or len(text) > 20


def _text_of(element: Tag) -> str:
    return ' '.join(element.get_text(' ').split())


def extract_surrounding_text(element: Tag, max_length: int = MAX_CONTEXT_LENGTH) -> str:
    """Short text from siblings and the parent's siblings, else from ancestors"""
    fragments: List[str] = []
    parent = element.parent if isinstance(element.parent, Tag) else None

    if parent is not None:
        for sibling in _element_children(parent):
            if sibling is element:
                continue
            text = _text_of(sibling)
            if is_meaningful_text(text):
                fragments.append(text[:max_length])

        grandparent = parent.parent if isinstance(parent.parent, Tag) else None
        for sibling in _element_children(grandparent):
            if sibling is parent:
                continue
            text = _text_of(sibling)
            if is_meaningful_text(text):
                fragments.append(text[:max_length])

    if not fragments:
        current = parent
        depth = 0
        while isinstance(current, Tag) and depth < TEXT_ANCESTOR_DEPTH:
            text = _text_of(current)
            if is_meaningful_text(text):
                fragments.append(text[:max_length])
            current = current.parent
            depth += 1

    return ' '.join(fragments[:MAX_CONTEXT_FRAGMENTS])[:max_length]


def capture_context(element: Tag, kind: str) -> str:
    """Format the structural context of an element, e.g. 'img > In div: hero'"""
    container = find_meaningful_container(element)
    if container:
        return f"{kind} > In div: {container}"

    text = extract_surrounding_text(element)
    if text:
        return f"{kind} > text: {text}"
    return kind


class PageExtractor:
    """
    Extracts media items from pages.

    Fetch and parse failures are contained here: the page yields no
    items and is reported as failed, the scan carries on.
    """

    def __init__(self, fetcher: DocumentFetcher, categorizer: Optional[Categorizer] = None,
                 analyzer: Optional[ImageAnalyzer] = None):
        self.logger = get_logger()
        self.fetcher = fetcher
        self.categorizer = categorizer
        self.analyzer = analyzer

    async def extract(self, page: PageDescriptor) -> List[MediaItem]:
        """Fetch a page and return its media items (empty on failure)"""
        result = await self.scan_page(page)
        return result.items

    async def scan_page(self, page: PageDescriptor) -> PageScanResult:
        """
        Fetch, extract, categorize and optionally analyze one page

        Args:
            page: Page to scan

        Returns:
            PageScanResult; failed pages carry no items
        """
        try:
            document = await self.fetcher.fetch_and_parse(page.location)
            items = self.extract_from_document(page, document)
        except Exception as e:
            logging_manager.log_page_failure(page.location, e)
            return PageScanResult(page=page, items=[], failed=True, error_message=str(e))

        for item in items:
            self._categorize(item)
            if self.analyzer is not None:
                await self.analyzer.analyze_item(item, self.categorizer)

        self.logger.debug(f"Found {len(items)} media items on {page.location}")
        return PageScanResult(page=page, items=items)

    def _categorize(self, item: MediaItem) -> None:
        if self.categorizer is None:
            return
        try:
            self.categorizer.categorize_item(item)
        except Exception as e:
            self.logger.warning(f"Categorization failed for {item.url}: {e}")
            item.apply_category(CategoryResult(FALLBACK_CATEGORY, Confidence.NONE.value, 0, FALLBACK_SOURCE))

    def extract_from_document(self, page: PageDescriptor, document: BeautifulSoup) -> List[MediaItem]:
        """
        Extract media items from a parsed page.

        Args:
            page: Page the document was fetched from
            document: Parsed document

        Returns:
            Items in document order: images, videos, video sources, links
        """
        items: List[MediaItem] = []

        for img in document.find_all('img'):
            src = self._image_source(img)
            item = self._build_item(src, img, MediaKind.IMG.value, img.get('alt'), page)
            if item:
                items.append(item)

        for video in document.find_all('video'):
            item = self._build_item(video.get('src'), video, MediaKind.VIDEO.value, '', page)
            if item:
                items.append(item)

        for source in document.select('video source'):
            item = self._build_item(source.get('src'), source, MediaKind.VIDEO_SOURCE.value, '', page)
            if item:
                items.append(item)

        for link in document.find_all('a', href=True):
            item = self._build_item(link.get('href'), link, MediaKind.LINK.value, _text_of(link), page)
            if item:
                items.append(item)

        return items

    @staticmethod
    def _image_source(img: Tag) -> Optional[str]:
        """Primary src, falling back through lazy-load attributes"""
        for attribute in ['src'] + LAZY_LOAD_ATTRIBUTES:
            value = img.get(attribute)
            if value and value.strip():
                return value.strip()
        return None

    def _build_item(self, src: Optional[str], element: Tag, kind: str,
                    alt_text: Optional[str], page: PageDescriptor) -> Optional[MediaItem]:
        if not src or not src.strip() or not is_media_file(src):
            return None

        src = src.strip()
        url = fix_localhost_url(resolve_url(src, page.location), page.location)
        seen_at = parse_timestamp(page.last_modified)

        return MediaItem(
            url=url,
            name=get_filename(src),
            alt_text=alt_text,
            media_kind=kind,
            subtype=get_file_extension(src),
            source_document=page.location,
            context=capture_context(element, kind),
            content_hash=content_hash(url, alt_text, page.location),
            first_seen_at=seen_at,
            last_seen_at=seen_at,
        )
