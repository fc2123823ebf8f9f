"""
Media Filter Registry

Named boolean predicates over media items. Built-in filters are listed in
the MediaFilter enum; category filters and custom predicates are added
through FilterRegistry.register().
"""

from collections import OrderedDict
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from mediascan.core.base import MediaItem, MediaKind
from mediascan.processors.categorizer import DEFAULT_DETECTION_ORDER, FALLBACK_CATEGORY
from mediascan.utils.url import DOCUMENT_EXTENSIONS

Predicate = Callable[[MediaItem], bool]

CATEGORY_PREFIX = 'category:'


class MediaFilter(Enum):
    """Built-in filters"""
    ALL = "all"
    IMAGES = "images"
    VIDEOS = "videos"
    DOCUMENTS = "documents"
    LINKS = "links"
    ICONS = "icons"
    MISSING_ALT = "missing_alt"
    DECORATIVE = "decorative"
    FILLED = "filled"
    UNUSED = "unused"
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    SQUARE = "square"
    ERRORS = "errors"


def is_svg(item: MediaItem) -> bool:
    return item.subtype == 'svg'


def is_image(item: MediaItem) -> bool:
    """Raster image references (inline SVGs count as icons)"""
    return item.media_kind == MediaKind.IMG.value and not is_svg(item)


def _is_video(item: MediaItem) -> bool:
    return item.media_kind in (MediaKind.VIDEO.value, MediaKind.VIDEO_SOURCE.value)


BUILTIN_PREDICATES: Dict[MediaFilter, Predicate] = {
    MediaFilter.ALL: lambda item: not is_svg(item),
    MediaFilter.IMAGES: is_image,
    MediaFilter.VIDEOS: _is_video,
    MediaFilter.DOCUMENTS: lambda item: item.subtype in DOCUMENT_EXTENSIONS,
    MediaFilter.LINKS: lambda item: item.media_kind == MediaKind.LINK.value,
    MediaFilter.ICONS: is_svg,
    MediaFilter.MISSING_ALT: lambda item: is_image(item) and item.alt_text is None,
    MediaFilter.DECORATIVE: lambda item: is_image(item) and item.alt_text == '',
    MediaFilter.FILLED: lambda item: is_image(item) and bool(item.alt_text),
    MediaFilter.UNUSED: lambda item: not (item.source_document or '').strip(),
    MediaFilter.LANDSCAPE: lambda item: is_image(item) and item.orientation == 'landscape',
    MediaFilter.PORTRAIT: lambda item: is_image(item) and item.orientation == 'portrait',
    MediaFilter.SQUARE: lambda item: is_image(item) and item.orientation == 'square',
    MediaFilter.ERRORS: lambda item: item.has_error,
}


def category_filter_name(category: str) -> str:
    return f"{CATEGORY_PREFIX}{category}"


def _category_predicate(category: str) -> Predicate:
    return lambda item: is_image(item) and item.category == category


class FilterRegistry:
    """
    Ordered mapping of filter name to predicate.

    Args:
        categories: Category names to register filters for; defaults to
            the built-in detection order plus the fallback category
    """

    def __init__(self, categories: Optional[Iterable[str]] = None):
        self._predicates: Dict[str, Predicate] = OrderedDict(
            (member.value, BUILTIN_PREDICATES[member]) for member in MediaFilter
        )
        if categories is None:
            categories = list(DEFAULT_DETECTION_ORDER) + [FALLBACK_CATEGORY]
        for category in categories:
            self.register_category(category)

    def register(self, name: str, predicate: Predicate, replace: bool = False) -> None:
        """Add a named predicate"""
        if not name:
            raise ValueError("Filter name must not be empty")
        if name in self._predicates and not replace:
            raise ValueError(f"Filter already registered: {name}")
        self._predicates[name] = predicate

    def register_category(self, category: str) -> str:
        name = category_filter_name(category)
        self._predicates[name] = _category_predicate(category)
        return name

    def get(self, name) -> Predicate:
        key = name.value if isinstance(name, MediaFilter) else name
        try:
            return self._predicates[key]
        except KeyError:
            raise ValueError(f"Unknown filter: {key}") from None

    def matches(self, name, item: MediaItem) -> bool:
        return bool(self.get(name)(item))

    def evaluate(self, item: MediaItem) -> List[str]:
        """Names of every filter the item satisfies"""
        return [name for name, predicate in self._predicates.items() if predicate(item)]

    def names(self) -> List[str]:
        return list(self._predicates)

    def category_filters(self) -> List[str]:
        return [name for name in self._predicates if name.startswith(CATEGORY_PREFIX)]

    def __contains__(self, name) -> bool:
        key = name.value if isinstance(name, MediaFilter) else name
        return key in self._predicates

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._predicates))

    def __len__(self) -> int:
        return len(self._predicates)
