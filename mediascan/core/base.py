"""
Base Classes and Interfaces for Media Scanner

Defines the data model shared by every component, the abstract interfaces
for the pluggable collaborators (fetchers, stores, external indexes) and the
exception hierarchy.
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional, Set
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum

from bs4 import BeautifulSoup


class MediaKind(Enum):
    """Kind of element a media reference was found in"""
    IMG = "img"
    VIDEO = "video"
    VIDEO_SOURCE = "video-source"
    LINK = "link"


class Confidence(Enum):
    """Confidence tier of a category match"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class AnalysisErrorType(Enum):
    """Failure classes recorded by deep image analysis"""
    NOT_FOUND = "404"
    HTTP_ERROR = "http_error"
    CORS = "cors"
    PARSE_ERROR = "parse_error"
    UNKNOWN = "unknown"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp as reported by page-list providers.

    Returns None for missing or unparseable values.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


@dataclass(frozen=True)
class PageDescriptor:
    """A page to scan, as supplied by a page-list provider"""
    location: str
    last_modified: Optional[str] = None


@dataclass
class CategoryResult:
    """Output of the categorizer"""
    category: str
    confidence: str
    score: float
    source: str


@dataclass
class MediaItem:
    """One occurrence of a media asset on a page"""
    url: str
    name: str
    alt_text: Optional[str]
    media_kind: str
    subtype: str
    source_document: str
    context: str
    content_hash: str
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    category: Optional[str] = None
    category_confidence: Optional[str] = None
    category_score: float = 0.0
    category_source: Optional[str] = None
    orientation: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    exif_camera: Optional[str] = None
    exif_date: Optional[str] = None
    has_error: bool = False
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    status_code: Optional[int] = None
    usage_count: Optional[int] = None

    def apply_category(self, result: CategoryResult) -> None:
        self.category = result.category
        self.category_confidence = result.confidence
        self.category_score = result.score
        self.category_source = result.source

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible dictionary"""
        data = asdict(self)
        for key in ('first_seen_at', 'last_seen_at'):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MediaItem':
        """Build an item from the dictionary produced by to_dict()"""
        values = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        for key in ('first_seen_at', 'last_seen_at'):
            if isinstance(values.get(key), str):
                values[key] = parse_timestamp(values[key])
        return cls(**values)


@dataclass
class ScanMetadata:
    """Per-site record of the last scan"""
    total_pages: int = 0
    page_last_modified: Dict[str, str] = field(default_factory=dict)
    scan_duration_ms: int = 0
    scanned_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScanMetadata':
        return cls(
            total_pages=data.get('total_pages', 0),
            page_last_modified=dict(data.get('page_last_modified') or {}),
            scan_duration_ms=data.get('scan_duration_ms', 0),
            scanned_at=data.get('scanned_at'),
        )


@dataclass
class UsageGroup:
    """Occurrences of the same underlying asset"""
    key: str
    hashes: List[str] = field(default_factory=list)
    documents: Set[str] = field(default_factory=set)

    @property
    def count(self) -> int:
        return len(self.hashes)


@dataclass
class PageScanResult:
    """Result of scanning a single page"""
    page: PageDescriptor
    items: List[MediaItem]
    failed: bool = False
    error_message: Optional[str] = None


@dataclass
class ScanReport:
    """Result of scanning a page list"""
    items: List[MediaItem]
    selected: int
    skipped: int
    failed_locations: List[str]
    duration_ms: int


class BaseComponent(ABC):
    """Base class for components that hold external resources"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self._initialized = False

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the component"""
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Clean up resources"""
        pass

    def is_initialized(self) -> bool:
        """Check if component is initialized"""
        return self._initialized


class PageListProvider(ABC):
    """Source of the pages to scan (sitemap reader, CMS API, ...)"""

    @abstractmethod
    async def get_pages(self) -> List[PageDescriptor]:
        """Return the current page list"""
        pass


class DocumentFetcher(BaseComponent):
    """Interface for fetching and parsing a page"""

    @abstractmethod
    async def fetch_and_parse(self, location: str) -> BeautifulSoup:
        """
        Fetch a page and return its parsed document

        Raises:
            FetchError: when the page cannot be retrieved
            ParseError: when the response cannot be parsed
        """
        pass


class SiteStore(BaseComponent):
    """Interface for persisting media items and scan metadata per site"""

    @abstractmethod
    async def load(self, site_key: str) -> List[MediaItem]:
        """Load stored items; empty list when the site is unknown"""
        pass

    @abstractmethod
    async def save(self, site_key: str, items: List[MediaItem]) -> None:
        """Replace the stored items of a site"""
        pass

    @abstractmethod
    async def load_metadata(self, site_key: str) -> Optional[ScanMetadata]:
        """Load the last scan metadata; None when absent"""
        pass

    @abstractmethod
    async def save_metadata(self, site_key: str, metadata: ScanMetadata) -> None:
        """Replace the scan metadata of a site"""
        pass

    @abstractmethod
    async def delete_site(self, site_key: str) -> None:
        """Remove everything stored for a site"""
        pass

    @abstractmethod
    async def list_sites(self) -> List[str]:
        """List site keys with stored data"""
        pass


class ExternalIndex(BaseComponent):
    """Interface for the external search/indexing backend"""

    @abstractmethod
    async def index_batch(self, items: List[MediaItem], site_key: str) -> int:
        """Add items; returns the number indexed"""
        pass

    @abstractmethod
    async def delete_batch(self, hashes: List[str], site_key: str) -> int:
        """Delete items by content hash; returns the number deleted"""
        pass

    @abstractmethod
    async def get_count(self, site_key: str) -> int:
        """Number of items the backend holds for a site"""
        pass

    @abstractmethod
    async def clear_site(self, site_key: str) -> bool:
        """Remove every item of a site"""
        pass


class ScannerError(Exception):
    """Base exception for scanner errors"""
    pass


class ConfigurationError(ScannerError):
    """Configuration-related errors"""
    pass


class FetchError(ScannerError):
    """Page could not be retrieved"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ParseError(ScannerError):
    """Page could not be parsed"""
    pass


class AnalysisError(ScannerError):
    """Deep analysis of an asset failed"""

    def __init__(self, message: str, error_type: str = AnalysisErrorType.UNKNOWN.value,
                 status_code: Optional[int] = None):
        super().__init__(message)
        self.error_type = error_type
        self.status_code = status_code


class IndexSyncError(ScannerError):
    """External index request failed"""
    pass


class StorageError(ScannerError):
    """Storage-related errors"""
    pass
