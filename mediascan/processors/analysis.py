"""
Image Analysis

Optional deep-analysis path: downloads image assets, reads their
dimensions, orientation and EXIF camera/date with Pillow, and records
analysis failures on the media item.
"""

import io
from dataclasses import dataclass
from typing import Dict, Any, Optional

import aiohttp
from PIL import Image, ExifTags, UnidentifiedImageError

from mediascan.core.base import (
    BaseComponent,
    MediaItem,
    MediaKind,
    AnalysisError,
    AnalysisErrorType,
    Confidence,
)
from mediascan.core.logging import get_logger
from mediascan.processors.categorizer import Categorizer, ERROR_CATEGORY

# Pillow cannot rasterize vector formats
SKIPPED_SUBTYPES = {'svg'}

ANALYSIS_SOURCE = 'image-analysis'


@dataclass
class AnalysisResult:
    """Outcome of analyzing one asset"""
    url: str
    width: Optional[int] = None
    height: Optional[int] = None
    orientation: Optional[str] = None
    exif_camera: Optional[str] = None
    exif_date: Optional[str] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def has_error(self) -> bool:
        return self.error_type is not None


def get_orientation(width: int, height: int) -> str:
    """Classify image orientation from its dimensions"""
    ratio = width / height
    if abs(ratio - 1) < 0.1:
        return 'square'
    return 'landscape' if ratio > 1 else 'portrait'


class ImageAnalyzer(BaseComponent):
    """
    Fetches and inspects image assets.

    Results are cached per URL for the lifetime of the analyzer; call
    clear_cache() to force re-analysis.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        super().__init__(config)
        self.logger = get_logger()
        self.extract_dimensions = self.config.get('extract_dimensions', True)
        self.extract_exif = self.config.get('extract_exif', True)
        self.timeout = self.config.get('timeout', 15)
        self.max_bytes = self.config.get('max_bytes', 20 * 1024 * 1024)
        self.user_agent = self.config.get('user_agent', 'MediaScanner/0.1')

        self.session = session
        self._owns_session = session is None
        self._cache: Dict[str, AnalysisResult] = {}

    async def initialize(self) -> None:
        """Create the HTTP session"""
        if self.session is None:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={'User-Agent': self.user_agent}
            )
            self._owns_session = True
        self._initialized = True

    async def cleanup(self) -> None:
        """Close the HTTP session if this analyzer created it"""
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None
        self._initialized = False

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self) -> None:
        self._cache.clear()

    def should_analyze(self, item: MediaItem) -> bool:
        return (item.media_kind == MediaKind.IMG.value
                and item.subtype not in SKIPPED_SUBTYPES
                and item.url.lower().startswith(('http://', 'https://')))

    async def analyze(self, url: str) -> AnalysisResult:
        """
        Analyze an image URL.

        Failures never raise; they are reported on the result with an
        error type of '404', 'http_error', 'parse_error' or 'unknown'.
        """
        cached = self._cache.get(url)
        if cached is not None:
            return cached

        if self.session is None:
            await self.initialize()

        try:
            data = await self._download(url)
            result = self._inspect(url, data)
        except AnalysisError as e:
            result = AnalysisResult(url=url, error_type=e.error_type,
                                    error_message=str(e), status_code=e.status_code)
        except Exception as e:
            result = AnalysisResult(url=url, error_type=AnalysisErrorType.UNKNOWN.value,
                                    error_message=str(e) or e.__class__.__name__)

        if result.has_error:
            self.logger.debug(f"Analysis failed for {url}: {result.error_type} {result.error_message}")

        self._cache[url] = result
        return result

    async def analyze_item(self, item: MediaItem, categorizer: Optional[Categorizer] = None) -> MediaItem:
        """Analyze an item in place; items that cannot be analyzed are returned unchanged"""
        if not self.should_analyze(item):
            return item
        result = await self.analyze(item.url)
        self.apply(item, result, categorizer)
        return item

    def apply(self, item: MediaItem, result: AnalysisResult,
              categorizer: Optional[Categorizer] = None) -> None:
        """
        Merge an analysis result into a media item.

        Measured dimensions trigger re-categorization; a 404 forces the
        error category regardless of keyword scoring.
        """
        if result.has_error:
            item.has_error = True
            item.error_type = result.error_type
            item.error_message = result.error_message
            item.status_code = result.status_code
            if result.error_type == AnalysisErrorType.NOT_FOUND.value:
                item.category = ERROR_CATEGORY
                item.category_confidence = Confidence.HIGH.value
                item.category_source = ANALYSIS_SOURCE
            return

        item.width = result.width
        item.height = result.height
        item.orientation = result.orientation
        item.exif_camera = result.exif_camera
        item.exif_date = result.exif_date

        if categorizer is not None and result.width and result.height:
            categorizer.categorize_item(item)

    async def _download(self, url: str) -> bytes:
        try:
            async with self.session.get(url) as response:
                if response.status == 404:
                    raise AnalysisError(f"HTTP 404 for {url}",
                                        error_type=AnalysisErrorType.NOT_FOUND.value,
                                        status_code=404)
                if not 200 <= response.status < 300:
                    raise AnalysisError(f"HTTP {response.status} for {url}",
                                        error_type=AnalysisErrorType.HTTP_ERROR.value,
                                        status_code=response.status)

                if response.content_length is not None and response.content_length > self.max_bytes:
                    raise AnalysisError(f"Asset too large: {response.content_length} bytes (max: {self.max_bytes})")

                # never buffer more than max_bytes + 1
                data = bytearray()
                while len(data) <= self.max_bytes:
                    chunk = await response.content.read(self.max_bytes + 1 - len(data))
                    if not chunk:
                        break
                    data.extend(chunk)
        except aiohttp.ClientError as e:
            raise AnalysisError(f"Request failed for {url}: {e}")

        if len(data) > self.max_bytes:
            raise AnalysisError(f"Asset too large: more than {self.max_bytes} bytes")
        return bytes(data)

    def _inspect(self, url: str, data: bytes) -> AnalysisResult:
        try:
            with Image.open(io.BytesIO(data)) as image:
                width, height = image.size
                exif = image.getexif() if self.extract_exif else {}
        except (UnidentifiedImageError, OSError) as e:
            raise AnalysisError(f"Cannot read image data: {e}",
                                error_type=AnalysisErrorType.PARSE_ERROR.value)

        result = AnalysisResult(url=url)
        if self.extract_dimensions and width and height:
            result.width = width
            result.height = height
            result.orientation = get_orientation(width, height)

        if exif:
            make = str(exif.get(ExifTags.Base.Make, '')).strip()
            model = str(exif.get(ExifTags.Base.Model, '')).strip()
            camera = ' '.join(part for part in (make, model) if part)
            result.exif_camera = camera or None
            date = exif.get(ExifTags.Base.DateTime)
            result.exif_date = str(date).strip() if date else None

        return result
