"""
External Index Client

HTTP client for the search backend that mirrors each site's media
items. Items are submitted in chunks, awaited one after another with a
short pause between chunks to stay under the backend's rate limits.
"""

import asyncio
import os
from typing import Dict, Any, List, Optional

import aiohttp
import validators

from mediascan.core.base import (
    ExternalIndex,
    MediaItem,
    ConfigurationError,
    IndexSyncError,
)
from mediascan.core.logging import get_logger

INDEX_BATCH_PATH = '/api/ai/index-batch'
DELETE_BATCH_PATH = '/api/ai/delete-batch'
COUNT_PATH = '/api/ai/count'
CLEAR_SITE_PATH = '/api/ai/clear-site'
HEALTH_PATH = '/api/health'


def item_payload(item: MediaItem) -> Dict[str, Any]:
    """Wire representation of a media item"""
    return {
        'hash': item.content_hash,
        'url': item.url,
        'name': item.name,
        'doc': item.source_document,
        'type': f"{item.media_kind} > {item.subtype}",
        'alt': item.alt_text,
        'context': item.context,
        'width': item.width,
        'height': item.height,
        'orientation': item.orientation,
        'category': item.category,
        'categoryConfidence': item.category_confidence,
    }


def _response_int(result: Dict[str, Any], key: str, default: int) -> int:
    value = result.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise IndexSyncError(f"Invalid {key!r} in index response: {value!r}") from None


class ExternalIndexClient(ExternalIndex):
    """
    aiohttp implementation of the ExternalIndex interface

    Config keys: api_url (required), api_key_env, chunk_size,
    chunk_delay, timeout, user_agent.
    """

    def __init__(self, config: Dict[str, Any], session: Optional[aiohttp.ClientSession] = None):
        super().__init__(config)
        self.logger = get_logger()

        self.api_url = (config.get('api_url') or '').rstrip('/')
        if not self.api_url:
            raise ConfigurationError("External index API URL is not configured")
        if not validators.url(self.api_url):
            raise ConfigurationError(f"Invalid external index API URL: {self.api_url}")

        self.api_key_env = config.get('api_key_env', 'MEDIASCAN_INDEX_API_KEY')
        self.api_key: Optional[str] = None
        self.chunk_size = int(config.get('chunk_size', 500))
        self.chunk_delay = float(config.get('chunk_delay', 0.1))
        self.timeout = config.get('timeout', 30)
        self.user_agent = config.get('user_agent', 'MediaScanner/0.1')

        if self.chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be at least 1, got {self.chunk_size}")

        self.session = session
        self._owns_session = session is None

        self.sync_stats = {
            'requests': 0,
            'failed_requests': 0,
            'items_indexed': 0,
            'items_deleted': 0,
        }

    async def initialize(self) -> None:
        """Create the HTTP session with the API key header"""
        self.api_key = os.getenv(self.api_key_env)

        if self.session is None:
            headers = {
                'User-Agent': self.user_agent,
                'Content-Type': 'application/json',
            }
            if self.api_key:
                headers['X-API-Key'] = self.api_key

            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=headers
            )
            self._owns_session = True

        self._initialized = True
        self.logger.info(f"External index client ready for {self.api_url}")

    async def cleanup(self) -> None:
        """Close the HTTP session if this client created it"""
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None
        self._initialized = False

    async def _ensure_session(self) -> None:
        if self.session is None:
            await self.initialize()

    async def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """
        Send a request and return the decoded JSON body

        Raises:
            IndexSyncError: On network errors and non-2xx responses
        """
        await self._ensure_session()
        url = f"{self.api_url}{path}"
        self.sync_stats['requests'] += 1

        try:
            async with self.session.request(method, url, **kwargs) as response:
                if response.status not in [200, 201]:
                    error_text = await response.text()
                    raise IndexSyncError(f"{method} {path} failed with status {response.status}: {error_text}")
                body = await response.json(content_type=None)
                if body is None:
                    return {}
                if not isinstance(body, dict):
                    raise IndexSyncError(f"{method} {path} returned {type(body).__name__}, expected an object")
                return body
        except IndexSyncError:
            self.sync_stats['failed_requests'] += 1
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.sync_stats['failed_requests'] += 1
            raise IndexSyncError(f"{method} {path} failed: {e}")

    def _chunks(self, values: List[Any]) -> List[List[Any]]:
        return [values[i:i + self.chunk_size] for i in range(0, len(values), self.chunk_size)]

    async def index_batch(self, items: List[MediaItem], site_key: str) -> int:
        """
        Submit items in chunks

        Args:
            items: Items to add to the external index
            site_key: Site identifier

        Returns:
            Number of items the backend reports as indexed
        """
        if not items:
            return 0

        indexed = 0
        chunks = self._chunks(items)
        for position, chunk in enumerate(chunks):
            if position:
                await asyncio.sleep(self.chunk_delay)
            result = await self._request('POST', INDEX_BATCH_PATH, json={
                'siteKey': site_key,
                'batch': [item_payload(item) for item in chunk],
            })
            indexed += _response_int(result, 'indexed', len(chunk))
            self.logger.debug(f"Indexed chunk {position + 1}/{len(chunks)} for {site_key}")

        self.sync_stats['items_indexed'] += indexed
        return indexed

    async def delete_batch(self, hashes: List[str], site_key: str) -> int:
        """Delete items by content hash, chunked like index_batch"""
        if not hashes:
            return 0

        deleted = 0
        for position, chunk in enumerate(self._chunks(list(hashes))):
            if position:
                await asyncio.sleep(self.chunk_delay)
            result = await self._request('POST', DELETE_BATCH_PATH, json={
                'siteKey': site_key,
                'hashes': chunk,
            })
            deleted += _response_int(result, 'deleted', len(chunk))

        self.sync_stats['items_deleted'] += deleted
        return deleted

    async def get_count(self, site_key: str) -> int:
        result = await self._request('GET', COUNT_PATH, params={'siteKey': site_key})
        return _response_int(result, 'count', 0)

    async def clear_site(self, site_key: str) -> bool:
        result = await self._request('POST', CLEAR_SITE_PATH, json={'siteKey': site_key})
        return bool(result.get('success', True))

    async def health_check(self) -> Dict[str, Any]:
        """Backend availability; never raises"""
        try:
            data = await self._request('GET', HEALTH_PATH)
        except IndexSyncError as e:
            return {'available': False, 'error': str(e)}
        return {'available': True, **data}

    def get_sync_stats(self) -> Dict[str, Any]:
        return dict(self.sync_stats)
