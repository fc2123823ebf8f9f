"""
HTTP Document Fetcher

Fetches pages with aiohttp and parses them with BeautifulSoup. Suitable
for server-rendered sites; use the browser fetcher for pages that build
their media with JavaScript.
"""

import asyncio
from typing import Dict, Any, Optional

import aiohttp
from bs4 import BeautifulSoup

from mediascan.core.base import DocumentFetcher, FetchError, ParseError
from mediascan.core.logging import get_logger


class HttpDocumentFetcher(DocumentFetcher):
    """
    aiohttp implementation of the DocumentFetcher interface

    Config keys: request_timeout, user_agent.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        super().__init__(config)
        self.logger = get_logger()
        self.timeout = self.config.get('request_timeout', 30)
        self.user_agent = self.config.get('user_agent', 'MediaScanner/0.1')
        self.session = session
        self._owns_session = session is None

    async def initialize(self) -> None:
        if self.session is None:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={'User-Agent': self.user_agent}
            )
            self._owns_session = True
        self._initialized = True

    async def cleanup(self) -> None:
        if self.session and self._owns_session:
            await self.session.close()
        self.session = None
        self._initialized = False

    async def fetch_and_parse(self, location: str) -> BeautifulSoup:
        """
        Fetch a page and parse its HTML

        Args:
            location: Absolute page URL

        Returns:
            Parsed document

        Raises:
            FetchError: On network errors, timeouts and non-2xx responses
            ParseError: If the body cannot be decoded or parsed
        """
        if self.session is None:
            await self.initialize()

        try:
            async with self.session.get(location) as response:
                if response.status < 200 or response.status >= 300:
                    raise FetchError(f"HTTP {response.status} for {location}", status_code=response.status)
                body = await response.read()
                encoding = response.get_encoding() if response.charset else 'utf-8'
        except FetchError:
            raise
        except asyncio.TimeoutError:
            raise FetchError(f"Timed out fetching {location}")
        except aiohttp.ClientError as e:
            raise FetchError(f"Failed to fetch {location}: {e}")

        try:
            html = body.decode(encoding, errors='replace')
            return BeautifulSoup(html, 'html.parser')
        except (LookupError, ValueError) as e:
            raise ParseError(f"Failed to parse {location}: {e}")
