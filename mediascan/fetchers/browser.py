"""
Browser Document Fetcher

Renders pages in a headless browser through crawl4ai so that media
inserted by JavaScript or lazy loading is present in the parsed document.
"""

import asyncio
from typing import Dict, Any, Optional

from bs4 import BeautifulSoup
from crawl4ai import AsyncWebCrawler, BrowserConfig, CrawlerRunConfig

from mediascan.core.base import DocumentFetcher, FetchError, ParseError
from mediascan.core.logging import get_logger

LAZY_LOAD_SCRIPT = """
window.scrollTo(0, document.body.scrollHeight);
await new Promise(resolve => setTimeout(resolve, 1000));

document.querySelectorAll('img[data-src]').forEach(img => {
    if (img.dataset.src) {
        img.src = img.dataset.src;
    }
});

await new Promise(resolve => setTimeout(resolve, 1000));
"""


class BrowserDocumentFetcher(DocumentFetcher):
    """
    crawl4ai implementation of the DocumentFetcher interface

    Config keys: request_timeout, user_agent, headless.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self.logger = get_logger()
        self.timeout = self.config.get('request_timeout', 30)
        self.user_agent = self.config.get('user_agent', 'MediaScanner/0.1')
        self.headless = self.config.get('headless', True)

        self.crawler: Optional[AsyncWebCrawler] = None
        self.browser_config: Optional[BrowserConfig] = None
        self.run_config: Optional[CrawlerRunConfig] = None
        self._start_lock: Optional[asyncio.Lock] = None

    async def initialize(self) -> None:
        """Start the headless browser"""
        try:
            self.browser_config = BrowserConfig(
                headless=self.headless,
                user_agent=self.user_agent,
                extra_args=[
                    "--no-sandbox",
                    "--disable-dev-shm-usage",
                    "--disable-gpu",
                ]
            )
            self.run_config = CrawlerRunConfig(
                js_code=LAZY_LOAD_SCRIPT,
                wait_for_images=True,
                scan_full_page=True,
                page_timeout=self.timeout * 1000
            )
            self.crawler = AsyncWebCrawler(config=self.browser_config)
            await self.crawler.start()
        except Exception as e:
            self.crawler = None
            self.logger.error(f"Failed to start browser fetcher: {e}")
            raise FetchError(f"Browser initialization failed: {e}")

        self._initialized = True
        self.logger.info("Browser fetcher initialized")

    async def cleanup(self) -> None:
        if self.crawler:
            try:
                await self.crawler.close()
            except Exception as e:
                self.logger.error(f"Error closing browser: {e}")
            self.crawler = None
        self._initialized = False

    async def fetch_and_parse(self, location: str) -> BeautifulSoup:
        """
        Render a page and parse the resulting HTML

        Raises:
            FetchError: If the browser cannot load the page
            ParseError: If the rendered page has no HTML
        """
        await self._ensure_started()

        try:
            result = await self.crawler.arun(url=location, config=self.run_config)
        except Exception as e:
            raise FetchError(f"Browser failed to load {location}: {e}")

        if not result.success:
            raise FetchError(
                f"Browser failed to load {location}: {result.error_message}",
                status_code=getattr(result, 'status_code', None)
            )

        html = result.html
        if not html:
            raise ParseError(f"No HTML rendered for {location}")
        return BeautifulSoup(html, 'html.parser')

    async def _ensure_started(self) -> None:
        """Start the browser once, even when many pages are fetched concurrently"""
        if self._initialized:
            return
        if self._start_lock is None:
            self._start_lock = asyncio.Lock()
        async with self._start_lock:
            if not self._initialized:
                await self.initialize()
