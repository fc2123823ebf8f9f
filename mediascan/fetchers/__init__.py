"""
Document fetchers

HttpDocumentFetcher is exported here; import BrowserDocumentFetcher from
mediascan.fetchers.browser, which starts a headless browser.
"""

from .http import HttpDocumentFetcher

__all__ = ['HttpDocumentFetcher']
