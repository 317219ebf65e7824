"""
Page and file fetching with WAF-aware routing.

Hosts on the WAF allow-list go through the headless browser; everything
else uses the plain HTTP client.
"""

from typing import Optional

import structlog

from support_crawler.exceptions import UnexpectedContentError

from .browser import BrowserSession, requires_browser
from .http_client import HttpClient, decode_html, looks_like_html
from .models import FetchResponse, PageResult

logger = structlog.get_logger(__name__)


class PageFetcher:
    """
    Routes fetches between HttpClient and an optional BrowserSession.

    Without a browser, allow-listed hosts are attempted over plain HTTP.
    """

    def __init__(
        self,
        http_client: HttpClient,
        browser: Optional[BrowserSession] = None,
    ):
        self.http_client = http_client
        self.browser = browser

    def uses_browser(self, url: str) -> bool:
        return self.browser is not None and requires_browser(url)

    async def fetch_page(
        self,
        url: str,
        cookies: Optional[str] = None,
        wait_for_selector: Optional[str] = None,
    ) -> PageResult:
        """Fetch and decode an HTML page."""
        if self.uses_browser(url):
            logger.debug("fetch_via_browser", url=url)
            return await self.browser.fetch_page(url, wait_for_selector=wait_for_selector)

        response = await self.http_client.fetch(url, cookies=cookies)
        return PageResult(
            url=response.url,
            html=decode_html(response.content, response.headers),
            status_code=response.status_code,
            cookies=response.cookies or (cookies or ""),
        )

    async def download(
        self,
        url: str,
        referer: Optional[str] = None,
        cookies: Optional[str] = None,
    ) -> FetchResponse:
        """
        Download attachment bytes.

        Raises:
            UnexpectedContentError: HTML came back instead of a file
        """
        if not self.uses_browser(url):
            return await self.http_client.download(url, referer=referer, cookies=cookies)

        logger.debug("download_via_browser", url=url)
        content, headers = await self.browser.download(url, referer=referer)
        if "text/html" in headers.get("content-type", "").lower() or looks_like_html(content):
            raise UnexpectedContentError(url, headers.get("content-type", ""))

        return FetchResponse(url=url, status_code=200, content=content, headers=headers)
