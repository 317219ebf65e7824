"""
Headless browser session for WAF-protected sites.

Several regional technopark sites reject plain HTTP clients but serve
normal pages to a real browser. ``BrowserSession`` owns one Chromium
instance and one context (for cookie continuity) and is created lazily on
first use. It is an injectable resource: callers pass it to the fetcher and
release it with ``async with`` or ``close()``.
"""

import asyncio
import signal
from typing import Optional
from urllib.parse import urlparse

import structlog
from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Playwright,
    Error as PlaywrightError,
)

from support_crawler.exceptions import BrowserFetchError

from .http_client import USER_AGENT
from .models import PageResult

logger = structlog.get_logger(__name__)


WAF_BLOCKED_DOMAINS = (
    "gdtp.or.kr",
    "gntp.or.kr",
    "gbtp.or.kr",
    "gjtp.or.kr",
    "dgtp.or.kr",
    "djtp.or.kr",
    "sjtp.or.kr",
    "utp.or.kr",
    "jntp.or.kr",
    "jejutp.or.kr",
    "ptp.or.kr",
    "ctp.or.kr",
)

SETTLE_DELAY_MS = 1000
SELECTOR_TIMEOUT_MS = 5000
NAVIGATION_TIMEOUT_MS = 30000

# Content-based acceptance for error statuses
MIN_USABLE_SIZE = 10000
ERROR_PAGE_MAX_SIZE = 5000

LAUNCH_ARGS = [
    "--disable-gpu",
    "--disable-dev-shm-usage",
    "--disable-setuid-sandbox",
    "--no-sandbox",
]


def requires_browser(url: str) -> bool:
    """Whether the URL's host is on the WAF allow-list (subdomains included)."""
    host = (urlparse(url).hostname or "").lower()
    return any(host == domain or host.endswith("." + domain) for domain in WAF_BLOCKED_DOMAINS)


def is_usable_content(status: int, html: str) -> bool:
    """
    Decide whether a rendered page is usable.

    Some sites answer 4xx/5xx while serving the real board, so an error
    status is accepted when the document has a table or is large, unless it
    looks like a short error page.
    """
    if status < 400:
        return True

    lower = html.lower()
    if "error" in lower and len(html) < ERROR_PAGE_MAX_SIZE:
        return False

    return "<table" in lower or len(html) > MIN_USABLE_SIZE


class BrowserSession:
    """
    Single Chromium browser with one shared context.

    Usage:
        async with BrowserSession() as browser:
            page = await browser.fetch_page("https://www.gntp.or.kr/...")
    """

    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._lock = asyncio.Lock()
        self._shutdown_task: Optional[asyncio.Task] = None
        self.logger = logger.bind(component="browser")

    async def __aenter__(self) -> "BrowserSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def start(self) -> BrowserContext:
        """Launch the browser on first use and return the shared context."""
        async with self._lock:
            if self._context is not None:
                return self._context

            self.logger.info("browser_starting", headless=self.headless)

            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=LAUNCH_ARGS,
            )
            self._context = await self._browser.new_context(
                user_agent=USER_AGENT,
                locale="ko-KR",
                timezone_id="Asia/Seoul",
                viewport={"width": 1920, "height": 1080},
                ignore_https_errors=True,
                accept_downloads=True,
            )

            self.logger.info("browser_started")
            return self._context

    async def close(self) -> None:
        """Close context, browser and driver. Safe to call repeatedly."""
        async with self._lock:
            if self._context is not None:
                try:
                    await self._context.close()
                except PlaywrightError as e:
                    self.logger.warning("context_close_failed", error=str(e))
                self._context = None

            if self._browser is not None:
                await self._browser.close()
                self._browser = None

            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None
                self.logger.info("browser_closed")

    def install_signal_handlers(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """
        Close the browser on SIGINT or SIGTERM, then re-deliver the signal
        with its default handling (KeyboardInterrupt or process exit).
        """
        loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, loop, sig)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform / loop
                pass

    def _on_signal(self, loop: asyncio.AbstractEventLoop, sig: signal.Signals) -> None:
        self.logger.info("shutdown_signal_received", signal=sig.name)
        self._shutdown_task = asyncio.ensure_future(self._shutdown(loop, sig))
        self._shutdown_task.add_done_callback(self._shutdown_done)

    async def _shutdown(self, loop: asyncio.AbstractEventLoop, sig: signal.Signals) -> None:
        try:
            await self.close()
        finally:
            loop.remove_signal_handler(sig)
            signal.raise_signal(sig)

    def _shutdown_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if isinstance(error, Exception):
            self.logger.error("browser_shutdown_failed", error=str(error))

    async def _cookie_string(self) -> str:
        cookies = await self._context.cookies()
        return "; ".join(f"{c['name']}={c['value']}" for c in cookies)

    async def fetch_page(
        self,
        url: str,
        wait_until: str = "domcontentloaded",
        wait_for_selector: Optional[str] = None,
        timeout_ms: int = NAVIGATION_TIMEOUT_MS,
    ) -> PageResult:
        """
        Render a page and return its HTML and the context cookies.

        Raises:
            BrowserFetchError: navigation failed or the content is unusable
        """
        context = await self.start()
        page = await context.new_page()

        try:
            self.logger.debug("browser_navigate", url=url, wait_until=wait_until)
            response = await page.goto(url, wait_until=wait_until, timeout=timeout_ms)
            await page.wait_for_timeout(SETTLE_DELAY_MS)

            if wait_for_selector:
                try:
                    await page.wait_for_selector(wait_for_selector, timeout=SELECTOR_TIMEOUT_MS)
                except PlaywrightError:
                    self.logger.debug("selector_not_found", url=url, selector=wait_for_selector)

            status = response.status if response else 0
            html = await page.content()

            if not is_usable_content(status, html):
                raise BrowserFetchError(f"Unusable content (HTTP {status}, {len(html)} bytes): {url}")

            if status >= 400:
                self.logger.info("browser_error_status_accepted", url=url, status=status, size=len(html))

            return PageResult(
                url=page.url,
                html=html,
                status_code=status,
                cookies=await self._cookie_string(),
                via_browser=True,
            )

        except PlaywrightError as e:
            raise BrowserFetchError(f"Navigation failed: {url}: {e}") from e

        finally:
            await page.close()

    async def download(
        self,
        url: str,
        referer: Optional[str] = None,
    ) -> tuple[bytes, dict]:
        """
        Download a file through the browser context.

        Uses the context's request API (shares cookies with rendered pages);
        falls back to triggering a page download when that fails.

        Returns:
            (content, lower-cased response headers)
        """
        context = await self.start()
        headers = {"Referer": referer} if referer else {}

        try:
            response = await context.request.get(url, headers=headers, timeout=NAVIGATION_TIMEOUT_MS)
            if response.ok:
                body = await response.body()
                return body, {k.lower(): v for k, v in response.headers.items()}
            self.logger.warning("browser_request_failed", url=url, status=response.status)
        except PlaywrightError as e:
            self.logger.warning("browser_request_error", url=url, error=str(e))

        page = await context.new_page()
        try:
            async with page.expect_download(timeout=NAVIGATION_TIMEOUT_MS) as download_info:
                try:
                    await page.goto(url, referer=referer)
                except PlaywrightError:
                    # goto aborts when the response turns into a download
                    pass
            download = await download_info.value
            path = await download.path()
            with open(path, "rb") as f:
                content = f.read()
            disposition = f'attachment; filename="{download.suggested_filename}"'
            return content, {"content-disposition": disposition}
        except PlaywrightError as e:
            raise BrowserFetchError(f"Download failed: {url}: {e}") from e
        finally:
            await page.close()
