"""
Async HTTP client with connection reuse and retries.

Built on httpx with:
- A small keep-alive connection pool (government servers rate-limit hard)
- Exponential backoff retry for transient network failures only
- Distinct errors for HTTP error statuses and unexpected content
"""

import re
from typing import Optional

import httpx
import structlog
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from support_crawler.exceptions import FetchError, UnexpectedContentError

from .models import FetchResponse

logger = structlog.get_logger(__name__)


USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
}

DOWNLOAD_ACCEPT = "application/octet-stream, */*"

MAX_CONNECTIONS = 10

# Connection reset, timeout, broken pipe, malformed response
RETRYABLE_ERRORS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
)

META_CHARSET_PATTERN = re.compile(rb"<meta[^>]+charset=[\"']?([\w-]+)", re.IGNORECASE)


def cookies_from_headers(headers: httpx.Headers) -> str:
    """Fold Set-Cookie headers into a ``name=value; name2=value2`` string."""
    pairs = []
    for raw in headers.get_list("set-cookie"):
        pair = raw.split(";", 1)[0].strip()
        if "=" in pair:
            pairs.append(pair)
    return "; ".join(pairs)


def looks_like_html(content: bytes) -> bool:
    """Whether a payload starts like an HTML document."""
    head = content[:512].lstrip().lower()
    return head.startswith((b"<!doctype html", b"<html", b"<head", b"<script"))


def decode_html(content: bytes, headers: Optional[dict] = None) -> str:
    """
    Decode an HTML body.

    Charset comes from the Content-Type header, then a <meta> tag; without
    either, UTF-8 is tried before CP949 (legacy Korean sites).
    """
    charset = None
    content_type = (headers or {}).get("content-type", "")
    match = re.search(r"charset=([\w-]+)", content_type, re.IGNORECASE)
    if match:
        charset = match.group(1)
    else:
        meta = META_CHARSET_PATTERN.search(content[:4096])
        if meta:
            charset = meta.group(1).decode("ascii", errors="ignore")

    if charset:
        try:
            return content.decode(charset)
        except (LookupError, UnicodeDecodeError):
            logger.debug("declared_charset_failed", charset=charset)

    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        return content.decode("cp949", errors="replace")


class HttpClient:
    """
    Async HTTP client for listing pages, detail pages and downloads.

    Usage:
        async with HttpClient() as client:
            response = await client.fetch("https://www.bizinfo.go.kr/...")
            html = decode_html(response.content, response.headers)
    """

    def __init__(
        self,
        timeout: float = 30.0,
        max_connections: int = MAX_CONNECTIONS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize HTTP client.

        Args:
            timeout: Per-request timeout in seconds
            max_connections: Keep-alive pool size
            transport: Optional transport (tests use httpx.MockTransport)
        """
        self.timeout = timeout
        self.max_connections = max_connections
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "HttpClient":
        """Enter async context."""
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
            headers=DEFAULT_HEADERS,
            limits=httpx.Limits(
                max_connections=self.max_connections,
                max_keepalive_connections=self.max_connections,
            ),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        reraise=True,
    )
    async def _do_request(
        self,
        method: str,
        url: str,
        **kwargs,
    ) -> httpx.Response:
        """Execute HTTP request with retry."""
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context.")

        response = await self._client.request(method, url, **kwargs)
        if response.status_code >= 400:
            raise FetchError(url, response.status_code)

        return response

    async def fetch(
        self,
        url: str,
        headers: Optional[dict] = None,
        cookies: Optional[str] = None,
    ) -> FetchResponse:
        """
        GET a page.

        Args:
            url: URL to fetch
            headers: Extra request headers
            cookies: Cookie header value to send

        Returns:
            FetchResponse with body, headers and captured cookies

        Raises:
            FetchError: HTTP error status
            httpx.HTTPError: transient failure after retries
        """
        request_headers = dict(headers or {})
        if cookies:
            request_headers["Cookie"] = cookies

        logger.debug("http_get", url=url)
        response = await self._do_request("GET", url, headers=request_headers)

        return FetchResponse(
            url=str(response.url),
            status_code=response.status_code,
            content=response.content,
            headers={k.lower(): v for k, v in response.headers.items()},
            cookies=cookies_from_headers(response.headers),
        )

    async def get_text(self, url: str, **kwargs) -> str:
        """GET request returning decoded HTML."""
        response = await self.fetch(url, **kwargs)
        return decode_html(response.content, response.headers)

    async def download(
        self,
        url: str,
        referer: Optional[str] = None,
        cookies: Optional[str] = None,
    ) -> FetchResponse:
        """
        Download a binary attachment.

        Raises:
            UnexpectedContentError: server sent an HTML page instead of a file
            FetchError: HTTP error status
        """
        headers = {"Accept": DOWNLOAD_ACCEPT}
        if referer:
            headers["Referer"] = referer

        logger.debug("downloading", url=url)
        response = await self.fetch(url, headers=headers, cookies=cookies)

        if "text/html" in response.content_type.lower() or looks_like_html(response.content):
            logger.warning(
                "download_returned_html",
                url=url,
                content_type=response.content_type,
                size=len(response.content),
            )
            raise UnexpectedContentError(url, response.content_type)

        logger.info("download_complete", url=url, size=len(response.content))
        return response

    async def post_file(
        self,
        url: str,
        file_name: str,
        content: bytes,
        content_type: str,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """POST a multipart ``file`` field (document parsing service)."""
        return await self._do_request(
            "POST",
            url,
            files={"file": (file_name, content, content_type)},
            timeout=timeout or self.timeout,
        )

    async def ping(self, url: str, timeout: float = 5.0) -> bool:
        """Cheap reachability check; never raises."""
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        try:
            response = await self._client.get(url, timeout=timeout)
        except httpx.HTTPError:
            return False
        return response.is_success
