"""
Exception hierarchy for the crawler pipeline.

Transient network failures are retried inside the HTTP client and surface as
httpx errors once retries are exhausted; everything below is raised for
conditions the pipeline handles explicitly.
"""

from typing import Optional


class CrawlerError(Exception):
    """Base class for crawler errors."""


class FetchError(CrawlerError):
    """Server answered with an HTTP error status."""

    def __init__(self, url: str, status_code: Optional[int] = None, message: str = ""):
        self.url = url
        self.status_code = status_code
        detail = message or (f"HTTP {status_code}" if status_code else "request failed")
        super().__init__(f"{detail}: {url}")


class UnexpectedContentError(CrawlerError):
    """A binary download returned something else (usually an HTML error page)."""

    def __init__(self, url: str, content_type: str = ""):
        self.url = url
        self.content_type = content_type
        super().__init__(f"Unexpected content ({content_type or 'unknown'}) from {url}")


class BrowserFetchError(CrawlerError):
    """Headless browser could not produce usable content."""


class ParserServiceError(CrawlerError):
    """Document parsing service returned an error payload."""


class InvalidJobStateError(CrawlerError):
    """Job is not in a state that allows the requested transition."""


class SourceNotFoundError(CrawlerError):
    """Referenced crawl source does not exist."""
