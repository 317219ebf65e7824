"""
Detail page resolution.

Second phase of a crawl: visit each candidate's detail page, collect its
attachment URLs and keep the session cookies that downloads will need.
"""

import asyncio
from typing import Awaitable, Callable

import httpx
import structlog

from support_crawler.core.fetcher import PageFetcher
from support_crawler.core.models import CandidateRecord
from support_crawler.exceptions import CrawlerError

from .base import ListingParser

logger = structlog.get_logger(__name__)

DEFAULT_DETAIL_DELAY = 0.5


class DetailResolver:
    """
    Resolves attachment URLs for listing candidates.

    A failure on one detail page is logged and leaves that candidate with
    no attachments; the rest of the batch continues.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        detail_delay: float = DEFAULT_DETAIL_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.fetcher = fetcher
        self.detail_delay = detail_delay
        self._sleep = sleep
        self.logger = logger.bind(component="detail_resolver")

    async def resolve_one(self, candidate: CandidateRecord, parser: ListingParser) -> CandidateRecord:
        """Fill ``attachment_urls`` and ``cookies`` for one candidate."""
        if not candidate.detail_url:
            return candidate

        try:
            page = await self.fetcher.fetch_page(
                candidate.detail_url,
                cookies=candidate.cookies or None,
                wait_for_selector=parser.wait_selector,
            )
        except (CrawlerError, httpx.HTTPError) as e:
            self.logger.warning(
                "detail_fetch_failed",
                url=candidate.detail_url,
                error=str(e),
            )
            candidate.attachment_urls = []
            return candidate

        candidate.attachment_urls = parser.extract_attachments(page.html, page.url or candidate.detail_url)
        candidate.cookies = page.cookies or candidate.cookies

        self.logger.debug(
            "detail_resolved",
            url=candidate.detail_url,
            attachments=len(candidate.attachment_urls),
        )
        return candidate

    async def resolve(
        self,
        candidates: list[CandidateRecord],
        parser: ListingParser,
    ) -> list[CandidateRecord]:
        """
        Resolve detail pages in order.

        Args:
            candidates: Listing candidates
            parser: Parser of the candidates' site family

        Returns:
            The same candidate list, enriched in place
        """
        with_detail = [c for c in candidates if c.detail_url]

        for index, candidate in enumerate(with_detail):
            self.logger.info(
                "resolving_detail",
                index=index + 1,
                total=len(with_detail),
                name=candidate.name,
            )
            await self.resolve_one(candidate, parser)

            if self.detail_delay:
                await self._sleep(self.detail_delay)

        with_files = sum(1 for c in candidates if c.attachment_urls)
        self.logger.info(
            "details_resolved",
            candidates=len(candidates),
            with_attachments=with_files,
        )
        return candidates
