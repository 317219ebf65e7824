"""
Paginated navigator: listing page 1..N → candidates.

Boards are sorted newest first, so once pages stop yielding new in-window
items the rest of the board is older than the time window.
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional

import httpx

from support_crawler.core.fetcher import PageFetcher
from support_crawler.core.models import CandidateRecord
from support_crawler.exceptions import CrawlerError
from support_crawler.parsers.base import ListingParser

from .base import NavigatorStrategy, SourceConfig, DEFAULT_PAGE_DELAY

# Consecutive pages without new in-window items before stopping
EMPTY_PAGE_LIMIT = 2


def candidate_key(candidate: CandidateRecord) -> str:
    """Cross-page identity: detail URL, else external id, else title."""
    return candidate.detail_url or candidate.external_id or candidate.name


class PaginatedNavigator(NavigatorStrategy):
    """
    Navigator for numbered listing pages.

    Supports:
    - page URLs built by the parser (``page_url``), page parameter per source
    - early stop after two consecutive pages with nothing new
    - de-duplication across pages
    - cookie continuity between listing pages
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        page_delay: float = DEFAULT_PAGE_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(fetcher)
        self.page_delay = page_delay
        self._sleep = sleep

    async def discover(
        self,
        source: SourceConfig,
        parser: ListingParser,
        now: Optional[datetime] = None,
    ) -> list[CandidateRecord]:
        """
        Discover candidates from a source's listing pages.

        Args:
            source: Source configuration
            parser: Parser for the source's site family
            now: Reference time for the time window (defaults to KST now)

        Returns:
            In-window candidates in discovery order
        """
        self.logger.info(
            "discovering_projects",
            source=source.name,
            url=source.url,
            parser=parser.get_strategy_name(),
            max_pages=source.max_pages,
        )

        candidates: list[CandidateRecord] = []
        seen: set[str] = set()
        empty_pages = 0
        cookies: Optional[str] = None

        for page in range(1, source.max_pages + 1):
            url = parser.page_url(source.url, page, source.page_param)
            self.logger.debug("fetching_page", page=page, url=url)

            try:
                result = await self.fetcher.fetch_page(
                    url,
                    cookies=cookies,
                    wait_for_selector=parser.wait_selector,
                )
            except (CrawlerError, httpx.HTTPError) as e:
                if page == 1:
                    raise
                self.logger.warning("page_fetch_failed", page=page, url=url, error=str(e))
                break

            cookies = result.cookies or cookies

            page_items = parser.parse_listing(
                result.html,
                url,
                time_window_hours=source.time_window_hours,
                now=now,
            )

            new_items = []
            for item in page_items:
                key = candidate_key(item)
                if key in seen:
                    continue
                seen.add(key)
                if source.region and item.region == "전국":
                    item.region = source.region
                new_items.append(item)

            candidates.extend(new_items)
            self.logger.info(
                "page_parsed",
                page=page,
                found=len(page_items),
                new=len(new_items),
            )

            if new_items:
                empty_pages = 0
            else:
                empty_pages += 1
                if empty_pages >= EMPTY_PAGE_LIMIT:
                    self.logger.debug("pagination_exhausted", page=page)
                    break

            if page < source.max_pages and self.page_delay:
                await self._sleep(self.page_delay)

        self.logger.info(
            "discovery_complete",
            source=source.name,
            count=len(candidates),
        )
        return candidates
