"""
Base class for listing parsers.

A listing parser turns one page of a site family's announcement board into
CandidateRecord objects and knows how that family pages and marks
attachments on its detail pages.
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional, Type
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse
from zoneinfo import ZoneInfo

import structlog
from bs4 import Tag

from support_crawler.core.models import CandidateRecord
from support_crawler.core.validators import validate_category, validate_region

from .attachments import extract_attachment_urls

logger = structlog.get_logger(__name__)

KST = ZoneInfo("Asia/Seoul")

DEFAULT_TIME_WINDOW_HOURS = 168

NOTICE_CLASSES = ("notice", "top", "fixed")
NOTICE_LABELS = ("공지", "notice", "필독")
MIN_TITLE_LENGTH = 3


def now_kst() -> datetime:
    """Current Korean wall-clock time as a naive datetime."""
    return datetime.now(KST).replace(tzinfo=None)


def is_within_time_window(
    registered_at: Optional[datetime],
    hours: int = DEFAULT_TIME_WINDOW_HOURS,
    now: Optional[datetime] = None,
) -> bool:
    """
    Whether an item registered at ``registered_at`` falls inside the window.

    Items without a date are excluded; the exact boundary is included.
    """
    if registered_at is None:
        return False

    now = now or now_kst()
    return now - registered_at <= timedelta(hours=hours)


def is_plausible_title(title: Optional[str]) -> bool:
    """Reject empty, too short and purely numeric titles."""
    if not title:
        return False

    stripped = title.strip()
    if len(stripped) < MIN_TITLE_LENGTH:
        return False

    return not re.fullmatch(r"[\d\s.,-]+", stripped)


def is_notice_row(row: Tag) -> bool:
    """Pinned notice rows: marker class, "공지" first cell or a notice icon."""
    classes = [c.lower() for c in (row.get("class") or [])]
    if any(marker in cls for cls in classes for marker in NOTICE_CLASSES):
        return True

    first_cell = row.find(["td", "th"])
    if first_cell is not None:
        text = first_cell.get_text(" ", strip=True).lower()
        if text in NOTICE_LABELS:
            return True
        if not text:
            icon = first_cell.find("img")
            if icon is not None and any(
                label in (icon.get("alt") or "").lower() for label in NOTICE_LABELS
            ):
                return True

    return False


def table_headers(table: Tag) -> list[str]:
    """Header texts of a board table (thead, or the first row of th cells)."""
    header_row = table.select_one("thead tr") or table.find("tr")
    if header_row is None:
        return []
    cells = header_row.find_all("th")
    return [cell.get_text(" ", strip=True) for cell in cells]


def column_index(headers: list[str], keywords: tuple[str, ...]) -> Optional[int]:
    """Index of the first header containing any of ``keywords``."""
    for index, header in enumerate(headers):
        compact = header.replace(" ", "")
        if any(keyword in compact for keyword in keywords):
            return index
    return None


def cell_text(cells: list[Tag], index: Optional[int]) -> Optional[str]:
    if index is None or index >= len(cells):
        return None
    text = cells[index].get_text(" ", strip=True)
    return text or None


def with_query_param(url: str, name: str, value) -> str:
    """Return ``url`` with query parameter ``name`` set to ``value``."""
    parsed = urlparse(url)
    params = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k != name]
    params.append((name, str(value)))
    return urlunparse(parsed._replace(query=urlencode(params)))


def host_matches(url: str, domains: tuple[str, ...]) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return any(host == d or host.endswith("." + d) for d in domains)


class ListingParser(ABC):
    """
    Abstract base class for site-family listing parsers.

    Subclasses implement ``extract_items`` (every plausible row on a page);
    the base class applies the time window.
    """

    family: str = ""
    domains: tuple[str, ...] = ()
    page_param: str = "page"

    # CSS selector the browser waits for before reading the page
    wait_selector: Optional[str] = None

    # JS download handler name -> URL template (see attachments module)
    onclick_templates: dict[str, str] = {}

    def __init__(self):
        self.logger = logger.bind(parser=self.__class__.__name__)

    def can_handle(self, url: str) -> bool:
        return host_matches(url, self.domains)

    @abstractmethod
    def extract_items(self, html: str, source_url: str) -> list[CandidateRecord]:
        """
        Parse every announcement row on a listing page.

        Notice rows and implausible titles are already dropped here; the
        time window is not applied yet.
        """
        pass

    def parse_listing(
        self,
        html: str,
        source_url: str,
        time_window_hours: int = DEFAULT_TIME_WINDOW_HOURS,
        now: Optional[datetime] = None,
    ) -> list[CandidateRecord]:
        """
        Parse a listing page into in-window candidates.

        Args:
            html: Listing page HTML (or JSON for API-backed families)
            source_url: URL the page was fetched from
            time_window_hours: Only items registered this recently are kept
            now: Reference time (defaults to current KST time)

        Returns:
            Candidates in page order
        """
        items = self.extract_items(html, source_url)
        now = now or now_kst()

        for item in items:
            item.category = validate_category(item.category)
            item.region = validate_region(item.region)

        in_window = [
            item for item in items
            if is_within_time_window(item.registered_at, time_window_hours, now)
        ]

        self.logger.debug(
            "listing_parsed",
            url=source_url,
            rows=len(items),
            in_window=len(in_window),
        )
        return in_window

    def page_url(self, listing_url: str, page: int, page_param: Optional[str] = None) -> str:
        """URL of the given 1-based listing page."""
        if page <= 1:
            return listing_url
        return with_query_param(listing_url, page_param or self.page_param, page)

    def extract_attachments(self, html: str, detail_url: str) -> list[str]:
        """Absolute attachment URLs found on a detail page."""
        return extract_attachment_urls(html, detail_url, self.onclick_templates)

    def get_strategy_name(self) -> str:
        return self.__class__.__name__


class ParserRegistry:
    """Site-family key -> parser instance."""

    def __init__(self):
        self._parsers: dict[str, ListingParser] = {}

    def register(self, parser: ListingParser) -> ListingParser:
        self._parsers[parser.family] = parser
        return parser

    def get(self, family: str) -> Optional[ListingParser]:
        return self._parsers.get(family)

    def for_url(self, url: str, site_type: Optional[str] = None) -> Optional[ListingParser]:
        """
        Pick a parser by domain, falling back to the source's site type.
        """
        for parser in self._parsers.values():
            if parser.can_handle(url):
                return parser

        if site_type:
            return self.get(site_type)

        return None

    def families(self) -> list[str]:
        return sorted(self._parsers)

    def __contains__(self, family: str) -> bool:
        return family in self._parsers

    def __len__(self) -> int:
        return len(self._parsers)


REGISTRY = ParserRegistry()


def register_parser(cls: Type[ListingParser]) -> Type[ListingParser]:
    """
    Class decorator that registers a parser instance under its family key.

    Example:
        @register_parser
        class BizinfoParser(ListingParser):
            family = "bizinfo"
    """
    REGISTRY.register(cls())
    logger.debug("parser_registered", family=cls.family, parser=cls.__name__)
    return cls


def get_parser(url: str, site_type: Optional[str] = None) -> Optional[ListingParser]:
    return REGISTRY.for_url(url, site_type)
