"""
Base class for navigator strategies.

Navigators implement the discovery phase of a crawl - walking a source's
listing pages and collecting candidate announcements.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from support_crawler.core.fetcher import PageFetcher
from support_crawler.core.models import CandidateRecord
from support_crawler.parsers.base import DEFAULT_TIME_WINDOW_HOURS, ListingParser

logger = structlog.get_logger(__name__)

DEFAULT_MAX_PAGES = 10
DEFAULT_PAGE_DELAY = 1.0


@dataclass
class SourceConfig:
    """Configuration for a crawl source."""

    name: str
    url: str  # listing URL
    site_type: str  # bizinfo | kstartup | technopark

    region: Optional[str] = None  # default region for items without one
    is_active: bool = True

    # Discovery settings
    max_pages: int = DEFAULT_MAX_PAGES
    page_param: Optional[str] = None  # overrides the parser's page parameter
    time_window_hours: int = DEFAULT_TIME_WINDOW_HOURS

    # Free-form per-source options
    config: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "SourceConfig":
        """Create from dictionary (e.g., from YAML)."""
        config = dict(data.get("config") or {})
        return cls(
            name=data["name"],
            url=data["url"],
            site_type=data.get("site_type", "technopark"),
            region=data.get("region"),
            is_active=data.get("is_active", True),
            max_pages=int(config.get("max_pages", DEFAULT_MAX_PAGES)),
            page_param=config.get("page_param"),
            time_window_hours=int(config.get("time_window_hours", DEFAULT_TIME_WINDOW_HOURS)),
            config=config,
        )

    @classmethod
    def from_model(cls, source: Any, **overrides) -> "SourceConfig":
        """Create from a CrawlSource row; ``overrides`` replace settings."""
        config = dict(source.config or {})
        values = {
            "name": source.name,
            "url": source.url,
            "site_type": source.site_type,
            "region": source.region,
            "is_active": source.is_active,
            "max_pages": int(config.get("max_pages", DEFAULT_MAX_PAGES)),
            "page_param": config.get("page_param"),
            "time_window_hours": int(config.get("time_window_hours", DEFAULT_TIME_WINDOW_HOURS)),
            "config": config,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def to_dict(self) -> dict:
        """Row values for the crawl_sources table."""
        return {
            "name": self.name,
            "url": self.url,
            "site_type": self.site_type,
            "region": self.region,
            "is_active": self.is_active,
            "config": self.config,
        }


class NavigatorStrategy(ABC):
    """
    Abstract base class for navigator strategies.

    Navigators discover candidates from source listing pages using the
    shared PageFetcher, delegating page parsing to a ListingParser.
    """

    def __init__(self, fetcher: PageFetcher):
        """
        Initialize navigator.

        Args:
            fetcher: Shared page fetcher (HTTP or browser routing)
        """
        self.fetcher = fetcher
        self.logger = logger.bind(navigator=self.__class__.__name__)

    @abstractmethod
    async def discover(
        self,
        source: SourceConfig,
        parser: ListingParser,
    ) -> list[CandidateRecord]:
        """
        Discover candidates from source.

        Args:
            source: Source configuration
            parser: Parser for the source's site family

        Returns:
            List of in-window candidates, deduplicated across pages
        """
        pass

    def get_strategy_name(self) -> str:
        """Return human-readable strategy name."""
        return self.__class__.__name__
