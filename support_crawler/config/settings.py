"""
Runtime settings read from the environment.
"""

import os
from dataclasses import dataclass

from support_crawler.db.session import DEFAULT_DATABASE_URL
from support_crawler.extraction import DEFAULT_MAX_TEXT_LENGTH
from support_crawler.plugins.text_parser import DEFAULT_TEXT_PARSER_URL

TRUE_VALUES = ("1", "true", "yes", "on")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value and value.strip() else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value and value.strip() else default


@dataclass
class CrawlerSettings:
    """Worker settings; source-level config overrides the crawl defaults."""

    database_url: str = DEFAULT_DATABASE_URL

    time_window_hours: int = 168
    max_pages: int = 10

    # Test mode keeps only the first N projects of each job
    test_mode: bool = False
    test_max_projects: int = 3

    page_delay: float = 1.0
    detail_delay: float = 0.5
    project_delay: float = 2.0

    text_parser_url: str = DEFAULT_TEXT_PARSER_URL
    storage_dir: str = "./data/storage"
    max_parsed_text_length: int = DEFAULT_MAX_TEXT_LENGTH

    browser_headless: bool = True

    @classmethod
    def from_env(cls) -> "CrawlerSettings":
        """
        Build settings from environment variables.

        Raises:
            ValueError: a numeric variable does not parse
        """
        defaults = cls()
        return cls(
            database_url=os.getenv("DATABASE_URL") or defaults.database_url,
            time_window_hours=_env_int("CRAWL_TIME_WINDOW_HOURS", defaults.time_window_hours),
            max_pages=_env_int("CRAWLER_MAX_PAGES", defaults.max_pages),
            test_mode=_env_bool("CRAWLER_TEST_MODE", defaults.test_mode),
            test_max_projects=_env_int("CRAWLER_TEST_MAX_PROJECTS", defaults.test_max_projects),
            page_delay=_env_float("CRAWLER_PAGE_DELAY", defaults.page_delay),
            detail_delay=_env_float("CRAWLER_DETAIL_DELAY", defaults.detail_delay),
            project_delay=_env_float("CRAWLER_PROJECT_DELAY", defaults.project_delay),
            text_parser_url=os.getenv("TEXT_PARSER_URL") or defaults.text_parser_url,
            storage_dir=os.getenv("STORAGE_DIR") or defaults.storage_dir,
            max_parsed_text_length=_env_int("MAX_PARSED_TEXT_LENGTH", defaults.max_parsed_text_length),
            browser_headless=_env_bool("BROWSER_HEADLESS", defaults.browser_headless),
        )
