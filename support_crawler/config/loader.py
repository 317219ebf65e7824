"""
Source list loading and database sync.

``sources.yml`` lists the listing pages to crawl. Loading applies
``${VAR}`` / ``${VAR:-default}`` substitution before YAML parsing, validates
each entry and skips the bad ones; ``sync_sources`` upserts the result into
``crawl_sources`` by name.
"""

import os
import re
from pathlib import Path
from typing import Optional

import yaml
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from support_crawler.core.models import SiteFamily
from support_crawler.core.validators import validate_region
from support_crawler.db.repository import SourceRepository
from support_crawler.navigators.base import SourceConfig

logger = structlog.get_logger(__name__)

SITE_TYPES = tuple(family.value for family in SiteFamily)
REQUIRED_FIELDS = ("name", "url", "site_type")

ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def substitute_env_vars(text: str) -> str:
    """
    Replace ``${VAR}`` and ``${VAR:-default}`` placeholders.

    A plain ``${VAR}`` that is not set becomes an empty string and is logged.
    """
    def replace(match):
        expression = match.group(1)
        name, has_default, default = expression.partition(":-")
        value = os.getenv(name)
        if value is not None:
            return value
        if has_default:
            return default

        logger.warning("env_var_not_set", var=name)
        return ""

    return ENV_VAR_PATTERN.sub(replace, text)


class ConfigLoader:
    """Reads YAML files from a config directory (the package's by default)."""

    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = Path(config_dir) if config_dir else Path(__file__).parent

    def load_file(self, filename: str) -> dict:
        """
        Load one YAML file with environment substitution.

        Raises:
            FileNotFoundError: file does not exist
        """
        path = self.config_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        logger.info("loading_config", file=str(path))
        text = path.read_text(encoding="utf-8")
        return yaml.safe_load(substitute_env_vars(text)) or {}

    def load_sources(self, filename: str = "sources.yml") -> list[SourceConfig]:
        """
        Load crawl sources.

        Entries with a missing field, an unknown site type, a bad page limit
        or a name already seen are logged and skipped.
        """
        entries = self.load_file(filename).get("sources") or []

        sources: list[SourceConfig] = []
        names: set[str] = set()
        for entry in entries:
            label = entry.get("name", "unknown") if isinstance(entry, dict) else "unknown"
            try:
                source = self._parse_source(entry)
            except (KeyError, TypeError, ValueError) as e:
                logger.error("source_load_failed", source=label, error=str(e))
                continue

            if source.name in names:
                logger.warning("duplicate_source_skipped", source=source.name)
                continue

            names.add(source.name)
            sources.append(source)
            logger.debug("source_loaded", source=source.name, site_type=source.site_type)

        logger.info("sources_loaded", count=len(sources))
        return sources

    def _parse_source(self, data: dict) -> SourceConfig:
        """
        Raises:
            ValueError: missing field, unknown site_type or max_pages < 1
        """
        missing = [name for name in REQUIRED_FIELDS if not data.get(name)]
        if missing:
            raise ValueError(f"Missing required field: {', '.join(missing)}")

        if data["site_type"] not in SITE_TYPES:
            raise ValueError(f"Unknown site_type: {data['site_type']}")

        source = SourceConfig.from_dict(data)
        if source.max_pages < 1:
            raise ValueError(f"max_pages must be positive: {source.max_pages}")

        # Sources may spell regions out ("경상남도"); store the short code
        if source.region:
            source.region = validate_region(source.region)
        return source


def load_sources(config_path: Optional[str] = None) -> list[SourceConfig]:
    """Load sources from ``config_path``, or the packaged sources.yml."""
    if not config_path:
        return ConfigLoader().load_sources()

    path = Path(config_path)
    return ConfigLoader(str(path.parent)).load_sources(path.name)


async def sync_sources(session: AsyncSession, sources: list[SourceConfig]) -> dict:
    """
    Upsert configured sources into crawl_sources by name.

    Returns:
        Counters: created, updated
    """
    repository = SourceRepository(session)
    counts = {"created": 0, "updated": 0}

    for source in sources:
        _, created = await repository.upsert(source.to_dict())
        counts["created" if created else "updated"] += 1

    logger.info("sources_synced", **counts)
    return counts
