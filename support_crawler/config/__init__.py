"""
Configuration module for crawl sources and worker settings.

Provides:
- YAML config loading with validation
- Source definitions and sync into the database
- Environment variable substitution
- Worker settings from the environment
"""

from .loader import ConfigLoader, load_sources, substitute_env_vars, sync_sources
from .settings import CrawlerSettings

__all__ = [
    "ConfigLoader",
    "CrawlerSettings",
    "load_sources",
    "substitute_env_vars",
    "sync_sources",
]
