"""
Navigator strategies for announcement discovery.

Navigators handle the discovery phase - walking a source's listing
page(s) and collecting in-window candidates.

Strategies:
- PaginatedNavigator: numbered listing pages, newest first
"""

from .base import NavigatorStrategy, SourceConfig
from .paginated import PaginatedNavigator

__all__ = [
    "NavigatorStrategy",
    "SourceConfig",
    "PaginatedNavigator",
]
