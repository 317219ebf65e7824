"""
Listing parsers for support-program announcement sites.

Parsers handle the extraction side of a crawl: turning listing pages into
CandidateRecord objects and detail pages into attachment URLs.

Site families:
- BizinfoParser: bizinfo.go.kr (JSON API or HTML board)
- KStartupParser: k-startup.go.kr card list
- TechnoparkParser: regional *tp.or.kr notice boards
"""

from .base import (
    ListingParser,
    ParserRegistry,
    REGISTRY,
    get_parser,
    is_within_time_window,
    register_parser,
)
from .bizinfo import BizinfoParser
from .kstartup import KStartupParser
from .technopark import TechnoparkParser
from .detail import DetailResolver

__all__ = [
    "ListingParser",
    "ParserRegistry",
    "REGISTRY",
    "get_parser",
    "is_within_time_window",
    "register_parser",
    "BizinfoParser",
    "KStartupParser",
    "TechnoparkParser",
    "DetailResolver",
]
