"""
Support Crawler - Korean government support-program crawler.

Architecture:
- core/: Stable foundation (models, HTTP/browser fetching, normalization,
  similarity, deduplication)
- parsers/: Site-family listing parsers and detail/attachment resolution
- navigators/: Listing discovery (paginated)
- plugins/: External collaborators (parsing service, PDF/HWPX, LLM, storage)
- db/: SQLAlchemy models, sessions and repositories
- config/: YAML-driven source definitions and environment settings
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
