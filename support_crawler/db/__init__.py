"""
Persistence layer: ORM models, async session management and repositories.
"""

from .models import (
    Base,
    CrawlJob,
    CrawlSource,
    ProjectAttachment,
    ProjectGroup,
    SupportProject,
    make_group_key,
)
from .session import Database, DEFAULT_DATABASE_URL
from .repository import JobRepository, ProjectRepository, SourceRepository

__all__ = [
    "Base",
    "CrawlJob",
    "CrawlSource",
    "ProjectAttachment",
    "ProjectGroup",
    "SupportProject",
    "make_group_key",
    "Database",
    "DEFAULT_DATABASE_URL",
    "JobRepository",
    "ProjectRepository",
    "SourceRepository",
]
