"""
SQLAlchemy ORM models for crawl persistence.

Models:
    - CrawlSource: a listing page to crawl (site family, default region)
    - CrawlJob: one crawl run of a source
    - SupportProject: a normalized support-program announcement
    - ProjectGroup: a set of duplicate announcements with one canonical member
    - ProjectAttachment: a downloaded attachment and its extracted text

All models use UUID primary keys and include timestamps for auditing.
Relations are plain foreign keys; callers query related rows explicitly so
nothing lazy-loads inside an async session.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import declarative_base

from support_crawler.core.models import JobStatus, ReviewStatus

Base = declarative_base()


class UUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL's UUID type when available, otherwise uses String(36).
    """
    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(value)


class TimestampMixin:
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class CrawlSource(TimestampMixin, Base):
    """
    Crawl source model.

    Attributes:
        name: Display name, unique (e.g. "경남테크노파크")
        url: Listing page URL
        site_type: Site-family key selecting the listing parser
        region: Default region for items that carry none
        config: Free-form options (max_pages, page_param, time_window_hours)
        last_crawled: Completion time of the last successful job
    """

    __tablename__ = "crawl_sources"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False, unique=True, index=True)
    url = Column(Text, nullable=False)
    site_type = Column(String(50), nullable=False, default="technopark")
    region = Column(String(20), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    last_crawled = Column(DateTime, nullable=True)
    config = Column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<CrawlSource(id={self.id}, name={self.name}, site_type={self.site_type})>"


class CrawlJob(TimestampMixin, Base):
    """
    Crawl job model.

    Status flow: pending -> running -> completed | failed. Terminal jobs
    are never reprocessed.
    """

    __tablename__ = "crawl_jobs"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    source_id = Column(
        UUID(), ForeignKey("crawl_sources.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = Column(String(20), nullable=False, default=JobStatus.PENDING.value, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    projects_found = Column(Integer, nullable=False, default=0)
    projects_new = Column(Integer, nullable=False, default=0)
    projects_updated = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<CrawlJob(id={self.id}, source_id={self.source_id}, status={self.status})>"


class SupportProject(TimestampMixin, Base):
    """
    Support-program announcement.

    Natural key is ``external_id`` when the site provides one, otherwise
    (name, organization). Rows are soft-deleted via ``deleted_at``.
    """

    __tablename__ = "support_projects"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    external_id = Column(String(255), nullable=True, unique=True)

    name = Column(Text, nullable=False)
    organization = Column(String(255), nullable=False)
    category = Column(String(50), nullable=False, default="기타")
    sub_category = Column(String(100), nullable=True)
    target = Column(String(255), nullable=False, default="중소기업")
    region = Column(String(20), nullable=False, default="전국", index=True)

    amount_min = Column(Integer, nullable=True)
    amount_max = Column(Integer, nullable=True)
    amount_description = Column(Text, nullable=True)

    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    deadline = Column(DateTime, nullable=True)
    is_permanent = Column(Boolean, nullable=False, default=False)

    summary = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    eligibility = Column(Text, nullable=True)
    application_process = Column(Text, nullable=True)
    evaluation_criteria = Column(Text, nullable=True)
    contact_info = Column(Text, nullable=True)

    website_url = Column(Text, nullable=True)
    source_url = Column(Text, nullable=False)
    detail_url = Column(Text, nullable=True)
    attachment_urls = Column(JSON, nullable=False, default=list)

    status = Column(String(20), nullable=False, default="active", index=True)
    crawled_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    # Deduplication
    normalized_name = Column(Text, nullable=True, index=True)
    project_year = Column(Integer, nullable=True)
    group_id = Column(
        UUID(), ForeignKey("project_groups.id", ondelete="SET NULL"), nullable=True, index=True
    )
    is_canonical = Column(Boolean, nullable=False, default=True)

    needs_embedding = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_support_projects_name_org", "name", "organization"),
    )

    def __repr__(self) -> str:
        return f"<SupportProject(id={self.id}, name={self.name!r})>"


class ProjectGroup(TimestampMixin, Base):
    """
    Group of duplicate announcements.

    ``group_key`` (see ``make_group_key``) is unique so concurrent creators
    of the same group converge on one row.
    """

    __tablename__ = "project_groups"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    normalized_name = Column(Text, nullable=False)
    project_year = Column(Integer, nullable=True)
    group_key = Column(String(512), nullable=False, unique=True)

    canonical_project_id = Column(UUID(), nullable=True)
    merge_confidence = Column(Float, nullable=False, default=1.0)
    review_status = Column(String(20), nullable=False, default=ReviewStatus.AUTO.value)
    source_count = Column(Integer, nullable=False, default=1)
    merged_data = Column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<ProjectGroup(id={self.id}, key={self.group_key!r}, count={self.source_count})>"


class ProjectAttachment(TimestampMixin, Base):
    """Attachment of a project; replaced wholesale on re-crawl."""

    __tablename__ = "project_attachments"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    project_id = Column(
        UUID(), ForeignKey("support_projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_name = Column(String(512), nullable=False)
    file_type = Column(String(20), nullable=False, default="unknown")
    file_size = Column(Integer, nullable=False, default=0)
    storage_path = Column(Text, nullable=True)
    source_url = Column(Text, nullable=False)

    should_parse = Column(Boolean, nullable=False, default=False)
    is_parsed = Column(Boolean, nullable=False, default=False)
    parsed_content = Column(Text, nullable=True)
    parse_error = Column(Text, nullable=True)
    parsing_priority = Column(Integer, nullable=False, default=10)

    def __repr__(self) -> str:
        return f"<ProjectAttachment(id={self.id}, file_name={self.file_name!r})>"


def make_group_key(normalized_name: str, project_year, region: str = "전국", seed_id=None) -> str:
    """
    Natural key of a group: "{normalized_name}|{year}|{region}".

    Singleton groups append the seed project id, so only groups formed by
    a match share a key and converge under concurrent creation.
    """
    parts = [normalized_name, "" if project_year is None else str(project_year), region]
    if seed_id is not None:
        parts.append(str(seed_id))
    return "|".join(parts)
