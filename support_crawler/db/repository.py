"""
Repositories over the async session.

Each repository wraps one AsyncSession; committing is left to the caller's
session scope.
"""

from datetime import datetime
from typing import Any, Iterable, Optional

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from support_crawler.core.filename_repair import is_corrupted_filename, repair_filename
from support_crawler.core.models import AttachmentData, CandidateRecord, JobStats, JobStatus
from support_crawler.core.normalizer import normalize_project
from support_crawler.exceptions import InvalidJobStateError, SourceNotFoundError

from .models import CrawlJob, CrawlSource, ProjectAttachment, SupportProject

logger = structlog.get_logger(__name__)

# Candidate fields copied onto a project row
PROJECT_FIELDS = (
    "name",
    "organization",
    "category",
    "sub_category",
    "target",
    "region",
    "amount_min",
    "amount_max",
    "amount_description",
    "start_date",
    "end_date",
    "deadline",
    "summary",
    "description",
    "eligibility",
    "contact_info",
    "website_url",
    "source_url",
    "detail_url",
)

# Analysis fields that only fill gaps left by the listing
ANALYSIS_FIELDS = (
    "summary",
    "eligibility",
    "amount_min",
    "amount_max",
    "start_date",
    "end_date",
    "deadline",
)


class SourceRepository:
    """Crawl source lookups and config sync."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, source_id) -> CrawlSource:
        source = await self.session.get(CrawlSource, source_id)
        if source is None:
            raise SourceNotFoundError(f"Crawl source not found: {source_id}")
        return source

    async def get_by_name(self, name: str) -> CrawlSource:
        result = await self.session.execute(select(CrawlSource).where(CrawlSource.name == name))
        source = result.scalar_one_or_none()
        if source is None:
            raise SourceNotFoundError(f"Crawl source not found: {name}")
        return source

    async def active_sources(self) -> list[CrawlSource]:
        result = await self.session.execute(
            select(CrawlSource).where(CrawlSource.is_active.is_(True)).order_by(CrawlSource.name)
        )
        return list(result.scalars())

    async def upsert(self, values: dict) -> tuple[CrawlSource, bool]:
        """Create or update a source by name. Returns (source, created)."""
        result = await self.session.execute(
            select(CrawlSource).where(CrawlSource.name == values["name"])
        )
        source = result.scalar_one_or_none()
        if source is None:
            source = CrawlSource(**values)
            self.session.add(source)
            await self.session.flush()
            return source, True

        for key, value in values.items():
            setattr(source, key, value)
        await self.session.flush()
        return source, False


class ProjectRepository:
    """Support project persistence keyed on the natural key."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, project_id) -> Optional[SupportProject]:
        return await self.session.get(SupportProject, project_id)

    async def find_existing(self, record: CandidateRecord) -> Optional[SupportProject]:
        """
        Match on external_id when present, else (name, organization).

        Soft-deleted rows match too: a re-crawl refreshes them but never
        clears ``deleted_at``.
        """
        if record.external_id:
            stmt = select(SupportProject).where(SupportProject.external_id == record.external_id)
        else:
            stmt = select(SupportProject).where(
                SupportProject.name == record.name,
                SupportProject.organization == record.organization,
            )

        result = await self.session.execute(stmt.limit(1))
        return result.scalar_one_or_none()

    async def upsert(
        self,
        record: CandidateRecord,
        analysis: Optional[Any] = None,
    ) -> tuple[SupportProject, bool]:
        """
        Create or update the project for a candidate.

        Listing values win over analysis values; analysis only fills fields
        the listing left empty. Existing values are never cleared.

        Returns:
            (project, created)
        """
        values = {name: getattr(record, name) for name in PROJECT_FIELDS}
        if analysis is not None:
            for name in ANALYSIS_FIELDS:
                if values.get(name) is None and getattr(analysis, name, None) is not None:
                    values[name] = getattr(analysis, name)

        normalized = normalize_project(record.name)
        values.update(
            attachment_urls=list(record.attachment_urls),
            normalized_name=normalized.normalized_name,
            project_year=normalized.project_year,
            crawled_at=datetime.utcnow(),
            needs_embedding=True,
        )

        project = await self.find_existing(record)
        if project is None:
            project = SupportProject(external_id=record.external_id, **values)
            self.session.add(project)
            await self.session.flush()
            logger.debug("project_created", project_id=str(project.id), name=record.name)
            return project, True

        for key, value in values.items():
            if value is None:
                continue
            if key == "attachment_urls" and not value and project.attachment_urls:
                continue
            setattr(project, key, value)

        await self.session.flush()
        logger.debug("project_updated", project_id=str(project.id), name=record.name)
        return project, False

    async def apply_analysis(self, project: SupportProject, analysis: Any) -> list[str]:
        """Fill empty project fields from an analysis result. Returns the filled names."""
        filled = []
        for name in ANALYSIS_FIELDS:
            value = getattr(analysis, name, None)
            if value is not None and getattr(project, name) is None:
                setattr(project, name, value)
                filled.append(name)

        if filled:
            project.needs_embedding = True
            await self.session.flush()
        return filled

    async def replace_attachments(
        self,
        project_id,
        attachments: Iterable[AttachmentData],
    ) -> int:
        """Delete the project's attachment rows and write the new set."""
        await self.session.execute(
            delete(ProjectAttachment).where(ProjectAttachment.project_id == project_id)
        )

        count = 0
        for data in attachments:
            self.session.add(ProjectAttachment(
                project_id=project_id,
                file_name=data.file_name,
                file_type=data.file_type.value,
                file_size=data.file_size,
                storage_path=data.storage_path,
                source_url=data.source_url,
                should_parse=data.should_parse,
                is_parsed=data.is_parsed,
                parsed_content=data.parsed_content,
                parse_error=data.parse_error,
                parsing_priority=data.parsing_priority,
            ))
            count += 1

        await self.session.flush()
        return count

    async def attachments(self, project_id) -> list[ProjectAttachment]:
        result = await self.session.execute(
            select(ProjectAttachment)
            .where(ProjectAttachment.project_id == project_id)
            .order_by(ProjectAttachment.parsing_priority.desc(), ProjectAttachment.file_name)
        )
        return list(result.scalars())

    async def count_attachments(self, project_id) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(ProjectAttachment).where(
                ProjectAttachment.project_id == project_id
            )
        )
        return result.scalar_one()

    async def repair_attachment_names(self, apply: bool = False) -> list[tuple[str, str]]:
        """
        Find stored attachment names that are mojibake and can be repaired.

        Args:
            apply: Write the repaired names back

        Returns:
            (original, repaired) pairs
        """
        result = await self.session.execute(select(ProjectAttachment))
        repairs = []
        for attachment in result.scalars():
            if not is_corrupted_filename(attachment.file_name):
                continue
            repaired = repair_filename(attachment.file_name)
            if repaired == attachment.file_name:
                continue
            repairs.append((attachment.file_name, repaired))
            if apply:
                attachment.file_name = repaired

        if apply and repairs:
            await self.session.flush()
        logger.info("attachment_names_checked", repairable=len(repairs), applied=apply)
        return repairs

    async def soft_delete(self, project_id) -> None:
        project = await self.get(project_id)
        if project is not None and project.deleted_at is None:
            project.deleted_at = datetime.utcnow()
            await self.session.flush()


class JobRepository:
    """Crawl job state transitions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_job(self, source_id) -> CrawlJob:
        job = CrawlJob(source_id=source_id, status=JobStatus.PENDING.value)
        self.session.add(job)
        await self.session.flush()
        return job

    async def get(self, job_id) -> Optional[CrawlJob]:
        return await self.session.get(CrawlJob, job_id)

    async def pending_jobs(self, limit: int = 5) -> list[CrawlJob]:
        result = await self.session.execute(
            select(CrawlJob)
            .where(CrawlJob.status == JobStatus.PENDING.value)
            .order_by(CrawlJob.created_at)
            .limit(limit)
        )
        return list(result.scalars())

    async def mark_running(self, job: CrawlJob) -> CrawlJob:
        """
        Raises:
            InvalidJobStateError: job is not pending
        """
        if job.status != JobStatus.PENDING.value:
            raise InvalidJobStateError(f"Job {job.id} is {job.status}, expected pending")

        job.status = JobStatus.RUNNING.value
        job.started_at = datetime.utcnow()
        await self.session.flush()
        return job

    def _require_running(self, job: CrawlJob) -> None:
        if job.status != JobStatus.RUNNING.value:
            raise InvalidJobStateError(f"Job {job.id} is {job.status}, expected running")

    async def mark_completed(self, job: CrawlJob, stats: JobStats) -> CrawlJob:
        """
        Raises:
            InvalidJobStateError: job is not running
        """
        self._require_running(job)
        job.status = JobStatus.COMPLETED.value
        job.completed_at = datetime.utcnow()
        job.projects_found = stats.projects_found
        job.projects_new = stats.projects_new
        job.projects_updated = stats.projects_updated
        await self.session.flush()
        return job

    async def mark_failed(self, job: CrawlJob, message: str) -> CrawlJob:
        """
        Raises:
            InvalidJobStateError: job is not running
        """
        self._require_running(job)
        job.status = JobStatus.FAILED.value
        job.completed_at = datetime.utcnow()
        job.error_message = message
        await self.session.flush()
        return job
