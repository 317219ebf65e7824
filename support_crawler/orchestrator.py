"""
Crawl job orchestrator.

Coordinates, per job:
- Listing discovery (paginated navigator + site parser)
- Detail resolution (attachment URLs, cookies)
- Attachment acquisition and text extraction
- Announcement analysis
- Persistence upsert and deduplication
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

import structlog

from .acquisition import AttachmentProcessor, first_parsed_text
from .config.settings import CrawlerSettings
from .core.browser import BrowserSession
from .core.deduplicator import Deduplicator
from .core.fetcher import PageFetcher
from .core.http_client import HttpClient
from .core.models import CandidateRecord, JobStats
from .db.repository import JobRepository, ProjectRepository, SourceRepository
from .db.session import Database
from .exceptions import CrawlerError, InvalidJobStateError
from .extraction import TextExtractor
from .navigators.base import SourceConfig
from .navigators.paginated import PaginatedNavigator
from .parsers.base import REGISTRY, ListingParser, ParserRegistry
from .parsers.detail import DetailResolver
from .plugins.llm import ProjectAnalyzer
from .plugins.storage import LocalStorage, StorageBackend
from .plugins.text_parser import TextParserClient

logger = structlog.get_logger(__name__)


class CrawlWorker:
    """
    Runs crawl jobs one after another.

    Collaborators are injectable; ``open_worker`` wires the production set.
    """

    def __init__(
        self,
        database: Database,
        fetcher: PageFetcher,
        settings: Optional[CrawlerSettings] = None,
        extractor: Optional[TextExtractor] = None,
        analyzer: Optional[ProjectAnalyzer] = None,
        storage: Optional[StorageBackend] = None,
        deduplicator: Optional[Deduplicator] = None,
        registry: ParserRegistry = REGISTRY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.database = database
        self.fetcher = fetcher
        self.settings = settings or CrawlerSettings()
        self.analyzer = analyzer
        self.deduplicator = deduplicator or Deduplicator()
        self.registry = registry
        self._sleep = sleep

        self.navigator = PaginatedNavigator(fetcher, page_delay=self.settings.page_delay, sleep=sleep)
        self.resolver = DetailResolver(fetcher, detail_delay=self.settings.detail_delay, sleep=sleep)
        self.attachments = AttachmentProcessor(
            fetcher,
            extractor or TextExtractor(max_length=self.settings.max_parsed_text_length),
            storage,
        )

    def source_config(self, source) -> SourceConfig:
        """Source row to SourceConfig; worker settings fill what the row leaves out."""
        config = source.config or {}
        return SourceConfig.from_model(
            source,
            max_pages=None if "max_pages" in config else self.settings.max_pages,
            time_window_hours=None if "time_window_hours" in config else self.settings.time_window_hours,
        )

    def parser_for(self, source: SourceConfig) -> ListingParser:
        """
        Raises:
            CrawlerError: no parser handles the source
        """
        parser = self.registry.for_url(source.url, source.site_type)
        if parser is None:
            raise CrawlerError(f"No parser for source {source.name} ({source.site_type})")
        return parser

    async def enqueue(self, source_name: Optional[str] = None) -> list:
        """
        Create pending jobs for one source, or for every active source.

        Returns:
            Created job ids
        """
        async with self.database.session() as session:
            sources = SourceRepository(session)
            jobs = JobRepository(session)

            if source_name:
                targets = [await sources.get_by_name(source_name)]
            else:
                targets = await sources.active_sources()

            job_ids = []
            for source in targets:
                job = await jobs.create_job(source.id)
                job_ids.append(job.id)
                logger.info("job_enqueued", job_id=str(job.id), source=source.name)

        return job_ids

    async def _start_job(self, job_id):
        """Mark the job running. Returns its source id."""
        async with self.database.session() as session:
            jobs = JobRepository(session)
            job = await jobs.get(job_id)
            if job is None:
                raise InvalidJobStateError(f"Job not found: {job_id}")

            await jobs.mark_running(job)
            return job.source_id

    async def _load_source(self, source_id) -> SourceConfig:
        async with self.database.session() as session:
            source = await SourceRepository(session).get(source_id)
            return self.source_config(source)

    async def _finish_job(self, job_id, stats: JobStats) -> None:
        async with self.database.session() as session:
            jobs = JobRepository(session)
            job = await jobs.get(job_id)
            await jobs.mark_completed(job, stats)
            source = await SourceRepository(session).get(job.source_id)
            source.last_crawled = job.completed_at

    async def _fail_job(self, job_id, message: str) -> None:
        async with self.database.session() as session:
            jobs = JobRepository(session)
            job = await jobs.get(job_id)
            if job is not None:
                await jobs.mark_failed(job, message)

    async def process_job(self, job_id) -> JobStats:
        """
        Run one pending job to completion.

        Any failure after the job is marked running, including a source
        that cannot be loaded, marks it failed with the error message; the
        exception is not re-raised.

        Raises:
            InvalidJobStateError: job missing or not pending
        """
        source_id = await self._start_job(job_id)
        log = logger.bind(job_id=str(job_id))

        stats = JobStats()
        try:
            source = await self._load_source(source_id)
            log = log.bind(source=source.name)
            log.info("job_started", url=source.url, site_type=source.site_type)

            parser = self.parser_for(source)

            candidates = await self.navigator.discover(source, parser)
            stats.projects_found = len(candidates)

            await self.resolver.resolve(candidates, parser)

            if self.settings.test_mode:
                candidates = candidates[:self.settings.test_max_projects]
                log.info("test_mode_truncated", projects=len(candidates))

            for index, record in enumerate(candidates):
                log.info("processing_project", index=index + 1, total=len(candidates), name=record.name)
                await self.process_record(record, stats)

                if record.attachment_urls and self.settings.project_delay:
                    await self._sleep(self.settings.project_delay)

        except Exception as e:
            # Job boundary: record the failure and keep the worker alive
            message = str(e) or e.__class__.__name__
            log.error("job_failed", error=message, error_type=e.__class__.__name__)
            await self._fail_job(job_id, message)
            stats.failed = True
            return stats

        await self._finish_job(job_id, stats)
        log.info("job_completed", **stats.to_dict())
        return stats

    async def process_record(self, record: CandidateRecord, stats: JobStats) -> None:
        """Save one candidate with its attachments, analysis and group."""
        async with self.database.session() as session:
            project, created = await ProjectRepository(session).upsert(record)
            project_id = project.id

        if created:
            stats.projects_new += 1
        else:
            stats.projects_updated += 1

        attachments = await self.attachments.process(project_id, record)
        stats.errors += sum(1 for a in attachments if a.parse_error)

        analysis = None
        text = first_parsed_text(attachments)
        if text and self.analyzer is not None and self.analyzer.is_available():
            analysis = await self.analyzer.analyze(text)

        async with self.database.session() as session:
            projects = ProjectRepository(session)
            project = await projects.get(project_id)

            if analysis is not None and not analysis.is_empty:
                await projects.apply_analysis(project, analysis)

            if attachments:
                stats.attachments_saved += await projects.replace_attachments(project_id, attachments)

            # Soft-deleted projects stay out of groups
            if project.deleted_at is not None:
                logger.info("deleted_project_refreshed", project_id=str(project_id), name=record.name)
                return

            outcome = await self.deduplicator.process_project(session, project)

        logger.debug(
            "project_saved",
            project_id=str(project_id),
            created=created,
            attachments=len(attachments),
            dedup_action=outcome.action,
            group_id=str(outcome.group_id),
        )

    async def process_pending_jobs(self, limit: int = 5) -> list[JobStats]:
        """Run up to ``limit`` pending jobs, oldest first."""
        async with self.database.session() as session:
            pending = await JobRepository(session).pending_jobs(limit)
            job_ids = [job.id for job in pending]

        logger.info("pending_jobs_found", count=len(job_ids))

        results = []
        for job_id in job_ids:
            try:
                results.append(await self.process_job(job_id))
            except InvalidJobStateError as e:
                # Picked up by another worker in the meantime
                logger.warning("job_skipped", job_id=str(job_id), error=str(e))
            except Exception as e:
                # Keep going with the rest of the batch
                logger.error("job_crashed", job_id=str(job_id), error=str(e), error_type=e.__class__.__name__)

        return results


@asynccontextmanager
async def open_worker(
    settings: CrawlerSettings,
    database: Database,
) -> AsyncIterator[CrawlWorker]:
    """
    Production worker: HTTP client, lazy browser, parsing service, local
    storage and whichever LLM provider is configured.
    """
    async with HttpClient() as http_client, BrowserSession(headless=settings.browser_headless) as browser:
        browser.install_signal_handlers()

        extractor = TextExtractor(
            TextParserClient(http_client, settings.text_parser_url),
            max_length=settings.max_parsed_text_length,
        )
        yield CrawlWorker(
            database,
            PageFetcher(http_client, browser),
            settings=settings,
            extractor=extractor,
            analyzer=ProjectAnalyzer(),
            storage=LocalStorage(settings.storage_dir),
        )
