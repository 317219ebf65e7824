"""
CLI entry point for support-crawler.

Usage:
    python -m support_crawler init-db
    python -m support_crawler sync-sources
    python -m support_crawler crawl 기업마당
    python -m support_crawler run-pending --limit 5
"""

import argparse
import asyncio
import logging
import sys

import structlog

# Log level mapping
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def setup_logging(level: str = "INFO", json_output: bool = False):
    """Configure structured logging."""
    log_level = LOG_LEVELS.get(level.upper(), logging.INFO)

    if json_output:
        structlog.configure(
            processors=[
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.JSONRenderer(ensure_ascii=False),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(log_level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )
    else:
        structlog.configure(
            processors=[
                structlog.processors.add_log_level,
                structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
                structlog.dev.ConsoleRenderer(colors=True),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(log_level),
            context_class=dict,
            logger_factory=structlog.PrintLoggerFactory(),
            cache_logger_on_first_use=True,
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="support_crawler",
        description="Korean government support-program crawler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create tables and load the configured sources
  python -m support_crawler init-db
  python -m support_crawler sync-sources

  # Crawl one source now
  python -m support_crawler crawl K-Startup

  # Queue every active source, then work the queue
  python -m support_crawler enqueue
  python -m support_crawler run-pending --limit 5

  # Show (or fix) mojibake attachment names
  python -m support_crawler repair-filenames --apply

Settings come from the environment (DATABASE_URL, CRAWLER_TEST_MODE, ...).
        """,
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to sources.yml config file",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON (for production)",
    )

    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version and exit",
    )

    commands = parser.add_subparsers(dest="command")

    commands.add_parser("init-db", help="Create database tables")
    commands.add_parser("sync-sources", help="Upsert sources.yml into the database")

    enqueue = commands.add_parser("enqueue", help="Create pending crawl jobs")
    enqueue.add_argument("--source", type=str, help="Source name (default: every active source)")

    run_pending = commands.add_parser("run-pending", help="Run pending jobs, oldest first")
    run_pending.add_argument("--limit", type=int, default=5, help="Maximum jobs to run (default: 5)")

    crawl = commands.add_parser("crawl", help="Enqueue and immediately run one source")
    crawl.add_argument("source", type=str, help="Source name")

    repair = commands.add_parser("repair-filenames", help="Repair mojibake attachment names")
    repair.add_argument("--apply", action="store_true", help="Write repaired names (default: report only)")

    commands.add_parser("dedupe-backfill", help="Normalize and group existing projects")

    return parser


async def main_async(args) -> int:
    """Async main function. Returns the process exit code."""
    from .config import CrawlerSettings, load_sources, sync_sources
    from .core.deduplicator import Deduplicator
    from .db import Database, ProjectRepository
    from .orchestrator import open_worker

    logger = structlog.get_logger(__name__)

    settings = CrawlerSettings.from_env()
    database = Database(settings.database_url)

    try:
        if args.command == "init-db":
            await database.init_db()
            logger.info("database_initialized", url=settings.database_url)
            return 0

        if args.command == "sync-sources":
            sources = load_sources(args.config)
            async with database.session() as session:
                await sync_sources(session, sources)
            return 0

        if args.command == "repair-filenames":
            async with database.session() as session:
                repairs = await ProjectRepository(session).repair_attachment_names(apply=args.apply)
            for original, repaired in repairs:
                print(f"{original} -> {repaired}")
            return 0

        if args.command == "dedupe-backfill":
            deduplicator = Deduplicator()
            batch_size = 50
            while True:
                async with database.session() as session:
                    processed, remaining = await deduplicator.update_normalized_fields(session)
                logger.info("normalized_batch", processed=processed, remaining=remaining)
                if not processed or not remaining:
                    break
            while True:
                async with database.session() as session:
                    counts = await deduplicator.group_existing_projects(session, batch_size=batch_size)
                logger.info("grouped_batch", **counts)
                if counts["processed"] < batch_size:
                    break
            return 0

        async with open_worker(settings, database) as worker:
            if args.command == "enqueue":
                await worker.enqueue(args.source)
                return 0

            if args.command == "run-pending":
                results = await worker.process_pending_jobs(args.limit)
                return 1 if any(stats.failed for stats in results) else 0

            if args.command == "crawl":
                job_ids = await worker.enqueue(args.source)
                failed = False
                for job_id in job_ids:
                    stats = await worker.process_job(job_id)
                    logger.info("crawl_finished", source=args.source, **stats.to_dict())
                    failed = failed or stats.failed
                return 1 if failed else 0

        return 2
    finally:
        await database.dispose()


def main():
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if args.version:
        from . import __version__
        print(f"support-crawler {__version__}")
        sys.exit(0)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    setup_logging(args.log_level, args.json_logs)

    try:
        sys.exit(asyncio.run(main_async(args)))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        logger = structlog.get_logger(__name__)
        logger.exception("fatal_error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
