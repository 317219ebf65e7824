"""
Attachment acquisition: download, name repair, type sniffing, upload and
text extraction for one project's resolved attachment URLs.
"""

from typing import Optional

import httpx
import structlog

from .core.fetcher import PageFetcher
from .core.file_types import (
    detect_file_type,
    file_type_from_name,
    filename_from_content_disposition,
    filename_from_url,
    parsing_priority,
    should_parse_file,
)
from .core.filename_repair import repair_filename
from .core.models import AttachmentData, CandidateRecord, DownloadedFile, FileType
from .exceptions import CrawlerError
from .extraction import TextExtractor
from .plugins.storage import StorageBackend

logger = structlog.get_logger(__name__)


def resolve_file_name(url: str, content_disposition: Optional[str] = None) -> str:
    """Server-declared name, else the URL basename; mojibake repaired."""
    name = filename_from_content_disposition(content_disposition) or filename_from_url(url)
    return repair_filename(name)


def failed_attachment(url: str, error: str) -> AttachmentData:
    """Row for an attachment that could not be downloaded."""
    name = repair_filename(filename_from_url(url))
    return AttachmentData(
        source_url=url,
        file_name=name,
        file_type=FileType.UNKNOWN,
        parse_error=error,
        parsing_priority=parsing_priority(name),
    )


class AttachmentProcessor:
    """
    Turns attachment URLs into attachment rows.

    Failures stay on the row (``parse_error``); nothing here raises for a
    single bad attachment.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        extractor: TextExtractor,
        storage: Optional[StorageBackend] = None,
    ):
        self.fetcher = fetcher
        self.extractor = extractor
        self.storage = storage

    async def download(self, url: str, referer: Optional[str], cookies: Optional[str]) -> DownloadedFile:
        response = await self.fetcher.download(url, referer=referer, cookies=cookies or None)
        file_name = resolve_file_name(url, response.headers.get("content-disposition"))

        file_type = detect_file_type(response.content)
        if not response.content:
            file_type = file_type_from_name(file_name)

        return DownloadedFile(
            source_url=url,
            file_name=file_name,
            content=response.content,
            file_type=file_type,
        )

    async def process_one(
        self,
        project_id,
        url: str,
        referer: Optional[str] = None,
        cookies: Optional[str] = None,
    ) -> AttachmentData:
        try:
            downloaded = await self.download(url, referer, cookies)
        except (CrawlerError, httpx.HTTPError) as e:
            logger.warning("attachment_download_failed", url=url, error=str(e))
            return failed_attachment(url, str(e) or e.__class__.__name__)

        data = AttachmentData(
            source_url=url,
            file_name=downloaded.file_name,
            file_type=downloaded.file_type,
            file_size=downloaded.size,
            should_parse=(
                should_parse_file(downloaded.file_name)
                and downloaded.file_type != FileType.UNKNOWN
            ),
            parsing_priority=parsing_priority(downloaded.file_name),
        )

        if not data.should_parse:
            logger.debug("attachment_not_parsed", file_name=data.file_name, file_type=data.file_type.value)
            return data

        if self.storage is not None:
            data.storage_path = await self.storage.upload(
                downloaded.content,
                project_id,
                downloaded.file_name,
                downloaded.file_type,
            )

        outcome = await self.extractor.extract(downloaded.content, downloaded.file_type)
        if outcome.success:
            data.is_parsed = True
            data.parsed_content = outcome.text
        else:
            data.parse_error = outcome.error or "No text extracted"

        logger.info(
            "attachment_processed",
            file_name=data.file_name,
            file_type=data.file_type.value,
            size=data.file_size,
            parsed=data.is_parsed,
            method=outcome.method,
        )
        return data

    async def process(self, project_id, record: CandidateRecord) -> list[AttachmentData]:
        """
        Process every attachment URL of a candidate.

        Returns:
            Attachment rows, highest parsing priority first
        """
        results = []
        for url in record.attachment_urls:
            results.append(await self.process_one(
                project_id,
                url,
                referer=record.detail_url,
                cookies=record.cookies,
            ))

        results.sort(key=lambda a: a.parsing_priority, reverse=True)
        return results


def first_parsed_text(attachments: list[AttachmentData]) -> Optional[str]:
    """Text of the highest-priority parsed attachment."""
    for attachment in attachments:
        if attachment.is_parsed and attachment.parsed_content:
            return attachment.parsed_content
    return None
