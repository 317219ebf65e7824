"""
Text extraction for downloaded attachments.

The document-parsing service is tried first; PDF and HWPX fall back to
local extraction when the service is unreachable, fails or returns no text.
Legacy HWP (OLE) has no local fallback.
"""

import asyncio
from typing import Optional

import structlog

from .core.models import ExtractionOutcome, FileType
from .plugins.hwpx import extract_text_from_hwpx
from .plugins.pdf import extract_text_from_pdf
from .plugins.text_parser import TextParserClient

logger = structlog.get_logger(__name__)

DEFAULT_MAX_TEXT_LENGTH = 100000

LOCAL_EXTRACTORS = {
    FileType.PDF: ("pdfplumber", extract_text_from_pdf),
    FileType.HWPX: ("hwpx", extract_text_from_hwpx),
}


class TextExtractor:
    """
    Service-first text extraction with local fallbacks.

    Service availability is checked once per extractor and cached.
    """

    def __init__(
        self,
        text_parser: Optional[TextParserClient] = None,
        max_length: int = DEFAULT_MAX_TEXT_LENGTH,
    ):
        self.text_parser = text_parser
        self.max_length = max_length
        self._service_available: Optional[bool] = None

    async def service_available(self) -> bool:
        if self.text_parser is None:
            return False
        if self._service_available is None:
            self._service_available = await self.text_parser.is_available()
            logger.info("parser_service_checked", available=self._service_available)
        return self._service_available

    def _truncate(self, outcome: ExtractionOutcome) -> ExtractionOutcome:
        if len(outcome.text) > self.max_length:
            logger.debug("parsed_text_truncated", chars=len(outcome.text), limit=self.max_length)
            outcome.text = outcome.text[:self.max_length]
        return outcome

    async def extract(self, content: bytes, file_type: FileType) -> ExtractionOutcome:
        """
        Extract text from a document.

        Returns:
            ExtractionOutcome; ``error`` explains why no text came back
        """
        if file_type == FileType.UNKNOWN:
            return ExtractionOutcome(error="Unsupported file type")

        service_outcome = None
        if await self.service_available():
            service_outcome = await self.text_parser.parse(content, file_type)
            if service_outcome.success:
                return self._truncate(service_outcome)

        local = LOCAL_EXTRACTORS.get(file_type)
        if local is None:
            if service_outcome is not None:
                return ExtractionOutcome(
                    error=service_outcome.error or "Parser service returned no text",
                    method=service_outcome.method,
                )
            return ExtractionOutcome(error=f"No local extractor for {file_type.value}")

        method, extractor = local
        try:
            text = await asyncio.to_thread(extractor, content)
        except Exception as e:
            logger.error("local_extraction_failed", method=method, error=str(e))
            text = None
            local_error = f"{method} failed: {str(e) or e.__class__.__name__}"
        else:
            local_error = f"{method} extracted no text"

        if text and text.strip():
            logger.info("local_extraction_used", method=method, chars=len(text))
            return self._truncate(ExtractionOutcome(text=text, method=method))

        reasons = []
        if service_outcome is not None and service_outcome.error:
            reasons.append(service_outcome.error)
        reasons.append(local_error)
        return ExtractionOutcome(error="; ".join(reasons), method=method)
