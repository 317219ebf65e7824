"""
Client for the external document-parsing service (HWP/HWPX/PDF to text).

Endpoints:
    POST /api/v1/extract/hwp-to-json   structured JSON (mode "full")
    POST /api/v1/extract/hwp-to-text   plain text (mode "text")
    GET  /health
"""

from typing import Any

import httpx
import structlog

from support_crawler.core.file_types import mime_type
from support_crawler.core.http_client import HttpClient
from support_crawler.core.models import ExtractionOutcome, FileType
from support_crawler.exceptions import CrawlerError, ParserServiceError

logger = structlog.get_logger(__name__)

DEFAULT_TEXT_PARSER_URL = "https://hwp-api.onrender.com"
PARSE_TIMEOUT = 60.0
HEALTH_TIMEOUT = 5.0

ENDPOINTS = {
    "text": "/api/v1/extract/hwp-to-text",
    "full": "/api/v1/extract/hwp-to-json",
}


def text_from_response(data: Any) -> str:
    """
    Pull text out of a parser response.

    Raises:
        ParserServiceError: the payload reports an error
    """
    if not isinstance(data, dict):
        raise ParserServiceError(f"Unexpected parser response: {type(data).__name__}")

    if (
        data.get("success") is False
        or data.get("status") == "error"
        or data.get("error")
        or data.get("detail")
    ):
        message = data.get("error") or data.get("detail") or data.get("message") or "Unknown parser error"
        raise ParserServiceError(str(message))

    if data.get("text"):
        return data["text"]

    content = data.get("content")
    if isinstance(content, str):
        return content

    if isinstance(content, dict):
        if content.get("text"):
            return content["text"]

        paragraphs = content.get("paragraphs") or []
        texts = [
            p.get("text", "") for p in paragraphs
            if isinstance(p, dict) and (p.get("text") or "").strip()
        ]
        if texts:
            return "\n\n".join(texts)

    return ""


class TextParserClient:
    """
    Document-parsing service client.

    Usage:
        async with HttpClient() as http:
            parser = TextParserClient(http)
            outcome = await parser.parse(content, FileType.HWP)
    """

    def __init__(self, http_client: HttpClient, base_url: str = DEFAULT_TEXT_PARSER_URL):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")

    async def is_available(self) -> bool:
        """GET /health with a short timeout."""
        return await self.http_client.ping(f"{self.base_url}/health", timeout=HEALTH_TIMEOUT)

    async def parse(
        self,
        content: bytes,
        file_type: FileType,
        mode: str = "full",
    ) -> ExtractionOutcome:
        """
        Send a document to the service.

        Returns:
            ExtractionOutcome with text, or with ``error`` set on failure
        """
        url = f"{self.base_url}{ENDPOINTS.get(mode, ENDPOINTS['full'])}"
        file_name = f"document.{file_type.value}"

        logger.info("parser_service_request", url=url, file_type=file_type.value, size=len(content))

        try:
            response = await self.http_client.post_file(
                url,
                file_name,
                content,
                mime_type(file_type),
                timeout=PARSE_TIMEOUT,
            )
            text = text_from_response(response.json())
        except (CrawlerError, httpx.HTTPError, ValueError) as e:
            logger.error("parser_service_failed", url=url, error=str(e))
            return ExtractionOutcome(error=str(e) or e.__class__.__name__, method="service")

        if not text.strip():
            logger.warning("parser_service_empty", file_type=file_type.value)
        else:
            logger.info("parser_service_extracted", chars=len(text))

        return ExtractionOutcome(text=text, method="service")
