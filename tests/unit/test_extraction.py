"""Tests for text extraction, the parsing service client and storage."""

import io
import zipfile
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from support_crawler.core.http_client import HttpClient
from support_crawler.core.models import ExtractionOutcome, FileType
from support_crawler.exceptions import ParserServiceError
from support_crawler.extraction import TextExtractor
from support_crawler.plugins.hwpx import extract_text_from_hwpx
from support_crawler.plugins.pdf import _table_row, extract_text_from_pdf
from support_crawler.plugins.storage import LocalStorage
from support_crawler.plugins.text_parser import TextParserClient, text_from_response

SECTION_XML = """<?xml version="1.0" encoding="UTF-8"?>
<hs:sec xmlns:hs="http://www.hancom.co.kr/hwpml/2011/section"
        xmlns:hp="http://www.hancom.co.kr/hwpml/2011/paragraph">
  <hp:p><hp:run><hp:t>{first}</hp:t><hp:t>{second}</hp:t></hp:run></hp:p>
  <hp:p><hp:run><hp:t>{third}</hp:t></hp:run></hp:p>
</hs:sec>
"""


def make_hwpx(sections: dict) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("mimetype", "application/hwp+zip")
        for name, xml in sections.items():
            archive.writestr(name, xml.encode("utf-8"))
    return buffer.getvalue()


def corrupt_hwpx() -> bytes:
    """HWPX whose deflated section stream has been damaged."""
    name = "Contents/section0.xml"
    xml = SECTION_XML.format(first="".join(f"{n}번 항목 " for n in range(200)), second="대상", third="중소기업")
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(name, xml.encode("utf-8"))

    data = bytearray(buffer.getvalue())
    start = 30 + len(name)  # first local header, no extra field
    for index in range(start, start + 38):
        data[index] ^= 0xFF
    return bytes(data)


def fake_parser(available=True, outcome=None):
    parser = MagicMock()
    parser.is_available = AsyncMock(return_value=available)
    parser.parse = AsyncMock(return_value=outcome or ExtractionOutcome(text="", method="service"))
    return parser


class TestTextFromResponse:
    """Tests for parsing service payloads."""

    def test_plain_text(self):
        """Test a top-level text field."""
        assert text_from_response({"success": True, "text": "본문"}) == "본문"

    def test_string_content(self):
        """Test string content."""
        assert text_from_response({"content": "본문"}) == "본문"

    def test_nested_text(self):
        """Test content.text."""
        assert text_from_response({"content": {"text": "본문"}}) == "본문"

    def test_paragraphs(self):
        """Test paragraphs joined by blank lines, empty ones skipped."""
        data = {"content": {"paragraphs": [{"text": "첫 문단"}, {"text": "  "}, {"text": "둘째 문단"}]}}
        assert text_from_response(data) == "첫 문단\n\n둘째 문단"

    @pytest.mark.parametrize(
        "payload",
        [
            {"success": False, "message": "변환 실패"},
            {"status": "error"},
            {"error": "unsupported"},
            {"detail": "Not Found"},
            ["not", "a", "dict"],
        ],
    )
    def test_error_payloads(self, payload):
        """Test error shapes raise ParserServiceError."""
        with pytest.raises(ParserServiceError):
            text_from_response(payload)

    def test_no_text(self):
        """Test a payload without text yields an empty string."""
        assert text_from_response({"success": True}) == ""


class TestTextParserClient:
    """Tests for TextParserClient over a mock transport."""

    @pytest.mark.asyncio
    async def test_parse_and_health(self):
        """Test the multipart upload and the health check."""
        seen = {}

        def handler(request):
            if request.url.path == "/health":
                return httpx.Response(200, json={"status": "ok"})
            seen["path"] = request.url.path
            seen["body"] = request.content
            return httpx.Response(200, json={"success": True, "content": {"text": "공고 본문"}})

        async with HttpClient(transport=httpx.MockTransport(handler)) as http:
            client = TextParserClient(http, "https://parser.example.com/")
            assert await client.is_available()
            outcome = await client.parse(b"HWPDATA", FileType.HWP)

        assert outcome.success
        assert outcome.text == "공고 본문"
        assert outcome.method == "service"
        assert seen["path"] == "/api/v1/extract/hwp-to-json"
        assert b'name="file"' in seen["body"]
        assert b"document.hwp" in seen["body"]

    @pytest.mark.asyncio
    async def test_service_error_payload(self):
        """Test an error payload becomes an outcome error."""

        def handler(request):
            return httpx.Response(200, json={"success": False, "error": "변환 실패"})

        async with HttpClient(transport=httpx.MockTransport(handler)) as http:
            outcome = await TextParserClient(http, "https://parser.example.com").parse(b"x", FileType.PDF, mode="text")

        assert not outcome.success
        assert outcome.error == "변환 실패"

    @pytest.mark.asyncio
    async def test_unhealthy(self):
        """Test a failing health check reports unavailable."""

        def handler(request):
            return httpx.Response(503)

        async with HttpClient(transport=httpx.MockTransport(handler)) as http:
            assert not await TextParserClient(http, "https://parser.example.com").is_available()


class TestLocalExtractors:
    """Tests for local HWPX and PDF extraction."""

    def test_hwpx_sections_in_order(self):
        """Test sections are read in numeric order and runs are joined."""
        content = make_hwpx({
            "Contents/section1.xml": SECTION_XML.format(first="둘째 ", second="구역", third="끝"),
            "Contents/section0.xml": SECTION_XML.format(first="2024년 ", second="모집공고", third="지원 대상: 중소기업"),
        })

        text = extract_text_from_hwpx(content)

        assert text == "2024년 모집공고\n지원 대상: 중소기업\n둘째 구역\n끝"

    def test_hwpx_without_sections(self):
        """Test an archive without sections yields None."""
        assert extract_text_from_hwpx(make_hwpx({})) is None

    def test_hwpx_not_a_zip(self):
        """Test non-ZIP bytes yield None."""
        assert extract_text_from_hwpx(b"not a zip") is None

    def test_hwpx_corrupt_stream(self):
        """Test a damaged deflate stream yields None instead of raising."""
        assert extract_text_from_hwpx(corrupt_hwpx()) is None

    def test_pdf_garbage(self):
        """Test unreadable PDF bytes yield no text."""
        assert not extract_text_from_pdf(b"%PDF-1.4 broken")

    def test_pdf_table_row(self):
        """Test table cells are flattened and empty cells dropped."""
        assert _table_row(["지원 대상", None, " 중소\n기업 ", ""]) == "지원 대상 | 중소 기업"


class TestTextExtractor:
    """Tests for service-first extraction with fallbacks."""

    @pytest.mark.asyncio
    async def test_unknown_type(self):
        """Test unknown types are not sent anywhere."""
        parser = fake_parser()
        outcome = await TextExtractor(parser).extract(b"data", FileType.UNKNOWN)

        assert outcome.error == "Unsupported file type"
        parser.parse.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_service_text_truncated(self):
        """Test service text is capped at max_length."""
        parser = fake_parser(outcome=ExtractionOutcome(text="가나다라마바사", method="service"))

        outcome = await TextExtractor(parser, max_length=5).extract(b"data", FileType.HWP)

        assert outcome.text == "가나다라마"
        assert outcome.method == "service"

    @pytest.mark.asyncio
    async def test_availability_cached(self):
        """Test the health check runs once per extractor."""
        parser = fake_parser(outcome=ExtractionOutcome(text="본문", method="service"))
        extractor = TextExtractor(parser)

        await extractor.extract(b"a", FileType.HWP)
        await extractor.extract(b"b", FileType.HWP)

        parser.is_available.assert_awaited_once()
        assert parser.parse.await_count == 2

    @pytest.mark.asyncio
    async def test_local_fallback_when_service_down(self):
        """Test PDF falls back to the local extractor."""
        parser = fake_parser(available=False)
        local = {FileType.PDF: ("pdfplumber", lambda content: "로컬 텍스트")}

        with patch.dict("support_crawler.extraction.LOCAL_EXTRACTORS", local):
            outcome = await TextExtractor(parser).extract(b"%PDF-", FileType.PDF)

        assert outcome.text == "로컬 텍스트"
        assert outcome.method == "pdfplumber"
        parser.parse.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_hwp_has_no_fallback(self):
        """Test HWP reports the service error when the service fails."""
        parser = fake_parser(outcome=ExtractionOutcome(error="HTTP 500", method="service"))

        outcome = await TextExtractor(parser).extract(b"ole", FileType.HWP)

        assert outcome.error == "HTTP 500"

    @pytest.mark.asyncio
    async def test_hwp_without_service(self):
        """Test HWP without a parsing service."""
        outcome = await TextExtractor(None).extract(b"ole", FileType.HWP)
        assert outcome.error == "No local extractor for hwp"

    @pytest.mark.asyncio
    async def test_both_fail(self):
        """Test the error joins service and local reasons."""
        parser = fake_parser(outcome=ExtractionOutcome(error="timeout", method="service"))
        local = {FileType.HWPX: ("hwpx", lambda content: None)}

        with patch.dict("support_crawler.extraction.LOCAL_EXTRACTORS", local):
            outcome = await TextExtractor(parser).extract(b"PK", FileType.HWPX)

        assert not outcome.success
        assert outcome.error == "timeout; hwpx extracted no text"

    @pytest.mark.asyncio
    async def test_local_extractor_error(self):
        """Test an exception from a local extractor becomes an outcome error."""

        def broken(content):
            raise RuntimeError("File is encrypted")

        local = {FileType.PDF: ("pdfplumber", broken)}

        with patch.dict("support_crawler.extraction.LOCAL_EXTRACTORS", local):
            outcome = await TextExtractor(None).extract(b"%PDF-", FileType.PDF)

        assert not outcome.success
        assert outcome.error == "pdfplumber failed: File is encrypted"

    @pytest.mark.asyncio
    async def test_corrupt_hwpx_without_service(self):
        """Test a damaged HWPX ends as an error outcome."""
        outcome = await TextExtractor(None).extract(corrupt_hwpx(), FileType.HWPX)

        assert not outcome.success
        assert outcome.error == "hwpx extracted no text"


class TestLocalStorage:
    """Tests for LocalStorage."""

    @pytest.mark.asyncio
    async def test_upload_and_read(self, tmp_path):
        """Test the storage key layout and round trip."""
        storage = LocalStorage(str(tmp_path))

        key = await storage.upload(b"%PDF-1.4", "project-1", "공고문.pdf", FileType.PDF)

        assert key.startswith("projects/project-1/")
        assert key.endswith(".pdf")
        assert (tmp_path / key).exists()
        assert await storage.read(key) == b"%PDF-1.4"

    @pytest.mark.asyncio
    async def test_upload_failure_returns_none(self, tmp_path):
        """Test a write error yields no path."""
        blocked = tmp_path / "blocked"
        blocked.write_text("not a directory")

        assert await LocalStorage(str(blocked)).upload(b"x", "p", "a.hwp", FileType.HWP) is None
