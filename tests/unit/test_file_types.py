"""Tests for attachment type detection and filename handling."""

import pytest

from support_crawler.core.file_types import (
    detect_file_type,
    file_type_from_name,
    filename_from_content_disposition,
    filename_from_url,
    parsing_priority,
    should_parse_file,
    sort_by_priority,
)
from support_crawler.core.filename_repair import (
    has_valid_korean,
    is_corrupted_filename,
    repair_filename,
)
from support_crawler.core.models import FileType


ORIGINAL_NAME = "2024년 사업공고.hwp"


def scramble_latin1_twice(name: str) -> str:
    once = name.encode("utf-8").decode("latin-1")
    return once.encode("utf-8").decode("latin-1")


def scramble_latin1_then_cp949(name: str) -> str:
    once = name.encode("utf-8").decode("latin-1")
    return once.encode("utf-8").decode("cp949")


class TestDetectFileType:
    """Tests for magic-byte classification."""

    def test_pdf(self):
        """Test %PDF- signature."""
        assert detect_file_type(b"%PDF-1.7\n...") == FileType.PDF

    def test_hwp(self):
        """Test OLE compound file signature."""
        assert detect_file_type(bytes.fromhex("D0CF11E0A1B11AE1") + b"\x00" * 8) == FileType.HWP

    def test_hwpx(self):
        """Test ZIP signature."""
        assert detect_file_type(b"PK\x03\x04rest") == FileType.HWPX

    def test_html_is_unknown(self):
        """Test that an HTML error page is not a document."""
        assert detect_file_type(b"<!DOCTYPE html><html>") == FileType.UNKNOWN

    def test_empty(self):
        """Test empty payload."""
        assert detect_file_type(b"") == FileType.UNKNOWN


class TestFileTypeFromName:
    """Tests for the extension guess."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("공고문.PDF", FileType.PDF),
            ("신청서.hwp", FileType.HWP),
            ("/files/양식.hwpx?download=1", FileType.HWPX),
            ("포스터.jpg", FileType.UNKNOWN),
            (None, FileType.UNKNOWN),
        ],
    )
    def test_extensions(self, name, expected):
        """Test known and unknown extensions."""
        assert file_type_from_name(name) == expected


class TestContentDisposition:
    """Tests for server-declared file names."""

    def test_rfc5987_preferred(self):
        """Test filename* wins over filename."""
        header = (
            'attachment; filename="fallback.hwp"; '
            "filename*=UTF-8''%EA%B3%B5%EA%B3%A0.hwp"
        )
        assert filename_from_content_disposition(header) == "공고.hwp"

    def test_quoted_filename(self):
        """Test plain quoted filename."""
        assert filename_from_content_disposition('attachment; filename="notice.pdf"') == "notice.pdf"

    def test_percent_encoded_filename(self):
        """Test percent-encoded plain filename is decoded."""
        header = "attachment; filename=%EC%8B%A0%EC%B2%AD%EC%84%9C.hwp"
        assert filename_from_content_disposition(header) == "신청서.hwp"

    def test_missing(self):
        """Test header without a file name."""
        assert filename_from_content_disposition("inline") is None
        assert filename_from_content_disposition(None) is None


class TestFilenameFromUrl:
    """Tests for URL basenames."""

    def test_decoded_basename(self):
        """Test last segment is percent-decoded."""
        url = "https://example.go.kr/files/%EA%B3%B5%EA%B3%A0.pdf?x=1"
        assert filename_from_url(url) == "공고.pdf"

    def test_no_path(self):
        """Test fallback name for bare hosts."""
        assert filename_from_url("https://example.go.kr/") == "attachment"


class TestShouldParse:
    """Tests for parse selection and priority."""

    def test_skip_keywords(self):
        """Test images and posters are never parsed."""
        assert not should_parse_file("홍보 포스터.pdf")
        assert not should_parse_file("logo.hwp")

    def test_core_keywords(self):
        """Test announcement documents are parsed regardless of extension."""
        assert should_parse_file("모집공고문")

    def test_extension_fallback(self):
        """Test other names fall back to the extension."""
        assert should_parse_file("붙임1.hwpx")
        assert not should_parse_file("붙임1.xlsx")

    @pytest.mark.parametrize(
        "name, priority",
        [
            ("2024 모집공고.hwp", 100),
            ("참가 신청서.hwp", 80),
            ("사업계획서 양식.hwp", 70),
            ("평가 기준표.pdf", 60),
            ("붙임.zip", 10),
        ],
    )
    def test_priority(self, name, priority):
        """Test priority rules."""
        assert parsing_priority(name) == priority

    def test_sort_by_priority(self):
        """Test announcements sort before forms."""
        names = ["붙임.zip", "신청서.hwp", "공고문.pdf"]
        assert sort_by_priority(names) == ["공고문.pdf", "신청서.hwp", "붙임.zip"]


class TestFilenameRepair:
    """Tests for mojibake detection and repair."""

    def test_clean_name_untouched(self):
        """Test a correct Korean name is returned unchanged."""
        assert not is_corrupted_filename(ORIGINAL_NAME)
        assert repair_filename(ORIGINAL_NAME) == ORIGINAL_NAME

    def test_ascii_name_untouched(self):
        """Test an ASCII name is returned unchanged."""
        assert repair_filename("notice_2024.pdf") == "notice_2024.pdf"

    def test_double_latin1_scramble(self):
        """Test UTF-8 read as Latin-1 twice is recovered."""
        scrambled = scramble_latin1_twice(ORIGINAL_NAME)

        assert is_corrupted_filename(scrambled)
        assert repair_filename(scrambled) == ORIGINAL_NAME

    def test_latin1_cp949_scramble(self):
        """Test UTF-8 read as Latin-1 then as CP949 is recovered."""
        scrambled = scramble_latin1_then_cp949(ORIGINAL_NAME)

        assert is_corrupted_filename(scrambled)
        assert repair_filename(scrambled) == ORIGINAL_NAME

    def test_replacement_char_flags_corruption(self):
        """Test U+FFFD marks a name as corrupted."""
        assert is_corrupted_filename("공고\ufffd.hwp")
        assert not has_valid_korean("공고\ufffd.hwp")

    def test_jamo_run_flags_corruption(self):
        """Test runs of bare jamo mark a name as corrupted."""
        assert is_corrupted_filename("ㅇㅇㄱ공고.hwp")

    def test_unrepairable_returns_original(self):
        """Test names no strategy can fix are kept."""
        name = "ㅇㅇㄱ.hwp"
        assert repair_filename(name) == name
