"""Tests for normalizer functions."""

import pytest
from datetime import datetime

from support_crawler.core.normalizer import (
    clean_text,
    extract_amount_range,
    extract_year,
    generate_ngrams,
    jaccard_similarity,
    normalize_name,
    normalize_project,
    parse_date_range,
    parse_korean_amount,
    parse_korean_date,
)


class TestParseKoreanDate:
    """Tests for parse_korean_date function."""

    def test_dash_format(self):
        """Test ISO-like dash format."""
        assert parse_korean_date("2024-01-05") == datetime(2024, 1, 5)

    def test_dot_format_with_spaces(self):
        """Test dotted format with spaces and trailing dot."""
        assert parse_korean_date("2024. 1. 5.") == datetime(2024, 1, 5)

    def test_korean_format(self):
        """Test 년/월/일 format."""
        assert parse_korean_date("2024년 3월 15일") == datetime(2024, 3, 15)

    def test_time_is_kept(self):
        """Test that a time component is preserved."""
        assert parse_korean_date("2024-01-05 10:30") == datetime(2024, 1, 5, 10, 30)

    def test_compact_format(self):
        """Test 8-digit compact format."""
        assert parse_korean_date("20240105") == datetime(2024, 1, 5)

    def test_two_digit_year(self):
        """Test short year format."""
        assert parse_korean_date("24.01.05") == datetime(2024, 1, 5)

    def test_date_in_text(self):
        """Test extracting a date from a label."""
        assert parse_korean_date("등록일자 2024.06.15") == datetime(2024, 6, 15)

    def test_invalid_date(self):
        """Test invalid month returns None."""
        assert parse_korean_date("2024-13-40") is None

    @pytest.mark.parametrize("value", [None, "", "상시모집"])
    def test_no_date(self, value):
        """Test inputs without a date."""
        assert parse_korean_date(value) is None


class TestParseDateRange:
    """Tests for parse_date_range function."""

    def test_tilde_range(self):
        """Test start ~ end period."""
        start, end = parse_date_range("2024-01-05 ~ 2024-02-05")
        assert start == datetime(2024, 1, 5)
        assert end == datetime(2024, 2, 5)

    def test_single_date_is_end(self):
        """Test a lone date is read as the end."""
        assert parse_date_range("2024.02.05") == (None, datetime(2024, 2, 5))

    def test_empty(self):
        """Test empty input."""
        assert parse_date_range(None) == (None, None)


class TestParseKoreanAmount:
    """Tests for parse_korean_amount function."""

    def test_plain_won(self):
        """Test plain won amount with separators."""
        assert parse_korean_amount("500,000원") == 500000

    def test_man_unit(self):
        """Test 만원 unit."""
        assert parse_korean_amount("3,000만원") == 30000000

    def test_compound_units(self):
        """Test 억 + 천만 combination."""
        assert parse_korean_amount("1억 5천만원") == 150000000

    def test_amount_in_text(self):
        """Test amount embedded in a sentence."""
        assert parse_korean_amount("기업당 최대 2억원 지원") == 200000000

    def test_no_amount(self):
        """Test text without won."""
        assert parse_korean_amount("금액 미정") is None


class TestExtractAmountRange:
    """Tests for extract_amount_range function."""

    def test_range(self):
        """Test two amounts are read as min and max."""
        assert extract_amount_range("최소 1,000만원에서 최대 5,000만원") == (10000000, 50000000)

    def test_single_amount_is_max(self):
        """Test a single amount is the maximum."""
        assert extract_amount_range("최대 3억원") == (None, 300000000)


class TestCleanText:
    """Tests for clean_text function."""

    def test_collapses_whitespace(self):
        """Test whitespace and invisible characters are normalized."""
        assert clean_text("  스마트\u00a0공장\n\t지원\u200b ") == "스마트 공장 지원"

    def test_none(self):
        """Test None input."""
        assert clean_text(None) == ""


class TestExtractYear:
    """Tests for extract_year function."""

    @pytest.mark.parametrize(
        "title, year",
        [
            ("2024년 스마트공장 지원사업", 2024),
            ("2025년도 수출바우처", 2025),
            ("(2024) 창업도약패키지", 2024),
            ("[2026] 기술개발", 2026),
            ("'24년 R&D 지원", 2024),
            ("스마트공장 2025 모집", 2025),
        ],
    )
    def test_year_forms(self, title, year):
        """Test the recognized year surface forms."""
        assert extract_year(title) == year

    def test_latest_year_wins(self):
        """Test that the latest of several years is returned."""
        assert extract_year("2024년 실적 기반 2025년 지원") == 2025

    def test_no_year(self):
        """Test a title without a year."""
        assert extract_year("스마트공장 지원사업") is None


class TestNormalizeName:
    """Tests for normalize_name function."""

    def test_full_example(self):
        """Test year, round, aside and boilerplate removal together."""
        assert normalize_name("2024년 제2차 스마트공장 지원사업 (수정공고)") == "스마트공장"

    def test_year_variants_normalize_identically(self):
        """Test titles that differ only by year share a key."""
        a = normalize_project("2024년 스마트공장 지원사업")
        b = normalize_project("2025년 스마트공장 지원사업")

        assert a.normalized_name == b.normalized_name
        assert a.project_year == 2024
        assert b.project_year == 2025

    def test_repeated_boilerplate(self):
        """Test stacked boilerplate suffixes are all stripped."""
        assert normalize_name("수출바우처 지원사업 모집 공고") == "수출바우처"

    def test_boilerplate_never_empties(self):
        """Test a title made only of boilerplate keeps its last word."""
        assert normalize_name("모집 공고") == "모집"

    def test_brackets_and_punctuation(self):
        """Test bracket asides and punctuation are dropped."""
        assert normalize_name("[경기] 『AI 바우처』 참여기업 모집!") == "ai 바우처 참여기업"

    def test_lowercase(self):
        """Test Latin letters are lowercased."""
        assert normalize_name("R&D 혁신 바우처") == "r d 혁신 바우처"

    def test_empty(self):
        """Test empty input."""
        assert normalize_name("") == ""


class TestNgrams:
    """Tests for generate_ngrams and jaccard_similarity."""

    def test_bigrams_ignore_spaces(self):
        """Test grams run over whitespace-stripped text."""
        assert generate_ngrams("가나 다") == ["가나", "나다"]

    def test_short_text(self):
        """Test text shorter than n yields itself."""
        assert generate_ngrams("가") == ["가"]

    def test_empty(self):
        """Test empty text yields nothing."""
        assert generate_ngrams("") == []

    def test_jaccard(self):
        """Test intersection over union."""
        assert jaccard_similarity({"ab", "bc"}, {"bc", "cd"}) == pytest.approx(1 / 3)

    def test_jaccard_empty(self):
        """Test two empty sets."""
        assert jaccard_similarity([], []) == 0.0
