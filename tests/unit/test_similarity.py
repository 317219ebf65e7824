"""Tests for pairwise similarity scoring."""

import pytest
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from support_crawler.core.models import MergeDecision
from support_crawler.core.similarity import (
    amount_similarity,
    calculate_similarity,
    classify,
    completeness_score,
    deadline_similarity,
    name_similarity,
    regions_compatible,
    years_compatible,
)


@dataclass
class Announcement:
    normalized_name: str
    deadline: Optional[datetime] = None
    amount_min: Optional[int] = None
    amount_max: Optional[int] = None


class TestNameSimilarity:
    """Tests for name_similarity."""

    def test_exact_match(self):
        """Test identical normalized names score 1.0."""
        assert name_similarity("스마트공장", "스마트공장") == 1.0

    def test_partial_overlap(self):
        """Test 2-gram Jaccard for different names."""
        # {스마,마트,트공,공장} vs {스마,마트,트팜}
        assert name_similarity("스마트공장", "스마트팜") == pytest.approx(2 / 5)

    def test_missing_name(self):
        """Test an empty side scores 0."""
        assert name_similarity("", "스마트공장") == 0.0


class TestDeadlineSimilarity:
    """Tests for deadline_similarity."""

    def test_unknown(self):
        """Test a missing deadline scores 0.5."""
        assert deadline_similarity(None, datetime(2024, 1, 1)) == 0.5

    def test_within_week(self):
        """Test deadlines up to 7 days apart score 1.0."""
        assert deadline_similarity(datetime(2024, 1, 1), datetime(2024, 1, 8)) == 1.0

    def test_linear_decay(self):
        """Test the decay between 7 and 30 days."""
        score = deadline_similarity(datetime(2024, 1, 1), datetime(2024, 1, 1) + timedelta(days=18.5))
        assert score == pytest.approx(0.5)

    def test_far_apart(self):
        """Test more than 30 days apart scores 0."""
        assert deadline_similarity(datetime(2024, 1, 1), datetime(2024, 3, 1)) == 0.0


class TestAmountSimilarity:
    """Tests for amount_similarity."""

    def test_unknown(self):
        """Test a missing amount scores 0.5."""
        assert amount_similarity(None, 100) == 0.5

    def test_close_amounts(self):
        """Test a ratio of at least 0.8 scores 1.0."""
        assert amount_similarity(80, 100) == 1.0

    def test_middle_ratio(self):
        """Test linear score between 0.5 and 0.8."""
        assert amount_similarity(65, 100) == pytest.approx(0.5)

    def test_far_amounts(self):
        """Test a ratio under 0.5 scores 0."""
        assert amount_similarity(40, 100) == 0.0

    def test_both_zero(self):
        """Test zero amounts are equal."""
        assert amount_similarity(0, 0) == 1.0


class TestCalculateSimilarity:
    """Tests for the composite score and thresholds."""

    def test_commutative(self):
        """Test the score does not depend on argument order."""
        a = Announcement("스마트공장 구축", datetime(2024, 3, 1), amount_max=50_000_000)
        b = Announcement("스마트공장", datetime(2024, 3, 20), amount_max=35_000_000)

        assert calculate_similarity(a, b) == calculate_similarity(b, a)

    def test_auto_merge_boundary(self):
        """Test a pair scoring exactly 0.85 auto-merges."""
        a = Announcement("스마트공장")
        b = Announcement("스마트공장")

        result = calculate_similarity(a, b)

        assert result.score == 0.85
        assert result.decision == MergeDecision.AUTO_MERGE

    def test_review_boundary(self):
        """Test a pair scoring exactly 0.70 goes to review."""
        a = Announcement("스마트공장", datetime(2024, 1, 1), amount_max=100)
        b = Announcement("스마트공장", datetime(2024, 6, 1), amount_max=10)

        result = calculate_similarity(a, b)

        assert result.score == 0.70
        assert result.decision == MergeDecision.REVIEW
        assert result.is_candidate

    def test_just_below_review(self):
        """Test 0.6999 stays separate."""
        assert classify(0.6999) == MergeDecision.SEPARATE

    def test_amount_falls_back_to_min(self):
        """Test amount_min is used when amount_max is missing."""
        a = Announcement("스마트공장", amount_min=100)
        b = Announcement("스마트공장", amount_max=100)

        assert calculate_similarity(a, b).amount_score == 1.0


class TestCompatibility:
    """Tests for region and year hard filters."""

    @pytest.mark.parametrize(
        "a, b, expected",
        [
            ("서울", "서울", True),
            ("서울", "전국", True),
            ("전국", "부산", True),
            (None, "부산", True),
            ("서울", "부산", False),
        ],
    )
    def test_regions(self, a, b, expected):
        """Test same region or nationwide on either side."""
        assert regions_compatible(a, b) is expected

    def test_years(self):
        """Test same year or unknown year is compatible."""
        assert years_compatible(2024, 2024)
        assert years_compatible(None, 2024)
        assert not years_compatible(2024, 2025)


class TestCompletenessScore:
    """Tests for canonical selection scoring."""

    def test_filled_fields(self):
        """Test field weights add up."""
        project = Announcement("x")
        project.description = "설명"
        project.eligibility = "중소기업"
        project.attachment_urls = ["https://example.com/a.hwp"]

        assert completeness_score(project) == 35

    def test_age_bonus_is_capped(self):
        """Test the age bonus is at most 30 points."""
        now = datetime(2024, 12, 31)
        project = Announcement("x")
        project.created_at = now - timedelta(days=24)
        assert completeness_score(project, now) == pytest.approx(2.0)

        project.created_at = now - timedelta(days=3650)
        assert completeness_score(project, now) == 30.0
