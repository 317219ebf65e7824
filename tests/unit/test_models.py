"""Tests for pipeline data models."""

from support_crawler.core.models import (
    CandidateRecord,
    DownloadedFile,
    ExtractionOutcome,
    FetchResponse,
    JobStats,
    MergeDecision,
    SimilarityResult,
)


class TestCandidateRecord:
    """Tests for CandidateRecord defaults."""

    def test_defaults(self):
        """Test listing defaults for unclassified announcements."""
        record = CandidateRecord(name="공고", organization="기관", source_url="https://x.go.kr")

        assert record.category == "기타"
        assert record.region == "전국"
        assert record.target == "중소기업"
        assert record.attachment_urls == []
        assert record.cookies == ""

    def test_attachment_lists_not_shared(self):
        """Test each record gets its own attachment list."""
        a = CandidateRecord(name="a", organization="x", source_url="u")
        b = CandidateRecord(name="b", organization="x", source_url="u")
        a.attachment_urls.append("https://x.go.kr/a.pdf")

        assert b.attachment_urls == []


class TestSmallModels:
    """Tests for derived properties."""

    def test_fetch_response_content_type(self):
        """Test the content type header lookup."""
        response = FetchResponse(url="u", status_code=200, content=b"", headers={"content-type": "application/pdf"})
        assert response.content_type == "application/pdf"
        assert FetchResponse(url="u", status_code=200, content=b"").content_type == ""

    def test_downloaded_file_size(self):
        """Test size follows the content."""
        assert DownloadedFile(source_url="u", file_name="a.pdf", content=b"12345").size == 5

    def test_extraction_outcome_success(self):
        """Test success needs text and no error."""
        assert ExtractionOutcome(text="본문").success
        assert not ExtractionOutcome(text="").success
        assert not ExtractionOutcome(text="본문", error="partial").success

    def test_similarity_candidate(self):
        """Test only separate decisions are not candidates."""
        review = SimilarityResult(0.7, 0.9, 0.5, 0.5, MergeDecision.REVIEW)
        separate = SimilarityResult(0.3, 0.2, 0.5, 0.5, MergeDecision.SEPARATE)

        assert review.is_candidate
        assert not separate.is_candidate

    def test_job_stats_to_dict(self):
        """Test counters serialize for log output."""
        stats = JobStats(projects_found=3, projects_new=2)

        assert stats.to_dict() == {
            "projects_found": 3,
            "projects_new": 2,
            "projects_updated": 0,
            "attachments_saved": 0,
            "errors": 0,
            "failed": False,
        }
