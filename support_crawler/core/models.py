"""
Data models for the crawl pipeline.

Plain dataclasses passed between pipeline stages. Persistent entities live in
``support_crawler.db.models``.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Optional


class JobStatus(str, Enum):
    """Crawl job lifecycle."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ReviewStatus(str, Enum):
    """Review state of a deduplication group."""
    AUTO = "auto"
    PENDING_REVIEW = "pending_review"
    CONFIRMED = "confirmed"


class FileType(str, Enum):
    """Attachment type as detected from content."""
    PDF = "pdf"
    HWP = "hwp"
    HWPX = "hwpx"
    UNKNOWN = "unknown"


class MergeDecision(str, Enum):
    """Outcome of comparing two announcements."""
    AUTO_MERGE = "auto_merge"
    REVIEW = "review"
    SEPARATE = "separate"


class SiteFamily(str, Enum):
    """Site families with a dedicated listing parser."""
    BIZINFO = "bizinfo"
    KSTARTUP = "kstartup"
    TECHNOPARK = "technopark"


@dataclass
class FetchResponse:
    """Raw HTTP response data."""
    url: str
    status_code: int
    content: bytes
    headers: dict = field(default_factory=dict)
    cookies: str = ""

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")


@dataclass
class PageResult:
    """Rendered or fetched HTML page."""
    url: str
    html: str
    status_code: int = 200
    cookies: str = ""
    via_browser: bool = False


@dataclass
class CandidateRecord:
    """
    One announcement found on a listing page.

    Filled in by the listing parser, then enriched by the detail resolver
    (attachment URLs, session cookies).
    """

    name: str
    organization: str
    source_url: str
    registered_at: Optional[datetime] = None

    external_id: Optional[str] = None
    category: str = "기타"
    sub_category: Optional[str] = None
    target: str = "중소기업"
    region: str = "전국"

    detail_url: Optional[str] = None
    website_url: Optional[str] = None

    summary: Optional[str] = None
    description: Optional[str] = None
    eligibility: Optional[str] = None
    contact_info: Optional[str] = None

    amount_min: Optional[int] = None
    amount_max: Optional[int] = None
    amount_description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    deadline: Optional[datetime] = None

    # Detail phase
    attachment_urls: list[str] = field(default_factory=list)
    cookies: str = ""


@dataclass
class DownloadedFile:
    """Attachment bytes together with what was learned while downloading."""
    source_url: str
    file_name: str
    content: bytes
    file_type: FileType = FileType.UNKNOWN

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class ExtractionOutcome:
    """Result of extracting text from one document."""
    text: str = ""
    error: Optional[str] = None
    method: Optional[str] = None  # service, pdfplumber, hwpx

    @property
    def success(self) -> bool:
        return bool(self.text) and self.error is None


@dataclass
class AttachmentData:
    """Attachment row contents produced by the acquisition stage."""
    source_url: str
    file_name: str
    file_type: FileType
    file_size: int = 0
    storage_path: Optional[str] = None
    should_parse: bool = False
    is_parsed: bool = False
    parsed_content: Optional[str] = None
    parse_error: Optional[str] = None
    parsing_priority: int = 10


@dataclass
class NormalizedProject:
    """Comparable key derived from an announcement title."""
    original_name: str
    normalized_name: str
    project_year: Optional[int]
    ngrams: set[str] = field(default_factory=set)


@dataclass
class SimilarityResult:
    """Composite similarity with its components."""
    score: float
    name_score: float
    deadline_score: float
    amount_score: float
    decision: MergeDecision

    @property
    def is_candidate(self) -> bool:
        return self.decision != MergeDecision.SEPARATE


@dataclass
class JobStats:
    """Counters reported by a finished crawl job."""
    projects_found: int = 0
    projects_new: int = 0
    projects_updated: int = 0
    attachments_saved: int = 0
    errors: int = 0  # attachment rows with parse_error
    failed: bool = False

    def to_dict(self) -> dict:
        return asdict(self)
