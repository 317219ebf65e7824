"""
Core layer - stable foundation for the crawl pipeline.

Components:
- models: pipeline dataclasses and enums
- http_client / browser / fetcher: network access with WAF fallback
- normalizer: Korean dates, amounts and title normalization
- similarity: pairwise announcement scoring
- deduplicator: group lifecycle over the database
- file_types / filename_repair: attachment classification and mojibake repair
- validators: category and region vocabularies
"""

from .models import (
    CandidateRecord,
    FileType,
    JobStatus,
    MergeDecision,
    ReviewStatus,
    SiteFamily,
)
from .normalizer import (
    parse_korean_date,
    parse_korean_amount,
    extract_year,
    normalize_name,
    generate_ngrams,
    jaccard_similarity,
    normalize_project,
)
from .similarity import calculate_similarity, classify
from .file_types import detect_file_type, should_parse_file, parsing_priority
from .filename_repair import is_corrupted_filename, repair_filename

__all__ = [
    "CandidateRecord",
    "FileType",
    "JobStatus",
    "MergeDecision",
    "ReviewStatus",
    "SiteFamily",
    "parse_korean_date",
    "parse_korean_amount",
    "extract_year",
    "normalize_name",
    "generate_ngrams",
    "jaccard_similarity",
    "normalize_project",
    "calculate_similarity",
    "classify",
    "detect_file_type",
    "should_parse_file",
    "parsing_priority",
    "is_corrupted_filename",
    "repair_filename",
]
