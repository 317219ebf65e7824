"""
Pairwise similarity scoring for announcement deduplication.

Composite score = 0.70 * name + 0.15 * deadline + 0.15 * amount.

Works on any object exposing ``normalized_name``, ``deadline``,
``amount_min`` and ``amount_max`` (ORM rows, dataclasses, test stubs).
"""

from datetime import datetime
from typing import Any, Optional

from .models import MergeDecision, SimilarityResult
from .normalizer import generate_ngrams, jaccard_similarity

NAME_WEIGHT = 0.70
DEADLINE_WEIGHT = 0.15
AMOUNT_WEIGHT = 0.15

AUTO_MERGE_THRESHOLD = 0.85
REVIEW_THRESHOLD = 0.70

NATIONWIDE_REGION = "전국"

# Completeness weights used for canonical selection
COMPLETENESS_WEIGHTS = {
    "description": 15,
    "eligibility": 15,
    "application_process": 10,
    "evaluation_criteria": 10,
    "contact_info": 5,
    "website_url": 5,
    "detail_url": 5,
    "attachment_urls": 5,
}
MAX_AGE_BONUS = 30.0
AGE_BONUS_DAYS_PER_POINT = 12.0

# Scores are rounded so that constructed boundary pairs compare exactly
SCORE_PRECISION = 6


def name_similarity(name_a: Optional[str], name_b: Optional[str]) -> float:
    """Exact normalized match is 1.0, otherwise 2-gram Jaccard."""
    if not name_a or not name_b:
        return 0.0
    if name_a == name_b:
        return 1.0

    return jaccard_similarity(generate_ngrams(name_a), generate_ngrams(name_b))


def deadline_similarity(a: Optional[datetime], b: Optional[datetime]) -> float:
    """1.0 within 7 days, linear decay to 0 at 30 days; 0.5 if unknown."""
    if a is None or b is None:
        return 0.5

    days = abs((a - b).total_seconds()) / 86400
    if days <= 7:
        return 1.0
    if days <= 30:
        return 1.0 - (days - 7) / 23

    return 0.0


def amount_similarity(a: Optional[int], b: Optional[int]) -> float:
    """1.0 when the smaller is >= 80% of the larger, 0 below 50%; 0.5 if unknown."""
    if a is None or b is None:
        return 0.5

    larger = max(a, b)
    if larger == 0:
        return 1.0

    ratio = min(a, b) / larger
    if ratio >= 0.8:
        return 1.0
    if ratio >= 0.5:
        return (ratio - 0.5) / 0.3

    return 0.0


def _amount_of(project: Any) -> Optional[int]:
    amount = getattr(project, "amount_max", None)
    if amount is None:
        amount = getattr(project, "amount_min", None)
    return amount


def classify(score: float) -> MergeDecision:
    """Map a composite score onto a merge decision."""
    if score >= AUTO_MERGE_THRESHOLD:
        return MergeDecision.AUTO_MERGE
    if score >= REVIEW_THRESHOLD:
        return MergeDecision.REVIEW

    return MergeDecision.SEPARATE


def calculate_similarity(a: Any, b: Any) -> SimilarityResult:
    """
    Score two announcements.

    The computation is symmetric in its arguments.
    """
    name_score = name_similarity(a.normalized_name, b.normalized_name)
    deadline_score = deadline_similarity(a.deadline, b.deadline)
    amount_score = amount_similarity(_amount_of(a), _amount_of(b))

    score = round(
        NAME_WEIGHT * name_score
        + DEADLINE_WEIGHT * deadline_score
        + AMOUNT_WEIGHT * amount_score,
        SCORE_PRECISION,
    )

    return SimilarityResult(
        score=score,
        name_score=name_score,
        deadline_score=deadline_score,
        amount_score=amount_score,
        decision=classify(score),
    )


def regions_compatible(region_a: Optional[str], region_b: Optional[str]) -> bool:
    """Same region, or either side nationwide. Missing counts as nationwide."""
    region_a = region_a or NATIONWIDE_REGION
    region_b = region_b or NATIONWIDE_REGION

    return (
        region_a == region_b
        or region_a == NATIONWIDE_REGION
        or region_b == NATIONWIDE_REGION
    )


def years_compatible(year_a: Optional[int], year_b: Optional[int]) -> bool:
    """Same year, or at least one side has no year."""
    return year_a is None or year_b is None or year_a == year_b


def completeness_score(project: Any, now: Optional[datetime] = None) -> float:
    """
    Canonical-selection score: filled fields plus an age bonus.

    Older records get up to 30 extra points (one per 12 days).
    """
    score = 0.0
    for field_name, weight in COMPLETENESS_WEIGHTS.items():
        if getattr(project, field_name, None):
            score += weight

    created_at = getattr(project, "created_at", None)
    if created_at is not None:
        now = now or datetime.utcnow()
        age_days = max(0.0, (now - created_at).total_seconds() / 86400)
        score += min(MAX_AGE_BONUS, age_days / AGE_BONUS_DAYS_PER_POINT)

    return score
