"""
Normalization utilities for Korean announcement data.

Handles:
- Korean date formats (2024-01-05, 2024.1.5, 2024년 1월 5일, 24.01.05)
- Korean currency amounts (1억 5천만원, 3,000만원)
- Announcement title normalization for deduplication (year extraction,
  round markers, boilerplate, 2-gram sets)
"""

import re
from datetime import datetime
from typing import Iterable, Optional

import structlog
from dateutil import parser as date_parser

from .models import NormalizedProject

logger = structlog.get_logger(__name__)


# Year surface forms, most specific first
YEAR_SUFFIX_PATTERN = re.compile(r"(20[2-3]\d)년도?")
YEAR_PAREN_PATTERN = re.compile(r"\((20[2-3]\d)\)")
YEAR_BRACKET_PATTERN = re.compile(r"\[(20[2-3]\d)\]")
YEAR_SHORT_PATTERN = re.compile(r"['‘’]([2-3]\d)년도?")
YEAR_STANDALONE_PATTERN = re.compile(r"(?<!\d)(20[2-3]\d)(?!\d)")

ROUND_PATTERNS = [
    re.compile(r"제?\d+차\s*"),
    re.compile(r"\d+회차?\s*"),
    re.compile(r"\d+기\s*"),
]

BOILERPLATE_SUFFIX = re.compile(r"\s*(?:지원\s*사업|공고|모집|안내)$")
BOILERPLATE_PREFIX = re.compile(r"^사업\s+")

DATE_PATTERNS = [
    # 2024-01-05, 2024.01.05, 2024/1/5, 2024. 1. 5. with optional time
    re.compile(
        r"(\d{4})\s*[-./]\s*(\d{1,2})\s*[-./]\s*(\d{1,2})\.?"
        r"(?:\s*(\d{1,2}):(\d{2})(?::(\d{2}))?)?"
    ),
    # 2024년 1월 5일
    re.compile(r"(\d{4})\s*년\s*(\d{1,2})\s*월\s*(\d{1,2})\s*일"),
    # 20240105
    re.compile(r"(?<!\d)(20\d{2})(\d{2})(\d{2})(?!\d)"),
    # 24.01.05
    re.compile(r"(?<!\d)(\d{2})[-./](\d{1,2})[-./](\d{1,2})(?!\d)"),
]

AMOUNT_UNITS = {
    "억": 100_000_000,
    "천만": 10_000_000,
    "백만": 1_000_000,
    "만": 10_000,
    "천": 1_000,
}
AMOUNT_PATTERN = re.compile(
    r"((?:\d[\d,]*(?:\.\d+)?\s*(?:억|천만|백만|만|천)?\s*)+)원"
)
AMOUNT_PART_PATTERN = re.compile(r"(\d[\d,]*(?:\.\d+)?)\s*(억|천만|백만|만|천)?")


def parse_korean_date(text: Optional[str]) -> Optional[datetime]:
    """
    Parse a Korean-style date into a naive datetime.

    Supported formats:
    - "2024-01-05", "2024.01.05", "2024/1/5", "2024. 1. 5."
    - "2024-01-05 10:30" (time is kept when present)
    - "2024년 1월 5일"
    - "20240105"
    - "24.01.05" (two-digit year, 20xx)

    Args:
        text: String containing a date

    Returns:
        datetime or None if nothing parseable was found
    """
    if not text:
        return None

    text = text.strip()

    for index, pattern in enumerate(DATE_PATTERNS):
        match = pattern.search(text)
        if not match:
            continue

        groups = match.groups()
        year, month, day = int(groups[0]), int(groups[1]), int(groups[2])
        if index == 3:
            year += 2000

        hour = minute = second = 0
        if index == 0 and groups[3] is not None:
            hour, minute = int(groups[3]), int(groups[4])
            second = int(groups[5]) if groups[5] else 0

        try:
            return datetime(year, month, day, hour, minute, second)
        except ValueError as e:
            logger.warning("invalid_date", text=text, error=str(e))
            return None

    # Last resort for ISO / RFC formats from JSON feeds
    if re.search(r"\d{4}", text):
        try:
            parsed = date_parser.parse(text, fuzzy=False)
            return parsed.replace(tzinfo=None)
        except (ValueError, OverflowError):
            return None

    return None


def parse_date_range(text: Optional[str]) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    Parse an application period such as "2024-01-05 ~ 2024-02-05".

    Returns:
        (start, end); a single date is treated as the end of the period
    """
    if not text:
        return None, None

    parts = re.split(r"\s*[~∼〜]\s*|\s+-\s+", text.strip(), maxsplit=1)
    if len(parts) == 2:
        return parse_korean_date(parts[0]), parse_korean_date(parts[1])

    return None, parse_korean_date(text)


def parse_korean_amount(text: Optional[str]) -> Optional[int]:
    """
    Parse a Korean currency amount.

    - "500,000원" -> 500000
    - "3,000만원" -> 30000000
    - "1억 5천만원" -> 150000000
    - "최대 2억원" -> 200000000

    Args:
        text: String containing an amount in won

    Returns:
        Integer amount in KRW or None
    """
    if not text:
        return None

    match = AMOUNT_PATTERN.search(text.replace("\u00a0", " "))
    if not match:
        return None

    total = 0.0
    for number, unit in AMOUNT_PART_PATTERN.findall(match.group(1)):
        try:
            total += float(number.replace(",", "")) * AMOUNT_UNITS.get(unit, 1)
        except ValueError:
            return None

    return int(total) if total > 0 else None


def extract_amount_range(text: Optional[str]) -> tuple[Optional[int], Optional[int]]:
    """
    Extract (min, max) funding from free text.

    Two amounts are read as a range; a single amount is the maximum.
    """
    if not text:
        return None, None

    amounts = []
    for match in AMOUNT_PATTERN.finditer(text):
        value = parse_korean_amount(match.group(0))
        if value:
            amounts.append(value)

    if not amounts:
        return None, None
    if len(amounts) == 1:
        return None, amounts[0]

    return min(amounts[:2]), max(amounts[:2])


def clean_text(text: Optional[str]) -> str:
    """Collapse whitespace and strip invisible characters."""
    if not text:
        return ""

    text = text.replace("\u00a0", " ").replace("\u200b", "")
    return re.sub(r"\s+", " ", text).strip()


def extract_year(text: Optional[str]) -> Optional[int]:
    """
    Extract the announcement year from a title.

    Recognized forms: "2024년", "2024년도", "(2024)", "[2024]", "'24년" and a
    standalone 2020-2039 four-digit run. When several are present the
    latest year wins.
    """
    if not text:
        return None

    years: list[int] = []
    for pattern in (
        YEAR_SUFFIX_PATTERN,
        YEAR_PAREN_PATTERN,
        YEAR_BRACKET_PATTERN,
        YEAR_STANDALONE_PATTERN,
    ):
        years.extend(int(y) for y in pattern.findall(text))

    years.extend(2000 + int(y) for y in YEAR_SHORT_PATTERN.findall(text))

    return max(years) if years else None


def normalize_name(text: Optional[str]) -> str:
    """
    Normalize an announcement title into a comparison key.

    Example:
        "2024년 제2차 스마트공장 지원사업 (수정공고)" -> "스마트공장"
    """
    if not text:
        return ""

    result = text

    # Year forms
    result = YEAR_SUFFIX_PATTERN.sub(" ", result)
    result = YEAR_PAREN_PATTERN.sub(" ", result)
    result = YEAR_BRACKET_PATTERN.sub(" ", result)
    result = YEAR_SHORT_PATTERN.sub(" ", result)
    result = YEAR_STANDALONE_PATTERN.sub(" ", result)

    # Round / phase markers
    for pattern in ROUND_PATTERNS:
        result = pattern.sub(" ", result)

    # Asides
    result = re.sub(r"\([^)]*\)", " ", result)
    result = re.sub(r"\[[^\]]*\]", " ", result)
    result = re.sub(r"[『』「」【】<>《》〈〉]", " ", result)

    # Remaining punctuation
    result = re.sub(r"[^\w\s]", " ", result)
    result = result.replace("_", " ")
    result = re.sub(r"\s+", " ", result).strip()

    # Boilerplate, without ever emptying the key
    while True:
        stripped = BOILERPLATE_SUFFIX.sub("", result).strip()
        if stripped == result or not stripped:
            break
        result = stripped

    stripped = BOILERPLATE_PREFIX.sub("", result).strip()
    if stripped:
        result = stripped

    return result.lower().strip()


def generate_ngrams(text: str, n: int = 2) -> list[str]:
    """
    Character n-grams over the whitespace-stripped text.

    A text shorter than n yields itself as the only gram.
    """
    compact = re.sub(r"\s+", "", text or "")
    if not compact:
        return []
    if len(compact) < n:
        return [compact]

    return [compact[i:i + n] for i in range(len(compact) - n + 1)]


def jaccard_similarity(a: Iterable[str], b: Iterable[str]) -> float:
    """Intersection over union of two gram sets (0.0 when both are empty)."""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0

    return len(set_a & set_b) / len(union)


def normalize_project(name: str) -> NormalizedProject:
    """Build the comparable key for an announcement title."""
    normalized = normalize_name(name)
    return NormalizedProject(
        original_name=name,
        normalized_name=normalized,
        project_year=extract_year(name),
        ngrams=set(generate_ngrams(normalized)),
    )
