"""
Category and region validation for crawled records.

Listing pages put all sorts of text into category/region columns (dates,
region names in the category cell, agency-specific labels). These helpers
map raw values onto the fixed vocabularies.
"""

import re
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)


VALID_CATEGORIES = (
    "인력", "수출", "창업", "기술", "자금", "판로", "경영",
    "R&D", "글로벌", "사업화", "기타",
)
DEFAULT_CATEGORY = "기타"

NATIONWIDE = "전국"

# Standard region code -> spellings, longest first within each entry
REGION_PATTERNS = {
    "서울": ["서울특별시", "서울시", "서울"],
    "부산": ["부산광역시", "부산시", "부산"],
    "대구": ["대구광역시", "대구시", "대구"],
    "인천": ["인천광역시", "인천시", "인천"],
    "광주": ["광주광역시", "광주시", "광주"],
    "대전": ["대전광역시", "대전시", "대전"],
    "울산": ["울산광역시", "울산시", "울산"],
    "세종": ["세종특별자치시", "세종시", "세종"],
    "경기": ["경기도", "경기"],
    "강원": ["강원특별자치도", "강원도", "강원"],
    "충북": ["충청북도", "충북"],
    "충남": ["충청남도", "충남"],
    "전북": ["전북특별자치도", "전라북도", "전북"],
    "전남": ["전라남도", "전남"],
    "경북": ["경상북도", "경북"],
    "경남": ["경상남도", "경남"],
    "제주": ["제주특별자치도", "제주도", "제주"],
}
REGION_CODES = tuple(REGION_PATTERNS)

CATEGORY_MAPPING = {
    "행사ㆍ네트워크": "경영",
    "멘토링ㆍ컨설팅ㆍ교육": "경영",
    "판로ㆍ해외진출": "판로",
    "시설ㆍ공간ㆍ보육": "기타",
    "내수": "판로",
    "수출입": "수출",
    "R&D/기술": "R&D",
    "기술개발": "기술",
    "기술사업화": "사업화",
    "해외진출": "글로벌",
    "금융": "자금",
    "입주": "기타",
}

# Substring fallbacks, checked in order
CATEGORY_KEYWORDS = [
    ("투자", "자금"), ("융자", "자금"), ("보증", "자금"), ("자금", "자금"), ("금융", "자금"),
    ("수출", "수출"), ("해외", "글로벌"), ("글로벌", "글로벌"),
    ("R&D", "R&D"), ("연구", "R&D"), ("특허", "R&D"), ("기술", "기술"),
    ("창업", "창업"), ("스타트업", "창업"),
    ("인력", "인력"), ("교육", "인력"), ("고용", "인력"), ("일자리", "인력"),
    ("컨설팅", "경영"), ("멘토링", "경영"), ("경영", "경영"),
    ("판로", "판로"), ("마케팅", "판로"),
    ("사업화", "사업화"),
]

DATE_LIKE = re.compile(r"^\d{4}[-./]\d{1,2}[-./]\d{1,2}")


def extract_region(text: Optional[str]) -> Optional[str]:
    """
    Find a standard region code in an address or agency name.

    Example:
        extract_region("대구광역시 북구 오봉로") -> "대구"
        extract_region("경남테크노파크") -> "경남"
    """
    if not text or len(text.strip()) < 2:
        return None

    for code, patterns in REGION_PATTERNS.items():
        if any(pattern in text for pattern in patterns):
            return code

    return None


def validate_region(value: Optional[str]) -> str:
    """Map a raw region value onto a region code, defaulting to nationwide."""
    if not value or not value.strip():
        return NATIONWIDE

    trimmed = value.strip()
    if trimmed == NATIONWIDE or trimmed in REGION_CODES:
        return trimmed

    if DATE_LIKE.match(trimmed) or trimmed in VALID_CATEGORIES:
        logger.warning("invalid_region_value", value=trimmed)
        return NATIONWIDE

    return extract_region(trimmed) or NATIONWIDE


def validate_category(value: Optional[str]) -> str:
    """Map a raw category value onto the fixed category set."""
    if not value or not value.strip():
        return DEFAULT_CATEGORY

    trimmed = value.strip()
    if trimmed in VALID_CATEGORIES:
        return trimmed

    if DATE_LIKE.match(trimmed) or trimmed == NATIONWIDE or trimmed in REGION_CODES:
        logger.warning("invalid_category_value", value=trimmed)
        return DEFAULT_CATEGORY

    if trimmed in CATEGORY_MAPPING:
        return CATEGORY_MAPPING[trimmed]

    for keyword, category in CATEGORY_KEYWORDS:
        if keyword in trimmed:
            return category

    logger.debug("unknown_category", value=trimmed)
    return DEFAULT_CATEGORY
