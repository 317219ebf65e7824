"""
K-Startup (창업지원포털) listing parser.

The ongoing-announcement page is a card list. Cards link to details via
``javascript:go_view(<pbancSn>)``, so the detail URL is rebuilt from the id.
"""

import re
from typing import Optional

from bs4 import BeautifulSoup, Tag

from support_crawler.core.models import CandidateRecord, SiteFamily
from support_crawler.core.normalizer import clean_text, parse_korean_date

from .base import ListingParser, is_plausible_title, register_parser

KSTARTUP_DETAIL_URL = (
    "https://www.k-startup.go.kr/web/contents/bizpbanc-ongoing.do"
    "?schM=view&pbancSn={id}"
)
DEFAULT_ORGANIZATION = "창업진흥원"

GO_VIEW_PATTERN = re.compile(r"go_view\(\s*['\"]?(\d+)['\"]?\s*\)")
REGISTERED_LABEL = "등록일자"
DEADLINE_LABEL = "마감일자"
META_LABELS = (REGISTERED_LABEL, DEADLINE_LABEL, "조회", "시작일자")
DDAY_PATTERN = re.compile(r"^D-?\d+$|^마감|^오늘마감", re.IGNORECASE)


def go_view_id(element: Tag) -> Optional[str]:
    """Announcement id from a go_view(...) href or onclick."""
    for attr in ("href", "onclick"):
        value = element.get(attr)
        if value:
            match = GO_VIEW_PATTERN.search(value)
            if match:
                return match.group(1)
    return None


@register_parser
class KStartupParser(ListingParser):
    """Parser for k-startup.go.kr card listings."""

    family = SiteFamily.KSTARTUP.value
    domains = ("k-startup.go.kr",)
    wait_selector = "div.board_list-wrap"

    def extract_items(self, html: str, source_url: str) -> list[CandidateRecord]:
        soup = BeautifulSoup(html, "lxml")

        cards = soup.select("div.board_list-wrap li") or soup.select("ul li")
        records = []
        for card in cards:
            if "notice" in (card.get("class") or []):
                continue

            record = self._parse_card(card, source_url)
            if record:
                records.append(record)

        return records

    def _parse_card(self, card: Tag, source_url: str) -> Optional[CandidateRecord]:
        link = None
        pbanc_id = None
        for candidate in card.find_all(["a", "button"]):
            pbanc_id = go_view_id(candidate)
            if pbanc_id:
                link = candidate
                break

        if link is None:
            return None

        title_el = card.select_one(".tit") or link
        name = clean_text(title_el.get_text(" "))
        if not is_plausible_title(name):
            return None

        registered_at = None
        deadline = None
        organization = None
        for span in card.select(".bottom .list, span.list"):
            text = clean_text(span.get_text(" "))
            if text.startswith(REGISTERED_LABEL):
                registered_at = parse_korean_date(text[len(REGISTERED_LABEL):])
            elif text.startswith(DEADLINE_LABEL):
                deadline = parse_korean_date(text[len(DEADLINE_LABEL):])
            elif organization is None and text and not text.startswith(META_LABELS):
                organization = text

        category = None
        for flag in card.select(".flag"):
            text = clean_text(flag.get_text(" "))
            if text and not DDAY_PATTERN.match(text):
                category = text
                break

        return CandidateRecord(
            name=name,
            organization=organization or DEFAULT_ORGANIZATION,
            source_url=source_url,
            registered_at=registered_at,
            external_id=f"kstartup-{pbanc_id}",
            category=category or "창업",
            target="창업기업",
            detail_url=KSTARTUP_DETAIL_URL.format(id=pbanc_id),
            deadline=deadline,
            end_date=deadline,
        )
