"""
Technopark family listing parser.

Regional technoparks (``*tp.or.kr``) run similar notice boards: a table with
number, title, author/department, date and views columns. Column order
varies, so columns are found by header text with positional fallbacks.
"""

import re
from typing import Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from support_crawler.core.models import CandidateRecord, SiteFamily
from support_crawler.core.normalizer import clean_text, parse_date_range, parse_korean_date
from support_crawler.core.validators import extract_region

from .attachments import absolutize, parse_js_call
from .base import (
    ListingParser,
    cell_text,
    column_index,
    is_notice_row,
    is_plausible_title,
    register_parser,
    table_headers,
)

# Hostname (without "www.") -> (agency, region)
TECHNOPARK_AGENCIES = {
    "gdtp.or.kr": ("경기대진테크노파크", "경기"),
    "gtp.or.kr": ("경기테크노파크", "경기"),
    "gntp.or.kr": ("경남테크노파크", "경남"),
    "gbtp.or.kr": ("경북테크노파크", "경북"),
    "gjtp.or.kr": ("광주테크노파크", "광주"),
    "dgtp.or.kr": ("대구테크노파크", "대구"),
    "djtp.or.kr": ("대전테크노파크", "대전"),
    "seoultp.or.kr": ("서울테크노파크", "서울"),
    "sjtp.or.kr": ("세종테크노파크", "세종"),
    "utp.or.kr": ("울산테크노파크", "울산"),
    "itp.or.kr": ("인천테크노파크", "인천"),
    "jntp.or.kr": ("전남테크노파크", "전남"),
    "jbtp.or.kr": ("전북테크노파크", "전북"),
    "jejutp.or.kr": ("제주테크노파크", "제주"),
    "ctp.or.kr": ("충남테크노파크", "충남"),
    "cbtp.or.kr": ("충북테크노파크", "충북"),
    "ptp.or.kr": ("포항테크노파크", "경북"),
    "gwtp.or.kr": ("강원테크노파크", "강원"),
    "btp.or.kr": ("부산테크노파크", "부산"),
}

DATE_CELL_PATTERN = re.compile(r"\d{2,4}[-./]\d{1,2}[-./]\d{1,2}")

# View handlers seen on technopark boards -> detail URL template
VIEW_TEMPLATES = {
    "fn_view": "?mode=view&idx={0}",
    "goView": "?mode=view&idx={0}",
    "fnView": "?mode=view&idx={0}",
    "fn_detail": "?mode=view&idx={0}",
    "fn_egov_inqire_notice": "selectBoardArticle.do?nttId={0}&bbsId={1}",
}


def agency_for_host(url: str) -> Optional[tuple[str, str]]:
    """(agency, region) for a technopark URL, matching subdomains too."""
    host = (urlparse(url).hostname or "").lower()
    for domain, agency in TECHNOPARK_AGENCIES.items():
        if host == domain or host.endswith("." + domain):
            return agency
    return None


@register_parser
class TechnoparkParser(ListingParser):
    """Parser for regional technopark notice boards."""

    family = SiteFamily.TECHNOPARK.value
    domains = tuple(TECHNOPARK_AGENCIES)
    wait_selector = "table"
    onclick_templates = {
        "fn_egov_downFile": "/cmm/fms/FileDown.do?atchFileId={0}&fileSn={1}",
        "fn_download": "/common/fileDown.do?fileId={0}",
        "fileDown": "/common/fileDown.do?fileId={0}",
        "downloadFile": "/common/fileDown.do?fileId={0}",
    }

    def can_handle(self, url: str) -> bool:
        host = (urlparse(url).hostname or "").lower()
        return super().can_handle(url) or host.endswith("tp.or.kr")

    def extract_items(self, html: str, source_url: str) -> list[CandidateRecord]:
        soup = BeautifulSoup(html, "lxml")

        table = self._find_board_table(soup)
        if table is None:
            self.logger.warning("listing_table_missing", url=source_url)
            return []

        agency, host_region = agency_for_host(source_url) or (None, None)

        headers = table_headers(table)
        columns = {
            "title": column_index(headers, ("제목", "사업명", "공고명")),
            "author": column_index(headers, ("작성자", "담당부서", "부서", "기관")),
            "date": column_index(headers, ("등록일", "작성일", "게시일", "공고일")),
            "period": column_index(headers, ("접수기간", "신청기간", "사업기간")),
        }

        records = []
        rows = table.select("tbody tr") or table.find_all("tr")[1:]
        for row in rows:
            if is_notice_row(row):
                continue

            record = self._parse_row(row, columns, source_url, agency, host_region)
            if record:
                records.append(record)

        return records

    def _find_board_table(self, soup: BeautifulSoup) -> Optional[Tag]:
        """Largest table whose rows contain links."""
        best = None
        best_rows = 0
        for table in soup.find_all("table"):
            rows = [row for row in table.find_all("tr") if row.find("a")]
            if len(rows) > best_rows:
                best, best_rows = table, len(rows)
        return best

    def _parse_row(
        self,
        row: Tag,
        columns: dict,
        source_url: str,
        agency: Optional[str],
        host_region: Optional[str],
    ) -> Optional[CandidateRecord]:
        cells = row.find_all("td")
        if len(cells) < 2:
            return None

        title_index = columns["title"]
        if title_index is not None and title_index < len(cells):
            title_cell = cells[title_index]
        else:
            title_cell = next((cell for cell in cells if cell.find("a")), None)
        if title_cell is None:
            return None

        link = title_cell.find("a")
        name = clean_text((link or title_cell).get_text(" "))
        if not is_plausible_title(name):
            return None

        detail_url = self._detail_url(link, source_url) if link is not None else None

        date_text = cell_text(cells, columns["date"])
        if date_text is None:
            date_text = next(
                (
                    cell.get_text(" ", strip=True) for cell in cells
                    if cell is not title_cell and DATE_CELL_PATTERN.search(cell.get_text())
                ),
                None,
            )

        organization = agency or cell_text(cells, columns["author"]) or "테크노파크"
        region = host_region or extract_region(organization) or "전국"
        start, end = parse_date_range(cell_text(cells, columns["period"]))

        return CandidateRecord(
            name=name,
            organization=organization,
            source_url=source_url,
            registered_at=parse_korean_date(date_text),
            region=region,
            detail_url=detail_url,
            start_date=start,
            end_date=end,
            deadline=end,
        )

    def _detail_url(self, link: Tag, source_url: str) -> Optional[str]:
        url = absolutize(link.get("href"), source_url)
        if url:
            return url

        call = parse_js_call(link.get("onclick") or link.get("href"))
        if call:
            name, args = call
            template = VIEW_TEMPLATES.get(name)
            if template and args:
                try:
                    return urljoin(source_url, template.format(*args))
                except IndexError:
                    return None

        return None
