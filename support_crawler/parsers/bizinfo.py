"""
Bizinfo (기업마당) listing parser.

bizinfo.go.kr is the national aggregator. Sources may point at either the
JSON API (``bizinfoApi.do?dataType=json``) or the HTML board; both are
handled.
"""

import json
from typing import Optional
from urllib.parse import parse_qs, urljoin, urlparse

from bs4 import BeautifulSoup

from support_crawler.core.models import CandidateRecord, SiteFamily
from support_crawler.core.normalizer import clean_text, parse_date_range, parse_korean_date
from support_crawler.core.validators import extract_region, validate_category

from .base import (
    ListingParser,
    cell_text,
    column_index,
    is_notice_row,
    is_plausible_title,
    register_parser,
    table_headers,
)

BIZINFO_BASE_URL = "https://www.bizinfo.go.kr"
DEFAULT_ORGANIZATION = "기업마당"


def pblanc_id_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    values = parse_qs(urlparse(url).query).get("pblancId")
    return values[0] if values else None


@register_parser
class BizinfoParser(ListingParser):
    """
    Parser for bizinfo.go.kr.

    JSON items carry:
        pblancId, pblancNm, jrsdInsttNm, excInsttNm,
        pldirSportRealmLclasCodeNm, creatPnttm, pblancUrl,
        reqstBeginEndDe, trgetNm, bsnsSumryCn, hashtags
    """

    family = SiteFamily.BIZINFO.value
    domains = ("bizinfo.go.kr",)
    page_param = "cpage"
    wait_selector = "table"
    onclick_templates = {
        "fn_egov_downFile": "/cmm/fms/FileDown.do?atchFileId={0}&fileSn={1}",
    }

    def extract_items(self, html: str, source_url: str) -> list[CandidateRecord]:
        stripped = html.lstrip()
        if stripped.startswith("{") or stripped.startswith("["):
            return self._parse_json(stripped, source_url)
        return self._parse_html(html, source_url)

    def _parse_json(self, text: str, source_url: str) -> list[CandidateRecord]:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            self.logger.warning("invalid_json_listing", url=source_url, error=str(e))
            return []

        items = data.get("jsonArray", []) if isinstance(data, dict) else data

        records = []
        for item in items:
            record = self._record_from_json(item, source_url)
            if record:
                records.append(record)
        return records

    def _record_from_json(self, item: dict, source_url: str) -> Optional[CandidateRecord]:
        name = clean_text(item.get("pblancNm"))
        if not is_plausible_title(name):
            return None

        detail_url = item.get("pblancUrl")
        if detail_url:
            detail_url = urljoin(BIZINFO_BASE_URL, detail_url)

        organization = (
            clean_text(item.get("jrsdInsttNm"))
            or clean_text(item.get("excInsttNm"))
            or DEFAULT_ORGANIZATION
        )
        start, end = parse_date_range(item.get("reqstBeginEndDe"))
        summary = item.get("bsnsSumryCn")
        if summary:
            summary = clean_text(BeautifulSoup(summary, "lxml").get_text(" "))

        region = (
            extract_region(item.get("hashtags"))
            or extract_region(organization)
            or "전국"
        )

        return CandidateRecord(
            name=name,
            organization=organization,
            source_url=source_url,
            registered_at=parse_korean_date(item.get("creatPnttm")),
            external_id=f"bizinfo-{item['pblancId']}" if item.get("pblancId") else None,
            category=validate_category(item.get("pldirSportRealmLclasCodeNm")),
            target=clean_text(item.get("trgetNm")) or "중소기업",
            region=region,
            detail_url=detail_url,
            summary=summary or None,
            start_date=start,
            end_date=end,
            deadline=end,
        )

    def _parse_html(self, html: str, source_url: str) -> list[CandidateRecord]:
        soup = BeautifulSoup(html, "lxml")
        table = soup.select_one("div.table_Type_1 table") or soup.find("table")
        if table is None:
            self.logger.warning("listing_table_missing", url=source_url)
            return []

        headers = table_headers(table)
        col_category = column_index(headers, ("지원분야", "분야"))
        col_title = column_index(headers, ("지원사업명", "사업명", "제목"))
        col_period = column_index(headers, ("신청기간", "접수기간"))
        col_org = column_index(headers, ("소관부처", "지자체", "소관"))
        col_exec = column_index(headers, ("수행기관",))
        col_date = column_index(headers, ("등록일",))

        records = []
        for row in table.select("tbody tr"):
            if is_notice_row(row):
                continue

            cells = row.find_all("td")
            if len(cells) < 3:
                continue

            title_cell = cells[col_title] if col_title is not None and col_title < len(cells) else None
            link = (title_cell or row).find("a", href=True)
            if link is None:
                continue

            name = clean_text(link.get("title") or link.get_text(" "))
            if not is_plausible_title(name):
                continue

            detail_url = urljoin(source_url, link["href"])
            pblanc_id = pblanc_id_from_url(detail_url)
            organization = (
                cell_text(cells, col_org)
                or cell_text(cells, col_exec)
                or DEFAULT_ORGANIZATION
            )
            start, end = parse_date_range(cell_text(cells, col_period))

            records.append(CandidateRecord(
                name=name,
                organization=organization,
                source_url=source_url,
                registered_at=parse_korean_date(cell_text(cells, col_date)),
                external_id=f"bizinfo-{pblanc_id}" if pblanc_id else None,
                category=validate_category(cell_text(cells, col_category)),
                region=extract_region(organization) or "전국",
                detail_url=detail_url,
                start_date=start,
                end_date=end,
                deadline=end,
            ))

        return records
