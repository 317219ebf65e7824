"""
Attachment link extraction for detail pages.

Site families mark downloads in three ways:
- direct anchors whose href looks like a download
- JavaScript buttons (``onclick="fn_download('123')"``)
- an "첨부파일" heading/label followed by a list of links
"""

import re
from typing import Iterable, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

DOCUMENT_EXTENSIONS = ("pdf", "hwp", "hwpx", "doc", "docx", "xls", "xlsx", "zip")

DOWNLOAD_HREF_PATTERN = re.compile(
    r"\.(?:" + "|".join(DOCUMENT_EXTENSIONS) + r")(?:$|[?#])"
    r"|download|filedown|getfile|attachfile",
    re.IGNORECASE,
)
DOCUMENT_TEXT_PATTERN = re.compile(
    r"\.(?:" + "|".join(DOCUMENT_EXTENSIONS) + r")\s*(?:\(.*\))?$",
    re.IGNORECASE,
)

ATTACHMENT_HEADINGS = ("첨부파일", "첨부 파일", "첨부서류", "첨부", "파일")

# Only applied to links inside an attachment section
SECTION_HREF_PATTERN = re.compile(r"file|down|atch", re.IGNORECASE)

JS_CALL_PATTERN = re.compile(r"([A-Za-z_$][\w$]*)\s*\(([^)]*)\)")


def absolutize(href: Optional[str], base_url: str) -> Optional[str]:
    """Absolute URL for an href; None for javascript: and fragment links."""
    if not href:
        return None

    href = href.strip()
    if not href or href.startswith("#") or href.lower().startswith(("javascript:", "mailto:", "tel:")):
        return None

    return urljoin(base_url, href)


def unique(urls: Iterable[Optional[str]]) -> list[str]:
    """Drop empties and duplicates, keeping first-seen order."""
    seen: set[str] = set()
    result = []
    for url in urls:
        if url and url not in seen:
            seen.add(url)
            result.append(url)
    return result


def parse_js_call(script: Optional[str]) -> Optional[tuple[str, list[str]]]:
    """
    Split ``fn_download('a', 2);`` into ("fn_download", ["a", "2"]).
    """
    if not script:
        return None

    match = JS_CALL_PATTERN.search(script)
    if not match:
        return None

    args = [
        arg.strip().strip("'\"")
        for arg in match.group(2).split(",")
        if arg.strip()
    ]
    return match.group(1), args


def is_download_anchor(anchor: Tag) -> bool:
    href = anchor.get("href") or ""
    if DOWNLOAD_HREF_PATTERN.search(href) and not href.lower().startswith("javascript:"):
        return True

    text = anchor.get_text(" ", strip=True)
    return bool(text and DOCUMENT_TEXT_PATTERN.search(text) and absolutize(href, "http://x/"))


def extract_download_anchors(soup: BeautifulSoup, base_url: str) -> list[str]:
    """Anchors whose href or text looks like a document download."""
    return unique(
        absolutize(anchor.get("href"), base_url)
        for anchor in soup.find_all("a", href=True)
        if is_download_anchor(anchor)
    )


def extract_onclick_downloads(
    soup: BeautifulSoup,
    base_url: str,
    templates: dict[str, str],
) -> list[str]:
    """
    Build URLs from JavaScript download handlers.

    Args:
        templates: JS function name -> URL template using positional
                   placeholders, e.g. ``{"fn_egov_downFile":
                   "/cmm/fms/FileDown.do?atchFileId={0}&fileSn={1}"}``
    """
    if not templates:
        return []

    urls = []
    for element in soup.select("[onclick], a[href^='javascript:']"):
        script = element.get("onclick") or element.get("href")
        call = parse_js_call(script)
        if not call:
            continue

        name, args = call
        template = templates.get(name)
        if template is None:
            continue

        try:
            urls.append(urljoin(base_url, template.format(*args)))
        except IndexError:
            continue

    return unique(urls)


def _section_after_label(label: Tag) -> Optional[Tag]:
    """Container holding the links that belong to an attachment label."""
    if label.name == "th":
        return label.find_next_sibling("td")
    if label.name == "dt":
        return label.find_next_sibling("dd")

    sibling = label.find_next_sibling()
    if sibling is not None:
        return sibling

    # Label wrapped alone (<p><strong>첨부파일</strong></p>): the list follows the wrapper
    if label.parent is not None and len(label.parent.find_all(True)) == 1:
        return label.parent.find_next_sibling()
    return None


def is_section_file_link(anchor: Tag) -> bool:
    """Looser file check for anchors under a free-standing attachment label."""
    if is_download_anchor(anchor):
        return True

    href = anchor.get("href") or ""
    return bool(SECTION_HREF_PATTERN.search(href)) and not href.lower().startswith("javascript:")


def extract_heading_section(
    soup: BeautifulSoup,
    base_url: str,
    headings: tuple[str, ...] = ATTACHMENT_HEADINGS,
) -> list[str]:
    """
    Links listed under an attachment heading or table label.

    Every link in a th/td or dt/dd cell counts; under a heading or inline
    label only file-looking links do.
    """
    urls = []
    for label in soup.find_all(["th", "dt", "h2", "h3", "h4", "h5", "strong", "span", "p"]):
        text = label.get_text(" ", strip=True)
        if not text or len(text) > 20:
            continue
        if not any(text.startswith(heading) for heading in headings):
            continue

        section = _section_after_label(label)
        if section is None:
            continue

        for anchor in section.find_all("a", href=True):
            if label.name not in ("th", "dt") and not is_section_file_link(anchor):
                continue
            url = absolutize(anchor["href"], base_url)
            if url:
                urls.append(url)

    return unique(urls)


def extract_attachment_urls(
    html: str,
    base_url: str,
    onclick_templates: Optional[dict[str, str]] = None,
    use_headings: bool = True,
) -> list[str]:
    """All attachment URLs on a detail page, direct anchors first."""
    soup = BeautifulSoup(html, "lxml")

    urls = extract_download_anchors(soup, base_url)
    urls += extract_onclick_downloads(soup, base_url, onclick_templates or {})
    if use_headings:
        urls += extract_heading_section(soup, base_url)

    return unique(urls)
