"""
HWPX text extraction.

HWPX (OWPML) is a ZIP container; body text lives in
``Contents/section{N}.xml`` as ``<hp:p>`` paragraphs holding ``<hp:t>`` runs.
"""

import io
import re
import zipfile
from typing import Optional

import structlog
from bs4 import BeautifulSoup

logger = structlog.get_logger(__name__)

SECTION_PATTERN = re.compile(r"^Contents/section(\d+)\.xml$")


def _section_names(archive: zipfile.ZipFile) -> list[str]:
    sections = []
    for name in archive.namelist():
        match = SECTION_PATTERN.match(name)
        if match:
            sections.append((int(match.group(1)), name))
    return [name for _, name in sorted(sections)]


def _paragraphs(xml: bytes) -> list[str]:
    """Paragraph texts in document order; nested table paragraphs kept separate."""
    soup = BeautifulSoup(xml, "xml")

    paragraphs: dict[int, list[str]] = {}
    order: list[int] = []
    for run in soup.find_all("t"):
        parent = run.find_parent("p")
        key = id(parent)
        if key not in paragraphs:
            paragraphs[key] = []
            order.append(key)
        paragraphs[key].append(run.get_text())

    texts = ("".join(paragraphs[key]).strip() for key in order)
    return [text for text in texts if text]


def extract_text_from_hwpx(content: bytes) -> Optional[str]:
    """
    Extract text from HWPX bytes.

    Returns:
        Paragraphs joined by newlines, or None if the archive is unreadable
    """
    try:
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            sections = _section_names(archive)
            if not sections:
                logger.warning("hwpx_no_sections")
                return None

            paragraphs: list[str] = []
            for name in sections:
                paragraphs.extend(_paragraphs(archive.read(name)))

    except Exception as e:
        # BadZipFile, zlib.error, encrypted or unsupported members
        logger.error("hwpx_extraction_failed", error=str(e), error_type=e.__class__.__name__)
        return None

    text = "\n".join(paragraphs)
    logger.info("hwpx_extracted", sections=len(sections), chars=len(text))
    return text
