"""
PDF text extraction with pdfplumber.

Local fallback when the document-parsing service is unavailable or returns
no text. Announcement PDFs keep eligibility and funding details in tables,
so table rows are appended to each page's text as ``cell | cell`` lines.
"""

import io
import re
from typing import Optional

import pdfplumber
import structlog

logger = structlog.get_logger(__name__)

PAGE_NUMBER_PATTERN = re.compile(r"\n\s*-?\s*\d+\s*-?\s*\n")


def extract_text_from_pdf(content: bytes, max_pages: Optional[int] = None) -> Optional[str]:
    """
    Extract text (and table rows) from PDF bytes.

    Args:
        content: PDF file content
        max_pages: Stop after this many pages

    Returns:
        Extracted text, or None if the document could not be read
    """
    try:
        pages = []

        with pdfplumber.open(io.BytesIO(content)) as pdf:
            for page in pdf.pages[:max_pages]:
                parts = []
                page_text = page.extract_text()
                if page_text:
                    parts.append(_cleanup_pdf_text(page_text))

                rows = [_table_row(row) for table in page.extract_tables() for row in table]
                rows = [row for row in rows if row]
                if rows:
                    parts.append("\n".join(rows))

                if parts:
                    pages.append("\n".join(parts))

        full_text = "\n\n".join(pages)
        logger.info("pdf_extracted", pages=len(pages), chars=len(full_text))
        return full_text

    except Exception as e:
        logger.error("pdf_extraction_failed", error=str(e))
        return None


def _table_row(row: list) -> str:
    cells = [re.sub(r"\s+", " ", str(cell)).strip() for cell in row if cell]
    return " | ".join(cell for cell in cells if cell)


def _cleanup_pdf_text(text: str) -> str:
    """Collapse spaces, drop bare page numbers and runs of blank lines."""
    text = re.sub(r"[ \t]+", " ", text)
    text = PAGE_NUMBER_PATTERN.sub("\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()
