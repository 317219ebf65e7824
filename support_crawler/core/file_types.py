"""
Attachment file type detection and classification.

The real type is taken from the payload's leading bytes; names and URLs are
only a preliminary hint.
"""

import re
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import unquote, urlparse

from .models import FileType

PDF_SIGNATURE = b"%PDF-"
OLE_SIGNATURE = bytes.fromhex("D0CF11E0A1B11AE1")  # HWP 5.x compound file
ZIP_SIGNATURE = b"PK\x03\x04"  # HWPX (OWPML)

EXTENSION_TYPES = {
    ".pdf": FileType.PDF,
    ".hwp": FileType.HWP,
    ".hwpx": FileType.HWPX,
}

MIME_TYPES = {
    FileType.PDF: "application/pdf",
    FileType.HWP: "application/x-hwp",
    FileType.HWPX: "application/hwp+zip",
    FileType.UNKNOWN: "application/octet-stream",
}

# Non-document attachments (images, posters) are never parsed
SKIP_KEYWORDS = [
    "로고", "이미지", "배너", "썸네일", "포스터", "사진",
    "photo", "image", "logo", "banner", "poster",
]

CORE_DOCUMENT_KEYWORDS = [
    "공고", "신청서", "사업계획서", "지원서", "안내", "요강", "지침",
    "신청양식", "제출서류", "평가기준", "선정기준", "모집공고", "사업공고",
    "참가신청",
]

PARSEABLE_EXTENSIONS = (".hwp", ".hwpx", ".pdf")

# (priority, keywords), checked in order
PRIORITY_RULES = [
    (100, ["공고", "모집", "안내"]),
    (80, ["신청서", "지원서", "신청양식"]),
    (70, ["사업계획서", "계획서"]),
    (60, ["평가", "선정", "기준"]),
]
DEFAULT_PRIORITY = 10

CONTENT_DISPOSITION_PATTERN = re.compile(
    r"filename\*?=['\"]?(?:UTF-8'')?([^'\";]+)", re.IGNORECASE
)


def detect_file_type(content: Optional[bytes]) -> FileType:
    """
    Detect file type from magic bytes.

    Args:
        content: Leading bytes (or the whole payload)

    Returns:
        FileType.PDF, HWP, HWPX or UNKNOWN
    """
    if not content:
        return FileType.UNKNOWN

    if content.startswith(PDF_SIGNATURE):
        return FileType.PDF
    if content.startswith(OLE_SIGNATURE):
        return FileType.HWP
    if content.startswith(ZIP_SIGNATURE):
        return FileType.HWPX

    return FileType.UNKNOWN


def file_type_from_name(name: Optional[str]) -> FileType:
    """Guess the type from a file name or URL path."""
    if not name:
        return FileType.UNKNOWN

    suffix = PurePosixPath(name.split("?")[0].lower()).suffix
    return EXTENSION_TYPES.get(suffix, FileType.UNKNOWN)


def filename_from_content_disposition(header: Optional[str]) -> Optional[str]:
    """
    Read the server-declared file name.

    Prefers the RFC 5987 ``filename*=UTF-8''...`` form over ``filename=``.
    """
    if not header:
        return None

    extended = re.search(r"filename\*\s*=\s*(?:UTF-8|utf-8)''([^;]+)", header)
    if extended:
        return unquote(extended.group(1).strip().strip("\"'"))

    match = re.search(r"filename\s*=\s*\"([^\"]+)\"", header, re.IGNORECASE)
    if not match:
        match = CONTENT_DISPOSITION_PATTERN.search(header)
    if not match:
        return None

    name = match.group(1).strip()
    try:
        return unquote(name, errors="strict")
    except UnicodeDecodeError:
        return name


def filename_from_url(url: str) -> str:
    """Last path segment of a URL, percent-decoded."""
    path = urlparse(url).path
    name = unquote(path.rstrip("/").split("/")[-1]) if path else ""
    return name or "attachment"


def should_parse_file(file_name: str) -> bool:
    """Whether an attachment looks like a core announcement document."""
    lower = file_name.lower()

    if any(keyword in lower for keyword in SKIP_KEYWORDS):
        return False
    if any(keyword in file_name for keyword in CORE_DOCUMENT_KEYWORDS):
        return True

    return lower.endswith(PARSEABLE_EXTENSIONS)


def parsing_priority(file_name: str) -> int:
    """Higher numbers are parsed first (announcement text before forms)."""
    for priority, keywords in PRIORITY_RULES:
        if any(keyword in file_name for keyword in keywords):
            return priority
    return DEFAULT_PRIORITY


def sort_by_priority(file_names: list[str]) -> list[str]:
    """Stable sort, highest parsing priority first."""
    return sorted(file_names, key=parsing_priority, reverse=True)


def mime_type(file_type: FileType) -> str:
    return MIME_TYPES.get(file_type, MIME_TYPES[FileType.UNKNOWN])


def extension_for(file_type: FileType) -> str:
    return "bin" if file_type == FileType.UNKNOWN else file_type.value
