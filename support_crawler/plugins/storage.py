"""
Object storage for downloaded attachments.

Storage paths look like ``projects/{project_id}/{timestamp}_{random}.{ext}``.
A ``None`` path means the file was not stored.
"""

import asyncio
import secrets
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import structlog

from support_crawler.core.file_types import extension_for
from support_crawler.core.models import FileType

logger = structlog.get_logger(__name__)


def storage_key(project_id, file_type: FileType) -> str:
    """Relative storage path for a new object."""
    timestamp = int(time.time() * 1000)
    suffix = secrets.token_hex(4)
    return f"projects/{project_id}/{timestamp}_{suffix}.{extension_for(file_type)}"


class StorageBackend(ABC):
    """Abstract base class for attachment storage."""

    @abstractmethod
    async def upload(
        self,
        content: bytes,
        project_id,
        file_name: str,
        file_type: FileType,
    ) -> Optional[str]:
        """
        Store a file.

        Returns:
            Storage path, or None if the upload failed
        """
        pass

    @abstractmethod
    async def read(self, path: str) -> bytes:
        pass


class LocalStorage(StorageBackend):
    """Filesystem storage rooted at ``base_dir``."""

    def __init__(self, base_dir: str = "./data/storage"):
        self.base_dir = Path(base_dir)

    def _write(self, target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    async def upload(
        self,
        content: bytes,
        project_id,
        file_name: str,
        file_type: FileType,
    ) -> Optional[str]:
        key = storage_key(project_id, file_type)
        try:
            await asyncio.to_thread(self._write, self.base_dir / key, content)
        except OSError as e:
            logger.error("storage_upload_failed", file_name=file_name, error=str(e))
            return None

        logger.debug("storage_uploaded", path=key, file_name=file_name, size=len(content))
        return key

    async def read(self, path: str) -> bytes:
        return await asyncio.to_thread((self.base_dir / path).read_bytes)
