"""
Plugins wrapping external collaborators and optional libraries.

- text_parser: HTTP client for the document-parsing service
- pdf: PDF text extraction with pdfplumber (local fallback)
- hwpx: HWPX text extraction from the OWPML archive (local fallback)
- llm: announcement analysis with Claude or OpenAI (optional)
- storage: attachment storage backends
"""

from .llm import (
    AnalysisResult,
    ClaudeProvider,
    OpenAIProvider,
    ProjectAnalyzer,
)
from .storage import LocalStorage, StorageBackend
from .text_parser import TextParserClient

__all__ = [
    "AnalysisResult",
    "ClaudeProvider",
    "OpenAIProvider",
    "ProjectAnalyzer",
    "LocalStorage",
    "StorageBackend",
    "TextParserClient",
]
