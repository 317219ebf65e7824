"""
LLM-based analysis plugin for announcement documents.

Given the text of a project's first parsed attachment, asks a model for a
summary, eligibility, funding range and key dates.

Supports multiple providers:
- Anthropic Claude (preferred)
- OpenAI GPT-4o

This plugin is optional - requires API keys to function. Failures return
an empty result and never block saving a project.
"""

import json
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog

from support_crawler.core.normalizer import parse_korean_date

logger = structlog.get_logger(__name__)

MAX_CONTENT_CHARS = 50000


@dataclass
class AnalysisResult:
    """Structured fields extracted from an announcement."""
    summary: Optional[str] = None
    eligibility: Optional[str] = None
    amount_min: Optional[int] = None
    amount_max: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    deadline: Optional[datetime] = None
    raw_response: Optional[dict] = field(default=None, repr=False)

    @property
    def is_empty(self) -> bool:
        return not any((
            self.summary, self.eligibility, self.amount_min, self.amount_max,
            self.start_date, self.end_date, self.deadline,
        ))


ANALYSIS_PROMPT = """다음은 정부/공공기관 지원사업 공고문의 본문입니다. 핵심 정보를 추출하세요.

본문:
{content}

다음 JSON 형식으로만 답하세요:
{{
    "summary": "사업 요약 (3문장 이내)",
    "eligibility": "지원 대상 및 자격 요건",
    "amount_min": 최소 지원금액(원 단위 정수, 없으면 null),
    "amount_max": 최대 지원금액(원 단위 정수, 없으면 null),
    "start_date": "접수 시작일 YYYY-MM-DD (없으면 null)",
    "end_date": "접수 마감일 YYYY-MM-DD (없으면 null)",
    "deadline": "최종 마감일 YYYY-MM-DD (없으면 null)"
}}

주의:
- 본문에 없는 정보는 null로 두세요
- 금액은 원 단위 정수로 변환하세요 (예: "5천만원" = 50000000)
- JSON 외의 다른 텍스트는 쓰지 마세요
"""


def _as_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    digits = re.sub(r"[^\d]", "", str(value))
    return int(digits) if digits else None


def parse_analysis(response_text: str) -> AnalysisResult:
    """Parse a model's JSON answer (bare or in a code block)."""
    json_match = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", response_text, re.DOTALL)
    json_str = json_match.group(1) if json_match else response_text.strip()

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        logger.error("json_parse_failed", error=str(e), response=response_text[:500])
        return AnalysisResult()

    if not isinstance(data, dict):
        return AnalysisResult()

    return AnalysisResult(
        summary=data.get("summary") or None,
        eligibility=data.get("eligibility") or None,
        amount_min=_as_int(data.get("amount_min")),
        amount_max=_as_int(data.get("amount_max")),
        start_date=parse_korean_date(data.get("start_date")),
        end_date=parse_korean_date(data.get("end_date")),
        deadline=parse_korean_date(data.get("deadline")),
        raw_response=data,
    )


def _truncate(content: str) -> str:
    if len(content) > MAX_CONTENT_CHARS:
        return content[:MAX_CONTENT_CHARS] + "\n...(이하 생략)..."
    return content


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name: str = ""

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Return the model's raw text answer."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if provider is configured and available."""
        pass


class ClaudeProvider(LLMProvider):
    """Anthropic Claude provider."""

    name = "claude"

    def __init__(self, api_key: Optional[str] = None, model: str = "claude-sonnet-4-20250514"):
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self.model = model
        self._client = None

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _get_client(self):
        """Lazy-load Anthropic client."""
        if self._client is None:
            import anthropic
            self._client = anthropic.AsyncAnthropic(api_key=self.api_key)
        return self._client

    async def complete(self, prompt: str) -> str:
        message = await self._get_client().messages.create(
            model=self.model,
            max_tokens=2048,
            messages=[{"role": "user", "content": prompt}],
        )
        return message.content[0].text


class OpenAIProvider(LLMProvider):
    """OpenAI GPT provider."""

    name = "openai"

    def __init__(self, api_key: Optional[str] = None, model: str = "gpt-4o"):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.model = model
        self._client = None

    def is_available(self) -> bool:
        return bool(self.api_key)

    def _get_client(self):
        """Lazy-load OpenAI client."""
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def complete(self, prompt: str) -> str:
        response = await self._get_client().chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=2048,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""


class ProjectAnalyzer:
    """
    Announcement analysis interface.

    Automatically selects available provider with preference order:
    1. Claude
    2. OpenAI

    Usage:
        analyzer = ProjectAnalyzer()
        if analyzer.is_available():
            result = await analyzer.analyze(text)
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        anthropic_api_key: Optional[str] = None,
        openai_api_key: Optional[str] = None,
        providers: Optional[list[LLMProvider]] = None,
    ):
        """
        Initialize analyzer.

        Args:
            provider: Force specific provider ('claude', 'openai') or None for auto
            anthropic_api_key: Override env ANTHROPIC_API_KEY
            openai_api_key: Override env OPENAI_API_KEY
            providers: Explicit provider list (replaces the defaults)
        """
        if providers is None:
            providers = [
                ClaudeProvider(api_key=anthropic_api_key),
                OpenAIProvider(api_key=openai_api_key),
            ]
        self.providers: dict[str, LLMProvider] = {p.name: p for p in providers}
        self.forced_provider = provider
        self._selected_provider: Optional[LLMProvider] = None

    def is_available(self) -> bool:
        """Check if any LLM provider is available."""
        return any(p.is_available() for p in self.providers.values())

    def get_provider(self) -> Optional[LLMProvider]:
        """Get the selected/available provider."""
        if self._selected_provider:
            return self._selected_provider

        if self.forced_provider:
            provider = self.providers.get(self.forced_provider)
            if provider and provider.is_available():
                self._selected_provider = provider
                return provider
            logger.warning("forced_provider_not_available", provider=self.forced_provider)

        for provider in self.providers.values():
            if provider.is_available():
                self._selected_provider = provider
                logger.info("llm_provider_selected", provider=provider.name)
                return provider

        return None

    async def analyze(self, content: str) -> AnalysisResult:
        """
        Extract structured fields from announcement text.

        Returns:
            AnalysisResult; empty when no provider is configured or the
            call fails
        """
        if not content or not content.strip():
            return AnalysisResult()

        provider = self.get_provider()
        if not provider:
            logger.debug("no_llm_provider_available")
            return AnalysisResult()

        prompt = ANALYSIS_PROMPT.format(content=_truncate(content))
        try:
            response_text = await provider.complete(prompt)
        except Exception as e:
            # Provider SDK errors vary; analysis is best-effort
            logger.error("analysis_failed", provider=provider.name, error=str(e))
            return AnalysisResult()

        result = parse_analysis(response_text)
        logger.info("project_analyzed", provider=provider.name, empty=result.is_empty)
        return result
