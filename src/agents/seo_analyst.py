"""
SEO Analyst agent: single-call operations outside the content pipeline.

Each operation sends one prompt, recovers the structured reply and returns
(value, CallResult) so the caller can bill or display the call's cost.
Admission, retries and spend limits come from the transport as usual.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional, TypeVar

import structlog

from src.agents.step import truncate
from src.llm_client import LLMClient, LLMNotConfiguredError, SendOptions
from src.models import (
    AIOReadiness,
    CallResult,
    ChatMessage,
    ContentAnalysis,
    ContentIdea,
    ContentPlan,
    KeywordCluster,
    MetaTags,
    PageScore,
    PageSnapshot,
)
from src.prompts.templates import (
    AIO_READINESS_SYSTEM,
    AIO_READINESS_USER_TEMPLATE,
    CONTENT_ANALYSIS_SYSTEM,
    CONTENT_ANALYSIS_USER_TEMPLATE,
    CONTENT_IDEAS_SYSTEM,
    CONTENT_IDEAS_USER_TEMPLATE,
    CONTENT_OPTIMIZATION_SYSTEM,
    CONTENT_OPTIMIZATION_USER_TEMPLATE,
    CONTENT_PLAN_SYSTEM,
    CONTENT_PLAN_USER_TEMPLATE,
    KEYWORD_CLUSTER_SYSTEM,
    KEYWORD_CLUSTER_USER_TEMPLATE,
    META_SYSTEM,
    META_USER_TEMPLATE,
    QUICK_SCORE_SYSTEM,
    QUICK_SCORE_USER_TEMPLATE,
)
from src.tools.json_recovery import recover_as

logger = structlog.get_logger()
T = TypeVar("T")


class SEOAnalyst:
    """Keyword research, scoring and rewriting operations."""

    def __init__(self, llm_client: LLMClient) -> None:
        self.llm = llm_client

    def is_ready(self) -> bool:
        return self.llm.configured()

    async def _call(
        self,
        task: str,
        system_prompt: str,
        user_prompt: str,
        options: Optional[SendOptions],
        max_output_tokens: Optional[int] = None,
    ) -> CallResult:
        if not self.is_ready():
            raise LLMNotConfiguredError("AI client not configured")
        opts = replace(options or SendOptions(), task=task)
        if max_output_tokens:
            opts.max_output_tokens = max_output_tokens
        return await self.llm.send([ChatMessage(content=user_prompt)], system_prompt=system_prompt, options=opts)

    async def _structured(
        self,
        task: str,
        system_prompt: str,
        user_prompt: str,
        model_type: type[T],
        options: Optional[SendOptions],
        max_output_tokens: Optional[int] = None,
    ) -> tuple[T, CallResult]:
        result = await self._call(task, system_prompt, user_prompt, options, max_output_tokens)
        value = recover_as(result.content, model_type)
        logger.info("seo_operation_completed", task=task, cost_cents=result.cost_cents)
        return value, result

    # ── Keyword research ──

    async def cluster_keywords(
        self, keywords: list[str], options: Optional[SendOptions] = None
    ) -> tuple[list[KeywordCluster], CallResult]:
        user_prompt = KEYWORD_CLUSTER_USER_TEMPLATE.format(keywords="\n".join(keywords))
        return await self._structured(
            "keyword_clustering", KEYWORD_CLUSTER_SYSTEM, user_prompt, list[KeywordCluster], options
        )

    async def generate_content_ideas(
        self,
        topic: str,
        existing_titles: Optional[list[str]] = None,
        count: int = 10,
        options: Optional[SendOptions] = None,
    ) -> tuple[list[ContentIdea], CallResult]:
        existing_block = ""
        if existing_titles:
            existing_block = "\nExisting articles (avoid similar topics):\n" + "\n".join(existing_titles[:10]) + "\n"
        user_prompt = CONTENT_IDEAS_USER_TEMPLATE.format(count=count, topic=topic, existing_block=existing_block)
        return await self._structured(
            "content_ideas", CONTENT_IDEAS_SYSTEM, user_prompt, list[ContentIdea], options
        )

    # ── Content analysis ──

    async def analyze_content(
        self, content: str, keyword: str, options: Optional[SendOptions] = None
    ) -> tuple[ContentAnalysis, CallResult]:
        user_prompt = CONTENT_ANALYSIS_USER_TEMPLATE.format(
            keyword=keyword,
            word_count=len(content.split()),
            content=truncate(content, 4000),
        )
        return await self._structured(
            "content_analysis", CONTENT_ANALYSIS_SYSTEM, user_prompt, ContentAnalysis, options, 2048
        )

    async def optimize_content(
        self,
        content: str,
        keyword: str,
        suggestions: list[str],
        options: Optional[SendOptions] = None,
    ) -> tuple[str, CallResult]:
        """Rewrite content to fix the listed issues. Returns the optimized prose."""
        user_prompt = CONTENT_OPTIMIZATION_USER_TEMPLATE.format(
            keyword=keyword,
            content=truncate(content, 6000),
            suggestions="\n".join(f"{i}. {s}" for i, s in enumerate(suggestions, 1)),
        )
        result = await self._call(
            "content_optimization", CONTENT_OPTIMIZATION_SYSTEM, user_prompt, options, 8192
        )
        return result.content, result

    async def generate_meta(
        self, content: str, keyword: str, options: Optional[SendOptions] = None
    ) -> tuple[MetaTags, CallResult]:
        user_prompt = META_USER_TEMPLATE.format(keyword=keyword, content=content[:1500])
        return await self._structured("meta_generation", META_SYSTEM, user_prompt, MetaTags, options)

    async def quick_score(
        self, page: PageSnapshot, options: Optional[SendOptions] = None
    ) -> tuple[PageScore, CallResult]:
        user_prompt = QUICK_SCORE_USER_TEMPLATE.format(
            title=page.title or "Missing",
            meta_description=page.meta_description or "Missing",
            h1=page.h1 or "Missing",
            heading_count=len(page.headings),
            word_count=page.word_count,
            has_schema="Yes" if page.has_schema else "No",
            load_time=f"{page.load_time_ms}ms" if page.load_time_ms else "Unknown",
        )
        return await self._structured("quick_score", QUICK_SCORE_SYSTEM, user_prompt, PageScore, options)

    async def generate_content_plan(
        self,
        topic: str,
        keywords: list[str],
        timeframe_days: int = 30,
        options: Optional[SendOptions] = None,
    ) -> tuple[ContentPlan, CallResult]:
        user_prompt = CONTENT_PLAN_USER_TEMPLATE.format(
            days=timeframe_days,
            topic=topic,
            keywords="\n".join(keywords[:20]),
        )
        return await self._structured(
            "content_plan", CONTENT_PLAN_SYSTEM, user_prompt, ContentPlan, options, 2048
        )

    async def analyze_aio_readiness(
        self, content: str, keyword: str, options: Optional[SendOptions] = None
    ) -> tuple[AIOReadiness, CallResult]:
        user_prompt = AIO_READINESS_USER_TEMPLATE.format(keyword=keyword, content=truncate(content, 6000))
        return await self._structured(
            "aio_readiness", AIO_READINESS_SYSTEM, user_prompt, AIOReadiness, options, 2048
        )
