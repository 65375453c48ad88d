"""
Enrichment agents: FAQ generation and internal link suggestions.

Both are structured steps on the nano tier. Unlike the outline, a reply that
cannot be recovered fails the step.
"""

from __future__ import annotations

import structlog

from src.agents.step import call_step, truncate
from src.llm_client import LLMClient, SendOptions
from src.models import FAQ, InternalLink, PipelineState, PipelineStep
from src.prompts.templates import (
    FAQ_SYSTEM,
    FAQ_USER_TEMPLATE,
    INTERNAL_LINKS_SYSTEM,
    INTERNAL_LINKS_USER_TEMPLATE,
)
from src.tools.json_recovery import recover_as

logger = structlog.get_logger()

CONTENT_CHARS = 3000
MAX_PAGES = 20


class FAQGenerator:
    def __init__(self, llm_client: LLMClient, count: int = 5) -> None:
        self.llm = llm_client
        self.step = PipelineStep.FAQ
        self.count = count

    async def generate(self, state: PipelineState, options: SendOptions) -> PipelineState:
        user_prompt = FAQ_USER_TEMPLATE.format(
            count=self.count,
            keyword=state.keyword,
            content=truncate(state.artifact.body, CONTENT_CHARS),
        )
        result = await call_step(self.llm, state, self.step, FAQ_SYSTEM, user_prompt, options)
        faqs = recover_as(result.content, list[FAQ])
        state.artifact.faqs = faqs
        logger.info("faqs_generated", keyword=state.keyword, count=len(faqs))
        return state


class InternalLinker:
    """Suggests contextual links to the tenant's existing pages."""

    def __init__(self, llm_client: LLMClient) -> None:
        self.llm = llm_client
        self.step = PipelineStep.INTERNAL_LINKS

    def _pages(self, state: PipelineState) -> str:
        lines = []
        for p in state.options.available_pages[:MAX_PAGES]:
            line = f"- {p.title} ({p.url})"
            if p.keywords:
                line += f" - Topics: {', '.join(p.keywords[:3])}"
            lines.append(line)
        return "\n".join(lines)

    async def suggest(self, state: PipelineState, options: SendOptions) -> PipelineState:
        user_prompt = INTERNAL_LINKS_USER_TEMPLATE.format(
            content=truncate(state.artifact.body, CONTENT_CHARS),
            pages=self._pages(state),
        )
        result = await call_step(self.llm, state, self.step, INTERNAL_LINKS_SYSTEM, user_prompt, options)
        links = recover_as(result.content, list[InternalLink])
        state.artifact.internal_links = links
        logger.info("internal_links_suggested", keyword=state.keyword, count=len(links))
        return state
