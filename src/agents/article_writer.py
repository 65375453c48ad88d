"""
Article Writer agent.

Writes the full markdown body from the outline. Prose step: the reply is used
as-is, and any failure propagates (an article step is never papered over).
"""

from __future__ import annotations

import structlog

from src.agents.step import call_step
from src.llm_client import LLMClient, SendOptions
from src.models import ContentOutline, PipelineState, PipelineStep
from src.prompts.templates import ARTICLE_SYSTEM, ARTICLE_USER_TEMPLATE, DEFAULT_VOICE

logger = structlog.get_logger()


def render_outline(outline: ContentOutline) -> str:
    """Markdown skeleton of the outline for the prompt."""
    blocks = []
    for h in outline.headings:
        lines = [f"{'#' * h.level} {h.text}"] + [f"- {p}" for p in h.points]
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


class ArticleWriter:
    """Writes the article body following the outline."""

    def __init__(self, llm_client: LLMClient) -> None:
        self.llm = llm_client
        self.step = PipelineStep.ARTICLE

    async def write(self, state: PipelineState, options: SendOptions, word_count: int) -> PipelineState:
        outline = state.artifact.outline or ContentOutline(title=state.keyword)
        voice = f"Brand voice: {state.options.brand_voice}" if state.options.brand_voice else DEFAULT_VOICE
        faq_block = ""
        if outline.faqs:
            faq_block = "\nInclude these FAQs at the end:\n" + "\n".join(f"Q: {f.question}" for f in outline.faqs) + "\n"

        user_prompt = ARTICLE_USER_TEMPLATE.format(
            word_count=word_count,
            keyword=state.keyword,
            title=outline.title,
            outline=render_outline(outline),
            faq_block=faq_block,
        )
        result = await call_step(
            self.llm,
            state,
            self.step,
            ARTICLE_SYSTEM.format(voice=voice),
            user_prompt,
            options,
            max_output_tokens=8192,
        )
        state.artifact.body = result.content
        logger.info("article_written", keyword=state.keyword, chars=len(result.content))
        return state
