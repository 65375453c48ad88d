"""
Outline Planner agent.

Turns a keyword and the current SERP into a structured ContentOutline. This is
the only step whose unusable output is absorbed: when the reply cannot be
recovered, a deterministic template outline built from the keyword is used
instead, so one malformed response never blocks content generation.
"""

from __future__ import annotations

import structlog

from src.agents.step import call_step
from src.llm_client import LLMClient, SendOptions
from src.models import FAQ, ContentOutline, OptimizationMode, OutlineHeading, PipelineState, PipelineStep
from src.prompts.templates import (
    AIO_OUTLINE_SYSTEM,
    AIO_OUTLINE_USER_TEMPLATE,
    OUTLINE_SYSTEM,
    OUTLINE_USER_TEMPLATE,
)
from src.tools.json_recovery import RecoveryError, recover_as

logger = structlog.get_logger()

MAX_SERP_RESULTS = 5


def _heading(text: str, points: list[str], words: int) -> OutlineHeading:
    return OutlineHeading(level=2, text=text, points=points, word_count=words)


def fallback_outline(keyword: str, aio: bool = False) -> ContentOutline:
    """Deterministic outline populated from the keyword."""
    cap = keyword[:1].upper() + keyword[1:]
    if not aio:
        return ContentOutline(
            title=f"The Complete Guide to {cap}",
            meta_title=f"{cap} - Complete Guide",
            meta_description=(
                f"Learn everything about {keyword}. "
                "Comprehensive guide with expert tips and actionable strategies."
            ),
            headings=[
                _heading(f"What is {cap}?", ["Definition", "Key concepts"], 300),
                _heading(f"Why {cap} Matters", ["Benefits", "Impact"], 300),
                _heading(f"Getting Started with {cap}", ["Step 1", "Step 2", "Step 3"], 400),
                _heading("Best Practices", ["Tip 1", "Tip 2", "Tip 3"], 300),
                _heading("Common Mistakes to Avoid", ["Mistake 1", "Mistake 2"], 300),
                _heading("Conclusion", ["Summary", "Next steps"], 200),
            ],
            faqs=[
                FAQ(question=f"What is {keyword}?", answer=f"A brief overview of {keyword}."),
                FAQ(question="How do I get started?", answer="Start by understanding the basics..."),
            ],
        )
    return ContentOutline(
        title=f"The Complete Guide to {cap}",
        meta_title=f"{cap} - Complete Guide",
        meta_description=(
            f"Learn everything about {keyword}. "
            "Comprehensive guide with expert tips, best practices, and actionable strategies."
        ),
        headings=[
            _heading(f"What is {cap}?", ["Definition", "Key concepts"], 300),
            _heading(f"Why {cap} Matters", ["Benefits", "Impact"], 300),
            _heading(f"How to Get Started with {cap}", ["Step 1", "Step 2", "Step 3"], 400),
            _heading(f"Best Practices for {cap}", ["Tip 1", "Tip 2", "Tip 3"], 300),
            _heading("Common Mistakes to Avoid", ["Mistake 1", "Mistake 2"], 300),
            _heading("Conclusion", ["Summary", "Next steps"], 200),
        ],
        faqs=[
            FAQ(question=f"What is {keyword}?", answer=f"A brief overview of {keyword}."),
            FAQ(question=f"How do I get started with {keyword}?", answer="Start by understanding the basics..."),
            FAQ(question=f"What are the benefits of {keyword}?", answer="The main benefits include..."),
        ],
        key_takeaways=[
            f"Understanding {keyword} is essential for success",
            "Start with the fundamentals before advanced techniques",
            "Consistent practice leads to better results",
        ],
    )


class OutlinePlanner:
    """Plans the article structure from the keyword and competing results."""

    def __init__(self, llm_client: LLMClient) -> None:
        self.llm = llm_client
        self.step = PipelineStep.OUTLINE

    def _serp_summary(self, state: PipelineState) -> str:
        if not state.serp_results:
            return "(No competitor data available)"
        return "\n\n".join(
            f"{i}. {r.title}\n   {r.snippet}" for i, r in enumerate(state.serp_results[:MAX_SERP_RESULTS], 1)
        )

    async def plan(self, state: PipelineState, options: SendOptions, word_count: int) -> PipelineState:
        aio = state.options.optimization_mode != OptimizationMode.SEO
        system, template = (AIO_OUTLINE_SYSTEM, AIO_OUTLINE_USER_TEMPLATE) if aio else (
            OUTLINE_SYSTEM,
            OUTLINE_USER_TEMPLATE,
        )
        user_prompt = template.format(
            keyword=state.keyword,
            serp_summary=self._serp_summary(state),
            word_count=word_count,
        )
        result = await call_step(self.llm, state, self.step, system, user_prompt, options, max_output_tokens=4096)

        try:
            outline = recover_as(result.content, ContentOutline)
        except RecoveryError as e:
            logger.warning(
                "outline_fallback_used",
                keyword=state.keyword,
                aio=aio,
                preview=e.preview[:100],
            )
            outline = fallback_outline(state.keyword, aio=aio)
            state.artifact.used_fallback_outline = True

        artifact = state.artifact
        artifact.outline = outline
        artifact.title = outline.title
        artifact.meta_title = outline.meta_title
        artifact.meta_description = outline.meta_description
        artifact.faqs = list(outline.faqs)
        logger.info(
            "outline_planned",
            keyword=state.keyword,
            headings=len(outline.headings),
            faqs=len(outline.faqs),
            fallback=artifact.used_fallback_outline,
        )
        return state
