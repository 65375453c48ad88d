"""
AIO optimizer agent: the optional passes that tune a drafted article for
AI answer engines.

Runs, when enabled, in a fixed order: platform optimization, key takeaways,
entity injection, quotability. Each pass rewrites (or prepends to) the body.
"""

from __future__ import annotations

import structlog

from src.agents.step import call_step
from src.llm_client import LLMClient, SendOptions
from src.models import PipelineState, PipelineStep
from src.prompts.templates import (
    ENTITY_INJECTION_SYSTEM,
    ENTITY_INJECTION_USER_TEMPLATE,
    KEY_TAKEAWAYS_SYSTEM,
    KEY_TAKEAWAYS_USER_TEMPLATE,
    MODE_GUIDANCE,
    PLATFORM_OPTIMIZATION_SYSTEM,
    PLATFORM_OPTIMIZATION_USER_TEMPLATE,
    QUOTABILITY_SYSTEM,
    QUOTABILITY_USER_TEMPLATE,
)
from src.tools.json_recovery import recover_as

logger = structlog.get_logger()


def takeaways_section(takeaways: list[str]) -> str:
    return "## Key Takeaways\n\n" + "\n".join(f"- {t}" for t in takeaways) + "\n\n"


class AIOOptimizer:
    """Rewrites the body for citation by AI search platforms."""

    def __init__(self, llm_client: LLMClient) -> None:
        self.llm = llm_client

    async def optimize_for_platforms(self, state: PipelineState, options: SendOptions) -> PipelineState:
        mode = state.options.optimization_mode.value
        user_prompt = PLATFORM_OPTIMIZATION_USER_TEMPLATE.format(
            keyword=state.keyword,
            mode=mode,
            mode_guidance=MODE_GUIDANCE[mode],
            content=state.artifact.body,
        )
        result = await call_step(
            self.llm,
            state,
            PipelineStep.PLATFORM_OPTIMIZATION,
            PLATFORM_OPTIMIZATION_SYSTEM,
            user_prompt,
            options,
            max_output_tokens=8192,
        )
        state.artifact.body = result.content
        return state

    async def add_key_takeaways(self, state: PipelineState, options: SendOptions) -> PipelineState:
        user_prompt = KEY_TAKEAWAYS_USER_TEMPLATE.format(keyword=state.keyword, content=state.artifact.body)
        result = await call_step(
            self.llm, state, PipelineStep.KEY_TAKEAWAYS, KEY_TAKEAWAYS_SYSTEM, user_prompt, options
        )
        takeaways = recover_as(result.content, list[str])
        state.artifact.key_takeaways = takeaways
        state.artifact.body = takeaways_section(takeaways) + state.artifact.body
        logger.info("key_takeaways_added", keyword=state.keyword, count=len(takeaways))
        return state

    async def inject_entities(self, state: PipelineState, options: SendOptions) -> PipelineState:
        entities = state.options.entities_to_add
        user_prompt = ENTITY_INJECTION_USER_TEMPLATE.format(
            entities="\n".join(f"- {e}" for e in entities),
            content=state.artifact.body,
        )
        result = await call_step(
            self.llm,
            state,
            PipelineStep.ENTITY_INJECTION,
            ENTITY_INJECTION_SYSTEM,
            user_prompt,
            options,
            max_output_tokens=4096,
        )
        state.artifact.body = result.content
        return state

    async def improve_quotability(self, state: PipelineState, options: SendOptions) -> PipelineState:
        user_prompt = QUOTABILITY_USER_TEMPLATE.format(content=state.artifact.body)
        result = await call_step(
            self.llm,
            state,
            PipelineStep.QUOTABILITY,
            QUOTABILITY_SYSTEM,
            user_prompt,
            options,
            max_output_tokens=8192,
        )
        state.artifact.body = result.content
        return state
