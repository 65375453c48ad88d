"""Shared plumbing for pipeline step agents: one call, one ledger entry."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from src.llm_client import LLMClient, SendOptions
from src.models import CallResult, ChatMessage, PipelineState, PipelineStep

TRUNCATION_MARKER = "\n...[truncated]"


def truncate(text: str, max_chars: int) -> str:
    """Clip long content before it goes into a prompt."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


async def call_step(
    llm: LLMClient,
    state: PipelineState,
    step: PipelineStep,
    system_prompt: str,
    user_prompt: str,
    options: SendOptions,
    max_output_tokens: Optional[int] = None,
) -> CallResult:
    """Send the step's prompt and record the call in the run's ledger.

    The ledger entry is written before the caller parses the reply, so a
    billed call whose output turns out to be unusable is still accounted for.
    """
    step_options = replace(
        options,
        task=step.value,
        max_output_tokens=max_output_tokens or options.max_output_tokens,
    )
    result = await llm.send(
        [ChatMessage(content=user_prompt)],
        system_prompt=system_prompt,
        options=step_options,
    )
    state.artifact.usage.record(step.value, result)
    return result
