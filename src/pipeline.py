"""
LangGraph content pipeline: the core orchestration graph.

outline → article → [faq] → [internal_links] → [platform_optimization]
→ [key_takeaways] → [entity_injection] → [quotability] → finalize

Steps run strictly in sequence; each one calls the transport, records the call
in the run's usage ledger, then updates the artifact. State is passed as dict;
we serialize/deserialize PipelineState at each node. Per-run context (send
options, cancel token) travels in the LangGraph config, never in the state.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog
from langchain_core.runnables import RunnableConfig
from langgraph.graph import END, StateGraph

from src import pricing
from src.agents.aio_optimizer import AIOOptimizer
from src.agents.article_writer import ArticleWriter
from src.agents.enrichment import FAQGenerator, InternalLinker
from src.agents.outline_planner import OutlinePlanner
from src.config import get_settings
from src.llm_client import CancellationToken, LLMClient, LLMClientError, SendOptions
from src.models import (
    STEP_ORDER,
    GeneratedContent,
    OptimizationMode,
    PipelineOptions,
    PipelineState,
    PipelineStatus,
    PipelineStep,
    SerpResult,
    UsageLedger,
)
from src.observability import metrics as obs_metrics
from src.tools.json_recovery import RecoveryError

logger = structlog.get_logger()

FINALIZE = "finalize"

# Errors that fail a step (and the run) instead of escaping the graph
STEP_ERRORS = (LLMClientError, RecoveryError, pricing.UnknownModelError)


class PipelineStepError(Exception):
    """A pipeline step failed; carries the usage accrued up to and including that step."""

    def __init__(
        self,
        step: PipelineStep,
        ledger: UsageLedger,
        partial: Optional[GeneratedContent],
        message: str,
    ) -> None:
        super().__init__(f"Pipeline step '{step.value}' failed: {message}")
        self.step = step
        self.ledger = ledger
        self.partial = partial


@dataclass
class _RunContext:
    send_options: SendOptions
    cancel: CancellationToken
    word_count: int
    cause: Optional[BaseException] = field(default=None)


StepHandler = Callable[[PipelineState, _RunContext], Awaitable[PipelineState]]


class ContentPipeline:
    """
    Multi-step content generation over a single LLMClient.
    generate() returns the finished artifact or raises PipelineStepError.
    """

    def __init__(self, llm_client: Optional[LLMClient] = None) -> None:
        self.llm = llm_client if llm_client is not None else LLMClient()
        self.outline_planner = OutlinePlanner(self.llm)
        self.article_writer = ArticleWriter(self.llm)
        self.faq_generator = FAQGenerator(self.llm)
        self.internal_linker = InternalLinker(self.llm)
        self.aio_optimizer = AIOOptimizer(self.llm)

        self._handlers: dict[PipelineStep, StepHandler] = {
            PipelineStep.OUTLINE: lambda s, ctx: self.outline_planner.plan(s, ctx.send_options, ctx.word_count),
            PipelineStep.ARTICLE: lambda s, ctx: self.article_writer.write(s, ctx.send_options, ctx.word_count),
            PipelineStep.FAQ: lambda s, ctx: self.faq_generator.generate(s, ctx.send_options),
            PipelineStep.INTERNAL_LINKS: lambda s, ctx: self.internal_linker.suggest(s, ctx.send_options),
            PipelineStep.PLATFORM_OPTIMIZATION: lambda s, ctx: self.aio_optimizer.optimize_for_platforms(
                s, ctx.send_options
            ),
            PipelineStep.KEY_TAKEAWAYS: lambda s, ctx: self.aio_optimizer.add_key_takeaways(s, ctx.send_options),
            PipelineStep.ENTITY_INJECTION: lambda s, ctx: self.aio_optimizer.inject_entities(s, ctx.send_options),
            PipelineStep.QUOTABILITY: lambda s, ctx: self.aio_optimizer.improve_quotability(s, ctx.send_options),
        }
        self.graph = self._build_graph()

    def is_ready(self) -> bool:
        return self.llm.configured()

    # ── Graph ──

    def _build_graph(self) -> Any:
        """Construct the LangGraph state machine. State is dict (PipelineState.model_dump())."""
        graph = StateGraph(dict)
        routes = {step.value: step.value for step in STEP_ORDER}
        routes[FINALIZE] = FINALIZE
        routes["end"] = END

        for step in STEP_ORDER:
            graph.add_node(step.value, self._make_node(step))
        graph.add_node(FINALIZE, self._finalize_node)

        graph.set_entry_point(PipelineStep.OUTLINE.value)
        for step in STEP_ORDER:
            graph.add_conditional_edges(step.value, self._make_router(step), routes)
        graph.add_edge(FINALIZE, END)
        return graph.compile()

    @staticmethod
    def step_enabled(step: PipelineStep, state: PipelineState) -> bool:
        """Whether a step runs for this state's options and artifact."""
        opts = state.options
        aio = opts.optimization_mode in (OptimizationMode.AIO, OptimizationMode.BALANCED)
        if step in (PipelineStep.OUTLINE, PipelineStep.ARTICLE):
            return True
        if step == PipelineStep.FAQ:
            # AIO content always carries FAQs; only generate when the outline had none
            return (opts.generate_faqs or aio) and not state.artifact.faqs
        if step == PipelineStep.INTERNAL_LINKS:
            return opts.suggest_internal_links and bool(opts.available_pages)
        if step == PipelineStep.PLATFORM_OPTIMIZATION:
            return aio
        if step == PipelineStep.KEY_TAKEAWAYS:
            return opts.add_key_takeaways
        if step == PipelineStep.ENTITY_INJECTION:
            return bool(opts.entities_to_add)
        return opts.optimize_quotability

    def _make_router(self, step: PipelineStep) -> Callable[[dict], str]:
        def route(state_dict: dict) -> str:
            state = PipelineState(**state_dict)
            if state.status == PipelineStatus.FAILED:
                return "end"
            for nxt in STEP_ORDER[STEP_ORDER.index(step) + 1 :]:
                if self.step_enabled(nxt, state):
                    return nxt.value
            return FINALIZE

        return route

    def _make_node(self, step: PipelineStep) -> Callable[[dict, RunnableConfig], Awaitable[dict]]:
        handler = self._handlers[step]

        async def node(state_dict: dict, config: RunnableConfig) -> dict:
            ctx: _RunContext = config["configurable"]["run"]
            state = PipelineState(**state_dict)
            state.status = PipelineStatus.RUNNING
            state.current_step = step
            logger.info("pipeline_step_start", step=step.value, keyword=state.keyword)
            try:
                ctx.cancel.raise_if_cancelled()
                with obs_metrics.track_pipeline_step(step.value):
                    state = await handler(state, ctx)
            except STEP_ERRORS as e:
                ctx.cause = e
                state.status = PipelineStatus.FAILED
                state.failed_step = step
                state.error = str(e)
                state.error_type = type(e).__name__
                logger.error(
                    "pipeline_step_failed",
                    step=step.value,
                    keyword=state.keyword,
                    error_type=state.error_type,
                    error=state.error[:200],
                    cost_cents=state.ledger.cost_cents,
                )
                return state.model_dump()
            state.completed_steps.append(step)
            return state.model_dump()

        return node

    async def _finalize_node(self, state_dict: dict) -> dict:
        state = PipelineState(**state_dict)
        # Optimization passes rewrite the body, so count once at the end
        state.artifact.recount()
        state.status = PipelineStatus.COMPLETED
        state.current_step = None
        return state.model_dump()

    # ── Public API ──

    async def generate(
        self,
        keyword: str,
        serp_results: Optional[list[SerpResult]] = None,
        options: Optional[PipelineOptions] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> GeneratedContent:
        """
        Run the full pipeline for a keyword.

        Raises:
            PipelineStepError: a step failed; carries the step, the usage ledger up to
                that point and (when partial results are allowed) the last good artifact.
        """
        settings = get_settings()
        if options is None:
            options = PipelineOptions(
                tenant_id=settings.pipeline.default_tenant,
                plan=settings.pipeline.default_plan,
            )
        cancel = cancel or CancellationToken()
        ctx = _RunContext(
            send_options=SendOptions(
                tenant_id=options.tenant_id,
                plan=options.plan,
                spend_limit_cents=options.spend_limit_cents,
                cancel=cancel,
            ),
            cancel=cancel,
            word_count=options.target_word_count or settings.pipeline.target_word_count,
        )
        initial = PipelineState(
            keyword=keyword,
            serp_results=serp_results or [],
            options=options,
            artifact=GeneratedContent(keyword=keyword),
        )

        logger.info(
            "pipeline_started",
            keyword=keyword,
            tenant_id=options.tenant_id,
            mode=options.optimization_mode.value,
        )
        start_time = time.time()
        obs_metrics.pipeline_started()
        try:
            final_dict = await self.graph.ainvoke(initial.model_dump(), config={"configurable": {"run": ctx}})
        except Exception:
            obs_metrics.pipeline_completed(status="error", duration_seconds=time.time() - start_time)
            raise
        final = PipelineState(**final_dict)

        duration = round(time.time() - start_time, 1)
        obs_metrics.pipeline_completed(
            status=final.status.value,
            cost_cents=final.ledger.cost_cents,
            duration_seconds=duration,
        )
        logger.info(
            "pipeline_complete",
            keyword=keyword,
            status=final.status.value,
            steps=final.ledger.step_names,
            cost_cents=final.ledger.cost_cents,
            duration_seconds=duration,
            fallback_outline=final.artifact.used_fallback_outline,
        )

        if final.status != PipelineStatus.COMPLETED:
            partial: Optional[GeneratedContent] = None
            if settings.pipeline.allow_partial_results:
                partial = final.artifact
                partial.recount()
            failed_step = final.failed_step or final.current_step or PipelineStep.OUTLINE
            raise PipelineStepError(failed_step, final.ledger, partial, final.error) from ctx.cause
        return final.artifact

    def estimate_cost(
        self,
        expected_content_length: int,
        include_outline: bool = False,
        include_faqs: bool = False,
        include_links: bool = False,
    ) -> int:
        """Pre-flight estimate in whole cents (approximation, see pricing.estimate)."""
        return pricing.estimate_pipeline_cost(
            expected_content_length,
            include_outline=include_outline,
            include_faqs=include_faqs,
            include_links=include_links,
            provider=self.llm.backend.provider,
        )
