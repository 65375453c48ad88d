"""
Core data models for the content pipeline.

These Pydantic models define the typed values that flow between the transport,
the recovery layer and the LangGraph pipeline: call results, the per-run usage
ledger, the evolving content artifact and the pipeline state itself.

Design principles:
  - Every LLM call leaves a ledger entry, even when its output is unusable
  - Model output uses camelCase keys; every content model accepts both
    camelCase aliases and snake_case field names
  - The pipeline state is plain-serializable so it can travel through the graph
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ═══════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════


class OptimizationMode(str, Enum):
    """Which audience the content is tuned for."""

    SEO = "seo"
    AIO = "aio"
    BALANCED = "balanced"


class PipelineStep(str, Enum):
    """Named steps of the content pipeline, in execution order."""

    OUTLINE = "outline"
    ARTICLE = "article"
    FAQ = "faq"
    INTERNAL_LINKS = "internal_links"
    PLATFORM_OPTIMIZATION = "platform_optimization"
    KEY_TAKEAWAYS = "key_takeaways"
    ENTITY_INJECTION = "entity_injection"
    QUOTABILITY = "quotability"


STEP_ORDER: tuple[PipelineStep, ...] = tuple(PipelineStep)


class PipelineStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# ═══════════════════════════════════════════════════════════
# Transport values
# ═══════════════════════════════════════════════════════════


class ChatMessage(BaseModel):
    """One conversational turn sent to the backend."""

    model_config = ConfigDict(frozen=True)

    role: str = "user"
    content: str

    @field_validator("role")
    @classmethod
    def _check_role(cls, v: str) -> str:
        if v not in ("user", "assistant"):
            raise ValueError(f"role must be 'user' or 'assistant', got {v!r}")
        return v


class CallResult(BaseModel):
    """Outcome of one successful transport call."""

    model_config = ConfigDict(frozen=True)

    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_cents: float = 0.0
    model_id: str
    cache_hit: bool = False


class UsageStep(BaseModel):
    step: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_cents: float = 0.0


class UsageLedger(BaseModel):
    """Running token and cost totals across every step of one pipeline run."""

    input_tokens: int = 0
    output_tokens: int = 0
    cost_cents: float = 0.0
    steps: list[UsageStep] = Field(default_factory=list)

    def record(self, step: str, result: CallResult) -> None:
        self.input_tokens += result.input_tokens
        self.output_tokens += result.output_tokens
        # Keep totals on the 0.01-cent grid the cost model produces
        self.cost_cents = round(self.cost_cents + result.cost_cents, 2)
        self.steps.append(
            UsageStep(
                step=step,
                model=result.model_id,
                input_tokens=result.input_tokens,
                output_tokens=result.output_tokens,
                cost_cents=result.cost_cents,
            )
        )

    @property
    def step_names(self) -> list[str]:
        return [s.step for s in self.steps]


# ═══════════════════════════════════════════════════════════
# Content models (camelCase in model output)
# ═══════════════════════════════════════════════════════════


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OutlineHeading(_CamelModel):
    level: int = 2
    text: str
    points: list[str] = Field(default_factory=list)
    word_count: Optional[int] = None


class FAQ(_CamelModel):
    question: str
    answer: str = ""


class InternalLink(_CamelModel):
    anchor: str
    url: str
    relevance: Optional[str] = None
    context: Optional[str] = None


class ContentOutline(_CamelModel):
    """Outline returned by the outline step (or built by the fallback template)."""

    title: str
    meta_title: str = ""
    meta_description: str = ""
    headings: list[OutlineHeading] = Field(default_factory=list)
    faqs: list[FAQ] = Field(default_factory=list)
    unique_angles: list[str] = Field(default_factory=list)
    internal_link_opportunities: list[str] = Field(default_factory=list)
    key_takeaways: list[str] = Field(default_factory=list)


# ── Standalone SEO operation results ──


class KeywordCluster(_CamelModel):
    name: str
    pillar_keyword: str = ""
    keywords: list[str] = Field(default_factory=list)
    intent: str = ""
    suggested_articles: int = 1
    difficulty: str = ""


class ContentIdea(_CamelModel):
    title: str
    keyword: str = ""
    intent: str = ""
    difficulty: str = ""
    traffic_potential: str = ""


class Suggestion(_CamelModel):
    """One prioritized improvement from an analysis."""

    priority: str = "medium"
    category: str = ""
    issue: str = ""
    fix: str = ""
    impact: str = ""


class ContentAnalysis(_CamelModel):
    score: int = 0
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    suggestions: list[Suggestion] = Field(default_factory=list)
    keyword_analysis: dict[str, Any] = Field(default_factory=dict)
    readability: dict[str, Any] = Field(default_factory=dict)
    competitive_gaps: list[str] = Field(default_factory=list)


class MetaTags(_CamelModel):
    meta_title: str
    meta_description: str


class PageSnapshot(BaseModel):
    """On-page facts a quick score is computed from."""

    title: Optional[str] = None
    meta_description: Optional[str] = None
    h1: Optional[str] = None
    headings: list[str] = Field(default_factory=list)
    word_count: int = 0
    has_schema: bool = False
    load_time_ms: Optional[int] = None


class PageScore(_CamelModel):
    score: int = 0
    grade: str = ""
    quick_wins: list[str] = Field(default_factory=list)
    critical_issues: list[str] = Field(default_factory=list)
    breakdown: dict[str, int] = Field(default_factory=dict)


class PlannedPiece(_CamelModel):
    week: int = 1
    title: str
    keyword: str = ""
    type: str = ""
    priority: str = ""
    estimated_traffic: str = ""
    difficulty: str = ""


class ContentPlan(_CamelModel):
    overview: str = ""
    content_pieces: list[PlannedPiece] = Field(default_factory=list)
    cluster_strategy: str = ""
    expected_results: str = ""


class AIOReadiness(_CamelModel):
    """How likely answer engines are to cite a page."""

    overall_score: int = 0
    platform_scores: dict[str, int] = Field(default_factory=dict)
    breakdown: dict[str, dict[str, Any]] = Field(default_factory=dict)
    top_issues: list[Suggestion] = Field(default_factory=list)
    entities_found: list[str] = Field(default_factory=list)
    quotable_snippets: list[str] = Field(default_factory=list)


# ── Pipeline inputs and state ──


class SerpResult(BaseModel):
    title: str
    snippet: str = ""


class AvailablePage(BaseModel):
    url: str
    title: str
    keywords: list[str] = Field(default_factory=list)


class PipelineOptions(BaseModel):
    """Caller-selected behavior for one pipeline run."""

    tenant_id: str = "default"
    plan: str = "pro"
    brand_voice: Optional[str] = None
    target_word_count: Optional[int] = None
    generate_faqs: bool = False
    suggest_internal_links: bool = False
    available_pages: list[AvailablePage] = Field(default_factory=list)
    optimization_mode: OptimizationMode = OptimizationMode.SEO
    add_key_takeaways: bool = False
    entities_to_add: list[str] = Field(default_factory=list)
    optimize_quotability: bool = False
    # Optional per-tenant spend ceiling enforced by the transport
    spend_limit_cents: Optional[float] = None


class GeneratedContent(BaseModel):
    """The artifact threaded through the pipeline steps."""

    keyword: str = ""
    title: str = ""
    meta_title: str = ""
    meta_description: str = ""
    body: str = ""
    outline: Optional[ContentOutline] = None
    faqs: list[FAQ] = Field(default_factory=list)
    internal_links: list[InternalLink] = Field(default_factory=list)
    key_takeaways: list[str] = Field(default_factory=list)
    word_count: int = 0
    reading_time: int = 0
    used_fallback_outline: bool = False
    usage: UsageLedger = Field(default_factory=UsageLedger)

    def recount(self) -> None:
        """Recompute word count and reading time (200 wpm) from the final body."""
        self.word_count = len(self.body.split())
        self.reading_time = math.ceil(self.word_count / 200)


class PipelineState(BaseModel):
    """State carried between LangGraph nodes (as model_dump())."""

    keyword: str
    serp_results: list[SerpResult] = Field(default_factory=list)
    options: PipelineOptions = Field(default_factory=PipelineOptions)
    artifact: GeneratedContent = Field(default_factory=GeneratedContent)
    status: PipelineStatus = PipelineStatus.IDLE
    current_step: Optional[PipelineStep] = None
    completed_steps: list[PipelineStep] = Field(default_factory=list)
    failed_step: Optional[PipelineStep] = None
    error: str = ""
    error_type: str = ""

    @property
    def ledger(self) -> UsageLedger:
        return self.artifact.usage
