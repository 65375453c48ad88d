"""Agent tests with canned/mock responses where applicable."""

from __future__ import annotations

import json

import pytest

from src.agents.aio_optimizer import takeaways_section
from src.agents.article_writer import render_outline
from src.agents.outline_planner import OutlinePlanner, fallback_outline
from src.agents.seo_analyst import SEOAnalyst
from src.agents.step import TRUNCATION_MARKER, truncate
from src.llm_client import LLMClient, LLMNotConfiguredError, SendOptions
from src.models import (
    ContentOutline,
    OptimizationMode,
    OutlineHeading,
    PageSnapshot,
    PipelineOptions,
    PipelineState,
    SerpResult,
)
from src.providers.mock import MockBackend
from src.tools.json_recovery import RecoveryError


class TestFallbackOutline:
    def test_seo_template(self) -> None:
        outline = fallback_outline("keyword research")
        assert outline.title == "The Complete Guide to Keyword research"
        assert outline.headings[0].text == "What is Keyword research?"
        assert len(outline.headings) == 6
        assert len(outline.faqs) == 2
        assert outline.key_takeaways == []

    def test_aio_template_has_takeaways(self) -> None:
        outline = fallback_outline("keyword research", aio=True)
        assert len(outline.faqs) == 3
        assert len(outline.key_takeaways) == 3
        assert outline.headings[3].text == "Best Practices for Keyword research"


class TestHelpers:
    def test_truncate(self) -> None:
        assert truncate("short", 10) == "short"
        assert truncate("x" * 20, 10) == "x" * 10 + TRUNCATION_MARKER

    def test_render_outline(self) -> None:
        outline = ContentOutline(
            title="T",
            headings=[OutlineHeading(level=2, text="Intro", points=["a", "b"]), OutlineHeading(level=3, text="Sub")],
        )
        assert render_outline(outline) == "## Intro\n- a\n- b\n\n### Sub"

    def test_takeaways_section(self) -> None:
        assert takeaways_section(["One", "Two"]) == "## Key Takeaways\n\n- One\n- Two\n\n"


class TestOutlinePlanner:
    @pytest.mark.asyncio
    async def test_serp_results_and_mode_shape_prompt(self, llm_client: LLMClient, mock_backend: MockBackend) -> None:
        planner = OutlinePlanner(llm_client)
        state = PipelineState(
            keyword="trail running",
            serp_results=[SerpResult(title=f"Result {i}", snippet="...") for i in range(8)],
            options=PipelineOptions(optimization_mode=OptimizationMode.AIO),
        )
        mock_backend.queue(json.dumps({"title": "Trail Running 101", "faqs": [{"question": "Q", "answer": "A"}]}))
        state = await planner.plan(state, SendOptions(), word_count=1500)

        prompt = mock_backend.requests[0].messages[0].content
        assert "Result 4" in prompt
        assert "Result 5" not in prompt
        assert mock_backend.requests[0].max_output_tokens == 4096
        assert state.artifact.title == "Trail Running 101"
        assert state.artifact.faqs[0].question == "Q"
        assert state.ledger.step_names == ["outline"]

    @pytest.mark.asyncio
    async def test_ledger_recorded_even_when_fallback_used(
        self, llm_client: LLMClient, mock_backend: MockBackend
    ) -> None:
        planner = OutlinePlanner(llm_client)
        mock_backend.queue("No outline for you.")
        state = await planner.plan(PipelineState(keyword="tents"), SendOptions(), word_count=800)
        assert state.artifact.used_fallback_outline
        assert state.ledger.step_names == ["outline"]
        assert state.ledger.cost_cents > 0


class TestSEOAnalyst:
    @pytest.mark.asyncio
    async def test_cluster_keywords(self, llm_client: LLMClient, mock_backend: MockBackend) -> None:
        analyst = SEOAnalyst(llm_client)
        mock_backend.queue(
            "```json\n"
            + json.dumps(
                [
                    {
                        "name": "Shoes",
                        "pillarKeyword": "running shoes",
                        "keywords": ["running shoes", "trail shoes"],
                        "intent": "commercial",
                        "suggestedArticles": 3,
                        "difficulty": "medium",
                    }
                ]
            )
            + "\n```"
        )
        clusters, result = await analyst.cluster_keywords(["running shoes", "trail shoes"])
        assert clusters[0].pillar_keyword == "running shoes"
        assert clusters[0].suggested_articles == 3
        assert result.model_id == "gpt-4.1-nano"
        assert result.cost_cents > 0

    @pytest.mark.asyncio
    async def test_quick_score_renders_missing_fields(self, llm_client: LLMClient, mock_backend: MockBackend) -> None:
        analyst = SEOAnalyst(llm_client)
        mock_backend.queue('{"score": 62, "grade": "C", "quickWins": ["Add a meta description"]}')
        score, _ = await analyst.quick_score(PageSnapshot(title="Home", word_count=300))
        assert score.score == 62
        assert score.quick_wins == ["Add a meta description"]
        prompt = mock_backend.requests[0].messages[0].content
        assert "Meta Description: Missing" in prompt

    @pytest.mark.asyncio
    async def test_analyze_content_uses_larger_reply_budget(
        self, llm_client: LLMClient, mock_backend: MockBackend
    ) -> None:
        analyst = SEOAnalyst(llm_client)
        mock_backend.queue('{"score": 80, "strengths": ["Clear"], "suggestions": [{"priority": "high", "fix": "x"}]}')
        analysis, _ = await analyst.analyze_content("Some body text.", "running shoes")
        assert analysis.score == 80
        assert analysis.suggestions[0].priority == "high"
        assert mock_backend.requests[0].max_output_tokens == 2048
        assert mock_backend.requests[0].model_id == "gpt-5-mini"

    @pytest.mark.asyncio
    async def test_optimize_content_returns_prose(self, llm_client: LLMClient, mock_backend: MockBackend) -> None:
        analyst = SEOAnalyst(llm_client)
        mock_backend.queue("## Better\n\nImproved text.")
        text, result = await analyst.optimize_content("Old text.", "shoes", ["Add headings", "Use keyword"])
        assert text == "## Better\n\nImproved text."
        assert result.content == text
        prompt = mock_backend.requests[0].messages[0].content
        assert "1. Add headings" in prompt
        assert "2. Use keyword" in prompt

    @pytest.mark.asyncio
    async def test_unparseable_reply_raises(self, llm_client: LLMClient, mock_backend: MockBackend) -> None:
        analyst = SEOAnalyst(llm_client)
        mock_backend.queue("I am unable to produce meta tags.")
        with pytest.raises(RecoveryError):
            await analyst.generate_meta("content", "shoes")

    @pytest.mark.asyncio
    async def test_not_configured(self, admission) -> None:
        class _Unconfigured(MockBackend):
            def configured(self) -> bool:
                return False

        analyst = SEOAnalyst(LLMClient(backend=_Unconfigured(), admission=admission))
        assert not analyst.is_ready()
        with pytest.raises(LLMNotConfiguredError, match="AI client not configured"):
            await analyst.generate_content_plan("shoes", ["running shoes"])

    @pytest.mark.asyncio
    async def test_tenant_options_pass_through(self, llm_client: LLMClient, mock_backend: MockBackend, usage_store) -> None:
        analyst = SEOAnalyst(llm_client)
        mock_backend.queue('{"overallScore": 70, "platformScores": {"chatgpt": 65}}')
        readiness, result = await analyst.analyze_aio_readiness(
            "body", "shoes", options=SendOptions(tenant_id="acme", plan="starter")
        )
        assert readiness.overall_score == 70
        assert readiness.platform_scores == {"chatgpt": 65}
        assert usage_store.spent_cents("acme") == result.cost_cents
