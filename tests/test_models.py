"""
Unit tests for core data models.

Verifies the value types independently of LLMs: ledger accounting, camelCase
parsing of model output, word counts and state serialization through the graph.
"""

import pytest
from pydantic import ValidationError

from src.models import (
    STEP_ORDER,
    CallResult,
    ChatMessage,
    ContentOutline,
    GeneratedContent,
    PipelineState,
    PipelineStatus,
    PipelineStep,
    UsageLedger,
)


def _result(cost: float, model: str = "gpt-5-mini", inp: int = 100, out: int = 50) -> CallResult:
    return CallResult(content="x", input_tokens=inp, output_tokens=out, cost_cents=cost, model_id=model)


class TestUsageLedger:
    def test_record_accumulates_totals(self) -> None:
        ledger = UsageLedger()
        ledger.record("outline", _result(0.1))
        ledger.record("article", _result(0.2, inp=1000, out=2000))
        assert ledger.input_tokens == 1100
        assert ledger.output_tokens == 2050
        assert ledger.cost_cents == 0.3
        assert ledger.step_names == ["outline", "article"]
        assert ledger.steps[1].model == "gpt-5-mini"

    def test_same_step_may_appear_twice(self) -> None:
        ledger = UsageLedger()
        ledger.record("faq", _result(0.01))
        ledger.record("faq", _result(0.01))
        assert ledger.step_names == ["faq", "faq"]
        assert ledger.cost_cents == 0.02


class TestChatMessage:
    def test_default_role_is_user(self) -> None:
        assert ChatMessage(content="hi").role == "user"

    def test_rejects_system_role(self) -> None:
        with pytest.raises(ValidationError):
            ChatMessage(role="system", content="hi")


class TestContentModels:
    def test_outline_accepts_camel_and_snake_case(self) -> None:
        camel = ContentOutline.model_validate({"title": "T", "metaTitle": "M", "keyTakeaways": ["k"]})
        snake = ContentOutline.model_validate({"title": "T", "meta_title": "M", "key_takeaways": ["k"]})
        assert camel == snake
        assert camel.meta_title == "M"

    def test_heading_word_count_alias(self) -> None:
        outline = ContentOutline.model_validate(
            {"title": "T", "headings": [{"text": "Intro", "wordCount": 250}]}
        )
        assert outline.headings[0].word_count == 250
        assert outline.headings[0].level == 2

    def test_recount(self) -> None:
        content = GeneratedContent(body="word " * 401)
        content.recount()
        assert content.word_count == 401
        assert content.reading_time == 3

    def test_recount_empty_body(self) -> None:
        content = GeneratedContent()
        content.recount()
        assert content.word_count == 0
        assert content.reading_time == 0


class TestPipelineState:
    def test_step_order(self) -> None:
        assert STEP_ORDER[0] == PipelineStep.OUTLINE
        assert STEP_ORDER[-1] == PipelineStep.QUOTABILITY
        assert len(STEP_ORDER) == 8

    def test_round_trip_through_dict(self) -> None:
        state = PipelineState(keyword="tents", status=PipelineStatus.RUNNING, current_step=PipelineStep.ARTICLE)
        state.artifact.usage.record("outline", _result(0.05))
        restored = PipelineState(**state.model_dump())
        assert restored.status == PipelineStatus.RUNNING
        assert restored.current_step == PipelineStep.ARTICLE
        assert restored.ledger.step_names == ["outline"]
        assert restored.ledger.cost_cents == 0.05
