"""Tests for structured output recovery from messy model replies."""

import pytest

from src.models import FAQ, ContentOutline
from src.tools.json_recovery import RecoveryError, recover, recover_as, strip_fences


class TestRecover:
    def test_plain_json(self) -> None:
        assert recover('{"a": 1}') == {"a": 1}

    def test_fenced_json(self) -> None:
        assert recover('```json\n{"a": 1, "b": [2, 3]}\n```') == {"a": 1, "b": [2, 3]}

    def test_fence_without_language_tag(self) -> None:
        assert recover("```\n[1, 2]\n```") == [1, 2]

    def test_chatty_prefix(self) -> None:
        assert recover('Here\'s the JSON: {"a": 1}') == {"a": 1}
        assert recover('Sure, [{"q": "x"}]') == [{"q": "x"}]

    def test_inline_code_span(self) -> None:
        assert recover('The answer is `{"a": 1}` as requested.') == {"a": 1}

    def test_trailing_prose(self) -> None:
        raw = '{"title": "Guide"}\n\nLet me know if you want changes!'
        assert recover(raw) == {"title": "Guide"}

    def test_leading_and_trailing_prose(self) -> None:
        raw = 'I made this outline for you:\n[{"question": "Why?"}]\nHope it helps.'
        assert recover(raw) == [{"question": "Why?"}]

    def test_brackets_inside_strings_do_not_confuse_boundary(self) -> None:
        raw = '{"text": "use } and ] freely", "n": 2} trailing words'
        assert recover(raw) == {"text": "use } and ] freely", "n": 2}

    def test_escaped_quotes_inside_strings(self) -> None:
        raw = '{"quote": "she said \\"hi\\" }"} done'
        assert recover(raw) == {"quote": 'she said "hi" }'}

    def test_trailing_commas_repaired(self) -> None:
        assert recover('{"a": [1, 2,],}') == {"a": [1, 2]}


class TestTruncation:
    def test_truncated_object(self) -> None:
        raw = '{"title": "Guide", "headings": [{"text": "Intro"'
        assert recover(raw) == {"title": "Guide", "headings": [{"text": "Intro"}]}

    def test_truncated_mid_string(self) -> None:
        assert recover('{"title": "Gui') == {"title": "Gui"}

    def test_truncated_after_comma(self) -> None:
        assert recover("[1, 2,") == [1, 2]

    def test_truncated_after_colon(self) -> None:
        assert recover('{"title": "Guide", "meta":') == {"title": "Guide", "meta": None}

    def test_truncated_in_key_position(self) -> None:
        assert recover('{"title": "Guide", "met') == {"title": "Guide", "met": None}

    def test_truncated_after_backslash_in_string(self) -> None:
        assert recover('{"title": "C:\\') == {"title": "C:"}

    def test_truncated_inside_unicode_escape(self) -> None:
        assert recover('["caf\\u00') == ["caf"]

    def test_truncated_inside_number(self) -> None:
        assert recover('{"a": 1, "b": 2.') == {"a": 1, "b": None}
        assert recover("[1, -") == [1]

    def test_truncated_inside_literal(self) -> None:
        assert recover('{"done": tru') == {"done": None}

    def test_complete_trailing_number_is_kept(self) -> None:
        assert recover('{"score": 42') == {"score": 42}


class TestFailure:
    def test_garbage_raises_with_preview(self) -> None:
        raw = "I'm sorry, I can't produce that outline right now. " * 10
        with pytest.raises(RecoveryError) as exc_info:
            recover(raw)
        assert exc_info.value.preview == raw[:200]
        assert "Failed to parse AI response as JSON" in str(exc_info.value)

    def test_empty_reply(self) -> None:
        with pytest.raises(RecoveryError):
            recover("")


class TestRecoverAs:
    def test_validates_camel_case_model(self) -> None:
        outline = recover_as('```json\n{"title": "T", "metaTitle": "M", "headings": []}\n```', ContentOutline)
        assert outline.title == "T"
        assert outline.meta_title == "M"

    def test_validates_list_of_models(self) -> None:
        faqs = recover_as('[{"question": "Q1", "answer": "A1"}]', list[FAQ])
        assert faqs == [FAQ(question="Q1", answer="A1")]

    def test_shape_mismatch_raises_recovery_error(self) -> None:
        with pytest.raises(RecoveryError) as exc_info:
            recover_as('{"unrelated": true}', ContentOutline)
        assert "does not match" in str(exc_info.value)


def test_strip_fences_removes_language_tag_and_prefix() -> None:
    assert strip_fences('```JSON\nresponse: {"a": 1}\n```') == '{"a": 1}'
