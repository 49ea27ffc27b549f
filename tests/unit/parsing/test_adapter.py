"""
Unit tests for the raw response adapter.

Tests envelope detection for:
- Plain strings and bytes
- OpenAI, Anthropic and LangChain shapes
- Generic dicts with a text key, one level deep
- Responses with no text at all
"""

from types import SimpleNamespace

import pytest

from sql_analyzer.models.errors import AdaptationError
from sql_analyzer.parsing.adapter import (
    KNOWN_SHAPE_CONFIDENCE,
    RAW_SHAPE_CONFIDENCE,
    adapt_response,
)


class TestPlainText:
    """Strings and bytes pass straight through."""

    def test_string(self):
        adapted = adapt_response('{"score": 1}')

        assert adapted.text == '{"score": 1}'
        assert adapted.metadata.response_type == "string"
        assert adapted.metadata.confidence == RAW_SHAPE_CONFIDENCE

    def test_bytes_are_decoded(self):
        adapted = adapt_response('{"note": "café"}'.encode())

        assert adapted.text == '{"note": "café"}'
        assert adapted.metadata.response_type == "string"

    def test_llm_response(self, llm_response_factory):
        adapted = adapt_response(llm_response_factory("hello"))

        assert adapted.text == "hello"
        assert adapted.metadata.response_type == "llm_response"
        assert adapted.metadata.confidence == KNOWN_SHAPE_CONFIDENCE


class TestKnownShapes:
    """Provider envelopes are recognized with high confidence."""

    def test_openai_completion_object(self):
        raw = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content='{"a": 1}'))]
        )

        adapted = adapt_response(raw)

        assert adapted.text == '{"a": 1}'
        assert adapted.metadata.response_type == "openai"
        assert adapted.metadata.confidence == KNOWN_SHAPE_CONFIDENCE

    def test_openai_completion_dict(self):
        adapted = adapt_response({"choices": [{"message": {"content": "text"}}]})

        assert adapted.text == "text"
        assert adapted.metadata.response_type == "openai"

    def test_anthropic_blocks_are_joined(self):
        raw = {"content": [{"type": "text", "text": '{"a": '}, {"type": "text", "text": "1}"}]}

        adapted = adapt_response(raw)

        assert adapted.text == '{"a": 1}'
        assert adapted.metadata.response_type == "anthropic"

    def test_legacy_completion(self):
        adapted = adapt_response({"completion": "done"})

        assert adapted.text == "done"
        assert adapted.metadata.response_type == "anthropic"

    def test_content_dict(self):
        adapted = adapt_response({"content": "plain"})

        assert adapted.text == "plain"
        assert adapted.metadata.response_type == "dict"

    def test_nested_content_text(self):
        adapted = adapt_response({"content": {"text": "nested"}})

        assert adapted.text == "nested"
        assert adapted.metadata.response_type == "dict"

    def test_langchain_message(self):
        class AIMessage:
            def __init__(self, content):
                self.content = content
                self.additional_kwargs = {}

        adapted = adapt_response(AIMessage("from chain"))

        assert adapted.text == "from chain"
        assert adapted.metadata.response_type == "langchain"


class TestFallbackShapes:
    """Unknown shapes are searched for a text key, one level deep."""

    def test_text_key(self):
        adapted = adapt_response({"output": "generated"})

        assert adapted.text == "generated"
        assert adapted.metadata.response_type == "object"
        assert adapted.metadata.confidence == RAW_SHAPE_CONFIDENCE

    def test_one_level_unwrap(self):
        adapted = adapt_response({"result": {"text": "inner"}})

        assert adapted.text == "inner"

    def test_structure_summary(self):
        adapted = adapt_response({"output": "x", "id": 3})

        summary = adapted.metadata.raw_structure_summary
        assert summary["type"] == "dict"
        assert summary["keys"] == ["output", "id"]

    def test_no_text_raises(self):
        with pytest.raises(AdaptationError) as exc_info:
            adapt_response({"id": 1, "data": {"rows": []}})

        assert "No text-bearing field" in exc_info.value.message
        assert exc_info.value.context["type"] == "dict"
        assert exc_info.value.recoverable is False

    def test_number_raises(self):
        with pytest.raises(AdaptationError):
            adapt_response(42)
