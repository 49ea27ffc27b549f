"""
Unit tests for IntelligentRepairer.

Tests the single corrective LLM call, confidence scaling, request
construction, and partial field extraction when repair fails.
"""

import pytest

from sql_analyzer.models.recovery import DecodeResult, DecodeStrategy
from sql_analyzer.parsing.repairer import (
    PARTIAL_EXTRACTION_CONFIDENCE,
    REPAIR_SYSTEM_PROMPT,
    IntelligentRepairer,
    extract_partial,
)

MALFORMED = "score => 72 and the query scans everything"


@pytest.fixture
def failed_decode():
    return DecodeResult.failure(
        "repaired_chars: Expecting value",
        [DecodeStrategy.DIRECT, DecodeStrategy.CLEANED, DecodeStrategy.REPAIRED_CHARS],
    )


class TestRepairCall:
    """The LLM is asked exactly once to reformat the output."""

    @pytest.mark.asyncio
    async def test_successful_repair(self, mock_llm_provider, llm_response_factory, failed_decode):
        mock_llm_provider.generate.return_value = llm_response_factory(
            '{"score": 72, "confidence": 0.6}'
        )
        repairer = IntelligentRepairer(mock_llm_provider)

        result = await repairer.repair(failed_decode, MALFORMED)

        assert result.success is True
        assert result.repaired is True
        assert result.data == {"score": 72, "confidence": 0.6}
        # DIRECT on a known envelope: (0.95 + 0.02) * 0.8
        assert result.confidence == pytest.approx(0.776)
        assert result.attempted == [*failed_decode.attempted, DecodeStrategy.DIRECT]
        assert repairer.calls == 1
        mock_llm_provider.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_request_construction(
        self, mock_llm_provider, llm_response_factory, failed_decode
    ):
        mock_llm_provider.generate.return_value = llm_response_factory('{"score": 1}')
        repairer = IntelligentRepairer(
            mock_llm_provider, model="gpt-4o-mini", max_chars=20, max_tokens=300
        )

        await repairer.repair(failed_decode, MALFORMED)

        request = mock_llm_provider.generate.call_args.args[0]
        assert request.messages[0].role == "system"
        assert request.messages[0].content == REPAIR_SYSTEM_PROMPT
        user_prompt = request.messages[1].content
        assert "PARSE_ERROR:\nrepaired_chars: Expecting value" in user_prompt
        assert f"MODEL_OUTPUT:\n{MALFORMED[:20]}\n" in user_prompt
        assert request.temperature == 0.0
        assert request.max_tokens == 300
        assert request.model == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_custom_confidence_factor(
        self, mock_llm_provider, llm_response_factory, failed_decode
    ):
        mock_llm_provider.generate.return_value = llm_response_factory('{"a": 1}')
        repairer = IntelligentRepairer(mock_llm_provider, confidence_factor=0.5)

        result = await repairer.repair(failed_decode, MALFORMED)

        assert result.confidence == pytest.approx(0.96 * 0.5)

    @pytest.mark.asyncio
    async def test_empty_text_skips_call(self, mock_llm_provider, failed_decode):
        repairer = IntelligentRepairer(mock_llm_provider)

        result = await repairer.repair(failed_decode, "   ")

        assert result.success is False
        assert "empty response" in result.error
        assert repairer.calls == 0
        mock_llm_provider.generate.assert_not_awaited()


class TestRepairFailure:
    """A failed repair never raises."""

    @pytest.mark.asyncio
    async def test_provider_error_falls_back_to_partial(self, mock_llm_provider, failed_decode):
        mock_llm_provider.generate.side_effect = ConnectionError("connection reset")
        repairer = IntelligentRepairer(mock_llm_provider)

        result = await repairer.repair(failed_decode, 'score: 72, summary: "Full scan"')

        assert result.success is True
        assert result.repaired is True
        assert result.strategy == DecodeStrategy.REPAIRED_CHARS
        assert result.confidence == PARTIAL_EXTRACTION_CONFIDENCE
        assert result.data == {"score": 72.0, "summary": "Full scan"}
        assert repairer.calls == 1

    @pytest.mark.asyncio
    async def test_provider_error_without_partial(self, mock_llm_provider, failed_decode):
        mock_llm_provider.generate.side_effect = ConnectionError("connection reset")
        repairer = IntelligentRepairer(mock_llm_provider, partial_extraction=False)

        result = await repairer.repair(failed_decode, MALFORMED)

        assert result.success is False
        assert "repair call failed" in result.error
        assert result.attempted == failed_decode.attempted

    @pytest.mark.asyncio
    async def test_undecodable_repair_output(
        self, mock_llm_provider, llm_response_factory, failed_decode
    ):
        mock_llm_provider.generate.return_value = llm_response_factory("still not json")
        repairer = IntelligentRepairer(mock_llm_provider, partial_extraction=False)

        result = await repairer.repair(failed_decode, MALFORMED)

        assert result.success is False
        assert result.error.startswith("repaired_chars:")

    @pytest.mark.asyncio
    async def test_partial_values_are_clamped(self, mock_llm_provider, failed_decode):
        mock_llm_provider.generate.side_effect = RuntimeError("boom")
        repairer = IntelligentRepairer(mock_llm_provider)

        result = await repairer.repair(failed_decode, "score: 140 confidence: 300")

        assert result.data == {"score": 100.0, "confidence": 1.0}
        assert len(result.issues) == 2


class TestExtractPartial:
    """Regex extraction of well-known fields."""

    def test_all_fields(self):
        text = (
            'score: 72, confidence: 0.8, summary: "Slow scan", '
            'issues: ["full scan", "no index"], recommendations: [\'add index\']'
        )

        assert extract_partial(text) == {
            "score": 72.0,
            "confidence": 0.8,
            "summary": "Slow scan",
            "issues": ["full scan", "no index"],
            "recommendations": ["add index"],
        }

    def test_quoted_keys(self):
        assert extract_partial('{"score": 64, "summary": "Uses \\"LIKE\\"" oops') == {
            "score": 64.0,
            "summary": 'Uses "LIKE"',
        }

    def test_nothing_found(self):
        assert extract_partial("I could not analyze this query.") is None
