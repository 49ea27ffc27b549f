"""
Intelligent Repairer

One corrective LLM call for output that no local decode strategy could read.
The repair call is made exactly once: retries belong to the resilient
executor wrapping the whole tool.
"""

import json
import logging
import re
from typing import Any

from sql_analyzer.llm.base import BaseLLMProvider
from sql_analyzer.llm.models import LLMRequest
from sql_analyzer.models.errors import AdaptationError
from sql_analyzer.models.recovery import DecodeResult, DecodeStrategy
from sql_analyzer.parsing.adapter import adapt_response
from sql_analyzer.parsing.decoder import StructuredDecoder
from sql_analyzer.parsing.validation import validate_fields

logger = logging.getLogger(__name__)

REPAIR_SYSTEM_PROMPT = (
    "You are a JSON repair expert. You fix malformed JSON produced by another model. "
    "Return only valid JSON, with no markdown fences and no commentary."
)

PARTIAL_EXTRACTION_CONFIDENCE = 0.4

_SCORE_RE = re.compile(r"[\"']?\bscore[\"']?\s*[:=]\s*[\"']?(\d+(?:\.\d+)?)", re.IGNORECASE)
_CONFIDENCE_RE = re.compile(
    r"[\"']?\bconfidence[\"']?\s*[:=]\s*[\"']?(\d+(?:\.\d+)?)", re.IGNORECASE
)
_SUMMARY_RE = re.compile(r"[\"']?\bsummary[\"']?\s*[:=]\s*[\"']((?:\\.|[^\"'\\])*)", re.IGNORECASE)
_LIST_RE_TEMPLATE = r"[\"']?\b{name}[\"']?\s*[:=]\s*\[(.*?)\]"
_LIST_ITEM_RE = re.compile(r"\"((?:\\.|[^\"\\])*)\"|'((?:\\.|[^'\\])*)'")


class IntelligentRepairer:
    """
    Re-engage the LLM to reformat malformed output.

    Args:
        llm: Provider used for the repair call
        decoder: Decoder used on the repaired output
        model: Optional model override for the repair call
        max_chars: Maximum characters of malformed text sent to the model
        max_tokens: Token budget of the repair call
        confidence_factor: Multiplier applied to repaired confidence
        partial_extraction: Fall back to regex extraction when repair fails
    """

    def __init__(
        self,
        llm: BaseLLMProvider,
        decoder: StructuredDecoder | None = None,
        model: str | None = None,
        max_chars: int = 12000,
        max_tokens: int = 1500,
        confidence_factor: float = 0.8,
        partial_extraction: bool = True,
    ):
        self.llm = llm
        self.decoder = decoder or StructuredDecoder()
        self.model = model
        self.max_chars = max_chars
        self.max_tokens = max_tokens
        self.confidence_factor = confidence_factor
        self.partial_extraction = partial_extraction
        self.calls = 0

    async def repair(self, failed: DecodeResult, raw_text: str) -> DecodeResult:
        """
        Ask the LLM to reformat ``raw_text`` and decode its answer.

        Never raises: a failed call or a second decode failure comes back as a
        failed DecodeResult (or a partial extraction, when enabled).
        """
        if not raw_text or not raw_text.strip():
            return DecodeResult.failure("Nothing to repair: empty response", failed.attempted)

        request = LLMRequest.from_prompts(
            REPAIR_SYSTEM_PROMPT,
            self._build_prompt(raw_text, failed.error),
            temperature=0.0,
            max_tokens=self.max_tokens,
            model=self.model,
        )

        self.calls += 1
        try:
            response = await self.llm.generate(request)
            result = self.decoder.decode(adapt_response(response))
        except AdaptationError as exc:
            result = DecodeResult.failure(f"repair: {exc.message}", failed.attempted)
        except Exception as exc:
            logger.warning(
                "Repair call failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
            )
            result = DecodeResult.failure(f"repair call failed: {exc}", failed.attempted)

        if result.success:
            logger.info(
                "Recovered malformed response with repair call",
                extra={"strategy": result.strategy.value if result.strategy else None},
            )
            return result.model_copy(
                update={
                    "repaired": True,
                    "confidence": round(result.confidence * self.confidence_factor, 4),
                    "attempted": [*failed.attempted, *result.attempted],
                }
            )

        if self.partial_extraction:
            partial = extract_partial(raw_text)
            if partial is not None:
                logger.info(
                    "Recovered partial fields from malformed response",
                    extra={"fields": sorted(partial)},
                )
                data, issues = validate_fields(partial)
                return DecodeResult(
                    success=True,
                    data=data,
                    strategy=DecodeStrategy.REPAIRED_CHARS,
                    confidence=PARTIAL_EXTRACTION_CONFIDENCE,
                    issues=issues,
                    repaired=True,
                    attempted=list(failed.attempted),
                )

        return DecodeResult.failure(
            result.error or failed.error or "Repair failed", failed.attempted
        )

    def _build_prompt(self, raw_text: str, error: str | None) -> str:
        clipped = raw_text.strip()[: self.max_chars]
        return (
            "Reformat the MODEL_OUTPUT into one strict JSON object.\n"
            "Output requirements:\n"
            "- Keep every field, value and nesting level of the original structure.\n"
            "- Quote all keys and strings with double quotes; remove comments and trailing commas.\n"
            "- Numbers named *score* are between 0 and 100; *confidence* is between 0 and 1.\n"
            "- Return ONLY the JSON object.\n\n"
            f"PARSE_ERROR:\n{error or 'unknown'}\n\n"
            f"MODEL_OUTPUT:\n{clipped}\n"
        )


def extract_partial(text: str) -> dict[str, Any] | None:
    """Pull well-known fields out of text that is not decodable as a whole."""
    data: dict[str, Any] = {}
    if match := _SCORE_RE.search(text):
        data["score"] = float(match.group(1))
    if match := _CONFIDENCE_RE.search(text):
        data["confidence"] = float(match.group(1))
    if match := _SUMMARY_RE.search(text):
        data["summary"] = _unescape(match.group(1))
    for name in ("issues", "recommendations"):
        pattern = re.compile(_LIST_RE_TEMPLATE.format(name=name), re.IGNORECASE | re.DOTALL)
        if match := pattern.search(text):
            items = [
                _unescape(double if double else single)
                for double, single in _LIST_ITEM_RE.findall(match.group(1))
            ]
            data[name] = [item for item in items if item]
    return data or None


def _unescape(fragment: str) -> str:
    try:
        return json.loads(f'"{fragment}"')
    except json.JSONDecodeError:
        return fragment.replace('\\"', '"').replace("\\n", "\n")
