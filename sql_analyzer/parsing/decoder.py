"""
Structured Decoder

Decodes adapted model output with an ordered list of strategies and stops at
the first one that yields a JSON object:

    1. DIRECT          json.loads of the adapted text
    2. CLEANED         json.loads of the Text Cleaner's output
    3. REPAIRED_CHARS  cleaned text with escape/control-character and
                       truncation fixes applied

A failed DecodeResult is a signal to run the repairer, not an error.
"""

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sql_analyzer.models.recovery import AdaptedResponse, DecodeResult, DecodeStrategy
from sql_analyzer.parsing.adapter import KNOWN_SHAPE_CONFIDENCE
from sql_analyzer.parsing.cleaner import clean_text, split_string_literals
from sql_analyzer.parsing.validation import validate_fields

logger = logging.getLogger(__name__)

STRATEGY_BASE_CONFIDENCE: dict[DecodeStrategy, float] = {
    DecodeStrategy.DIRECT: 0.95,
    DecodeStrategy.CLEANED: 0.85,
    DecodeStrategy.REPAIRED_CHARS: 0.75,
}
RAW_SHAPE_FACTOR = 0.9

_VALID_ESCAPE_RE = re.compile(r'\\(?:["\\/bfnrt]|u[0-9a-fA-F]{4})')
_PLACEHOLDER = "\ue000{}\ue001"
_PLACEHOLDER_RE = re.compile("\ue000(\\d+)\ue001")
_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t", "\b": "\\b", "\f": "\\f"}
_DANGLING_TAIL_RE = re.compile(r"[,:]\s*$")


class TextSource:
    """
    Text candidates for one decode call.

    The cleaned text is computed on first use, so the cleaner never runs when
    the direct strategy succeeds.
    """

    def __init__(self, raw: str, cleaner: Callable[[str], str]):
        self.raw = raw
        self._cleaner = cleaner
        self._cleaned: str | None = None

    @property
    def cleaned(self) -> str:
        if self._cleaned is None:
            self._cleaned = self._cleaner(self.raw)
        return self._cleaned


@dataclass(frozen=True)
class DecodeStep:
    """One decoding strategy: builds its candidate text from a TextSource."""

    strategy: DecodeStrategy
    prepare: Callable[[TextSource], str]


def decode_object(text: str) -> dict[str, Any]:
    """json.loads that only accepts a JSON object."""
    value = json.loads(text)
    if not isinstance(value, dict):
        raise ValueError(f"Expected a JSON object, got {type(value).__name__}")
    return value


def repair_characters(text: str) -> str:
    """
    Fix escape and control-character problems, then close a truncated tail.

    Valid escape sequences are swapped for placeholders first so that the
    backslash and control-character rewrites cannot touch them, then restored.
    """
    protected: list[str] = []

    def _protect(match: re.Match) -> str:
        protected.append(match.group(0))
        return _PLACEHOLDER.format(len(protected) - 1)

    working = _VALID_ESCAPE_RE.sub(_protect, text)
    working = working.replace("\\", "\\\\")  # lone backslashes are invalid escapes

    pieces = []
    for is_string, chunk in split_string_literals(working):
        if is_string:
            chunk = "".join(
                _CONTROL_ESCAPES.get(ch, f"\\u{ord(ch):04x}") if ord(ch) < 0x20 else ch
                for ch in chunk
            )
        pieces.append(chunk)
    working = "".join(pieces)

    working = _PLACEHOLDER_RE.sub(lambda m: protected[int(m.group(1))], working)
    return close_truncated(working)


def close_truncated(text: str) -> str:
    """Close an unterminated string and append missing ``]``/``}`` closers."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack and stack[-1] == ch:
            stack.pop()

    if not in_string and not stack:
        return text
    closed = text + ('"' if in_string else "")
    closed = _DANGLING_TAIL_RE.sub("", closed.rstrip())
    return closed + "".join(reversed(stack))


DEFAULT_STEPS: tuple[DecodeStep, ...] = (
    DecodeStep(DecodeStrategy.DIRECT, lambda source: source.raw.strip()),
    DecodeStep(DecodeStrategy.CLEANED, lambda source: source.cleaned),
    DecodeStep(DecodeStrategy.REPAIRED_CHARS, lambda source: repair_characters(source.cleaned)),
)


class StructuredDecoder:
    """
    Decode adapted responses with short-circuiting strategies.

    Args:
        steps: Ordered strategies (defaults to DIRECT, CLEANED, REPAIRED_CHARS)
        cleaner: Cleaning function used by the cleaned strategies
        validate: Run score/confidence clamping on success
    """

    def __init__(
        self,
        steps: tuple[DecodeStep, ...] | None = None,
        cleaner: Callable[[str], str] = clean_text,
        validate: bool = True,
    ):
        self.steps = steps if steps is not None else DEFAULT_STEPS
        self.cleaner = cleaner
        self.validate = validate

    def decode(self, adapted: AdaptedResponse) -> DecodeResult:
        source = TextSource(adapted.text, self.cleaner)
        attempted: list[DecodeStrategy] = []
        last_error = "Empty response"

        if not adapted.text.strip():
            return DecodeResult.failure(last_error)

        for step in self.steps:
            attempted.append(step.strategy)
            try:
                data = decode_object(step.prepare(source))
            except (ValueError, TypeError, RecursionError) as exc:
                last_error = f"{step.strategy.value}: {exc}"
                logger.debug(
                    "Decode strategy failed",
                    extra={"strategy": step.strategy.value, "error": str(exc)},
                )
                continue
            return self._success(data, step.strategy, adapted, attempted)

        logger.info(
            "All decode strategies failed",
            extra={"attempted": [s.value for s in attempted], "error": last_error},
        )
        return DecodeResult.failure(last_error, attempted)

    def _success(
        self,
        data: dict[str, Any],
        strategy: DecodeStrategy,
        adapted: AdaptedResponse,
        attempted: list[DecodeStrategy],
    ) -> DecodeResult:
        issues = []
        if self.validate:
            data, issues = validate_fields(data)
        if issues:
            logger.debug(
                "Coerced out-of-range fields",
                extra={"fields": [issue.field for issue in issues]},
            )
        return DecodeResult(
            success=True,
            data=data,
            strategy=strategy,
            confidence=self._confidence(strategy, data, adapted),
            issues=issues,
            attempted=attempted,
        )

    @staticmethod
    def _confidence(
        strategy: DecodeStrategy, data: dict[str, Any], adapted: AdaptedResponse
    ) -> float:
        base = STRATEGY_BASE_CONFIDENCE.get(strategy, 0.7)
        quality_bonus = min(0.05, 0.01 * len(data))
        shape_factor = (
            1.0 if adapted.metadata.confidence >= KNOWN_SHAPE_CONFIDENCE else RAW_SHAPE_FACTOR
        )
        return round(min(1.0, (base + quality_bonus) * shape_factor), 4)
