"""
Raw Response Adapter

Normalizes provider response envelopes into one AdaptedResponse so the rest
of the recovery pipeline never depends on which provider produced the text.

Supported shapes:
    - str / bytes
    - {"content": str} and {"content": {"text": str}}
    - LLMResponse and LangChain-style messages (``.content``)
    - OpenAI chat completions (``choices[0].message.content``)
    - Anthropic messages (``content[0].text``) and legacy ``completion``
    - dicts with a common text key (text, output, message, ...)
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from sql_analyzer.llm.models import LLMResponse
from sql_analyzer.models.errors import AdaptationError
from sql_analyzer.models.recovery import AdaptedResponse, ResponseMetadata, ResponseType

logger = logging.getLogger(__name__)

KNOWN_SHAPE_CONFIDENCE = 0.95
RAW_SHAPE_CONFIDENCE = 0.5

TEXT_KEYS = (
    "content",
    "text",
    "output_text",
    "output",
    "completion",
    "generated_text",
    "response",
    "result",
    "message",
)


def adapt_response(raw: Any) -> AdaptedResponse:
    """
    Extract the text of a raw provider response.

    Args:
        raw: Whatever the provider returned

    Returns:
        AdaptedResponse with the text and how it was found

    Raises:
        AdaptationError: If no text-bearing field exists (one level of unwrap)
    """
    summary = _summarize(raw)

    if isinstance(raw, str):
        return _adapted(raw, "string", RAW_SHAPE_CONFIDENCE, summary)
    if isinstance(raw, (bytes, bytearray)):
        return _adapted(
            bytes(raw).decode("utf-8", errors="replace"), "string", RAW_SHAPE_CONFIDENCE, summary
        )
    if isinstance(raw, LLMResponse):
        return _adapted(raw.content, "llm_response", KNOWN_SHAPE_CONFIDENCE, summary)

    extracted = _extract_known_shape(raw)
    if extracted is not None:
        text, response_type = extracted
        return _adapted(text, response_type, KNOWN_SHAPE_CONFIDENCE, summary)

    text = _extract_any_text(raw)
    if text is not None:
        logger.debug("Adapted response from unrecognized shape", extra=summary)
        return _adapted(text, "object", RAW_SHAPE_CONFIDENCE, summary)

    raise AdaptationError("No text-bearing field found in response", context=summary)


def _adapted(
    text: str, response_type: ResponseType, confidence: float, summary: dict[str, Any]
) -> AdaptedResponse:
    return AdaptedResponse(
        text=text,
        metadata=ResponseMetadata(
            response_type=response_type,
            confidence=confidence,
            raw_structure_summary=summary,
        ),
    )


def _get(obj: Any, name: str) -> Any:
    """Read a key from a mapping or an attribute from an object."""
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _first(seq: Any) -> Any:
    if isinstance(seq, Sequence) and not isinstance(seq, (str, bytes)) and seq:
        return seq[0]
    return None


def _extract_known_shape(raw: Any) -> tuple[str, ResponseType] | None:
    # OpenAI chat completion
    choice = _first(_get(raw, "choices"))
    if choice is not None:
        message = _get(choice, "message")
        content = _get(message, "content") if message is not None else _get(choice, "text")
        if isinstance(content, str):
            return content, "openai"

    content = _get(raw, "content")

    # Anthropic message: content is a list of blocks
    block = _first(content)
    if block is not None and isinstance(_get(block, "text"), str):
        texts = [_get(item, "text") for item in content if isinstance(_get(item, "text"), str)]
        return "".join(texts), "anthropic"

    if isinstance(content, str):
        if isinstance(raw, Mapping):
            return content, "dict"
        # LangChain messages carry additional_kwargs/response_metadata
        if hasattr(raw, "additional_kwargs") or hasattr(raw, "response_metadata"):
            return content, "langchain"
        return content, "object"

    nested_text = _get(content, "text") if content is not None else None
    if isinstance(nested_text, str):
        return nested_text, "dict" if isinstance(raw, Mapping) else "object"

    completion = _get(raw, "completion")
    if isinstance(completion, str):
        return completion, "anthropic"

    return None


def _extract_any_text(raw: Any) -> str | None:
    """Look for a text field on the object itself or one level below it."""
    for key in TEXT_KEYS:
        value = _get(raw, key)
        if isinstance(value, str):
            return value
    for key in TEXT_KEYS:
        value = _get(raw, key)
        if value is None or isinstance(value, (str, bytes)):
            continue
        for inner_key in TEXT_KEYS:
            inner = _get(value, inner_key)
            if isinstance(inner, str):
                return inner
    return None


def _summarize(raw: Any) -> dict[str, Any]:
    summary: dict[str, Any] = {
        "type": type(raw).__name__,
        "constructor": f"{type(raw).__module__}.{type(raw).__qualname__}",
    }
    if isinstance(raw, Mapping):
        summary["keys"] = [str(key) for key in list(raw.keys())[:20]]
    elif hasattr(raw, "__dict__"):
        summary["keys"] = [key for key in vars(raw) if not key.startswith("_")][:20]
    elif isinstance(raw, (list, tuple)):
        summary["length"] = len(raw)
    if isinstance(raw, (str, bytes)):
        summary["length"] = len(raw)
    return summary
