"""
Response Recovery Pipeline

adapt -> decode (direct, cleaned, repaired characters) -> repair call.
"""

import logging
from typing import Any

from sql_analyzer.models.recovery import DecodeResult
from sql_analyzer.parsing.adapter import adapt_response
from sql_analyzer.parsing.decoder import StructuredDecoder
from sql_analyzer.parsing.repairer import IntelligentRepairer

logger = logging.getLogger(__name__)

_default_decoder = StructuredDecoder()


async def recover_structured(
    raw_response: Any,
    repairer: IntelligentRepairer | None = None,
    decoder: StructuredDecoder | None = None,
) -> DecodeResult:
    """
    Recover a structured object from a raw provider response.

    Args:
        raw_response: Provider return value (string, envelope, SDK object)
        repairer: Optional repairer; without one, decode failures are returned as is
        decoder: Decoder to use (defaults to the standard strategy list)

    Returns:
        DecodeResult; ``success`` is False only if decoding and repair both failed

    Raises:
        AdaptationError: If the response carries no text at all
    """
    adapted = adapt_response(raw_response)
    result = (decoder or _default_decoder).decode(adapted)
    if result.success or repairer is None:
        return result

    logger.info(
        "Decoding failed, attempting repair",
        extra={
            "error": result.error,
            "response_type": adapted.metadata.response_type,
            "length": len(adapted.text),
        },
    )
    return await repairer.repair(result, adapted.text)
