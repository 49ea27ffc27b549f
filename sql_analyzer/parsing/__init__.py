"""
Response Recovery

Turns unreliable model output into validated structured data.

Usage:
    from sql_analyzer.parsing import recover_structured

    result = await recover_structured(response, repairer=repairer)
    if result.success:
        print(result.data, result.strategy)
"""

from sql_analyzer.parsing.adapter import adapt_response
from sql_analyzer.parsing.cleaner import clean_text
from sql_analyzer.parsing.decoder import StructuredDecoder
from sql_analyzer.parsing.pipeline import recover_structured
from sql_analyzer.parsing.repairer import IntelligentRepairer
from sql_analyzer.parsing.validation import clamp, validate_fields

__all__ = [
    "IntelligentRepairer",
    "StructuredDecoder",
    "adapt_response",
    "clamp",
    "clean_text",
    "recover_structured",
    "validate_fields",
]
