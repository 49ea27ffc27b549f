"""
LLM Provider Module

Provider abstraction used by the analysis tools and the repair call.

Usage:
    from sql_analyzer.llm import LLMProviderFactory, LLMRequest, LLMMessage
    from sql_analyzer.config import get_settings

    config = get_settings()
    provider = LLMProviderFactory.create_default_provider(config.llm)

    request = LLMRequest(
        messages=[LLMMessage(role="user", content="Hello!")],
    )

    response = await provider.generate(request)
    print(response.content)
"""

from sql_analyzer.llm.base import BaseLLMProvider
from sql_analyzer.llm.factory import LLMProviderFactory
from sql_analyzer.llm.local import LocalProvider
from sql_analyzer.llm.models import LLMMessage, LLMRequest, LLMResponse, LLMUsage
from sql_analyzer.llm.openai import OpenAIProvider

__all__ = [
    "BaseLLMProvider",
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "LLMUsage",
    "LLMProviderFactory",
    "OpenAIProvider",
    "LocalProvider",
]
