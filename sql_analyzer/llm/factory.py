"""
LLM Provider Factory

Creates provider instances from LLMSettings.
"""

import logging
from typing import Literal

from sql_analyzer.config import LLMSettings
from sql_analyzer.llm.base import BaseLLMProvider
from sql_analyzer.llm.local import LocalProvider
from sql_analyzer.llm.openai import OpenAIProvider

logger = logging.getLogger(__name__)


class LLMProviderFactory:
    """Factory for creating LLM provider instances."""

    PROVIDERS: dict[str, type[BaseLLMProvider]] = {
        "openai": OpenAIProvider,
        "local": LocalProvider,
    }

    @staticmethod
    def create_provider(
        provider_type: str,
        config: LLMSettings,
        model_type: Literal["main", "mini"] = "main",
    ) -> BaseLLMProvider:
        """
        Create a provider instance.

        Args:
            provider_type: "openai" or "local"
            config: LLM configuration
            model_type: Use main or mini model

        Returns:
            Configured provider

        Raises:
            ValueError: If provider type is unknown or misconfigured
        """
        if provider_type not in LLMProviderFactory.PROVIDERS:
            raise ValueError(
                f"Unknown provider: {provider_type}. "
                f"Available: {', '.join(LLMProviderFactory.PROVIDERS)}"
            )

        logger.info(
            f"Creating {provider_type} provider",
            extra={"provider": provider_type, "model_type": model_type},
        )

        if provider_type == "openai":
            return LLMProviderFactory._create_openai(config, model_type)
        return LLMProviderFactory._create_local(config)

    @staticmethod
    def create_default_provider(
        config: LLMSettings,
        model_type: Literal["main", "mini"] = "main",
    ) -> BaseLLMProvider:
        """Create provider using default_provider from config."""
        return LLMProviderFactory.create_provider(config.default_provider, config, model_type)

    @staticmethod
    def _create_openai(
        config: LLMSettings,
        model_type: Literal["main", "mini"],
    ) -> OpenAIProvider:
        if not config.openai_api_key:
            raise ValueError("OpenAI API key is required but not configured")

        model = config.openai_model if model_type == "main" else config.openai_model_mini

        return OpenAIProvider(
            api_key=config.openai_api_key,
            model=model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
            base_url=config.openai_base_url,
        )

    @staticmethod
    def _create_local(config: LLMSettings) -> LocalProvider:
        # Local servers expose one model; model_type is ignored.
        return LocalProvider(
            base_url=config.local_base_url,
            model=config.local_model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
        )
