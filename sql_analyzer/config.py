"""
Application Configuration

Pydantic-based settings management using environment variables.
Supports nested configuration, validation, and caching.

Usage:
    from sql_analyzer.config import get_settings

    settings = get_settings()
    print(settings.llm.openai_model)
    print(settings.resilience.max_retries)
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """LLM provider configuration."""

    default_provider: Literal["openai", "local"] = Field(
        default="openai", description="Default LLM provider"
    )
    repair_model: str | None = Field(
        None,
        description=(
            "Optional model override used only for the JSON repair call. "
            "When unset, the provider default model is used."
        ),
    )

    # OpenAI configuration
    openai_api_key: str | None = Field(
        None,
        description="OpenAI API key",
        min_length=20,
    )
    openai_model: str = Field(default="gpt-4o", description="OpenAI model for analysis")
    openai_model_mini: str = Field(default="gpt-4o-mini", description="OpenAI lightweight model")
    openai_base_url: str | None = Field(
        None, description="Override for the OpenAI API base URL (proxies, gateways)"
    )

    # Local model configuration
    local_base_url: str = Field(
        default="http://localhost:11434",
        description="Base URL for local model server (Ollama, vLLM, etc.)",
    )
    local_model: str = Field(default="llama3.1:8b", description="Local model name")

    # Common settings
    temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=2.0,
        description="Temperature for LLM responses (0.0 = deterministic)",
    )
    max_tokens: int = Field(
        default=2000,
        gt=0,
        le=16000,
        description="Maximum tokens per LLM response",
    )
    timeout: int = Field(
        default=30,
        gt=0,
        description="Request timeout in seconds",
    )

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("openai_api_key")
    @classmethod
    def validate_openai_key(cls, v: str | None) -> str | None:
        """Validate OpenAI API key format."""
        if v and not v.startswith("sk-"):
            raise ValueError("OpenAI API key must start with 'sk-'")
        return v

    @field_validator("repair_model", "openai_base_url", mode="before")
    @classmethod
    def normalize_optional(cls, v: str | None) -> str | None:
        """Treat empty strings as missing."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def validate_provider_keys(self) -> "LLMSettings":
        """Ensure API key is set for the selected provider."""
        if self.default_provider == "openai" and not self.openai_api_key:
            raise ValueError("API key required for openai provider. Set LLM_OPENAI_API_KEY")
        return self


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Application log level",
    )
    format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format",
    )
    date_format: str = Field(
        default="%Y-%m-%d %H:%M:%S",
        description="Log timestamp format",
    )
    file: Path | None = Field(
        default=None,
        description="Optional log file path (None = stdout only)",
    )
    redact: bool = Field(
        default=True,
        description="Redact credentials and personal data from log records",
    )

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore",
    )

    def configure(self) -> None:
        """Configure Python logging with these settings."""
        handlers: list[logging.Handler] = [logging.StreamHandler()]

        if self.file:
            self.file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.file))

        if self.redact:
            from sql_analyzer.resilience.sanitizer import SanitizingFilter

            redacting_filter = SanitizingFilter()
            for handler in handlers:
                handler.addFilter(redacting_filter)

        logging.basicConfig(
            level=getattr(logging, self.level),
            format=self.format,
            datefmt=self.date_format,
            handlers=handlers,
            force=True,  # Override any existing configuration
        )


class ParsingSettings(BaseSettings):
    """Response recovery behavior."""

    repair_enabled: bool = Field(
        default=True,
        description="Ask the LLM to reformat output that no local decode strategy could read.",
    )
    repair_max_chars: int = Field(
        default=12000,
        ge=500,
        le=100000,
        description="Maximum characters of malformed output sent to the repair call.",
    )
    repair_max_tokens: int = Field(
        default=1500,
        gt=0,
        le=16000,
        description="Token budget for the repair call.",
    )
    repair_confidence_factor: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Multiplier applied to the confidence of repaired results.",
    )
    partial_extraction_enabled: bool = Field(
        default=True,
        description=(
            "When repair fails, extract score/confidence/issues/recommendations "
            "from the raw text with regular expressions."
        ),
    )

    model_config = SettingsConfigDict(
        env_prefix="PARSING_",
        env_file=".env",
        extra="ignore",
    )


class ResilienceSettings(BaseSettings):
    """Timeout, retry and circuit breaker defaults."""

    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Overall timeout in seconds for one resilient operation.",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum number of invocations of the wrapped operation.",
    )
    retry_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Base delay in seconds for exponential backoff.",
    )
    jitter_ratio: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Upper bound of random jitter as a fraction of the backoff delay.",
    )
    honor_kind_delays: bool = Field(
        default=True,
        description="Floor backoff at the classifier's per-kind delay (e.g. 60s for rate limits).",
    )
    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before a circuit breaker opens.",
    )
    recovery_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Seconds an open circuit waits before allowing a trial call.",
    )
    success_threshold: int = Field(
        default=3,
        ge=1,
        description="Consecutive half-open successes required to close a circuit.",
    )
    retention_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="How long finished operation records are kept before cleanup.",
    )

    model_config = SettingsConfigDict(
        env_prefix="RESILIENCE_",
        env_file=".env",
        extra="ignore",
    )


class CoordinatorSettings(BaseSettings):
    """Multi-agent analysis settings."""

    parallel_execution: bool = Field(
        default=True, description="Run analysis tools concurrently."
    )
    overall_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for the whole parallel run.",
    )
    tool_timeout: float = Field(
        default=20.0,
        gt=0,
        description="Timeout in seconds for one tool, retries included.",
    )
    tool_max_retries: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Maximum invocations per tool.",
    )
    tool_retry_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Base backoff delay for tool retries.",
    )
    circuit_breaker_enabled: bool = Field(
        default=True,
        description="Route tool LLM calls through a shared circuit breaker.",
    )
    circuit_breaker_key: str = Field(
        default="llm.analysis",
        description="Operation key of the shared circuit breaker.",
    )
    batch_concurrency: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Maximum concurrent analyses in batch mode.",
    )
    cache_enabled: bool = Field(
        default=False,
        description="Cache composite results in memory.",
    )
    cache_ttl: float = Field(
        default=300.0,
        gt=0,
        description="Seconds a cached composite result stays valid.",
    )
    cache_max_entries: int = Field(
        default=256,
        ge=1,
        description="Maximum cached composite results; the oldest is evicted first.",
    )

    model_config = SettingsConfigDict(
        env_prefix="COORDINATOR_",
        env_file=".env",
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_timeouts(self) -> "CoordinatorSettings":
        """Ensure a tool can finish inside the overall budget."""
        if self.tool_timeout > self.overall_timeout:
            raise ValueError(
                f"tool_timeout ({self.tool_timeout}) must not exceed "
                f"overall_timeout ({self.overall_timeout})"
            )
        return self


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    Settings are nested by domain (llm, logging, parsing, resilience, coordinator).

    Environment Variables:
        ENVIRONMENT: Deployment environment (development, staging, production)
        APP_NAME: Application name for logging
        DEBUG: Enable debug mode
        API_HOST: API server host
        API_PORT: API server port
        LLM_*: LLM provider configuration (see LLMSettings)
        LOG_*: Logging configuration (see LoggingSettings)
        PARSING_*: Response recovery (see ParsingSettings)
        RESILIENCE_*: Retry/timeout/circuit defaults (see ResilienceSettings)
        COORDINATOR_*: Multi-agent analysis (see CoordinatorSettings)

    Example:
        >>> settings = get_settings()
        >>> settings.llm.default_provider
        'openai'
        >>> settings.coordinator.parallel_execution
        True
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    app_name: str = Field(
        default="SQL Analyzer",
        description="Application name",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host",
    )
    api_port: int = Field(
        default=8000,
        gt=0,
        le=65535,
        description="API server port",
    )

    # Nested settings
    llm: LLMSettings = Field(default_factory=LLMSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    parsing: ParsingSettings = Field(default_factory=ParsingSettings)
    resilience: ResilienceSettings = Field(default_factory=ResilienceSettings)
    coordinator: CoordinatorSettings = Field(default_factory=CoordinatorSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    @model_validator(mode="after")
    def configure_logging(self) -> "Settings":
        """Configure logging when settings are loaded."""
        self.logging.configure()
        return self

    def model_post_init(self, __context) -> None:
        """Log configuration on initialization."""
        logger = logging.getLogger(__name__)
        logger.info(
            f"Settings loaded for {self.app_name} ({self.environment})",
            extra={
                "environment": self.environment,
                "debug": self.debug,
                "llm_provider": self.llm.default_provider,
                "parallel_execution": self.coordinator.parallel_execution,
                "max_retries": self.resilience.max_retries,
            },
        )


_DOTENV_PATH = Path(__file__).resolve().parents[1] / ".env"


def _apply_dotenv_precedence() -> None:
    env_source = os.getenv("SQL_ANALYZER_ENV_SOURCE", "dotenv").lower()
    if env_source not in {"dotenv", "envfile", "file"}:
        return
    if _DOTENV_PATH.exists():
        load_dotenv(_DOTENV_PATH, override=True)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses functools.lru_cache to ensure settings are loaded only once.

    Returns:
        Settings: Singleton settings instance
    """
    _apply_dotenv_precedence()
    return Settings()


def clear_settings_cache() -> None:
    """
    Clear the settings cache.

    Useful for testing when you need to reload settings with different
    environment variables.
    """
    get_settings.cache_clear()
