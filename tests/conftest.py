"""
Pytest configuration and shared fixtures.

This module provides fixtures and configuration used across all tests.
"""

import logging
from unittest.mock import AsyncMock

import pytest

from sql_analyzer.llm.models import LLMResponse, LLMUsage

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires API keys and external services)",
    )


def pytest_configure(config):
    """Configure pytest with custom markers and settings."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test (may require external services)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow (takes more than 1 second)")
    config.addinivalue_line("markers", "unit: mark test as unit test (default)")


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly enabled."""
    if config.getoption("--run-integration"):
        return
    skip_integration = pytest.mark.skip(
        reason="Integration tests disabled (use --run-integration to enable)."
    )
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


# ============================================================================
# Logging Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def configure_test_logging(caplog):
    """Capture logs at DEBUG for every test."""
    caplog.set_level(logging.DEBUG)
    yield


# ============================================================================
# Environment and Configuration
# ============================================================================


@pytest.fixture(autouse=True)
def mock_openai_api_key(monkeypatch):
    """
    Mock OpenAI API key for tests that require it.

    This prevents tests from attempting real API calls.
    Runs automatically for all tests.
    """
    from sql_analyzer.config import clear_settings_cache

    clear_settings_cache()
    monkeypatch.setenv("SQL_ANALYZER_ENV_SOURCE", "environment")
    test_key = "sk-test-key-1234567890-abcdefghijklmnop"  # 20+ chars
    monkeypatch.setenv("LLM_OPENAI_API_KEY", test_key)
    yield test_key

    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_resilience_state():
    """Give every test a fresh process-wide operation registry."""
    from sql_analyzer.resilience.registry import reset_default_registry

    reset_default_registry()
    yield
    reset_default_registry()


# ============================================================================
# LLM Fixtures
# ============================================================================


def make_llm_response(content: str, finish_reason: str = "stop") -> LLMResponse:
    """Build an LLMResponse the way a provider would return it."""
    return LLMResponse(
        content=content,
        model="gpt-4o",
        usage=LLMUsage(prompt_tokens=100, completion_tokens=50, total_tokens=150),
        finish_reason=finish_reason,
        provider="openai",
    )


@pytest.fixture
def llm_response_factory():
    """Factory for LLMResponse objects."""
    return make_llm_response


@pytest.fixture
def mock_llm_provider():
    """
    Mock LLM provider for testing.

    ``generate`` returns a well-formed performance analysis by default;
    override ``return_value`` or ``side_effect`` per test.
    """
    provider = AsyncMock()
    provider.provider_name = "mock"
    provider.model = "mock-model"
    provider.generate = AsyncMock(
        return_value=make_llm_response(
            '{"summary": "Looks fine", "score": 80, "confidence": 0.9, '
            '"issues": [], "recommendations": ["Add an index on customer_id"]}'
        )
    )
    provider.aclose = AsyncMock()
    return provider


# ============================================================================
# Common Test Data
# ============================================================================


@pytest.fixture
def sample_sql() -> str:
    """Sample SQL statement for testing."""
    return "SELECT * FROM orders WHERE customer_id = 42"
