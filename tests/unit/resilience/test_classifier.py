"""
Unit tests for the error classifier.

Tests rule ordering, code extraction, message sanitization, handling advice
and classification of the analyzer's own exception types.
"""

import errno

import httpx
import pytest
from pydantic import ValidationError

from sql_analyzer.config import ResilienceSettings
from sql_analyzer.models.classification import ErrorKind, ErrorSeverity, HandlingStrategy
from sql_analyzer.models.errors import (
    AdaptationError,
    AnalysisConfigError,
    CircuitOpenError,
    RepairError,
    ResponseDecodeError,
)
from sql_analyzer.resilience.classifier import (
    MAX_DETAIL_CHARS,
    RULES,
    ErrorClassifier,
    classify,
)


@pytest.fixture
def classifier():
    return ErrorClassifier()


class TestNetworkErrors:
    """Connection failures are retryable network errors."""

    def test_connection_refused(self, classifier):
        error = ConnectionRefusedError("connect ECONNREFUSED 127.0.0.1:5432")

        result = classifier.classify(error)

        assert result.kind == ErrorKind.NETWORK_ERROR
        assert result.severity == ErrorSeverity.HIGH
        assert result.strategy == HandlingStrategy.RETRY
        assert result.retryable is True
        assert result.user_message.startswith("Network connection failed")
        assert "127.0.0.1" not in result.user_message
        assert "[REDACTED_IP]" in result.user_message
        assert result.audit["raw_message"] == "connect ECONNREFUSED 127.0.0.1:5432"
        assert result.audit["error_type"] == "ConnectionRefusedError"

    def test_httpx_connect_error(self, classifier):
        result = classifier.classify(httpx.ConnectError("All connection attempts failed"))

        assert result.kind == ErrorKind.NETWORK_ERROR
        assert result.retryable is True

    def test_timeout(self, classifier):
        result = classifier.classify(TimeoutError("Operation 'x' timed out after 5s"))

        assert result.kind == ErrorKind.NETWORK_ERROR
        assert result.severity == ErrorSeverity.MEDIUM
        assert result.strategy == HandlingStrategy.RETRY


class TestRuleOrdering:
    """The first matching rule wins."""

    def test_dependency_before_not_found(self, classifier):
        result = classifier.classify(ModuleNotFoundError("No module named 'sqlparse'"))

        assert result.kind == ErrorKind.DEPENDENCY_ERROR
        assert result.strategy == HandlingStrategy.FAIL_FAST

    def test_not_found(self, classifier):
        result = classifier.classify("The model `gpt-x` was not found")

        assert result.kind == ErrorKind.DATA_NOT_FOUND
        assert result.strategy == HandlingStrategy.LOG_ONLY

    def test_quota_before_rate_limit(self, classifier):
        result = classifier.classify("429 You exceeded your current quota")

        assert result.kind == ErrorKind.LLM_SERVICE_ERROR
        assert result.retryable is False

    def test_rate_limit_carries_delay(self, classifier):
        result = classifier.classify("429 Too Many Requests")

        assert result.kind == ErrorKind.RATE_LIMIT_ERROR
        assert result.retryable is True
        assert result.retry_delay == 60.0

    def test_rule_table_has_unique_patterns(self):
        patterns = [rule.pattern.pattern for rule in RULES]

        assert len(patterns) == len(set(patterns))

    def test_settings_validation_error_mentioning_timeout(self, classifier):
        with pytest.raises(ValidationError) as exc_info:
            ResilienceSettings(timeout=-1)

        result = classifier.classify(exc_info.value)

        assert result.kind == ErrorKind.VALIDATION_ERROR
        assert result.strategy == HandlingStrategy.FAIL_FAST
        assert result.retryable is False

    def test_config_error_mentioning_timeout(self, classifier):
        result = classifier.classify(
            AnalysisConfigError("tool_timeout must not exceed overall_timeout")
        )

        assert result.kind == ErrorKind.CONFIG_ERROR
        assert result.retryable is False

    def test_rate_limit_before_timeout(self, classifier):
        result = classifier.classify("Rate limit reached; request timed out")

        assert result.kind == ErrorKind.RATE_LIMIT_ERROR
        assert result.retry_delay == 60.0

    @pytest.mark.parametrize(
        "error",
        [
            httpx.ReadTimeout("read operation"),
            TimeoutError(),
            "connect ETIMEDOUT 10.0.0.1:443",
        ],
    )
    def test_transport_timeouts(self, classifier, error):
        result = classifier.classify(error)

        assert result.kind == ErrorKind.NETWORK_ERROR
        assert result.retryable is True


class TestCodes:
    """Error codes from exception attributes take part in matching."""

    def test_status_code_attribute(self, classifier):
        class ProviderError(Exception):
            status_code = 429

        result = classifier.classify(ProviderError("slow down"))

        assert result.kind == ErrorKind.RATE_LIMIT_ERROR
        assert result.audit["code"] == "429"

    def test_errno(self, classifier):
        error = OSError(errno.EACCES, "Permission denied")

        result = classifier.classify(error)

        assert result.kind == ErrorKind.PERMISSION_DENIED
        assert result.strategy == HandlingStrategy.USER_INTERVENTION
        assert result.audit["code"] == str(errno.EACCES)

    def test_server_error_status(self, classifier):
        class UpstreamError(Exception):
            status_code = 503

        result = classifier.classify(UpstreamError("upstream"))

        assert result.kind == ErrorKind.API_ERROR
        assert result.retryable is True


class TestAnalyzerErrors:
    """The analyzer's own exceptions map to their handling strategies."""

    def test_adaptation_error_fails_fast(self, classifier):
        result = classifier.classify(AdaptationError("No text-bearing field found in response"))

        assert result.kind == ErrorKind.RESPONSE_FORMAT_ERROR
        assert result.strategy == HandlingStrategy.FAIL_FAST

    @pytest.mark.parametrize("error_cls", [ResponseDecodeError, RepairError])
    def test_decode_errors_fall_back(self, classifier, error_cls):
        result = classifier.classify(error_cls("performance", "Could not decode analysis"))

        assert result.kind == ErrorKind.RESPONSE_FORMAT_ERROR
        assert result.strategy == HandlingStrategy.FALLBACK
        assert result.retryable is False

    def test_circuit_open(self, classifier):
        result = classifier.classify(CircuitOpenError("llm.analysis", 12.0))

        assert result.kind == ErrorKind.CIRCUIT_OPEN
        assert result.strategy == HandlingStrategy.FALLBACK

    def test_config_error(self, classifier):
        result = classifier.classify(AnalysisConfigError("Unknown analysis dimensions: cost"))

        assert result.kind == ErrorKind.CONFIG_ERROR
        assert result.strategy == HandlingStrategy.FAIL_FAST

    def test_memory_error_without_message(self, classifier):
        result = classifier.classify(MemoryError())

        assert result.kind == ErrorKind.MEMORY_ERROR
        assert result.user_message == "The system ran out of memory"


class TestMessages:
    """User messages are sanitized and bounded; technical messages keep detail."""

    def test_unknown_error(self, classifier):
        result = classifier.classify("something odd happened")

        assert result.kind == ErrorKind.SYSTEM_ERROR
        assert result.severity == ErrorSeverity.MEDIUM
        assert result.strategy == HandlingStrategy.LOG_ONLY
        assert result.retryable is False
        assert result.user_message == (
            "An unexpected error occurred, check the logs for details: something odd happened"
        )

    def test_api_key_redacted(self, classifier):
        result = classifier.classify(
            "Incorrect API key provided: sk-abcdefghijklmnopqrstuvwx"
        )

        assert result.kind == ErrorKind.LLM_SERVICE_ERROR
        assert result.strategy == HandlingStrategy.USER_INTERVENTION
        assert "sk-abcdefghijklmnopqrstuvwx" not in result.user_message
        assert "sk-abcdefghijklmnopqrstuvwx" in result.technical_message

    def test_detail_truncated(self, classifier):
        result = classifier.classify(RuntimeError("x" * 500))

        base = "An unexpected error occurred, check the logs for details"
        assert result.user_message.endswith("...")
        assert len(result.user_message) == len(base) + 2 + MAX_DETAIL_CHARS

    def test_context_in_audit(self, classifier):
        result = classifier.classify("timed out", {"operation": "analysis.security"})

        assert result.audit["context"] == {"operation": "analysis.security"}
        assert "timestamp" in result.audit

    def test_module_level_classify(self):
        assert classify("connection reset by peer").kind == ErrorKind.NETWORK_ERROR


class TestHandlingAdvice:
    """Advice summarizes retry, fallback and escalation."""

    def test_network_advice(self, classifier):
        advice = classifier.get_handling_advice(classifier.classify("ECONNREFUSED"))

        assert advice.should_retry is True
        assert advice.retry_delay == 5.0
        assert advice.fallback_available is True
        assert advice.escalation_needed is True

    def test_not_found_advice(self, classifier):
        advice = classifier.get_handling_advice(classifier.classify("record not found"))

        assert advice.should_retry is False
        assert advice.retry_delay == 3.0
        assert advice.fallback_available is False
        assert advice.escalation_needed is False

    def test_format_user_message(self, classifier):
        classification = classifier.classify("ECONNREFUSED")

        formatted = classifier.format_user_message(classification)

        assert formatted.splitlines() == [
            "Network connection failed: ECONNREFUSED",
            "",
            "Suggested actions:",
            "  1. Check the network connection",
            "  2. Verify the service is running",
            "  3. Check firewall settings",
        ]
