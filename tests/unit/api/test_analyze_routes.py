"""
Unit Tests for Analysis Endpoints

Tests /api/v1/analyze, /api/v1/recover, /api/v1/classify and the error
handlers that turn analyzer errors into sanitized responses.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from sql_analyzer.api.main import app, app_state, get_coordinator
from sql_analyzer.models.analysis import (
    AnalysisMetadata,
    CompositeResult,
    ExecutionMode,
    ToolResult,
)
from sql_analyzer.models.errors import AnalysisConfigError, RepairError, ResilienceError
from sql_analyzer.models.operation import OperationRecord, OperationStatus
from sql_analyzer.resilience.classifier import classify


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def composite():
    return CompositeResult(
        per_tool_results={
            "performance": ToolResult(
                tool="performance",
                success=True,
                data={"summary": "Looks fine", "issues": []},
                confidence=0.9,
                attempts=1,
            ),
            "security": None,
            "standards": None,
        },
        aggregate_confidence=0.9,
        enabled_dimensions=["performance"],
        metadata=AnalysisMetadata(request_id="req-1", execution_mode=ExecutionMode.PARALLEL),
    )


@pytest.fixture
def coordinator(composite):
    mock = AsyncMock()
    mock.analyze = AsyncMock(return_value=composite)
    original_state = app_state.copy()
    app_state["coordinator"] = mock
    yield mock
    app_state.update(original_state)


class TestAnalyzeEndpoint:
    """Test suite for the analysis endpoint."""

    def test_unavailable_without_coordinator(self, client):
        original_state = app_state.copy()
        app_state["coordinator"] = None
        try:
            with pytest.raises(RuntimeError, match="not initialized"):
                get_coordinator()
            response = client.post("/api/v1/analyze", json={"sql": "SELECT 1"})
        finally:
            app_state.update(original_state)

        assert response.status_code == 503
        assert "no LLM provider" in response.json()["detail"]

    def test_route_uses_initialized_coordinator(self, client, coordinator):
        assert get_coordinator() is coordinator

        client.post("/api/v1/analyze", json={"sql": "SELECT 1"})

        coordinator.analyze.assert_awaited_once()

    def test_returns_composite_result(self, client, coordinator):
        response = client.post(
            "/api/v1/analyze",
            json={
                "sql": "SELECT * FROM orders",
                "database_type": "postgresql",
                "dimensions": ["performance"],
                "mode": "parallel",
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["aggregate_confidence"] == 0.9
        assert data["per_tool_results"]["security"] is None
        assert data["per_tool_results"]["performance"]["data"]["summary"] == "Looks fine"

        analysis_request, dimensions, mode = coordinator.analyze.await_args.args
        assert analysis_request.sql == "SELECT * FROM orders"
        assert analysis_request.database_type == "postgresql"
        assert dimensions == ["performance"]
        assert mode == ExecutionMode.PARALLEL

    def test_blank_sql_rejected(self, client, coordinator):
        response = client.post("/api/v1/analyze", json={"sql": "   "})

        assert response.status_code == 422
        coordinator.analyze.assert_not_awaited()

    def test_config_error_is_400(self, client, coordinator):
        coordinator.analyze.side_effect = AnalysisConfigError("Unknown analysis dimensions: cost")

        response = client.post("/api/v1/analyze", json={"sql": "SELECT 1", "dimensions": ["cost"]})

        assert response.status_code == 400
        assert response.json() == {
            "error": "invalid_analysis_request",
            "message": "Unknown analysis dimensions: cost",
            "suggested_actions": [],
            "recoverable": False,
        }

    def test_resilience_error_is_sanitized(self, client, coordinator):
        classification = classify(ConnectionRefusedError("connect ECONNREFUSED 10.0.0.5:443"))
        record = OperationRecord(name="analysis.performance")
        record.mark_finished(OperationStatus.FAILED, "connect ECONNREFUSED 10.0.0.5:443")
        coordinator.analyze.side_effect = ResilienceError(
            classification.user_message, classification, record
        )

        response = client.post("/api/v1/analyze", json={"sql": "SELECT 1"})

        assert response.status_code == 502
        data = response.json()
        assert data["error"] == "network_error"
        assert "10.0.0.5" not in data["message"]
        assert data["suggested_actions"]
        assert data["recoverable"] is True

    def test_analyzer_error_is_500(self, client, coordinator):
        coordinator.analyze.side_effect = RepairError("performance", "Could not decode analysis")

        response = client.post("/api/v1/analyze", json={"sql": "SELECT 1"})

        assert response.status_code == 500
        assert response.json()["error"] == "analyzer_error"
        assert response.json()["message"] == "Could not decode analysis"


class TestRecoverEndpoint:
    """Offline recovery runs the local decode strategies only."""

    def test_fenced_json(self, client):
        content = 'Sure!\n```json\n{"score": 85, "confidence": 0.9, "issues": []}\n```'

        response = client.post("/api/v1/recover", json={"content": content})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["strategy"] == "cleaned"
        assert data["data"] == {"score": 85, "confidence": 0.9, "issues": []}

    def test_openai_envelope(self, client):
        envelope = {"choices": [{"message": {"content": '{"score": 150}'}}]}

        data = client.post("/api/v1/recover", json={"content": envelope}).json()

        assert data["success"] is True
        assert data["data"]["score"] == 100
        assert data["issues"][0]["field"] == "score"

    def test_undecodable(self, client):
        data = client.post("/api/v1/recover", json={"content": "no json at all"}).json()

        assert data["success"] is False
        assert data["error"]

    def test_no_text_field(self, client):
        response = client.post("/api/v1/recover", json={"content": {"count": 3}})

        assert response.status_code == 422
        assert response.json()["detail"] == "No text-bearing field found in response"


class TestClassifyEndpoint:
    def test_classifies_with_code(self, client):
        response = client.post(
            "/api/v1/classify",
            json={"message": "Too Many Requests", "code": "429"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["kind"] == "rate_limit_error"
        assert data["retryable"] is True
        assert data["retry_delay"] == 60.0

    def test_hides_raw_detail(self, client):
        message = "password authentication failed for postgresql://admin:hunter2@db:5432/app"

        data = client.post("/api/v1/classify", json={"message": message}).json()

        assert "hunter2" not in data["user_message"]
        assert "hunter2" not in data["technical_message"]
        assert data["audit"] == {"error_type": None, "code": None}

    def test_empty_message_rejected(self, client):
        response = client.post("/api/v1/classify", json={"message": ""})

        assert response.status_code == 422
